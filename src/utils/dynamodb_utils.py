"""DynamoDB helpers.

Items come back with numbers as Decimal (and number sets as set[Decimal]),
while the Pydantic models use int/float. Writes go through update_item with
plain Python values, which boto3 serializes itself.

Scans and queries are also paginated; the helpers here follow
``LastEvaluatedKey`` until the table is exhausted.
"""

from decimal import Decimal
from typing import Any, Iterator


def decimal_to_python(obj: Any) -> Any:
    """Recursively convert DynamoDB Decimal values to int or float."""
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    elif isinstance(obj, dict):
        return {key: decimal_to_python(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [decimal_to_python(item) for item in obj]
    elif isinstance(obj, tuple):
        return tuple(decimal_to_python(item) for item in obj)
    elif isinstance(obj, set):
        return {decimal_to_python(item) for item in obj}
    return obj


def parse_from_dynamodb(item: dict[str, Any]) -> dict[str, Any]:
    """Parse an item returned by get/scan/query into Python-native types."""
    return decimal_to_python(item)


def iter_scan(table, **kwargs) -> Iterator[dict[str, Any]]:
    """Yield every item of a scan, following pagination.

    Args:
        table: DynamoDB table resource
        **kwargs: Passed through to ``table.scan`` (FilterExpression etc.)
    """
    while True:
        response = table.scan(**kwargs)
        for item in response.get("Items", []):
            yield parse_from_dynamodb(item)
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return
        kwargs["ExclusiveStartKey"] = last_key


def iter_query(table, **kwargs) -> Iterator[dict[str, Any]]:
    """Yield every item of a query, following pagination."""
    while True:
        response = table.query(**kwargs)
        for item in response.get("Items", []):
            yield parse_from_dynamodb(item)
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return
        kwargs["ExclusiveStartKey"] = last_key
