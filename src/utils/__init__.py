"""Utility functions for Feedback Sync."""

from .dynamodb_utils import (
    decimal_to_python,
    iter_query,
    iter_scan,
    parse_from_dynamodb,
)

__all__ = [
    "decimal_to_python",
    "parse_from_dynamodb",
    "iter_scan",
    "iter_query",
]
