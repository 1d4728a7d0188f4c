"""Feedback table access and sync status transitions.

Status writes are conditional updates so that a record's ``issue_url``,
once set, is never overwritten and a failed record is only re-armed while
it still has retry budget left.
"""

import logging
from datetime import UTC, datetime, timedelta

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from models.feedback import CreatedIssue, FeedbackRecord, SyncState
from utils.dynamodb_utils import iter_scan, parse_from_dynamodb

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 1000

_NOT_SYNCED = "(attribute_not_exists(issue_url) OR issue_url = :null)"
_EPOCH = datetime.min.replace(tzinfo=UTC)


class FeedbackStoreError(Exception):
    """The feedback table could not be read or written."""

    pass


class AlreadySyncedError(Exception):
    """The record already has an issue URL."""

    pass


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _is_conditional_failure(error: ClientError) -> bool:
    return error.response["Error"]["Code"] == "ConditionalCheckFailedException"


def _newest_first(records: list[FeedbackRecord]) -> list[FeedbackRecord]:
    return sorted(records, key=lambda r: r.submitted_at or _EPOCH, reverse=True)


class FeedbackService:
    """Reads feedback records and applies sync status transitions."""

    def __init__(self, table, max_retries: int = 3):
        """Initialize the service.

        Args:
            table: DynamoDB feedback table (hash key ``feedback_id``)
            max_retries: Retry ceiling used to classify failed records
        """
        self.table = table
        self.max_retries = max_retries

    def _scan(self, **kwargs) -> list[FeedbackRecord]:
        """Scan and validate items one at a time; malformed items are skipped."""
        records = []
        try:
            for item in iter_scan(self.table, **kwargs):
                try:
                    records.append(FeedbackRecord(**item))
                except ValidationError as e:
                    logger.error(
                        f"Skipping malformed feedback {item.get('feedback_id')}: {e}"
                    )
        except (ClientError, BotoCoreError) as e:
            raise FeedbackStoreError(f"Failed to read feedback: {e}") from e
        return records

    def get_record(self, feedback_id: str) -> FeedbackRecord | None:
        try:
            response = self.table.get_item(Key={"feedback_id": feedback_id})
        except (ClientError, BotoCoreError) as e:
            raise FeedbackStoreError(f"Failed to read feedback {feedback_id}: {e}") from e

        item = response.get("Item")
        if not item:
            return None
        try:
            return FeedbackRecord(**parse_from_dynamodb(item))
        except ValidationError as e:
            raise FeedbackStoreError(f"Feedback {feedback_id} is malformed: {e}") from e

    def get_pending(self, limit: int) -> list[FeedbackRecord]:
        """Newest records with neither an issue nor an error, up to ``limit``.

        The scan filter is best effort; state and ordering are always
        re-checked in memory.
        """
        records = self._scan(
            FilterExpression=(Attr("issue_url").not_exists() | Attr("issue_url").eq(None))
            & (Attr("issue_error").not_exists() | Attr("issue_error").eq(None))
        )
        pending = [
            r for r in records if r.sync_state(self.max_retries) == SyncState.PENDING
        ]
        return _newest_first(pending)[:limit]

    def get_retryable(self, limit: int, max_retries: int | None = None) -> list[FeedbackRecord]:
        """Failed records whose retry_count is still below the ceiling."""
        ceiling = self.max_retries if max_retries is None else max_retries
        records = self._scan(
            FilterExpression=Attr("issue_error").exists()
            & Attr("issue_error").ne(None)
            & (Attr("issue_url").not_exists() | Attr("issue_url").eq(None))
            & (Attr("retry_count").not_exists() | Attr("retry_count").lt(ceiling))
        )
        failed = [r for r in records if r.sync_state(ceiling) == SyncState.FAILED]
        return _newest_first(failed)[:limit]

    def get_recent(self, limit: int) -> list[FeedbackRecord]:
        """Newest records regardless of sync state."""
        return _newest_first(self._scan())[:limit]

    def claim(self, feedback_id: str, claim_id: str, lease_seconds: int) -> bool:
        """Take a processing lease on a pending record.

        Returns:
            True if this run now holds the lease, False if the record was
            synced, failed, or claimed by another live run in the meantime
        """
        now = datetime.now(UTC)
        stale_before = (now - timedelta(seconds=lease_seconds)).isoformat()
        try:
            self.table.update_item(
                Key={"feedback_id": feedback_id},
                UpdateExpression="SET sync_claim = :claim, sync_claimed_at = :now",
                ConditionExpression=(
                    f"attribute_exists(feedback_id) AND {_NOT_SYNCED} "
                    "AND (attribute_not_exists(issue_error) OR issue_error = :null) "
                    "AND (attribute_not_exists(sync_claim) OR sync_claim = :claim "
                    "OR sync_claimed_at < :stale)"
                ),
                ExpressionAttributeValues={
                    ":claim": claim_id,
                    ":now": now.isoformat(),
                    ":stale": stale_before,
                    ":null": None,
                },
            )
            return True
        except ClientError as e:
            if _is_conditional_failure(e):
                return False
            raise FeedbackStoreError(f"Failed to claim feedback {feedback_id}: {e}") from e
        except BotoCoreError as e:
            raise FeedbackStoreError(f"Failed to claim feedback {feedback_id}: {e}") from e

    def mark_synced(self, feedback_id: str, issue: CreatedIssue) -> None:
        """Record the created issue; the only write of a successful sync.

        Raises:
            AlreadySyncedError: If the record already has an issue URL
            FeedbackStoreError: On any other store error
        """
        values = {
            ":url": issue.url,
            ":number": issue.number,
            ":status": SyncState.SYNCED.value,
            ":now": _now(),
            ":null": None,
        }
        set_clause = (
            "SET issue_url = :url, issue_number = :number, #status = :status, "
            "processed_at = :now"
        )
        if issue.node_id:
            set_clause += ", issue_node_id = :node"
            values[":node"] = issue.node_id

        try:
            self.table.update_item(
                Key={"feedback_id": feedback_id},
                UpdateExpression=f"{set_clause} REMOVE issue_error, sync_claim, sync_claimed_at",
                ConditionExpression=f"attribute_exists(feedback_id) AND {_NOT_SYNCED}",
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                raise AlreadySyncedError(
                    f"Feedback {feedback_id} already has an issue"
                ) from e
            raise FeedbackStoreError(
                f"Failed to mark feedback {feedback_id} synced: {e}"
            ) from e
        except BotoCoreError as e:
            raise FeedbackStoreError(
                f"Failed to mark feedback {feedback_id} synced: {e}"
            ) from e

    def mark_failed(self, feedback_id: str, message: str) -> None:
        """Record a failure and spend one unit of retry budget.

        Raises:
            AlreadySyncedError: If the record already has an issue URL
            FeedbackStoreError: On any other store error
        """
        try:
            self.table.update_item(
                Key={"feedback_id": feedback_id},
                UpdateExpression=(
                    "SET issue_error = :error, last_attempt = :now, #status = :status "
                    "REMOVE sync_claim, sync_claimed_at "
                    "ADD retry_count :one"
                ),
                ConditionExpression=f"attribute_exists(feedback_id) AND {_NOT_SYNCED}",
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues={
                    ":error": (message or "Unknown error")[:MAX_ERROR_LENGTH],
                    ":now": _now(),
                    ":status": SyncState.FAILED.value,
                    ":one": 1,
                    ":null": None,
                },
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                raise AlreadySyncedError(
                    f"Feedback {feedback_id} already has an issue"
                ) from e
            raise FeedbackStoreError(
                f"Failed to mark feedback {feedback_id} failed: {e}"
            ) from e
        except BotoCoreError as e:
            raise FeedbackStoreError(
                f"Failed to mark feedback {feedback_id} failed: {e}"
            ) from e

    def reset_for_retry(self, feedback_id: str, max_retries: int | None = None) -> bool:
        """Move a failed record back to pending.

        Returns:
            True if the record was reset, False if it is no longer eligible
            (synced, already pending, or out of retries)
        """
        ceiling = self.max_retries if max_retries is None else max_retries
        try:
            self.table.update_item(
                Key={"feedback_id": feedback_id},
                UpdateExpression=(
                    "SET last_retry = :now, #status = :status REMOVE issue_error"
                ),
                ConditionExpression=(
                    "attribute_exists(issue_error) AND issue_error <> :null "
                    f"AND {_NOT_SYNCED} "
                    "AND (attribute_not_exists(retry_count) OR retry_count < :ceiling)"
                ),
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues={
                    ":now": _now(),
                    ":status": SyncState.PENDING.value,
                    ":ceiling": ceiling,
                    ":null": None,
                },
            )
            return True
        except ClientError as e:
            if _is_conditional_failure(e):
                return False
            raise FeedbackStoreError(f"Failed to reset feedback {feedback_id}: {e}") from e
        except BotoCoreError as e:
            raise FeedbackStoreError(f"Failed to reset feedback {feedback_id}: {e}") from e
