"""Tests for FeedbackService against moto DynamoDB."""

from datetime import UTC, datetime, timedelta
from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

from models.feedback import CreatedIssue
from services.feedback_service import (
    AlreadySyncedError,
    FeedbackService,
    FeedbackStoreError,
)

ISSUE = CreatedIssue(number=7, url="https://github.com/acme/app/issues/7", node_id="I_7")


@pytest.fixture
def table(dynamodb_tables):
    return dynamodb_tables["feedback"]


@pytest.fixture
def service(table):
    return FeedbackService(table, max_retries=3)


def _put(table, feedback_id, **fields):
    item = {"feedback_id": feedback_id, "text": f"feedback {feedback_id}"}
    item.update(fields)
    table.put_item(Item=item)


def _item(table, feedback_id):
    return table.get_item(Key={"feedback_id": feedback_id})["Item"]


class TestQueries:
    def test_get_pending_excludes_synced_and_failed(self, service, table):
        _put(table, "pending", timestamp="2026-01-01T00:00:00+00:00")
        _put(table, "synced", issue_url="https://github.com/acme/app/issues/1")
        _put(table, "failed", issue_error="boom", retry_count=1)

        pending = service.get_pending(limit=10)

        assert [r.feedback_id for r in pending] == ["pending"]

    def test_get_pending_newest_first_and_limited(self, service, table):
        _put(table, "old", timestamp="2026-01-01T00:00:00+00:00")
        _put(table, "new", timestamp="2026-03-01T00:00:00+00:00")
        _put(table, "mid", timestamp="2026-02-01T00:00:00+00:00")

        pending = service.get_pending(limit=2)

        assert [r.feedback_id for r in pending] == ["new", "mid"]

    def test_get_retryable_respects_ceiling(self, service, table):
        _put(table, "below", issue_error="boom", retry_count=2)
        _put(table, "at-ceiling", issue_error="boom", retry_count=3)
        _put(table, "pending")

        retryable = service.get_retryable(limit=10)

        assert [r.feedback_id for r in retryable] == ["below"]

    def test_get_retryable_with_override_ceiling(self, service, table):
        _put(table, "fb", issue_error="boom", retry_count=3)

        assert [r.feedback_id for r in service.get_retryable(10, max_retries=5)] == ["fb"]

    def test_get_recent_returns_all_states(self, service, table):
        _put(table, "a", timestamp="2026-01-01T00:00:00+00:00")
        _put(table, "b", timestamp="2026-01-02T00:00:00+00:00", issue_error="boom")
        _put(table, "c", timestamp="2026-01-03T00:00:00+00:00", issue_url="u")

        assert [r.feedback_id for r in service.get_recent(10)] == ["c", "b", "a"]

    def test_get_record(self, service, table):
        _put(table, "fb", retry_count=2)

        record = service.get_record("fb")

        assert record.retry_count == 2
        assert service.get_record("missing") is None

    def test_scan_error_is_wrapped(self):
        broken = Mock()
        broken.scan.side_effect = ClientError(
            {"Error": {"Code": "ResourceNotFoundException", "Message": "no table"}}, "Scan"
        )

        with pytest.raises(FeedbackStoreError):
            FeedbackService(broken).get_pending(10)


class TestMarkSynced:
    def test_sets_issue_fields_and_clears_error(self, service, table):
        _put(table, "fb", issue_error="old failure", retry_count=1)

        service.mark_synced("fb", ISSUE)

        item = _item(table, "fb")
        assert item["issue_url"] == ISSUE.url
        assert item["issue_number"] == 7
        assert item["issue_node_id"] == "I_7"
        assert item["status"] == "synced"
        assert "processed_at" in item
        assert "issue_error" not in item

    def test_never_overwrites_issue_url(self, service, table):
        _put(table, "fb", issue_url="https://github.com/acme/app/issues/1")

        with pytest.raises(AlreadySyncedError):
            service.mark_synced("fb", ISSUE)

        assert _item(table, "fb")["issue_url"] == "https://github.com/acme/app/issues/1"

    def test_missing_record(self, service):
        with pytest.raises(AlreadySyncedError):
            service.mark_synced("missing", ISSUE)

    def test_store_error(self):
        broken = Mock()
        broken.update_item.side_effect = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "boom"}}, "UpdateItem"
        )

        with pytest.raises(FeedbackStoreError):
            FeedbackService(broken).mark_synced("fb", ISSUE)


class TestMarkFailed:
    def test_first_failure_starts_retry_count(self, service, table):
        _put(table, "fb")

        service.mark_failed("fb", "GitHub POST failed")

        item = _item(table, "fb")
        assert item["issue_error"] == "GitHub POST failed"
        assert item["retry_count"] == 1
        assert item["status"] == "failed"
        assert "last_attempt" in item
        assert "issue_url" not in item

    def test_increments_existing_retry_count(self, service, table):
        _put(table, "fb", retry_count=2)

        service.mark_failed("fb", "again")

        assert _item(table, "fb")["retry_count"] == 3

    def test_long_messages_are_truncated(self, service, table):
        _put(table, "fb")

        service.mark_failed("fb", "x" * 5000)

        assert len(_item(table, "fb")["issue_error"]) == 1000

    def test_refuses_synced_record(self, service, table):
        _put(table, "fb", issue_url="u")

        with pytest.raises(AlreadySyncedError):
            service.mark_failed("fb", "late failure")

        assert "issue_error" not in _item(table, "fb")


class TestResetForRetry:
    def test_resets_below_ceiling(self, service, table):
        _put(table, "fb", issue_error="boom", retry_count=2)

        assert service.reset_for_retry("fb") is True

        item = _item(table, "fb")
        assert "issue_error" not in item
        assert item["retry_count"] == 2
        assert item["status"] == "pending"
        assert "last_retry" in item

    def test_refuses_at_ceiling(self, service, table):
        _put(table, "fb", issue_error="boom", retry_count=3)

        assert service.reset_for_retry("fb") is False
        assert _item(table, "fb")["issue_error"] == "boom"

    def test_refuses_pending_record(self, service, table):
        _put(table, "fb")

        assert service.reset_for_retry("fb") is False

    def test_refuses_synced_record(self, service, table):
        _put(table, "fb", issue_url="u", issue_error="stale")

        assert service.reset_for_retry("fb") is False


class TestClaim:
    def test_claims_pending_record(self, service, table):
        _put(table, "fb")

        assert service.claim("fb", "run-a", lease_seconds=900) is True
        assert _item(table, "fb")["sync_claim"] == "run-a"

    def test_live_claim_blocks_other_runs(self, service, table):
        _put(table, "fb")
        service.claim("fb", "run-a", lease_seconds=900)

        assert service.claim("fb", "run-b", lease_seconds=900) is False
        assert service.claim("fb", "run-a", lease_seconds=900) is True

    def test_stale_claim_can_be_taken(self, service, table):
        stale = (datetime.now(UTC) - timedelta(hours=1)).isoformat()
        _put(table, "fb", sync_claim="run-a", sync_claimed_at=stale)

        assert service.claim("fb", "run-b", lease_seconds=900) is True

    def test_cannot_claim_synced_or_failed(self, service, table):
        _put(table, "synced", issue_url="u")
        _put(table, "failed", issue_error="boom")

        assert service.claim("synced", "run-a", 900) is False
        assert service.claim("failed", "run-a", 900) is False

    def test_mark_synced_releases_claim(self, service, table):
        _put(table, "fb")
        service.claim("fb", "run-a", 900)

        service.mark_synced("fb", ISSUE)

        item = _item(table, "fb")
        assert "sync_claim" not in item
        assert "sync_claimed_at" not in item
