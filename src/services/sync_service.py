"""Feedback-to-issue sync driver.

One run:
1. Takes up to ``batch_size`` pending records (newest first) and, one at a
   time, reassembles the screenshot (embedding it in the body, or relaying
   it through a gist when it is too large), creates the issue, and writes
   the issue URL back.
2. Re-arms up to ``retry_batch_size`` failed records that still have retry
   budget, so the next run picks them up as pending.

Failures never leave a record's loop iteration: they are written onto the
record (``issue_error``, ``retry_count``) and the batch moves on. Records
that reach the retry ceiling stay failed until someone intervenes.
"""

import logging
import uuid
from datetime import UTC, datetime

from models.feedback import FeedbackRecord, GistUpload, IssueDraft, Screenshot
from models.sync import SyncSummary
from services.feedback_service import (
    AlreadySyncedError,
    FeedbackService,
    FeedbackStoreError,
)
from services.github_service import GitHubService
from services.issue_formatter import fits_inline, format_issue
from services.screenshot_service import ScreenshotService
from services.screenshot_storage import LocalScreenshotStore, ScreenshotStorageError
from utils.config import Settings

logger = logging.getLogger(__name__)


class FeedbackSyncService:
    """Creates one GitHub issue per feedback record."""

    def __init__(
        self,
        feedback_service: FeedbackService,
        screenshot_service: ScreenshotService,
        github_service: GitHubService,
        settings: Settings,
        screenshot_store: LocalScreenshotStore | None = None,
    ):
        self.feedback_service = feedback_service
        self.screenshot_service = screenshot_service
        self.github_service = github_service
        self.settings = settings
        self.screenshot_store = screenshot_store
        self.claim_id = f"sync-{uuid.uuid4()}"

    def run(self, reset_failed: bool = True) -> SyncSummary:
        """Run one sync pass and return its counters."""
        summary = SyncSummary()
        start_time = datetime.now(UTC)
        logger.info(f"Starting feedback sync {self.claim_id}")

        self.process_pending(summary)
        if reset_failed:
            self.reset_failed(summary)

        summary.duration_seconds = (datetime.now(UTC) - start_time).total_seconds()
        logger.info(
            f"Feedback sync complete: {summary.synced} synced, {summary.failed} failed, "
            f"{summary.skipped} skipped, {summary.reset} reset, "
            f"{summary.duration_seconds:.2f}s"
        )
        return summary

    def process_pending(self, summary: SyncSummary) -> SyncSummary:
        records = self.feedback_service.get_pending(self.settings.batch_size)
        logger.info(f"Found {len(records)} pending feedback items")

        for record in records:
            if self.settings.claim_enabled and not self._claim(record, summary):
                summary.skipped += 1
                continue

            self.process_record(record, summary)
        return summary

    def process_record(self, record: FeedbackRecord, summary: SyncSummary | None = None) -> bool:
        """Sync one record.

        When ``summary`` is given, a record that reaches an outcome counts
        as processed plus synced or failed; one that another run synced
        first counts only as skipped.

        Returns:
            True if an issue was created and written back
        """
        feedback_id = record.feedback_id
        logger.info(
            f"Processing feedback {feedback_id} "
            f"(screenshot: {record.screenshot_ref or 'none'})"
        )

        try:
            draft = self._build_draft(record)
            issue = self.github_service.create_issue(draft)
            try:
                self.feedback_service.mark_synced(feedback_id, issue)
            except FeedbackStoreError as e:
                raise FeedbackStoreError(
                    f"Issue {issue.url} created but write-back failed: {e}"
                ) from e
        except AlreadySyncedError:
            logger.warning(f"Feedback {feedback_id} was synced by another run")
            if summary is not None:
                summary.skipped += 1
            return False
        except Exception as e:
            logger.error(f"Failed to sync feedback {feedback_id}: {e}")
            self._record_failure(record, str(e) or type(e).__name__, summary)
            return False

        if summary is not None:
            summary.processed += 1
            summary.synced += 1
        logger.info(f"Synced feedback {feedback_id} to issue #{issue.number}")
        self._add_to_project(feedback_id, issue.node_id)
        return True

    def reset_failed(self, summary: SyncSummary) -> SyncSummary:
        """Re-arm failed records that are below the retry ceiling."""
        ceiling = self.settings.max_retries
        records = self.feedback_service.get_retryable(
            self.settings.retry_batch_size, ceiling
        )
        logger.info(f"Found {len(records)} failed feedback items to retry")

        for record in records:
            try:
                if self.feedback_service.reset_for_retry(record.feedback_id, ceiling):
                    summary.reset += 1
                    logger.info(
                        f"Reset feedback {record.feedback_id} for retry "
                        f"(attempt {record.retry_count + 1}/{ceiling})"
                    )
            except Exception as e:
                logger.error(f"Failed to reset feedback {record.feedback_id}: {e}")
                summary.record_error(record.feedback_id, str(e))
        return summary

    def _claim(self, record: FeedbackRecord, summary: SyncSummary) -> bool:
        try:
            claimed = self.feedback_service.claim(
                record.feedback_id, self.claim_id, self.settings.claim_lease_seconds
            )
        except Exception as e:
            logger.error(f"Failed to claim feedback {record.feedback_id}: {e}")
            summary.record_error(record.feedback_id, str(e))
            return False
        if not claimed:
            logger.info(f"Feedback {record.feedback_id} claimed elsewhere, skipping")
        return claimed

    def _build_draft(self, record: FeedbackRecord) -> IssueDraft:
        """Format the issue, embedding or relaying the screenshot if any.

        A screenshot is embedded as a data URL when the body stays within
        the size limit, and uploaded to a gist otherwise. Gist upload
        errors propagate and fail the record.
        """
        if not record.screenshot_ref:
            return format_issue(record)

        screenshot = self.screenshot_service.reassemble(record.screenshot_ref)
        if screenshot is None:
            logger.info(f"Screenshot for {record.feedback_id} unavailable")
            return format_issue(record, screenshot_expected=True)

        self._save_locally(screenshot, record.feedback_id)

        if fits_inline(record, screenshot.data_url):
            return format_issue(record, inline_image=screenshot.data_url)

        logger.info(
            f"Screenshot for {record.feedback_id} is {len(screenshot.data)} bytes, "
            "relaying through a gist"
        )
        return format_issue(record, attachment=self._relay_screenshot(record, screenshot))

    def _relay_screenshot(self, record: FeedbackRecord, screenshot: Screenshot) -> GistUpload:
        filename = f"feedback_{record.feedback_id}{screenshot.file_extension}.b64"
        return self.github_service.create_gist(
            filename,
            screenshot.data_url,
            description=f"Screenshot for feedback {record.feedback_id}",
        )

    def _save_locally(self, screenshot: Screenshot, feedback_id: str) -> None:
        if self.screenshot_store is None:
            return
        try:
            self.screenshot_store.save(screenshot, feedback_id)
        except ScreenshotStorageError as e:
            logger.warning(str(e))

    def _add_to_project(self, feedback_id: str, node_id: str | None) -> None:
        project_id = self.settings.github_project_id
        if not project_id or not node_id:
            return
        try:
            self.github_service.add_to_project(project_id, node_id)
        except Exception as e:
            # The issue exists; the board can be fixed by hand
            logger.warning(f"Failed to add feedback {feedback_id} issue to project: {e}")

    def _record_failure(
        self, record: FeedbackRecord, message: str, summary: SyncSummary | None
    ) -> None:
        if summary is not None:
            summary.processed += 1
            summary.failed += 1
            summary.record_error(record.feedback_id, message)
        try:
            self.feedback_service.mark_failed(record.feedback_id, message)
        except AlreadySyncedError:
            logger.warning(f"Feedback {record.feedback_id} was synced by another run")
        except Exception as e:
            logger.error(f"Failed to record error on feedback {record.feedback_id}: {e}")
