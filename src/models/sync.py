"""Sync run result models."""

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class SyncSummary(BaseModel):
    """Counters for one sync run.

    ``processed`` is always ``synced + failed``. Records lost to another run
    (claim not acquired, or already synced) count only as ``skipped``.
    """

    started_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    processed: int = 0
    synced: int = 0
    failed: int = 0
    skipped: int = 0
    reset: int = 0
    errors: list[dict[str, str]] = Field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.failed == 0 and not self.errors

    def record_error(self, feedback_id: str, message: str) -> None:
        self.errors.append({"feedback_id": feedback_id, "error": message})
