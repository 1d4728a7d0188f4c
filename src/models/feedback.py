"""Feedback data models."""

import base64
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MIME_TYPE = "image/png"


class SyncState(str, Enum):
    """Lifecycle of a feedback record's issue sync."""

    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"
    EXHAUSTED = "exhausted"


def _to_iso(value: Any) -> str | None:
    """Normalize stored timestamps (ISO strings or epoch seconds/millis)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.isoformat()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
        # Millisecond epochs are what the mobile clients send
        if seconds > 1e11:
            seconds = seconds / 1000
        return datetime.fromtimestamp(seconds, UTC).isoformat()
    return str(value)


class FeedbackRecord(BaseModel):
    """A stored feedback submission and its issue sync status."""

    # Submissions carry arbitrary extra fields that the export keeps
    model_config = ConfigDict(extra="allow")

    feedback_id: str
    text: str | None = None
    platform: str | None = None
    app_version: str | None = None
    build_number: str | None = None
    device_info: dict[str, str] | None = None
    user_email: str | None = None
    screenshot_ref: str | None = None
    timestamp: str | None = None

    status: str | None = None
    issue_url: str | None = None
    issue_number: int | None = None
    issue_node_id: str | None = None
    issue_error: str | None = None
    retry_count: int = Field(default=0, ge=0)
    last_attempt: str | None = None
    last_retry: str | None = None
    processed_at: str | None = None
    sync_claim: str | None = None
    sync_claimed_at: str | None = None

    @field_validator(
        "timestamp",
        "last_attempt",
        "last_retry",
        "processed_at",
        "sync_claimed_at",
        mode="before",
    )
    @classmethod
    def normalize_timestamp(cls, v):
        return _to_iso(v)

    @field_validator("device_info", mode="before")
    @classmethod
    def stringify_device_info(cls, v):
        # Older clients sent a free-form string here; it is dropped
        if not isinstance(v, Mapping):
            return None
        return {str(key): str(value) for key, value in v.items()}

    @field_validator(
        "text",
        "platform",
        "app_version",
        "build_number",
        "user_email",
        "screenshot_ref",
        mode="before",
    )
    @classmethod
    def stringify_client_fields(cls, v):
        return None if v is None else str(v)

    @field_validator("retry_count", mode="before")
    @classmethod
    def default_retry_count(cls, v):
        return 0 if v is None else v

    def sync_state(self, max_retries: int) -> SyncState:
        """Derive the sync state from the status fields."""
        if self.issue_url:
            return SyncState.SYNCED
        if self.issue_error is None:
            return SyncState.PENDING
        if self.retry_count >= max_retries:
            return SyncState.EXHAUSTED
        return SyncState.FAILED

    @property
    def submitted_at(self) -> datetime | None:
        if not self.timestamp:
            return None
        try:
            parsed = datetime.fromisoformat(self.timestamp.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed


class ScreenshotMetadata(BaseModel):
    """Parent record describing a chunked screenshot."""

    screenshot_id: str
    total_chunks: int = Field(ge=0)
    mime_type: str | None = None


class ScreenshotChunk(BaseModel):
    """One base64 fragment of a screenshot."""

    screenshot_id: str
    chunk_index: int = Field(ge=0)
    data: str


class Screenshot(BaseModel):
    """A fully reassembled screenshot."""

    screenshot_id: str
    mime_type: str = DEFAULT_MIME_TYPE
    data: bytes

    @property
    def base64_data(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64_data}"

    @property
    def file_extension(self) -> str:
        """File extension for the MIME type (.png unless it is a JPEG)."""
        mime = self.mime_type.lower()
        if "png" in mime:
            return ".png"
        if "jpg" in mime or "jpeg" in mime:
            return ".jpg"
        return ".png"


class IssueDraft(BaseModel):
    """Title, body and labels for an issue about to be created."""

    title: str
    body: str
    labels: list[str] = Field(default_factory=list)


class CreatedIssue(BaseModel):
    """Issue returned by the tracker."""

    number: int
    url: str
    node_id: str | None = None


class GistUpload(BaseModel):
    """Gist holding a relayed screenshot."""

    id: str
    url: str
    raw_url: str
