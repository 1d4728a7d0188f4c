"""Data models for Feedback Sync."""

from .feedback import (
    CreatedIssue,
    FeedbackRecord,
    GistUpload,
    IssueDraft,
    Screenshot,
    ScreenshotChunk,
    ScreenshotMetadata,
    SyncState,
)
from .sync import SyncSummary

__all__ = [
    "FeedbackRecord",
    "SyncState",
    "Screenshot",
    "ScreenshotMetadata",
    "ScreenshotChunk",
    "IssueDraft",
    "CreatedIssue",
    "GistUpload",
    "SyncSummary",
]
