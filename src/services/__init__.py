"""Services for the Feedback Sync job."""

from .export_service import FeedbackExporter
from .feedback_service import FeedbackService
from .github_service import GitHubService
from .screenshot_service import ScreenshotService
from .screenshot_storage import LocalScreenshotStore
from .sync_service import FeedbackSyncService

__all__ = [
    "FeedbackService",
    "ScreenshotService",
    "LocalScreenshotStore",
    "GitHubService",
    "FeedbackSyncService",
    "FeedbackExporter",
]
