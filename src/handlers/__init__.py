"""Lambda and command-line entry points for Feedback Sync."""

from .feedback_export_handler import feedback_export_handler
from .feedback_sync_handler import feedback_sync_handler

__all__ = [
    "feedback_sync_handler",
    "feedback_export_handler",
]
