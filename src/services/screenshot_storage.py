"""Local copies of reassembled screenshots."""

import logging
from pathlib import Path

from models.feedback import Screenshot

logger = logging.getLogger(__name__)


class ScreenshotStorageError(Exception):
    """A screenshot could not be written to disk."""

    pass


class LocalScreenshotStore:
    """Writes screenshots under ``<logs_dir>/screenshots``."""

    def __init__(self, screenshots_dir: str | Path):
        self.screenshots_dir = Path(screenshots_dir)

    @staticmethod
    def filename_for(screenshot: Screenshot, feedback_id: str) -> str:
        return f"feedback_{feedback_id}{screenshot.file_extension}"

    def save(self, screenshot: Screenshot, feedback_id: str) -> str:
        """Write the screenshot and return its path relative to the logs dir.

        Raises:
            ScreenshotStorageError: On any filesystem error
        """
        filename = self.filename_for(screenshot, feedback_id)
        path = self.screenshots_dir / filename
        try:
            self.screenshots_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(screenshot.data)
        except OSError as e:
            raise ScreenshotStorageError(
                f"Failed to save screenshot for {feedback_id}: {e}"
            ) from e

        logger.info(f"Saved screenshot for {feedback_id} at {path}")
        # The HTML report lives one level up
        return f"{self.screenshots_dir.name}/{filename}"
