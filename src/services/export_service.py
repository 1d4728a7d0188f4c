"""Static export of recent feedback.

Writes three files into the logs directory:
- feedback_export.json - header plus every exported record
- index.html - browsable list with inline screenshots
- export_summary.txt - counts and paths

The export is read-only with respect to the feedback table.
"""

import html
import json
import logging
import os
from datetime import UTC, datetime
from typing import Any

from services.feedback_service import FeedbackService
from services.screenshot_service import ScreenshotService
from services.screenshot_storage import LocalScreenshotStore, ScreenshotStorageError

logger = logging.getLogger(__name__)

EXPORT_FILENAME = "feedback_export.json"
HTML_FILENAME = "index.html"
SUMMARY_FILENAME = "export_summary.txt"

HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8" />
  <title>Feedback Export</title>
  <style>
    body {{ font-family: Arial, sans-serif; margin: 20px; }}
    .feedback-item {{ border: 1px solid #ddd; padding: 15px; margin-bottom: 20px; }}
    .metadata {{ color: #666; }}
    .screenshot {{ max-width: 300px; margin-top: 10px; }}
  </style>
</head>
<body>
  <h1>Feedback Export</h1>
  <p>Exported at: {exported_at}</p>
  <p>Total items: {total}</p>
  <div class="feedback-items">
{items}
  </div>
</body>
</html>
"""

ITEM_TEMPLATE = """    <div class="feedback-item">
      <h3>Feedback ID: {feedback_id}</h3>
      <div class="metadata">
        <p>Platform: {platform}</p>
        <p>Version: {version}</p>
        <p>User: {user}</p>
        <p>Time: {time}</p>
        <p>Issue: {issue}</p>
      </div>
      <div class="content">
        <p>{text}</p>
      </div>
{screenshot}    </div>"""


def _esc(value: Any, default: str) -> str:
    if value is None or value == "":
        return html.escape(default)
    return html.escape(str(value))


def render_item(item: dict[str, Any]) -> str:
    issue_url = item.get("issue_url")
    if issue_url:
        label = f"#{item['issue_number']}" if item.get("issue_number") else issue_url
        issue = f'<a href="{html.escape(issue_url, quote=True)}">{html.escape(str(label))}</a>'
    else:
        issue = "Not synced"

    screenshot = ""
    if item.get("local_screenshot_path"):
        src = html.escape(item["local_screenshot_path"], quote=True)
        screenshot = f'      <img src="{src}" class="screenshot" />\n'

    return ITEM_TEMPLATE.format(
        feedback_id=_esc(item.get("feedback_id"), "Unknown"),
        platform=_esc(item.get("platform"), "Unknown"),
        version=_esc(item.get("app_version"), "Unknown"),
        user=_esc(item.get("user_email"), "Anonymous"),
        time=_esc(item.get("timestamp"), "Unknown"),
        issue=issue,
        text=_esc(item.get("text"), "No content provided"),
        screenshot=screenshot,
    )


def render_html(items: list[dict[str, Any]], exported_at: str) -> str:
    """Render the browsable index page."""
    return HTML_TEMPLATE.format(
        exported_at=html.escape(exported_at),
        total=len(items),
        items="\n".join(render_item(item) for item in items),
    )


def render_summary(
    items: list[dict[str, Any]], exported_at: str, export_path: str, html_path: str
) -> str:
    with_screenshots = sum(1 for item in items if item.get("local_screenshot_path"))
    return "\n".join(
        [
            "Feedback Export Summary",
            "-----------------------",
            f"Exported at: {exported_at}",
            f"Total items: {len(items)}",
            f"With screenshots: {with_screenshots}",
            f"Export location: {export_path}",
            f"HTML report: {html_path}",
        ]
    )


class FeedbackExporter:
    """Exports the most recent feedback to JSON, HTML and a text summary."""

    def __init__(
        self,
        feedback_service: FeedbackService,
        screenshot_service: ScreenshotService,
        screenshot_store: LocalScreenshotStore,
        logs_dir: str,
        export_limit: int = 50,
    ):
        self.feedback_service = feedback_service
        self.screenshot_service = screenshot_service
        self.screenshot_store = screenshot_store
        self.logs_dir = logs_dir
        self.export_limit = export_limit

    def export(self) -> dict[str, Any]:
        """Run the export.

        Returns:
            Dict with the written paths and item counts
        """
        logger.info(f"Starting feedback export to {self.logs_dir}")
        os.makedirs(self.logs_dir, exist_ok=True)

        records = self.feedback_service.get_recent(self.export_limit)
        logger.info(f"Found {len(records)} feedback items")

        items = []
        for record in records:
            item = record.model_dump(mode="json")
            if record.screenshot_ref:
                local_path = self._save_screenshot(record.feedback_id, record.screenshot_ref)
                if local_path:
                    item["local_screenshot_path"] = local_path
            items.append(item)

        exported_at = datetime.now(UTC).isoformat()
        export_path = os.path.join(self.logs_dir, EXPORT_FILENAME)
        html_path = os.path.join(self.logs_dir, HTML_FILENAME)
        summary_path = os.path.join(self.logs_dir, SUMMARY_FILENAME)

        with open(export_path, "w", encoding="utf-8") as f:
            json.dump(
                {"exported_at": exported_at, "total_items": len(items), "feedback": items},
                f,
                indent=2,
            )
        logger.info(f"Exported {len(items)} items to {export_path}")

        with open(html_path, "w", encoding="utf-8") as f:
            f.write(render_html(items, exported_at))
        logger.info(f"Created HTML index at {html_path}")

        with open(summary_path, "w", encoding="utf-8") as f:
            f.write(render_summary(items, exported_at, export_path, html_path))
        logger.info(f"Written summary to {summary_path}")

        return {
            "exported_at": exported_at,
            "total_items": len(items),
            "with_screenshots": sum(1 for i in items if i.get("local_screenshot_path")),
            "export_path": export_path,
            "html_path": html_path,
            "summary_path": summary_path,
        }

    def _save_screenshot(self, feedback_id: str, screenshot_ref: str) -> str | None:
        screenshot = self.screenshot_service.reassemble(screenshot_ref)
        if screenshot is None:
            return None
        try:
            return self.screenshot_store.save(screenshot, feedback_id)
        except ScreenshotStorageError as e:
            logger.error(str(e))
            return None
