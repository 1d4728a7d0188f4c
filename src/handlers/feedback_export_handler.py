"""Feedback export entry points.

Dumps the most recent feedback to ``feedback_export.json``, ``index.html``
and ``export_summary.txt`` under the logs directory, for upload as a CI
artifact.
"""

import argparse
import logging
import sys
from datetime import UTC, datetime
from typing import Any

import boto3

from services.export_service import FeedbackExporter
from services.feedback_service import FeedbackService
from services.screenshot_service import ScreenshotService
from services.screenshot_storage import LocalScreenshotStore
from utils.config import ConfigurationError, Settings, load_settings
from utils.credentials import CredentialsError, build_session, load_service_account
from utils.logging_config import configure_logging

logger = logging.getLogger(__name__)


def build_exporter(settings: Settings, session: boto3.session.Session) -> FeedbackExporter:
    dynamodb = session.resource("dynamodb")
    return FeedbackExporter(
        feedback_service=FeedbackService(
            dynamodb.Table(settings.feedback_table), max_retries=settings.max_retries
        ),
        screenshot_service=ScreenshotService(
            dynamodb.Table(settings.screenshots_table),
            dynamodb.Table(settings.screenshot_chunks_table),
        ),
        screenshot_store=LocalScreenshotStore(settings.screenshots_dir),
        logs_dir=settings.logs_dir,
        export_limit=settings.export_limit,
    )


def run_export(settings: Settings) -> dict[str, Any]:
    account = load_service_account()
    session = build_session(account, settings.aws_region)
    return build_exporter(settings, session).export()


def feedback_export_handler(event: dict[str, Any], context) -> dict[str, Any]:
    """Lambda handler for the feedback export."""
    logger.info(f"Feedback export started at {datetime.now(UTC).isoformat()}")

    try:
        result = run_export(load_settings())
    except (ConfigurationError, CredentialsError) as e:
        logger.error(f"Feedback export cannot start: {e}")
        return {"statusCode": 500, "body": {"message": f"Configuration error: {e}"}}
    except Exception as e:
        logger.error(f"Failed to export feedback: {e}", exc_info=True)
        return {"statusCode": 500, "body": {"message": f"Error exporting feedback: {e}"}}

    return {
        "statusCode": 200,
        "body": {"message": "Feedback export complete", "result": result},
    }


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export recent feedback to JSON/HTML")
    parser.add_argument("--limit", type=int, help="Number of records to export")
    parser.add_argument("--logs-dir", help="Output directory")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        settings = load_settings()
        overrides = {"export_limit": args.limit, "logs_dir": args.logs_dir}
        overrides = {k: v for k, v in overrides.items() if v is not None}
        if overrides:
            settings = Settings(**{**settings.model_dump(), **overrides})
    except (ConfigurationError, ValueError) as e:
        configure_logging(level=args.log_level)
        logger.error(f"Invalid configuration: {e}")
        return 1

    configure_logging(settings.logs_dir, args.log_level)

    try:
        result = run_export(settings)
    except (ConfigurationError, CredentialsError) as e:
        logger.error(f"Feedback export cannot start: {e}")
        return 1
    except Exception as e:
        logger.error(f"Export failed: {e}", exc_info=True)
        return 1

    logger.info(
        f"Export completed successfully: {result['total_items']} items, "
        f"{result['with_screenshots']} with screenshots"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
