"""Feedback sync entry points.

Runs on a schedule (CloudWatch Events -> Lambda, or a CI cron calling
``feedback-sync``). Only one instance should run at a time; records are
additionally protected by a per-record processing lease.
"""

import argparse
import logging
import sys
from datetime import UTC, datetime
from typing import Any

import boto3

from services.feedback_service import FeedbackService
from services.github_service import GitHubService
from services.screenshot_service import ScreenshotService
from services.screenshot_storage import LocalScreenshotStore
from services.sync_service import FeedbackSyncService
from utils.config import ConfigurationError, Settings, load_settings
from utils.credentials import CredentialsError, build_session, load_service_account
from utils.logging_config import configure_logging

logger = logging.getLogger(__name__)


def build_sync_service(
    settings: Settings, session: boto3.session.Session
) -> FeedbackSyncService:
    """Wire the sync service from settings and an AWS session."""
    settings.require_github()
    dynamodb = session.resource("dynamodb")

    screenshot_store = None
    if settings.save_screenshots_locally:
        screenshot_store = LocalScreenshotStore(settings.screenshots_dir)

    return FeedbackSyncService(
        feedback_service=FeedbackService(
            dynamodb.Table(settings.feedback_table), max_retries=settings.max_retries
        ),
        screenshot_service=ScreenshotService(
            dynamodb.Table(settings.screenshots_table),
            dynamodb.Table(settings.screenshot_chunks_table),
        ),
        github_service=GitHubService(
            token=settings.github_token,
            owner=settings.github_owner,
            repo=settings.github_repo,
        ),
        settings=settings,
        screenshot_store=screenshot_store,
    )


def run_sync(settings: Settings, reset_failed: bool = True) -> dict[str, Any]:
    """Load credentials, build the service and run one pass.

    Raises:
        ConfigurationError, CredentialsError: On fatal startup problems
    """
    account = load_service_account()
    session = build_session(account, settings.aws_region)
    service = build_sync_service(settings, session)
    summary = service.run(reset_failed=reset_failed)
    result = summary.model_dump()
    result["success"] = summary.success
    return result


def feedback_sync_handler(event: dict[str, Any], context) -> dict[str, Any]:
    """Lambda handler for the scheduled sync.

    Args:
        event: CloudWatch scheduled event; ``{"reset_failed": false}`` skips
            the retry reset pass
        context: Lambda context

    Returns:
        200 on a clean run, 207 if some records failed, 500 on fatal errors
    """
    event = event or {}
    logger.info(f"Feedback sync started at {datetime.now(UTC).isoformat()}")
    logger.info(f"Event: {event}")

    try:
        settings = load_settings()
        result = run_sync(settings, reset_failed=event.get("reset_failed", True))
    except (ConfigurationError, CredentialsError) as e:
        logger.error(f"Feedback sync cannot start: {e}")
        return {
            "statusCode": 500,
            "body": {"message": f"Configuration error: {e}"},
        }
    except Exception as e:
        logger.error(f"Error in feedback sync: {e}", exc_info=True)
        return {
            "statusCode": 500,
            "body": {"message": f"Error syncing feedback: {str(e)}"},
        }

    return {
        "statusCode": 200 if result["success"] else 207,
        "body": {
            "message": "Feedback sync complete",
            "summary": result,
            "timestamp": datetime.now(UTC).isoformat(),
        },
    }


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create GitHub issues for pending feedback records"
    )
    parser.add_argument("--batch-size", type=int, help="Pending records per run")
    parser.add_argument("--max-retries", type=int, help="Retry ceiling for failed records")
    parser.add_argument("--logs-dir", help="Directory for logs and screenshots")
    parser.add_argument(
        "--no-reset",
        action="store_true",
        help="Skip re-arming failed records for the next run",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Command-line entry point. Returns the process exit code."""
    args = parse_args(argv)

    try:
        settings = load_settings()
        overrides = {
            "batch_size": args.batch_size,
            "max_retries": args.max_retries,
            "logs_dir": args.logs_dir,
        }
        overrides = {k: v for k, v in overrides.items() if v is not None}
        if overrides:
            settings = Settings(**{**settings.model_dump(), **overrides})
    except (ConfigurationError, ValueError) as e:
        configure_logging(level=args.log_level)
        logger.error(f"Invalid configuration: {e}")
        return 1

    configure_logging(settings.logs_dir, args.log_level)

    try:
        result = run_sync(settings, reset_failed=not args.no_reset)
    except (ConfigurationError, CredentialsError) as e:
        logger.error(f"Feedback sync cannot start: {e}")
        return 1
    except Exception as e:
        logger.error(f"Feedback sync failed: {e}", exc_info=True)
        return 1

    logger.info(f"Feedback sync finished: {result}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
