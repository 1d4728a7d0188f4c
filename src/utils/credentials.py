"""Service-account credential loading.

The job runs from CI with a service-account JSON document supplied either
base64-encoded in ``FEEDBACK_SERVICE_ACCOUNT`` or as a file referenced by
``FEEDBACK_SERVICE_ACCOUNT_PATH``. When neither is set, boto3's default
credential chain is used.
"""

import base64
import binascii
import json
import logging
import os
from collections.abc import Mapping
from typing import Any

import boto3

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("project_id", "private_key", "client_email")
AWS_KEY_FIELDS = ("aws_access_key_id", "aws_secret_access_key")


class CredentialsError(Exception):
    """Service-account credentials are missing fields or unreadable."""

    pass


def parse_service_account(raw: str | bytes) -> dict[str, Any]:
    """Parse and validate a service-account JSON document."""
    try:
        account = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as e:
        raise CredentialsError(f"Service account is not valid JSON: {e}") from e

    if not isinstance(account, dict):
        raise CredentialsError("Service account JSON must be an object")

    missing = [field for field in REQUIRED_FIELDS if not account.get(field)]
    if missing:
        raise CredentialsError(
            f"Service account is missing required fields: {', '.join(missing)}"
        )
    return account


def load_service_account(
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any] | None:
    """Load the service account from the environment.

    Returns:
        The parsed account, or None if no credentials are configured

    Raises:
        CredentialsError: If the configured credentials cannot be used
    """
    env = os.environ if environ is None else environ
    encoded = env.get("FEEDBACK_SERVICE_ACCOUNT")
    path = env.get("FEEDBACK_SERVICE_ACCOUNT_PATH")

    if encoded:
        try:
            raw = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CredentialsError(
                f"FEEDBACK_SERVICE_ACCOUNT is not valid base64: {e}"
            ) from e
        account = parse_service_account(raw)
    elif path:
        try:
            with open(path, encoding="utf-8") as f:
                raw = f.read()
        except OSError as e:
            raise CredentialsError(
                f"Cannot read service account file {path}: {e}"
            ) from e
        account = parse_service_account(raw)
    else:
        logger.info("No service account configured, using default credentials")
        return None

    logger.info(
        f"Loaded service account {account['client_email']} "
        f"for project {account['project_id']}"
    )
    return account


def build_session(
    account: dict[str, Any] | None, region: str
) -> boto3.session.Session:
    """Create the boto3 session used for every store client.

    The account document carries the table credentials in
    ``aws_access_key_id``/``aws_secret_access_key`` (and optionally
    ``aws_session_token`` and ``region``).

    Raises:
        CredentialsError: If the account has no AWS key pair
    """
    if account is None:
        return boto3.session.Session(region_name=region)

    missing = [field for field in AWS_KEY_FIELDS if not account.get(field)]
    if missing:
        raise CredentialsError(
            f"Service account is missing AWS credentials: {', '.join(missing)}"
        )

    return boto3.session.Session(
        aws_access_key_id=account["aws_access_key_id"],
        aws_secret_access_key=account["aws_secret_access_key"],
        aws_session_token=account.get("aws_session_token"),
        region_name=account.get("region") or region,
    )
