"""Runtime configuration read from environment variables."""

import os
from collections.abc import Mapping

from pydantic import BaseModel, Field, ValidationError

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigurationError(Exception):
    """Missing or invalid configuration; fatal at startup."""

    pass


class Settings(BaseModel):
    """Settings shared by the sync and export jobs."""

    environment: str = "dev"
    aws_region: str = "us-west-2"
    feedback_table: str
    screenshots_table: str
    screenshot_chunks_table: str

    github_token: str | None = None
    github_owner: str | None = None
    github_repo: str | None = None
    github_project_id: str | None = None

    logs_dir: str = "feedback_logs"
    batch_size: int = Field(default=50, ge=1, le=1000)
    retry_batch_size: int = Field(default=50, ge=1, le=1000)
    export_limit: int = Field(default=50, ge=1, le=1000)
    max_retries: int = Field(default=3, ge=1)
    claim_enabled: bool = True
    claim_lease_seconds: int = Field(default=900, ge=1)
    save_screenshots_locally: bool = True

    @property
    def screenshots_dir(self) -> str:
        return os.path.join(self.logs_dir, "screenshots")

    def require_github(self) -> None:
        """Raise ConfigurationError unless the GitHub settings are present."""
        missing = [
            name
            for name, value in (
                ("GITHUB_TOKEN", self.github_token),
                ("GITHUB_OWNER", self.github_owner),
                ("GITHUB_REPO", self.github_repo),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from the environment.

    Args:
        environ: Mapping to read from (defaults to ``os.environ``)

    Raises:
        ConfigurationError: If a value cannot be parsed or is out of range
    """
    env = os.environ if environ is None else environ
    environment = env.get("ENVIRONMENT", "dev")

    values = {
        "environment": environment,
        "aws_region": env.get("AWS_REGION_NAME", "us-west-2"),
        "feedback_table": env.get("FEEDBACK_TABLE", f"feedback-{environment}"),
        "screenshots_table": env.get(
            "SCREENSHOTS_TABLE", f"feedback-screenshots-{environment}"
        ),
        "screenshot_chunks_table": env.get(
            "SCREENSHOT_CHUNKS_TABLE", f"feedback-screenshot-chunks-{environment}"
        ),
        "github_token": env.get("GITHUB_TOKEN") or None,
        "github_owner": env.get("GITHUB_OWNER") or None,
        "github_repo": env.get("GITHUB_REPO") or None,
        "github_project_id": env.get("GITHUB_PROJECT_ID") or None,
        "logs_dir": env.get("FEEDBACK_LOGS_DIR", "feedback_logs"),
    }

    int_vars = {
        "SYNC_BATCH_SIZE": "batch_size",
        "RETRY_BATCH_SIZE": "retry_batch_size",
        "EXPORT_LIMIT": "export_limit",
        "MAX_RETRIES": "max_retries",
        "SYNC_CLAIM_LEASE_SECONDS": "claim_lease_seconds",
    }
    for var, field in int_vars.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        try:
            values[field] = int(raw)
        except ValueError:
            raise ConfigurationError(f"{var} must be an integer, got {raw!r}")

    bool_vars = {
        "SYNC_CLAIM_ENABLED": "claim_enabled",
        "SAVE_SCREENSHOTS_LOCALLY": "save_screenshots_locally",
    }
    for var, field in bool_vars.items():
        raw = env.get(var)
        if raw:
            values[field] = _parse_bool(var, raw)

    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
