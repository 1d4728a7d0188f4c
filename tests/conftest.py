"""Pytest configuration and shared fixtures."""

import os
from unittest.mock import Mock

import boto3
import pytest
from moto import mock_aws

from models.feedback import CreatedIssue, FeedbackRecord, GistUpload
from services.screenshot_service import split_into_chunks
from utils.config import Settings

# Keep boto3 away from real credentials
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_SECURITY_TOKEN", "testing")
os.environ.setdefault("AWS_SESSION_TOKEN", "testing")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-west-2")

REGION = "us-west-2"
FEEDBACK_TABLE = "feedback-test"
SCREENSHOTS_TABLE = "feedback-screenshots-test"
CHUNKS_TABLE = "feedback-screenshot-chunks-test"

# Small PNG-shaped payload
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000154a24f5d00000000"
    "49454e44ae426082"
)


@pytest.fixture
def settings():
    """Settings pointing at the test tables."""
    return Settings(
        environment="test",
        feedback_table=FEEDBACK_TABLE,
        screenshots_table=SCREENSHOTS_TABLE,
        screenshot_chunks_table=CHUNKS_TABLE,
        github_token="test-token",
        github_owner="acme",
        github_repo="app",
        claim_enabled=False,
        save_screenshots_locally=False,
    )


@pytest.fixture
def sample_record():
    """A pending feedback record with every content field set."""
    return FeedbackRecord(
        feedback_id="fb_001",
        text="The map freezes when I zoom out quickly",
        platform="iOS 17.2",
        app_version="2.4.0",
        build_number="241",
        device_info={"model": "iPhone 15", "locale": "en_US"},
        user_email="tester@example.com",
        timestamp="2026-01-20T08:00:00+00:00",
    )


@pytest.fixture
def sample_gist():
    return GistUpload(
        id="abc123",
        url="https://gist.github.com/acme/abc123",
        raw_url="https://gist.githubusercontent.com/acme/abc123/raw/feedback_fb_001.png.b64",
    )


@pytest.fixture
def mock_github(sample_gist):
    """A GitHubService stand-in that always succeeds."""
    github = Mock()
    github.create_issue.return_value = CreatedIssue(
        number=42,
        url="https://github.com/acme/app/issues/42",
        node_id="I_kwDOtest42",
    )
    github.create_gist.return_value = sample_gist
    github.add_to_project.return_value = "PVTI_item"
    return github


@pytest.fixture
def aws_mock():
    """Mock AWS for a single test."""
    with mock_aws():
        yield


@pytest.fixture
def dynamodb_tables(aws_mock):
    """Create the feedback, screenshot metadata and chunk tables."""
    dynamodb = boto3.resource("dynamodb", region_name=REGION)

    feedback_table = dynamodb.create_table(
        TableName=FEEDBACK_TABLE,
        KeySchema=[{"AttributeName": "feedback_id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "feedback_id", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )
    screenshots_table = dynamodb.create_table(
        TableName=SCREENSHOTS_TABLE,
        KeySchema=[{"AttributeName": "screenshot_id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "screenshot_id", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )
    chunks_table = dynamodb.create_table(
        TableName=CHUNKS_TABLE,
        KeySchema=[
            {"AttributeName": "screenshot_id", "KeyType": "HASH"},
            {"AttributeName": "chunk_index", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "screenshot_id", "AttributeType": "S"},
            {"AttributeName": "chunk_index", "AttributeType": "N"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )

    return {
        "feedback": feedback_table,
        "screenshots": screenshots_table,
        "chunks": chunks_table,
    }


def store_screenshot(
    tables, screenshot_id, data, chunk_size=8, mime_type="image/png", total_chunks=None
):
    """Write a screenshot to the moto tables the way the app uploads it."""
    chunks = split_into_chunks(data, chunk_size)
    tables["screenshots"].put_item(
        Item={
            "screenshot_id": screenshot_id,
            "total_chunks": len(chunks) if total_chunks is None else total_chunks,
            "mime_type": mime_type,
        }
    )
    for index, chunk in enumerate(chunks):
        tables["chunks"].put_item(
            Item={"screenshot_id": screenshot_id, "chunk_index": index, "data": chunk}
        )
    return chunks


@pytest.fixture
def put_screenshot(dynamodb_tables):
    """Return a helper that stores a chunked screenshot in the moto tables."""

    def _put(screenshot_id, data, **kwargs):
        return store_screenshot(dynamodb_tables, screenshot_id, data, **kwargs)

    return _put
