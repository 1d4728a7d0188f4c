"""Reassembly of screenshots stored as base64 chunks.

Clients upload a screenshot as a metadata item (``total_chunks``,
``mime_type``) plus one item per base64 fragment, keyed by
``(screenshot_id, chunk_index)``. A screenshot is only usable when every
chunk is present; anything less is treated as unavailable rather than
returned as a partial image.
"""

import base64
import binascii
import logging

from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from models.feedback import (
    DEFAULT_MIME_TYPE,
    Screenshot,
    ScreenshotChunk,
    ScreenshotMetadata,
)
from utils.dynamodb_utils import iter_query, parse_from_dynamodb

logger = logging.getLogger(__name__)

# DynamoDB items are capped at 400KB
DEFAULT_CHUNK_SIZE = 300_000


def split_into_chunks(data: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """Base64-encode ``data`` and split it into fragments of ``chunk_size``.

    ``chunk_size`` must be a positive multiple of 4 so every fragment is
    itself valid base64.
    """
    if chunk_size <= 0 or chunk_size % 4 != 0:
        raise ValueError("chunk_size must be a positive multiple of 4")

    encoded = base64.b64encode(data).decode("ascii")
    return [encoded[i : i + chunk_size] for i in range(0, len(encoded), chunk_size)]


def join_chunks(chunks: list[ScreenshotChunk]) -> str:
    """Concatenate chunk payloads in index order."""
    return "".join(chunk.data for chunk in sorted(chunks, key=lambda c: c.chunk_index))


class ScreenshotService:
    """Reads screenshot metadata and chunks from DynamoDB."""

    def __init__(self, metadata_table, chunks_table):
        """Initialize the service.

        Args:
            metadata_table: DynamoDB table keyed by screenshot_id
            chunks_table: DynamoDB table keyed by (screenshot_id, chunk_index)
        """
        self.metadata_table = metadata_table
        self.chunks_table = chunks_table

    def get_metadata(self, screenshot_id: str) -> ScreenshotMetadata | None:
        response = self.metadata_table.get_item(Key={"screenshot_id": screenshot_id})
        item = response.get("Item")
        if not item:
            return None
        parsed = parse_from_dynamodb(item)
        parsed.setdefault("screenshot_id", screenshot_id)
        return ScreenshotMetadata(**parsed)

    def get_chunks(self, screenshot_id: str) -> list[ScreenshotChunk]:
        """Fetch all chunks ordered by index ascending."""
        chunks = [
            ScreenshotChunk(**item)
            for item in iter_query(
                self.chunks_table,
                KeyConditionExpression=Key("screenshot_id").eq(screenshot_id),
                ScanIndexForward=True,
            )
        ]
        return sorted(chunks, key=lambda c: c.chunk_index)

    def reassemble(self, screenshot_id: str) -> Screenshot | None:
        """Rebuild a screenshot from its chunks.

        Returns:
            The decoded screenshot, or None when it is unavailable (no
            metadata, missing chunks, malformed data, or a store error)
        """
        try:
            metadata = self.get_metadata(screenshot_id)
            if metadata is None:
                logger.info(f"No screenshot found for ID: {screenshot_id}")
                return None

            chunks = self.get_chunks(screenshot_id)
        except (ClientError, BotoCoreError, ValueError) as e:
            logger.error(f"Error reading screenshot {screenshot_id}: {e}")
            return None

        if len(chunks) != metadata.total_chunks:
            logger.warning(
                f"Missing chunks for {screenshot_id}. "
                f"Found: {len(chunks)}, Expected: {metadata.total_chunks}"
            )
            return None

        indices = [chunk.chunk_index for chunk in chunks]
        if indices != list(range(metadata.total_chunks)):
            logger.warning(f"Chunk indices for {screenshot_id} are not contiguous")
            return None

        try:
            data = base64.b64decode(join_chunks(chunks), validate=True)
        except (binascii.Error, ValueError) as e:
            logger.error(f"Screenshot {screenshot_id} has malformed data: {e}")
            return None

        logger.info(
            f"Successfully reconstructed screenshot {screenshot_id} "
            f"({metadata.total_chunks} chunks, {len(data)} bytes)"
        )
        return Screenshot(
            screenshot_id=screenshot_id,
            mime_type=metadata.mime_type or DEFAULT_MIME_TYPE,
            data=data,
        )
