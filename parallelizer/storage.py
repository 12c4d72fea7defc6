"""
Archive of job documents in S3.
"""

import asyncio
import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from parallelizer.exceptions import ArchiveError

logger = logging.getLogger(__name__)


class JobArchive:
    """Stores the raw job document under <key_prefix><task_list_id>.json."""

    def __init__(self, client: Any, bucket: str, key_prefix: str = ""):
        """
        Initialize the archive.

        Args:
            client: A boto3 S3 client.
            bucket: Target bucket.
            key_prefix: Prepended verbatim to every object key.
        """
        self._client = client
        self.bucket = bucket
        self.key_prefix = key_prefix

    def key_for(self, task_list_id: str) -> str:
        return f"{self.key_prefix}{task_list_id}.json"

    async def put(self, task_list_id: str, document: bytes) -> str:
        """
        Upload the document and return its s3:// url.

        Raises:
            ArchiveError: If the upload fails.
        """
        key = self.key_for(task_list_id)
        logger.debug("Uploading job file", extra={"bucket": self.bucket, "key": key})
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=document,
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as e:
            raise ArchiveError(f"failed to upload s3://{self.bucket}/{key}: {e}") from e
        return f"s3://{self.bucket}/{key}"
