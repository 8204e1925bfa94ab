"""Persistence of the generated feed document."""

import os
import tempfile
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import StorageConfig
from .errors import FeedStorageError
from .logging_config import create_execution_logger

RSS_CONTENT_TYPE = "application/rss+xml; charset=utf-8"


class LocalFeedStore:
    """Stores the feed in a file on local disk."""

    def __init__(self, path: str | Path, execution_id: str | None = None):
        self.path = Path(path)
        self.logger = create_execution_logger("storage", execution_id)

    def load(self) -> str | None:
        """Read the previous feed, or None if there is none yet.

        Raises:
            FeedStorageError: If the file exists but cannot be read
        """
        if not self.path.exists():
            self.logger.info("No previous feed found", path=str(self.path))
            return None
        try:
            return self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise FeedStorageError(f"Failed to read feed {self.path}: {e}") from e

    def save(self, document: str) -> None:
        """Atomically replace the feed file.

        Raises:
            FeedStorageError: If the document cannot be written
        """
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(document)
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise FeedStorageError(f"Failed to write feed {self.path}: {e}") from e

        self.logger.info(
            f"Feed written to {self.path}", path=str(self.path), size=len(document)
        )


class S3FeedStore:
    """Stores the feed as an S3 object."""

    def __init__(
        self,
        bucket: str,
        key: str,
        aws_region: str = "us-east-1",
        execution_id: str | None = None,
    ):
        if not bucket:
            raise ValueError("S3 bucket name cannot be empty")
        self.bucket = bucket
        self.key = key
        self.logger = create_execution_logger("storage", execution_id)
        self.s3 = boto3.client("s3", region_name=aws_region)

        self.logger.info("S3FeedStore initialized", bucket=bucket, key=key)

    def load(self) -> str | None:
        """Read the previous feed object, or None if it does not exist.

        Raises:
            FeedStorageError: On any other S3 failure
        """
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=self.key)
            return response["Body"].read().decode("utf-8")
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in ("NoSuchKey", "404"):
                self.logger.info("No previous feed found", bucket=self.bucket, key=self.key)
                return None
            raise FeedStorageError(
                f"Failed to read s3://{self.bucket}/{self.key}: {error_code}"
            ) from e
        except (BotoCoreError, UnicodeDecodeError) as e:
            raise FeedStorageError(
                f"Failed to read s3://{self.bucket}/{self.key}: {e}"
            ) from e

    def save(self, document: str) -> None:
        """Upload the feed object.

        Raises:
            FeedStorageError: If the upload fails
        """
        try:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=self.key,
                Body=document.encode("utf-8"),
                ContentType=RSS_CONTENT_TYPE,
            )
        except (ClientError, BotoCoreError) as e:
            raise FeedStorageError(
                f"Failed to write s3://{self.bucket}/{self.key}: {e}"
            ) from e

        self.logger.info(
            "Feed uploaded to S3", bucket=self.bucket, key=self.key, size=len(document)
        )


def create_feed_store(
    config: StorageConfig, execution_id: str | None = None
) -> LocalFeedStore | S3FeedStore:
    """Create the feed store selected by configuration."""
    if config.backend == "s3":
        return S3FeedStore(
            config.bucket, config.key, config.region, execution_id=execution_id
        )
    return LocalFeedStore(config.path, execution_id=execution_id)
