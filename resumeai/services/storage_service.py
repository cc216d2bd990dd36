"""
Artifact storage for generated resumes.

Each user has a single artifact at "{user_id}/resume.pdf"; a new generation
overwrites the previous one.
"""
import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from resumeai.core import config
from resumeai.core.errors import ArtifactNotFound, CollaboratorError
from resumeai.core.retry import retry_call

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


def resume_artifact_key(user_id: int) -> str:
    return f"{user_id}/resume.pdf"


class ArtifactStore(ABC):
    """Key/value blob storage."""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str = PDF_CONTENT_TYPE) -> None:
        """
        Store data under key, replacing any previous object.

        Raises:
            CollaboratorError: Upload failed
        """
        pass

    @abstractmethod
    def get(self, key: str) -> bytes:
        """
        Raises:
            ArtifactNotFound: Nothing stored under key
            CollaboratorError: Download failed
        """
        pass


class LocalArtifactStore(ArtifactStore):
    """Filesystem-backed store rooted at a directory."""

    def __init__(self, root: Optional[str] = None):
        self.root = os.path.abspath(root or config.LOCAL_STORAGE_DIR)

    def _path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root, key))
        if not path.startswith(self.root + os.sep):
            raise ValueError(f"Invalid artifact key: {key}")
        return path

    def put(self, key: str, data: bytes, content_type: str = PDF_CONTENT_TYPE) -> None:
        path = self._path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            tmp_path = f"{path}.tmp"
            with open(tmp_path, "wb") as f:
                f.write(data)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error(f"Failed to write artifact {key}: {e}")
            raise CollaboratorError("Failed to store the generated resume") from e
        logger.info(f"Stored artifact: key={key}, size={len(data)}")

    def get(self, key: str) -> bytes:
        path = self._path(key)
        if not os.path.exists(path):
            raise ArtifactNotFound("No generated resume found", key=key)
        with open(path, "rb") as f:
            return f.read()


class S3ArtifactStore(ArtifactStore):
    """S3-backed store."""

    def __init__(self, bucket: Optional[str] = None, client=None, retry_attempts: Optional[int] = None):
        self.bucket = bucket or config.S3_BUCKET_NAME
        if not self.bucket:
            raise CollaboratorError("S3 storage is not configured (S3_BUCKET_NAME)")
        self.client = client or boto3.client("s3", region_name=config.AWS_REGION)
        self.retry_attempts = retry_attempts or config.COLLABORATOR_RETRY_ATTEMPTS

    def put(self, key: str, data: bytes, content_type: str = PDF_CONTENT_TYPE) -> None:
        # Same key and body on every attempt, so retrying a put is safe
        try:
            retry_call(
                lambda: self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type),
                attempts=self.retry_attempts,
                retry_on=(BotoCoreError, ClientError),
                description="s3.put_object",
            )
        except (BotoCoreError, ClientError) as e:
            raise CollaboratorError("Failed to store the generated resume") from e
        logger.info(f"Uploaded artifact: bucket={self.bucket}, key={key}, size={len(data)}")

    def get(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise ArtifactNotFound("No generated resume found", key=key) from e
            logger.error(f"S3 download failed: key={key}, error={e}")
            raise CollaboratorError("Failed to download the generated resume") from e
        except BotoCoreError as e:
            raise CollaboratorError("Failed to download the generated resume") from e
        return response["Body"].read()


def get_artifact_store(backend: Optional[str] = None) -> ArtifactStore:
    """Build the configured artifact store."""
    backend = (backend or config.STORAGE_BACKEND).lower()
    if backend == "s3":
        return S3ArtifactStore()
    if backend == "local":
        return LocalArtifactStore()
    raise CollaboratorError(f"Unknown storage backend: {backend}")
