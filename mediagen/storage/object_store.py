"""Object storage for generated artifacts (Google Cloud Storage)."""

import asyncio
import logging
import mimetypes
from abc import ABC, abstractmethod
from datetime import timedelta
from functools import partial
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

JOBS_PREFIX = "mediagen-jobs"

_DEFAULT_EXTENSIONS = {"video": ".mp4", "image": ".png", "audio": ".wav"}
_PREFERRED_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/mpeg": ".mp3",
    "video/mp4": ".mp4",
}


def parse_gs_uri(uri: str) -> Tuple[str, str]:
    """Split ``gs://bucket/path`` into (bucket, path)."""
    if not uri.startswith("gs://"):
        raise ValueError(f"Not a gs:// URI: {uri}")
    bucket, _, path = uri[len("gs://"):].partition("/")
    return bucket, path


def extension_for(kind: str, mime_type: Optional[str] = None) -> str:
    if mime_type:
        ext = _PREFERRED_EXTENSIONS.get(mime_type) or mimetypes.guess_extension(mime_type)
        if ext:
            return ext
    return _DEFAULT_EXTENSIONS.get(kind, ".bin")


class ObjectStorage(ABC):
    """Where generated bytes go, and how clients get them back."""

    bucket_name: str = ""

    @abstractmethod
    async def upload(self, data: bytes, uri: str, mime_type: str) -> str:
        """Write ``data`` to ``uri``. Returns the URI."""
        ...

    @abstractmethod
    async def signed_url_for(self, uri: str, ttl_seconds: float) -> Optional[str]:
        """Time-limited HTTPS URL for a gs:// URI, or None if it cannot be signed."""
        ...

    def job_dir_uri(self, job_id: str) -> str:
        """``gs://{bucket}/mediagen-jobs/{jobId}/``"""
        return f"gs://{self.bucket_name}/{JOBS_PREFIX}/{job_id}/"

    def output_uri_for(
        self,
        job_id: str,
        request: Dict[str, Any],
        kind: str,
        mime_type: Optional[str] = None,
    ) -> str:
        """Output file URI, e.g. ``.../{jobId}/image-gemini-2.5-flash-image.png``."""
        model = request.get("model", "unknown")
        prefix = "audio-tts" if kind == "audio" else kind
        return f"{self.job_dir_uri(job_id)}{prefix}-{model}{extension_for(kind, mime_type)}"


class GcsObjectStorage(ObjectStorage):

    def __init__(self, bucket_name: str, client=None):
        self.bucket_name = bucket_name
        self._client = client

    def _get_client(self):
        if self._client is None:
            from google.cloud import storage

            self._client = storage.Client()
        return self._client

    def _blob(self, uri: str):
        bucket, path = parse_gs_uri(uri)
        return self._get_client().bucket(bucket).blob(path)

    async def upload(self, data: bytes, uri: str, mime_type: str) -> str:
        blob = self._blob(uri)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, partial(blob.upload_from_string, data, content_type=mime_type)
        )
        logger.info("Uploaded %s bytes to %s (%s)", len(data), uri, mime_type)
        return uri

    async def signed_url_for(self, uri: str, ttl_seconds: float) -> Optional[str]:
        if not uri or not uri.startswith("gs://"):
            return None
        loop = asyncio.get_running_loop()
        try:
            blob = self._blob(uri)
            return await loop.run_in_executor(
                None,
                partial(
                    blob.generate_signed_url,
                    version="v4",
                    expiration=timedelta(seconds=ttl_seconds),
                    method="GET",
                ),
            )
        except Exception as e:
            logger.error("Failed to sign %s: %s", uri, e)
            return None
