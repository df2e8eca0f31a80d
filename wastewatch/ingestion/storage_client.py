"""
Object storage client for WasteWatch AI

Resolves the image references stored on reports to raw bytes. Supported
reference shapes:

- gs://<bucket>/<object>
- https://storage.googleapis.com/<bucket>/<object>              (public URL)
- https://storage.googleapis.com/.../b/<bucket>/o/<object>       (API/download URL)
- https://firebasestorage.googleapis.com/v0/b/<bucket>/o/<object>?alt=media&token=...
- <object> when a default bucket is configured
"""

import logging
import mimetypes
import re
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import quote, unquote, urlsplit

import httpx

from wastewatch.core.errors import (
    ErrorType,
    ReferenceResolutionError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)

GCS_HOST = "storage.googleapis.com"
FIREBASE_HOST = "firebasestorage.googleapis.com"

_GS_URL = re.compile(r"^gs://([^/]+)/(.+)$")
_API_PATH = re.compile(r"/b/([^/]+)/o/([^?]+)")

DEFAULT_MIME_TYPE = "image/jpeg"


@dataclass(frozen=True)
class StorageObject:
    """A bucket/object pair."""
    bucket: str
    path: str

    @property
    def gs_url(self) -> str:
        return f"gs://{self.bucket}/{self.path}"

    @property
    def public_url(self) -> str:
        return f"https://{GCS_HOST}/{self.bucket}/{self.path}"

    @property
    def filename(self) -> str:
        return self.path.rsplit("/", 1)[-1]


class StorageClient:
    """
    Downloads objects through the Cloud Storage JSON API.

    Usage:
        with StorageClient(access_token="...") as storage:
            data, mime_type = storage.resolve("gs://bucket/reports/u1/1700000000000_before.jpg")
    """

    def __init__(
        self,
        base_url: str = f"https://{GCS_HOST}",
        access_token: Optional[str] = None,
        default_bucket: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None
    ):
        """
        Initialize storage client.

        Args:
            base_url: Storage API root
            access_token: OAuth bearer token; public objects need none
            default_bucket: Bucket used for bare object paths
            timeout: HTTP request timeout in seconds
            client: Preconfigured httpx client (tests inject a mock transport)
        """
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.default_bucket = default_bucket
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self) -> None:
        self._client.close()

    def parse_reference(self, reference: str) -> StorageObject:
        """
        Turn a stored image reference into a bucket/object pair.

        Raises:
            ReferenceResolutionError: If the reference shape is unsupported
        """
        if not reference or not isinstance(reference, str):
            raise ReferenceResolutionError("Empty image reference")

        reference = reference.strip()

        match = _GS_URL.match(reference)
        if match:
            return StorageObject(bucket=match.group(1), path=match.group(2))

        parts = urlsplit(reference)
        if parts.scheme in ("http", "https"):
            host = parts.netloc.lower()
            if host in (GCS_HOST, FIREBASE_HOST):
                api_match = _API_PATH.search(parts.path)
                if api_match:
                    return StorageObject(
                        bucket=api_match.group(1),
                        path=unquote(api_match.group(2)),
                    )
            if host == GCS_HOST:
                bucket, _, path = parts.path.lstrip("/").partition("/")
                if bucket and path:
                    return StorageObject(bucket=bucket, path=unquote(path))
            raise ReferenceResolutionError(
                f"Unsupported URL format: {reference}",
                details={"reference": reference},
            )

        if not parts.scheme and self.default_bucket:
            return StorageObject(bucket=self.default_bucket, path=reference.lstrip("/"))

        raise ReferenceResolutionError(
            f"Unsupported image reference: {reference}",
            details={"reference": reference},
        )

    def resolve(self, reference: str) -> Tuple[bytes, str]:
        """
        Download the object behind a reference.

        Args:
            reference: Any supported reference shape

        Returns:
            Tuple of (bytes, mime type)

        Raises:
            ReferenceResolutionError: Unsupported reference or missing object
            StorageUnavailableError: Storage could not be reached
        """
        obj = self.parse_reference(reference)
        url = f"{self.base_url}/storage/v1/b/{obj.bucket}/o/{quote(obj.path, safe='')}"

        headers = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        logger.info(f"Downloading from bucket: {obj.bucket} path: {obj.path}")
        try:
            response = self._client.get(url, params={"alt": "media"}, headers=headers)
        except httpx.HTTPError as e:
            raise StorageUnavailableError(
                f"Failed to download image: {e}",
                details={"reference": reference},
                original_exception=e,
            )

        if response.status_code in (403, 404):
            raise ReferenceResolutionError(
                f"Image not accessible ({response.status_code}): {reference}",
                details={"reference": reference, "status_code": response.status_code},
                error_type=ErrorType.REFERENCE_NOT_FOUND,
            )
        if response.status_code >= 400:
            raise StorageUnavailableError(
                f"Storage returned {response.status_code} for {reference}",
                details={"reference": reference, "status_code": response.status_code},
            )

        mime_type = self._mime_type(response, obj)
        logger.info(f"Image downloaded successfully, size: {len(response.content)} bytes, type: {mime_type}")

        return response.content, mime_type

    @staticmethod
    def _mime_type(response: httpx.Response, obj: StorageObject) -> str:
        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        if content_type.startswith("image/"):
            return content_type
        guessed, _ = mimetypes.guess_type(obj.filename)
        return guessed or DEFAULT_MIME_TYPE
