"""
Object finalize events from the storage bucket
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from wastewatch.ingestion.storage_client import StorageObject

# <anything>_before.<ext> / <anything>_after.<ext>
_UPLOAD_NAME = re.compile(r"_(before|after)\.[A-Za-z0-9]+$", re.IGNORECASE)

# Client upload convention: <epoch ms>_before.jpg
_EMBEDDED_TIMESTAMP = re.compile(r"^(\d{10,13})_")


class UploadKind(Enum):
    """Which side of a cleanup an uploaded photo documents."""
    BEFORE = "before"
    AFTER = "after"


class ObjectResource(BaseModel):
    """The object resource carried by a finalize notification."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bucket: str = ""
    name: str = ""
    content_type: Optional[str] = Field(default=None, alias="contentType")
    size: Optional[int] = None
    generation: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    media_link: Optional[str] = Field(default=None, alias="mediaLink")

    @field_validator("size", mode="before")
    @classmethod
    def _blank_size(cls, value: Any) -> Any:
        return None if value == "" else value

    @field_validator("generation", mode="before")
    @classmethod
    def _generation(cls, value: Any) -> Optional[str]:
        return None if value in (None, "") else str(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata(cls, value: Any) -> Any:
        return {} if value is None else value


@dataclass
class FinalizeEvent:
    """A new object has been fully written to the bucket."""
    bucket: str
    path: str
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    generation: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    media_link: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "FinalizeEvent":
        """
        Build an event from a storage notification.

        Accepts the object resource itself or a CloudEvent-style envelope
        carrying it under ``data``.

        Raises:
            pydantic.ValidationError: If a field has an unusable value
        """
        if isinstance(payload, dict) and "name" not in payload and isinstance(payload.get("data"), dict):
            payload = payload["data"]

        resource = ObjectResource.model_validate(payload)
        return cls(
            bucket=resource.bucket,
            path=resource.name,
            mime_type=resource.content_type,
            size_bytes=resource.size,
            generation=resource.generation,
            metadata=resource.metadata,
            media_link=resource.media_link,
        )

    @property
    def storage_object(self) -> StorageObject:
        return StorageObject(bucket=self.bucket, path=self.path)

    @property
    def event_key(self) -> str:
        """Identity of this finalize event; redeliveries share it."""
        key = f"{self.bucket}/{self.path}"
        return f"{key}#{self.generation}" if self.generation else key

    @property
    def filename(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def upload_kind(self) -> Optional[UploadKind]:
        match = _UPLOAD_NAME.search(self.filename)
        if not match:
            return None
        return UploadKind(match.group(1).lower())

    @property
    def directory_segments(self) -> List[str]:
        return [segment for segment in self.path.split("/")[:-1] if segment]

    @property
    def embedded_timestamp(self) -> Optional[datetime]:
        """Upload time encoded in the file name, if any."""
        match = _EMBEDDED_TIMESTAMP.match(self.filename)
        if not match:
            return None
        value = int(match.group(1))
        seconds = value / 1000 if len(match.group(1)) == 13 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)

    def references(self) -> List[str]:
        """Every URI form a front end may have stored for this object."""
        obj = self.storage_object
        refs = [obj.gs_url, obj.public_url]
        if self.media_link:
            refs.append(self.media_link)
        return refs
