from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Palette(BaseModel):
    model_config = ConfigDict(frozen=True)

    primary: str
    accent: str
    light: str

    def to_dict(self) -> Dict[str, str]:
        return {"primary": self.primary, "accent": self.accent, "light": self.light}


@dataclass(frozen=True)
class UploadedFile:
    """One multipart part as received from the client."""

    filename: str
    content_type: Optional[str]
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class Record:
    id: str
    blob_names: List[str]
    palette: Palette
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "blob_names": list(self.blob_names),
            "palette": self.palette.to_dict(),
            "created_at": self.created_at.isoformat(),
        }


class UploadResponse(BaseModel):
    id: str


class TreeView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    colors: Palette
    image_urls: List[str] = Field(alias="imageUrls")
    created_at: datetime = Field(alias="createdAt")
