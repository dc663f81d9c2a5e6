from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, Optional

from .blobs import DEFAULT_CHUNK_SIZE, BlobStore
from .errors import InvalidIdentifierError, NotFoundError
from .models import TreeView
from .repositories import RecordRepository
from .transcoder import OUTPUT_MEDIA_TYPE
from .validator import check_blob_name, is_record_id


IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"


@dataclass
class BlobStream:
    """Either a file on disk (``path``) or an in-process chunk iterator (``chunks``)."""

    name: str
    path: Optional[Path] = None
    chunks: Optional[Iterator[bytes]] = None
    media_type: str = OUTPUT_MEDIA_TYPE
    headers: Dict[str, str] = field(default_factory=lambda: {"Cache-Control": IMMUTABLE_CACHE_CONTROL})


class RetrievalService:
    """Read-only access to stored trees and their images."""

    def __init__(self, records: RecordRepository, blobs: BlobStore, image_path: str = "/api/image") -> None:
        self.records = records
        self.blobs = blobs
        self.image_path = image_path.rstrip("/")

    def resolve(self, record_id: str, base_url: str) -> TreeView:
        if not is_record_id(record_id):
            raise InvalidIdentifierError("Invalid ID format")
        record = self.records.get(record_id.lower())
        if record is None:
            raise NotFoundError("Tree not found")
        base = base_url.rstrip("/")
        return TreeView(
            id=record.id,
            colors=record.palette,
            image_urls=[f"{base}{self.image_path}/{name}" for name in record.blob_names],
            created_at=record.created_at,
        )

    def stream_blob(self, name: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> BlobStream:
        check_blob_name(name)
        path = self.blobs.local_path(name)
        if path is not None:
            return BlobStream(name=name, path=path)
        return BlobStream(name=name, chunks=self.blobs.open_stream(name, chunk_size))
