"""
Write-once storage for transcoded image bytes.

Blob names look like ``1718031234567-k3x9qz.webp``: creation time in epoch
milliseconds, a random base36 suffix and the fixed output extension.
"""

from __future__ import annotations

import logging
import os
import secrets
import string
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Dict, Iterator, Optional, Union

from .errors import NotFoundError, StorageError
from .transcoder import OUTPUT_EXTENSION

log = logging.getLogger("treeshare.blobs")

_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH = 6
_PUT_ATTEMPTS = 5
DEFAULT_CHUNK_SIZE = 64 * 1024


class BlobExistsError(StorageError):
    pass


def generate_blob_name(now: float | None = None) -> str:
    millis = int((time.time() if now is None else now) * 1000)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"{millis}-{suffix}.{OUTPUT_EXTENSION}"


class BlobStore(ABC):
    """
    Storage abstraction for blobs; can be backed by a directory or memory.
    """

    def generate_name(self) -> str:
        return generate_blob_name()

    def put(self, data: bytes) -> str:
        for _ in range(_PUT_ATTEMPTS):
            name = self.generate_name()
            try:
                self.write(name, data)
            except BlobExistsError:
                log.warning("Blob name collision on %s, regenerating", name)
                continue
            return name
        raise StorageError("Could not allocate a unique blob name")

    @abstractmethod
    def write(self, name: str, data: bytes) -> None:
        """Store ``data`` under ``name``; raises BlobExistsError if taken."""
        raise NotImplementedError

    @abstractmethod
    def get(self, name: str) -> bytes:
        raise NotImplementedError

    @abstractmethod
    def open_stream(self, name: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """Return a chunk iterator; NotFoundError is raised before iteration starts."""
        raise NotImplementedError

    def local_path(self, name: str) -> Optional[Path]:
        """Filesystem path of a stored blob, or None for stores that do not keep files."""
        return None

    @abstractmethod
    def exists(self, name: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def delete(self, name: str) -> None:
        """Remove a blob; deleting a missing name is not an error."""
        raise NotImplementedError


class FileBlobStore(BlobStore):
    """Stores each blob as one file directly under ``root``."""

    def __init__(self, root: Union[str, Path]) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, name: str) -> Path:
        root = self._root.resolve()
        candidate = (self._root / name).resolve()
        if candidate.parent != root:
            raise StorageError(f"Blob name {name!r} resolves outside store root")
        return candidate

    def write(self, name: str, data: bytes) -> None:
        path = self._path(name)
        staging = path.with_name(f".{name}.{secrets.token_hex(4)}.tmp")
        try:
            with staging.open("xb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            # raises FileExistsError when the name is taken
            os.link(staging, path)
        except FileExistsError as exc:
            raise BlobExistsError(f"Blob {name} already exists") from exc
        except OSError as exc:
            log.error("Failed to write blob %s: %s", name, exc)
            raise StorageError("Failed to store image") from exc
        finally:
            staging.unlink(missing_ok=True)

    def get(self, name: str) -> bytes:
        path = self._path(name)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise NotFoundError("Image not found") from exc
        except OSError as exc:
            raise StorageError("Failed to read image") from exc

    def open_stream(self, name: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        path = self._path(name)
        try:
            handle = path.open("rb")
        except FileNotFoundError as exc:
            raise NotFoundError("Image not found") from exc
        except OSError as exc:
            raise StorageError("Failed to read image") from exc
        return _iter_file(handle, chunk_size)

    def local_path(self, name: str) -> Path:
        path = self._path(name)
        if not path.is_file():
            raise NotFoundError("Image not found")
        return path

    def exists(self, name: str) -> bool:
        return self._path(name).is_file()

    def delete(self, name: str) -> None:
        try:
            self._path(name).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to delete blob {name}") from exc


def _iter_file(handle: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    with handle:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                break
            yield chunk


class InMemoryBlobStore(BlobStore):
    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def write(self, name: str, data: bytes) -> None:
        with self._lock:
            if name in self._blobs:
                raise BlobExistsError(f"Blob {name} already exists")
            self._blobs[name] = bytes(data)

    def get(self, name: str) -> bytes:
        with self._lock:
            data = self._blobs.get(name)
        if data is None:
            raise NotFoundError("Image not found")
        return data

    def open_stream(self, name: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        data = self.get(name)
        return iter([data[i : i + chunk_size] for i in range(0, len(data), chunk_size)])

    def exists(self, name: str) -> bool:
        with self._lock:
            return name in self._blobs

    def delete(self, name: str) -> None:
        with self._lock:
            self._blobs.pop(name, None)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._blobs)
