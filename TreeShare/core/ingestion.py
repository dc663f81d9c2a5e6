"""
Upload ingestion: validate, transcode, persist, commit.

One call to ``IngestionCoordinator.ingest`` handles one upload request and is
all-or-nothing. Blob names are put on a rollback list before each write
starts, and the list is drained on every exit path that did not commit
(errors, timeout, cancellation of the calling task).
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from enum import Enum
from typing import List, Mapping, Optional, Sequence

import anyio

from .blobs import BlobExistsError, BlobStore
from .config import Settings
from .errors import IngestionTimeoutError, StorageError, TranscodeError
from .models import Record, UploadedFile
from .repositories import RecordRepository
from .transcoder import TranscodedImage, Transcoder
from .validator import validate_batch

log = logging.getLogger("treeshare.ingestion")

_NAME_ATTEMPTS = 5


class IngestionState(str, Enum):
    VALIDATING = "validating"
    TRANSCODING = "transcoding"
    PERSISTING = "persisting"
    COMMITTING = "committing"
    DONE = "done"
    ROLLED_BACK = "rolled_back"


def _consume_result(task: asyncio.Task) -> None:
    if not task.cancelled():
        task.exception()


class IngestionCoordinator:
    """
    Coordinates validation, transcoding, blob storage and the record insert.
    """

    def __init__(
        self,
        blobs: BlobStore,
        records: RecordRepository,
        transcoder: Transcoder,
        *,
        max_files: int = 20,
        max_file_bytes: int = 10 * 1024 * 1024,
        timeout_seconds: float = 30.0,
        transcode_concurrency: int = 4,
    ) -> None:
        self.blobs = blobs
        self.records = records
        self.transcoder = transcoder
        self.max_files = max_files
        self.max_file_bytes = max_file_bytes
        self.timeout_seconds = timeout_seconds
        self.transcode_concurrency = transcode_concurrency

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        blobs: BlobStore,
        records: RecordRepository,
        transcoder: Optional[Transcoder] = None,
    ) -> "IngestionCoordinator":
        return cls(
            blobs=blobs,
            records=records,
            transcoder=transcoder
            or Transcoder(
                max_dimension=settings.MAX_DIMENSION,
                quality=settings.WEBP_QUALITY,
                max_pixels=settings.MAX_IMAGE_PIXELS,
            ),
            max_files=settings.MAX_FILES,
            max_file_bytes=settings.MAX_FILE_BYTES,
            timeout_seconds=settings.INGEST_TIMEOUT_SECONDS,
            transcode_concurrency=settings.TRANSCODE_CONCURRENCY,
        )

    async def ingest(
        self,
        files: Sequence[UploadedFile],
        palette_fields: Mapping[str, Optional[str]],
    ) -> Record:
        tag = uuid.uuid4().hex[:8]
        self._enter(tag, IngestionState.VALIDATING, f"{len(files)} file(s)")
        palette = validate_batch(
            files,
            palette_fields,
            max_files=self.max_files,
            max_bytes=self.max_file_bytes,
        )

        written: List[str] = []
        committed = False
        try:
            with anyio.move_on_after(self.timeout_seconds) as deadline:
                self._enter(tag, IngestionState.TRANSCODING)
                images = await self._transcode_all(tag, files)
                self._enter(tag, IngestionState.PERSISTING)
                blob_names = await self._persist_all(images, written)
            if deadline.cancelled_caught:
                log.error("[%s] Upload exceeded %.1fs", tag, self.timeout_seconds)
                raise IngestionTimeoutError("Upload processing timed out")

            self._enter(tag, IngestionState.COMMITTING)
            record = Record(id=str(uuid.uuid4()), blob_names=blob_names, palette=palette)
            with anyio.CancelScope(shield=True):
                await anyio.to_thread.run_sync(self.records.insert, record)
                committed = True
        except TranscodeError as exc:
            log.warning("[%s] Transcode failed: %s", tag, exc.detail)
            raise
        except StorageError as exc:
            log.error("[%s] Storage failure: %s", tag, exc.detail, exc_info=True)
            raise
        finally:
            if not committed:
                with anyio.CancelScope(shield=True):
                    await self._rollback(tag, written)

        self._enter(tag, IngestionState.DONE)
        log.info("[%s] Created tree %s with %d compressed images", tag, record.id, len(blob_names))
        return record

    async def _transcode_all(self, tag: str, files: Sequence[UploadedFile]) -> List[TranscodedImage]:
        limiter = anyio.CapacityLimiter(self.transcode_concurrency)
        tasks = [
            asyncio.create_task(self._transcode_one(tag, upload, index, limiter))
            for index, upload in enumerate(files)
        ]
        for task in tasks:
            task.add_done_callback(_consume_result)
        try:
            return list(await asyncio.gather(*tasks))
        finally:
            # first failure wins; the rest are abandoned
            for task in tasks:
                if not task.done():
                    task.cancel()

    async def _transcode_one(
        self,
        tag: str,
        upload: UploadedFile,
        index: int,
        limiter: anyio.CapacityLimiter,
    ) -> TranscodedImage:
        label = upload.filename or f"file #{index + 1}"
        image = await anyio.to_thread.run_sync(
            self.transcoder.transcode,
            upload.data,
            label,
            abandon_on_cancel=True,
            limiter=limiter,
        )
        log.info(
            "[%s] Compressed %s -> %dx%d webp (%.1fKB)",
            tag,
            label,
            image.width,
            image.height,
            image.size / 1024,
        )
        return image

    async def _persist_all(self, images: Sequence[TranscodedImage], written: List[str]) -> List[str]:
        names = []
        for image in images:
            names.append(await self._write_blob(image, written))
        return names

    async def _write_blob(self, image: TranscodedImage, written: List[str]) -> str:
        for _ in range(_NAME_ATTEMPTS):
            name = self.blobs.generate_name()
            written.append(name)
            try:
                await anyio.to_thread.run_sync(self.blobs.write, name, image.data)
            except BlobExistsError:
                # the existing blob belongs to another request
                written.remove(name)
                log.warning("Blob name collision on %s, regenerating", name)
                continue
            return name
        raise StorageError("Could not allocate a unique blob name")

    async def _rollback(self, tag: str, names: List[str]) -> None:
        failures = 0
        for name in reversed(names):
            try:
                await anyio.to_thread.run_sync(self.blobs.delete, name)
            except Exception as exc:
                failures += 1
                log.warning("[%s] Rollback could not delete %s: %s", tag, name, exc)
        self._enter(
            tag,
            IngestionState.ROLLED_BACK,
            f"{len(names) - failures} blob(s) removed, {failures} left behind",
        )

    @staticmethod
    def _enter(tag: str, state: IngestionState, detail: str = "") -> None:
        if detail:
            log.info("[%s] %s: %s", tag, state.value, detail)
        else:
            log.info("[%s] %s", tag, state.value)
