from __future__ import annotations

import io
from typing import Callable, Tuple

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from TreeShare.api import main
from TreeShare.core.blobs import FileBlobStore, InMemoryBlobStore
from TreeShare.core.config import Settings, get_settings
from TreeShare.core.database import create_db_engine, create_session_factory, init_db
from TreeShare.core.ratelimit import SlidingWindowLimiter
from TreeShare.core.repositories import InMemoryRecordRepository, SqlRecordRepository


def make_image(
    fmt: str = "JPEG",
    size: Tuple[int, int] = (64, 48),
    color=(200, 30, 30),
    mode: str = "RGB",
    **save_kwargs,
) -> bytes:
    img = Image.new(mode, size, color=color)
    buf = io.BytesIO()
    img.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


@pytest.fixture()
def image_bytes() -> Callable[..., bytes]:
    return make_image


@pytest.fixture()
def blob_store(tmp_path) -> FileBlobStore:
    return FileBlobStore(tmp_path / "uploads")


@pytest.fixture()
def memory_blobs() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture()
def memory_records() -> InMemoryRecordRepository:
    return InMemoryRecordRepository()


@pytest.fixture()
def sql_records():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    try:
        yield SqlRecordRepository(create_session_factory(engine))
    finally:
        engine.dispose()


@pytest.fixture()
def limiter() -> SlidingWindowLimiter:
    return SlidingWindowLimiter(limit=50, window_seconds=900)


@pytest.fixture()
def settings() -> Settings:
    return Settings()


@pytest.fixture()
def client(blob_store, sql_records, limiter, settings):
    main.app.dependency_overrides[main.get_blob_store] = lambda: blob_store
    main.app.dependency_overrides[main.get_record_repository] = lambda: sql_records
    main.app.dependency_overrides[main.get_rate_limiter] = lambda: limiter
    main.app.dependency_overrides[get_settings] = lambda: settings
    try:
        yield TestClient(main.app)
    finally:
        main.app.dependency_overrides.clear()


@pytest.fixture()
def palette() -> dict:
    return {"primary": "#ff0000", "accent": "#00ff00", "light": "#0000ff"}
