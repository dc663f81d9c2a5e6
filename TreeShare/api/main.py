import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response, StreamingResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from TreeShare.core.blobs import BlobStore, FileBlobStore
from TreeShare.core.config import Settings, get_settings
from TreeShare.core.database import create_db_engine, create_session_factory, init_db
from TreeShare.core.errors import RateLimitError, TreeShareError
from TreeShare.core.ingestion import IngestionCoordinator
from TreeShare.core.models import TreeView, UploadedFile, UploadResponse
from TreeShare.core.ratelimit import SlidingWindowLimiter
from TreeShare.core.repositories import RecordRepository, SqlRecordRepository
from TreeShare.core.retrieval import RetrievalService

logger = logging.getLogger("treeshare")
settings = get_settings()
logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")

app = FastAPI(
    title=settings.APP_NAME,
    description="Upload photos with a color palette and share them by link",
    version=settings.VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---- DI Setup ----
@lru_cache()
def get_blob_store() -> BlobStore:
    return FileBlobStore(get_settings().STORAGE_ROOT)


@lru_cache()
def get_record_repository() -> RecordRepository:
    engine = create_db_engine(get_settings().DATABASE_URL)
    init_db(engine)
    logger.info("Connected to database %s", engine.url.render_as_string(hide_password=True))
    return SqlRecordRepository(create_session_factory(engine))


@lru_cache()
def get_rate_limiter() -> SlidingWindowLimiter:
    config = get_settings()
    return SlidingWindowLimiter(limit=config.RATE_LIMIT, window_seconds=config.RATE_WINDOW_SECONDS)


def get_ingestion_coordinator(
    blobs: BlobStore = Depends(get_blob_store),
    records: RecordRepository = Depends(get_record_repository),
    config: Settings = Depends(get_settings),
) -> IngestionCoordinator:
    return IngestionCoordinator.from_settings(config, blobs=blobs, records=records)


def get_retrieval_service(
    blobs: BlobStore = Depends(get_blob_store),
    records: RecordRepository = Depends(get_record_repository),
) -> RetrievalService:
    return RetrievalService(records=records, blobs=blobs)


def client_identity(request: Request, config: Settings) -> str:
    if config.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def enforce_upload_rate_limit(
    request: Request,
    limiter: SlidingWindowLimiter = Depends(get_rate_limiter),
    config: Settings = Depends(get_settings),
) -> str:
    identity = client_identity(request, config)
    limiter.hit(identity)
    return identity


# ---- Error Handling ----
@app.exception_handler(TreeShareError)
async def treeshare_error_handler(request: Request, exc: TreeShareError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after)}
        logger.warning("Rate limit hit for %s", exc.identity)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error: %s", exc, exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ---- API Endpoints ----
@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "service": settings.APP_NAME, "version": settings.VERSION}


@app.post("/api/upload", response_model=UploadResponse)
async def upload_tree(
    files: Optional[List[UploadFile]] = File(default=None),
    primary: Optional[str] = Form(default=None),
    accent: Optional[str] = Form(default=None),
    light: Optional[str] = Form(default=None),
    _: str = Depends(enforce_upload_rate_limit),
    coordinator: IngestionCoordinator = Depends(get_ingestion_coordinator),
) -> UploadResponse:
    uploads = []
    for part in files or []:
        # one byte past the ceiling is enough to reject the file
        data = await part.read(coordinator.max_file_bytes + 1)
        uploads.append(UploadedFile(filename=part.filename or "", content_type=part.content_type, data=data))

    record = await coordinator.ingest(uploads, {"primary": primary, "accent": accent, "light": light})
    return UploadResponse(id=record.id)


@app.get("/api/tree/{tree_id}", response_model=TreeView)
def get_tree(
    tree_id: str,
    request: Request,
    service: RetrievalService = Depends(get_retrieval_service),
    config: Settings = Depends(get_settings),
) -> TreeView:
    base_url = config.PUBLIC_BASE_URL or str(request.base_url)
    return service.resolve(tree_id, base_url)


@app.get("/api/image/{name}")
def get_image(name: str, service: RetrievalService = Depends(get_retrieval_service)) -> Response:
    blob = service.stream_blob(name)
    if blob.path is not None:
        # FileResponse opens and closes the handle itself
        return FileResponse(blob.path, media_type=blob.media_type, headers=blob.headers)
    return StreamingResponse(blob.chunks, media_type=blob.media_type, headers=blob.headers)


# ---- Frontend ----
class FrontendFiles(StaticFiles):
    """Serves the built front end, falling back to index.html for client-side routes."""

    async def get_response(self, path: str, scope):
        if path == "api" or path.startswith("api/"):
            raise StarletteHTTPException(status_code=404)
        try:
            return await super().get_response(path, scope)
        except StarletteHTTPException as exc:
            if exc.status_code != 404:
                raise
            return await super().get_response("index.html", scope)


def mount_frontend(target: FastAPI, directory: str) -> bool:
    root = Path(directory)
    if not (root / "index.html").is_file():
        logger.warning("Frontend directory %s has no index.html, not serving it", directory)
        return False
    target.mount("/", FrontendFiles(directory=str(root), html=True), name="frontend")
    return True


if settings.FRONTEND_DIR:
    mount_frontend(app, settings.FRONTEND_DIR)
