# Grievance Desk API
# FastAPI app factory: middleware, health check, grievance and file routers

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from . import __version__, config, routes_files, routes_grievances
from .attachments import AttachmentStorage
from .errors import register_error_handlers
from .models import HealthResponse
from .store import MongoStore, Store, create_store

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------
class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("%s %s -> %d (%.1f ms)", request.method, request.url.path,
                    response.status_code, elapsed_ms)
        return response

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response

# ---------------------------------------------------------------------------
# Startup / Shutdown
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.storage.ensure_root()
    logger.info("Upload directory: %s", app.state.storage.root)
    if isinstance(app.state.store, MongoStore):
        await app.state.store.ensure_indexes()
    yield
    app.state.store.close()
    logger.info("Shutting down server...")

# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------
def create_app(store: Optional[Store] = None, upload_dir: Optional[Path] = None,
               max_file_size: int = config.MAX_FILE_SIZE,
               max_files: int = config.MAX_FILES_PER_UPLOAD,
               api_prefix: str = config.API_PREFIX) -> FastAPI:
    logging.basicConfig(level=config.LOG_LEVEL)
    api_prefix = config.normalize_prefix(api_prefix)

    app = FastAPI(title="Grievance Desk API", version=__version__, lifespan=lifespan)
    app.state.store = store or create_store(config.STORAGE_BACKEND,
                                            config.MONGODB_URL, config.MONGODB_DB)
    app.state.storage = AttachmentStorage(upload_dir or config.UPLOAD_DIR,
                                          max_file_size=max_file_size, max_files=max_files)
    app.state.started_at = time.monotonic()

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    async def health():
        return HealthResponse(
            status="OK", message="Grievance System API is running",
            timestamp=datetime.now(timezone.utc),
            uptime=round(time.monotonic() - app.state.started_at, 3))

    # an empty prefix makes both paths the same
    for path in dict.fromkeys(("/health", f"{api_prefix}/health")):
        app.add_api_route(path, health, methods=["GET"], response_model=HealthResponse)

    grievance_router = routes_grievances.build_router()
    app.include_router(grievance_router, prefix=f"{api_prefix}/grievances", tags=["grievances"])
    app.include_router(grievance_router, prefix=f"{api_prefix}/feedback", tags=["feedback"])
    app.include_router(routes_files.build_router(), prefix=api_prefix, tags=["files"])
    return app
