"""FastAPI entry point for the classroom file service."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import get_settings
from errors.exceptions import StorageError
from models.errors import HTTP_STATUS_BY_CODE, ErrorCode, error_body, format_error
from services.catalog import RedisCatalog, get_catalog, uses_redis
from services.concurrency import ConcurrencyLimitMiddleware
from services.middleware import RequestIdMiddleware

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle — open/close shared store handles."""
    catalog = get_catalog()

    # Verify Redis connectivity if using the Redis catalog
    if isinstance(catalog, RedisCatalog):
        if await catalog.ping():
            logger.info("Redis connection verified")
        else:
            logger.warning("Redis connection failed — catalog writes will fail")

    yield

    if isinstance(catalog, RedisCatalog):
        await catalog.close()


app = FastAPI(
    title="SmartStroke Files",
    description="Classroom document sharing — personal notes, shared files, publish and teardown",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Middleware stack (outermost first) ─────────────────────────
# Order matters: CORS → RequestId → ConcurrencyLimit → route handler
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(ConcurrencyLimitMiddleware)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    status = HTTP_STATUS_BY_CODE.get(exc.code, 500)
    if status >= 500:
        logger.error("%s %s → %s", request.method, request.url.path, format_error(exc.code, exc.message))
    else:
        logger.info("%s %s → %s", request.method, request.url.path, format_error(exc.code, exc.message))
    return JSONResponse(status_code=status, content=error_body(exc.code, exc.message))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    detail = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    logger.info("%s %s → %s", request.method, request.url.path, format_error(ErrorCode.INVALID_INPUT, detail))
    return JSONResponse(status_code=422, content=error_body(ErrorCode.INVALID_INPUT, detail))


# ── Register routers ────────────────────────────────────────
from api.classrooms import router as classrooms_router  # noqa: E402
from api.files import router as files_router  # noqa: E402
from api.health import router as health_router  # noqa: E402
from api.uploads import router as uploads_router  # noqa: E402

app.include_router(health_router)
app.include_router(classrooms_router)
app.include_router(files_router)
app.include_router(uploads_router)


def worker_count() -> int:
    """Worker processes for a non-debug ``python main.py``.

    The in-memory catalog and reference index live in one process, so
    several workers are only safe on the Redis backend.
    """
    return 4 if uses_redis() else 1


if __name__ == "__main__":
    if settings.debug:
        # Development: single worker with reload
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.service_port,
            reload=True,
        )
    else:
        # Production: prefer gunicorn main:app -c deploy/gunicorn.conf.py
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.service_port,
            workers=worker_count(),
        )
