"""FastAPI application - document chat API."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from backend.docchat.api.deps import shutdown, startup
from backend.docchat.api.routes.chat import router as chat_router
from backend.docchat.api.routes.documents import router as documents_router
from backend.docchat.api.routes.health import router as health_router
from backend.docchat.api.routes.metrics import router as metrics_router
from backend.docchat.config import get_settings
from backend.docchat.errors import (
    ConfigurationError,
    NotFoundError,
    ProviderError,
    UnsupportedFormatError,
)
from backend.docchat.utils.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(get_settings().log_level)
    await startup()
    yield
    await shutdown()


app = FastAPI(title="Document Chat API", version="0.1.0", lifespan=lifespan)

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(documents_router, tags=["documents"])
app.include_router(chat_router, tags=["chat"])


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    # Same response for missing and not-owned resources
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)}
    )


@app.exception_handler(UnsupportedFormatError)
async def unsupported_format_handler(
    request: Request, exc: UnsupportedFormatError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, content={"detail": str(exc)}
    )


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
    logger.error(f"Upstream provider failure on {request.url.path}: {exc!r}")
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": "Upstream model provider failed", "transient": exc.transient},
    )


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Document Chat API", "version": "0.1.0"}
