"""CloudDrive FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clouddrive import __version__
from clouddrive.config import Settings, settings as default_settings
from clouddrive.database import dispose_db, init_db
from clouddrive.exceptions import CloudDriveError
from clouddrive.services import BlobStore, Mailer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    cfg: Settings = app.state.settings
    _setup_logging(cfg)

    if cfg.database_path != default_settings.database_path:
        logger.warning(
            "database_path %s ignored, engine is bound to %s",
            cfg.database_path,
            default_settings.database_path,
        )
    Path(cfg.data_dir).mkdir(parents=True, exist_ok=True)
    await init_db()
    logger.info("CloudDrive v%s started, listening on %s:%s", __version__, cfg.host, cfg.port)

    try:
        yield
    finally:
        await dispose_db()
        logger.info("CloudDrive shutting down")


def _setup_logging(cfg: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for noisy in ("aiosqlite", "botocore", "boto3", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CloudDriveError)
    async def _domain_error(request: Request, exc: CloudDriveError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        detail = "Invalid request"
        if errors:
            first = errors[0]
            field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
            detail = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
        return JSONResponse(status_code=400, content={"detail": detail})

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(
    settings: Settings | None = None,
    blob_store: BlobStore | None = None,
    mailer: Mailer | None = None,
) -> FastAPI:
    """Application factory.

    The S3 and SMTP clients are built here once and kept on ``app.state``
    for the life of the process; pass them in to substitute fakes.

    ``settings`` drives token signing, upload and path limits, CORS and
    the route prefix. The SQLite engine and the OpenAPI ``tokenUrl`` are
    bound at import time from the environment (``CLOUDDRIVE_*``), so
    ``database_path`` and the login URL shown in the docs follow the
    process settings, not the ones passed here.
    """
    from clouddrive.api.routes import api_router

    cfg = settings or default_settings

    app = FastAPI(
        title=cfg.app_name,
        version=__version__,
        debug=cfg.debug,
        lifespan=_lifespan,
    )
    app.state.settings = cfg
    app.state.blob_store = blob_store or BlobStore.from_settings(cfg)
    app.state.mailer = mailer or Mailer.from_settings(cfg)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)
    app.include_router(api_router, prefix=cfg.api_prefix)

    return app


app = create_app()


def run(**kwargs: Any) -> None:
    import uvicorn

    uvicorn.run(
        "clouddrive.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
        log_level=default_settings.log_level.lower(),
        **kwargs,
    )


if __name__ == "__main__":
    run()
