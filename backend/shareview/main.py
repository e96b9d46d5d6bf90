"""ShareView FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shareview import __version__
from shareview.config import settings
from shareview.errors import AccessDenied, LinkInvalid, ShareError
from shareview.services import init_services, shutdown_services
from shareview.services.access_state import InvalidTransition
from shareview.services.viewer_page import PageStateError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    # === STARTUP ===
    _setup_logging()

    for d in (settings.data_dir, settings.session_dir, settings.preview_dir):
        Path(d).mkdir(parents=True, exist_ok=True)

    init_services()
    logger.info("ShareView v%s started, listening on %s:%s", __version__, settings.host, settings.port)

    try:
        yield
    finally:
        # === SHUTDOWN ===
        shutdown_services()
        logger.info("ShareView shutting down")


def _setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _share_error_status(exc: ShareError) -> int:
    if isinstance(exc, LinkInvalid):
        return status.HTTP_410_GONE
    if isinstance(exc, AccessDenied):
        return status.HTTP_403_FORBIDDEN
    return status.HTTP_502_BAD_GATEWAY


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ShareError)
    async def _share_error(request: Request, exc: ShareError):
        return JSONResponse(status_code=_share_error_status(exc), content=exc.to_envelope())

    @app.exception_handler(InvalidTransition)
    async def _invalid_transition(request: Request, exc: InvalidTransition):
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})

    @app.exception_handler(PageStateError)
    async def _page_state(request: Request, exc: PageStateError):
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Application factory."""
    from shareview.api.routes import api_router

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        debug=settings.debug,
        lifespan=_lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()


def run(**kwargs: Any) -> None:
    import uvicorn

    uvicorn.run(
        "shareview.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        **kwargs,
    )


if __name__ == "__main__":
    run()
