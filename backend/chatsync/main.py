import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi import Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatsync.config import Settings
from chatsync.config import get_settings
from chatsync.constants import API_PREFIX
from chatsync.constants import CHATS_PREFIX
from chatsync.constants import SYNC_PREFIX
from chatsync.constants import USER_PREFIX
from chatsync.core.factory import Container
from chatsync.core.factory import build_container
from chatsync.routers.chats import router as chats_router
from chatsync.routers.sync import router as sync_router
from chatsync.routers.users import router as users_router

logger = logging.getLogger(__name__)


def _configure_logging(level_name: str) -> None:
    _log_level = getattr(logging, level_name.upper(), logging.INFO)
    if not isinstance(_log_level, int):
        _log_level = logging.INFO
    logging.basicConfig(level=_log_level, format="%(levelname)s - %(name)s - %(message)s")


def _cors_origins(settings: Settings) -> list[str]:
    origins = [o.strip() for o in settings.allowed_cors_origins.split(",") if o.strip()]
    return origins or ["*"]


def create_app(container: Optional[Container] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application.

    When *container* is given (tests) the app uses it as-is and never closes
    it.  Otherwise the lifespan builds one from *settings* on startup and
    disposes it on shutdown.
    """
    settings = settings or (container.settings if container is not None else get_settings())
    _configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.container is None
        if owned:
            app.state.container = build_container(settings)
            logger.info("chatsync started")
        try:
            yield
        finally:
            if owned:
                app.state.container.close()
                app.state.container = None

    app = FastAPI(title="chatsync", redirect_slashes=True, lifespan=lifespan)
    app.state.container = container

    cors_origins = _cors_origins(settings)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        """Return a JSON 500 for anything the routers did not handle."""
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials="*" not in cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(sync_router, prefix=f"{API_PREFIX}{SYNC_PREFIX}")
    app.include_router(chats_router, prefix=f"{API_PREFIX}{CHATS_PREFIX}")
    app.include_router(users_router, prefix=f"{API_PREFIX}{USER_PREFIX}")

    @app.get("/")
    def read_root(request: Request):
        """Return a simple message to indicate the API is working."""
        current = request.app.state.container
        return {
            "message": "chatsync API is running",
            "cache": bool(current is not None and current.cache.available()),
        }

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    uvicorn.run("chatsync.main:create_app", factory=True, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
