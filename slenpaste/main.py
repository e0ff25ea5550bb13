# slenpaste/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from slenpaste.core.errors import PasteError, StorageError
from slenpaste.core.providers import init_providers
from slenpaste.core.settings import get_settings
from slenpaste.health.router import router as health_router
from slenpaste.pastes.router import router as pastes_router
from slenpaste.providers.factory import Providers

log = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


async def _paste_error_handler(request: Request, exc: PasteError) -> PlainTextResponse:
    if isinstance(exc, StorageError):
        log.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return PlainTextResponse(
        exc.public_message,
        status_code=exc.status_code,
        headers=exc.headers(),
    )


def create_app(providers: Optional[Providers] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Pass `providers` to skip env-driven wiring (tests, embedding); otherwise
    they are built from get_settings() during lifespan startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "providers", None) is None:
            settings = get_settings()
            configure_logging(settings.server.log_level)
            init_providers(app, settings)
        yield

    app = FastAPI(title="slenpaste", lifespan=lifespan)
    if providers is not None:
        app.state.providers = providers

    app.add_exception_handler(PasteError, _paste_error_handler)

    # ---------------------------------------------------------------------
    # Routers (health first: "/{locator}" would shadow it otherwise)
    # ---------------------------------------------------------------------
    app.include_router(health_router)
    app.include_router(pastes_router)
    return app


app = create_app()


# ---------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------

def run() -> None:
    settings = get_settings()
    configure_logging(settings.server.log_level)
    log.info("slenpaste running at %s, listening on %s:%s", settings.server.base_url, settings.server.host, settings.server.port)
    uvicorn.run(
        "slenpaste.main:app",
        host=settings.server.host,
        port=settings.server.port,
    )


if __name__ == "__main__":
    run()
