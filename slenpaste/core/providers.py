from __future__ import annotations

from fastapi import FastAPI, Request

from slenpaste.core.settings import Settings
from slenpaste.providers.factory import Providers, build_providers


def init_providers(app: FastAPI, settings: Settings) -> Providers:
    """
    Canonical provider initialization.
    Called once during app startup/lifespan. Attaches Providers onto app.state.
    """
    app.state.providers = build_providers(settings)
    return app.state.providers


def providers_from_request(request: Request) -> Providers:
    """
    Canonical provider accessor for ALL routers.

    Providers are attached once during app startup as request.app.state.providers.
    """
    try:
        return request.app.state.providers
    except Exception as exc:
        raise RuntimeError("Providers not initialized on app.state (startup/lifespan not executed).") from exc
