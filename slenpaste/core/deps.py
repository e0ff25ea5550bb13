from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, Request

from slenpaste.core.errors import RateLimitedError
from slenpaste.core.providers import providers_from_request
from slenpaste.core.settings import Settings
from slenpaste.pastes.store import PasteStore
from slenpaste.providers.factory import Providers

log = logging.getLogger(__name__)


# -----------------------------
# Canonical provider access
# -----------------------------

def get_providers(request: Request) -> Providers:
    """
    Canonical runtime provider resolver.

    Source of truth: request.app.state.providers
    """
    return providers_from_request(request)


ProvidersDep = Annotated[Providers, Depends(get_providers)]


def get_settings_dep(request: Request) -> Settings:
    return get_providers(request).settings


SettingsDep = Annotated[Settings, Depends(get_settings_dep)]


def get_store(request: Request) -> PasteStore:
    return get_providers(request).store


StoreDep = Annotated[PasteStore, Depends(get_store)]


# -----------------------------
# Admission
# -----------------------------

def client_key(request: Request, trust_proxy: bool = False) -> str:
    """
    Rate-limit identity of the caller: the peer address without its port,
    or the first X-Forwarded-For hop when running behind a trusted proxy.
    """
    if trust_proxy:
        forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
        if forwarded:
            return forwarded
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def admit(request: Request) -> None:
    """Dependency gating uploads and views through the AdmissionController."""
    providers = get_providers(request)
    limiter = providers.limiter
    if limiter is None:
        return

    key = client_key(request, trust_proxy=providers.settings.rate_limit.trust_proxy)
    if not limiter.allow(key):
        log.info("Rate limited client=%s path=%s", key, request.url.path)
        raise RateLimitedError(retry_after=limiter.retry_after(key))
