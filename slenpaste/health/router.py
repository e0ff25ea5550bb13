# slenpaste/health/router.py
from fastapi import APIRouter

from slenpaste.core.deps import ProvidersDep

router = APIRouter(tags=["health"])


@router.get("/health")
def health(providers: ProvidersDep):
    # Keep this super simple and always unauthenticated
    return {
        "ok": True,
        "storage": providers.storage.name,
    }
