from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else str(v)


def _env_float(name: str, default: float) -> float:
    raw = _env(name, "")
    if not raw.strip():
        return default
    try:
        return float(raw)
    except Exception:
        return default


def _env_int(name: str, default: int) -> int:
    raw = _env(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except Exception:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class ServerSettings:
    domain: str = "localhost:8080"
    use_https: bool = False
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    @property
    def base_url(self) -> str:
        scheme = "https" if self.use_https else "http"
        return f"{scheme}://{self.domain}"


@dataclass(frozen=True)
class StorageSettings:
    """
    Storage provider configuration.

    provider:
      - "local"  -> LocalFilesStorageProvider
      - "minio"  -> MinIO/S3-compatible object store provider
      - "s3"     -> native AWS S3 provider (boto3)
    """
    provider: str

    # Local
    local_dir: str = "./static"

    # S3-compatible (used when provider == "minio")
    minio_endpoint: str = "http://minio:9000"
    minio_bucket: str = "slenpaste"
    minio_access_key: str = ""
    minio_secret_key: str = ""

    # AWS S3 (used when provider == "s3")
    s3_bucket: str = ""
    s3_prefix: str = ""
    s3_region: str = ""


@dataclass(frozen=True)
class PasteSettings:
    id_length: int = 6
    id_attempts: int = 5
    default_extension: str = ".txt"
    # Selector applied when an upload names none ("" = never, "view", "24h", ...)
    default_expiry: str = ""
    max_upload_bytes: int = 10 << 20
    chunk_size: int = 64 * 1024


@dataclass(frozen=True)
class RateLimitSettings:
    enabled: bool = True
    capacity: int = 1
    refill_seconds: float = 5.0
    max_clients: int = 10000
    idle_ttl_seconds: float = 600.0
    trust_proxy: bool = False


@dataclass(frozen=True)
class Settings:
    server: ServerSettings
    storage: StorageSettings
    pastes: PasteSettings
    rate_limit: RateLimitSettings


# ---------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------

def _load_server_settings() -> ServerSettings:
    domain = (_env("SLENPASTE_DOMAIN", "") or "localhost:8080").strip().rstrip("/")
    host = (_env("LISTEN_HOST", "") or "0.0.0.0").strip()
    port = _env_int("LISTEN_PORT", 8080)
    if port <= 0 or port > 65535:
        port = 8080

    return ServerSettings(
        domain=domain,
        use_https=_env_bool("SLENPASTE_HTTPS", False),
        host=host,
        port=port,
        log_level=(_env("LOG_LEVEL", "") or "INFO").strip().upper(),
    )


def _normalize_storage_provider(raw: str) -> str:
    v = (raw or "").strip().lower()
    if v in ("s3", "aws", "aws_s3"):
        return "s3"
    if v in ("minio", "object_store", "objectstore"):
        return "minio"
    if v in ("local", "file", "files", "filesystem"):
        return "local"
    return "local"


def _load_storage_settings() -> StorageSettings:
    """
    Storage precedence (DO NOT break this):
      1) STORAGE_MODE (deployment/runtime truth)  <-- must win
      2) STORAGE_PROVIDER (legacy override)
      3) default local
    """
    raw_mode = (_env("STORAGE_MODE", "") or "").strip()
    raw_provider = (_env("STORAGE_PROVIDER", "") or "").strip()
    provider = _normalize_storage_provider(raw_mode or raw_provider or "local")

    local_dir = (_env("STORAGE_LOCAL_DIR", "") or _env("LOCAL_STORAGE_DIR", "") or "./static").strip()

    return StorageSettings(
        provider=provider,
        local_dir=local_dir,
        minio_endpoint=(_env("MINIO_ENDPOINT", "") or "http://minio:9000").strip().rstrip("/"),
        minio_bucket=(_env("MINIO_BUCKET", "") or "slenpaste").strip(),
        minio_access_key=(_env("MINIO_ACCESS_KEY", "") or "").strip(),
        minio_secret_key=(_env("MINIO_SECRET_KEY", "") or "").strip(),
        s3_bucket=(_env("S3_BUCKET", "") or "").strip(),
        s3_prefix=(_env("S3_PREFIX", "") or "").strip(),
        s3_region=(_env("AWS_REGION", "") or _env("AWS_DEFAULT_REGION", "") or "").strip(),
    )


def _load_paste_settings() -> PasteSettings:
    id_length = max(1, min(_env_int("ID_LENGTH", 6), 64))
    id_attempts = max(1, min(_env_int("ID_ATTEMPTS", 5), 50))

    default_extension = (_env("DEFAULT_EXTENSION", "") or ".txt").strip()
    if not default_extension.startswith("."):
        default_extension = "." + default_extension

    max_upload_bytes = _env_int("MAX_UPLOAD_BYTES", 10 << 20)
    if max_upload_bytes <= 0:
        max_upload_bytes = 10 << 20

    chunk_size = max(1024, _env_int("CHUNK_SIZE", 64 * 1024))

    return PasteSettings(
        id_length=id_length,
        id_attempts=id_attempts,
        default_extension=default_extension,
        default_expiry=_env("DEFAULT_EXPIRY", "").strip(),
        max_upload_bytes=max_upload_bytes,
        chunk_size=chunk_size,
    )


def _load_rate_limit_settings() -> RateLimitSettings:
    capacity = max(1, _env_int("RATE_LIMIT_CAPACITY", 1))
    refill_seconds = _env_float("RATE_LIMIT_REFILL_SECONDS", 5.0)
    if refill_seconds <= 0:
        refill_seconds = 5.0

    return RateLimitSettings(
        enabled=_env_bool("RATE_LIMIT_ENABLED", True),
        capacity=capacity,
        refill_seconds=refill_seconds,
        max_clients=max(1, _env_int("RATE_LIMIT_MAX_CLIENTS", 10000)),
        idle_ttl_seconds=max(0.0, _env_float("RATE_LIMIT_IDLE_TTL_SECONDS", 600.0)),
        trust_proxy=_env_bool("RATE_LIMIT_TRUST_PROXY", False),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        server=_load_server_settings(),
        storage=_load_storage_settings(),
        pastes=_load_paste_settings(),
        rate_limit=_load_rate_limit_settings(),
    )
