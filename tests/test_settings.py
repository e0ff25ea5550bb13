import pytest

from slenpaste.core.settings import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_storage_mode_wins_over_storage_provider(monkeypatch):
    monkeypatch.setenv("STORAGE_MODE", "s3")
    monkeypatch.setenv("STORAGE_PROVIDER", "local")

    s = get_settings()
    assert s.storage.provider == "s3"


def test_storage_provider_used_when_mode_missing(monkeypatch):
    monkeypatch.delenv("STORAGE_MODE", raising=False)
    monkeypatch.setenv("STORAGE_PROVIDER", "minio")

    s = get_settings()
    assert s.storage.provider == "minio"


def test_storage_defaults_to_local(monkeypatch):
    monkeypatch.delenv("STORAGE_MODE", raising=False)
    monkeypatch.delenv("STORAGE_PROVIDER", raising=False)

    s = get_settings()
    assert s.storage.provider == "local"


def test_rate_limit_defaults(monkeypatch):
    for name in ("RATE_LIMIT_CAPACITY", "RATE_LIMIT_REFILL_SECONDS", "RATE_LIMIT_ENABLED"):
        monkeypatch.delenv(name, raising=False)

    rl = get_settings().rate_limit
    assert rl.enabled is True
    assert rl.capacity == 1
    assert rl.refill_seconds == 5.0


def test_malformed_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("ID_LENGTH", "six")
    monkeypatch.setenv("MAX_UPLOAD_BYTES", "-1")
    monkeypatch.setenv("RATE_LIMIT_REFILL_SECONDS", "0")

    s = get_settings()
    assert s.pastes.id_length == 6
    assert s.pastes.max_upload_bytes == 10 << 20
    assert s.rate_limit.refill_seconds == 5.0


def test_base_url_honours_https_flag(monkeypatch):
    monkeypatch.setenv("SLENPASTE_DOMAIN", "paste.example.org/")
    monkeypatch.setenv("SLENPASTE_HTTPS", "true")

    assert get_settings().server.base_url == "https://paste.example.org"


def test_default_extension_gets_leading_dot(monkeypatch):
    monkeypatch.setenv("DEFAULT_EXTENSION", "md")
    assert get_settings().pastes.default_extension == ".md"
