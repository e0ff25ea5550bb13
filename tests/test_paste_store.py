import io
import os
from datetime import timedelta

import pytest

from slenpaste.core.errors import NotFoundError, StorageError, UploadTooLargeError, ValidationError
from slenpaste.pastes.locators import is_valid_locator, metadata_key
from slenpaste.pastes.policy import ExpiryPolicy, parse_selector
from slenpaste.pastes.store import PasteStore


def _put(store, data: bytes, selector: str = "", ext: str = ".txt") -> str:
    return store.put(io.BytesIO(data), parse_selector(selector, store.now()), ext)


def _read(store, locator: str) -> bytes:
    return b"".join(store.get(locator).chunks)


def _entries(storage, locator: str):
    return storage.exists(locator), storage.exists(metadata_key(locator))


# ---------------------------------------------------------------------
# Timed expiry
# ---------------------------------------------------------------------

def test_scenario_timed_paste_expires_and_is_removed(store, storage, clock):
    locator = _put(store, b"hello", "5m")
    assert is_valid_locator(locator)
    assert locator.endswith(".txt")

    clock.advance(60)
    assert _read(store, locator) == b"hello"

    clock.advance(300)
    with pytest.raises(NotFoundError):
        store.get(locator)
    assert _entries(storage, locator) == (False, False)


def test_timed_paste_readable_until_exact_deadline(store, clock):
    locator = _put(store, b"data", "10s")

    clock.advance(9.999)
    assert _read(store, locator) == b"data"
    assert _read(store, locator) == b"data"

    clock.advance(0.001)
    with pytest.raises(NotFoundError):
        store.get(locator)


def test_timed_paste_writes_sidecar(store, storage, clock):
    locator = _put(store, b"x", "1h")
    assert _entries(storage, locator) == (True, True)

    policy = store.expiry.load_policy(locator)
    assert policy.expiry == clock() + timedelta(hours=1)


# ---------------------------------------------------------------------
# View-once
# ---------------------------------------------------------------------

def test_scenario_view_once(store, storage):
    locator = _put(store, b"secret", "view")

    assert _read(store, locator) == b"secret"
    assert _entries(storage, locator) == (False, False)
    with pytest.raises(NotFoundError):
        store.get(locator)


def test_view_once_deleted_only_after_stream_closes(store, storage):
    locator = _put(store, b"secret", "view")

    paste = store.get(locator)
    assert storage.exists(locator)
    with pytest.raises(NotFoundError):
        store.get(locator)  # concurrent second reader

    assert b"".join(paste.chunks) == b"secret"
    assert _entries(storage, locator) == (False, False)


def test_view_once_abandoned_stream_still_counts(store, storage):
    locator = _put(store, b"secret", "view")

    paste = store.get(locator)
    paste.close()

    assert _entries(storage, locator) == (False, False)
    with pytest.raises(NotFoundError):
        store.get(locator)


def test_view_once_delete_failure_is_not_surfaced(store, storage, monkeypatch, caplog):
    locator = _put(store, b"secret", "view")

    def broken_delete(key):
        raise OSError("disk on fire")

    monkeypatch.setattr(storage, "delete_object", broken_delete)

    assert _read(store, locator) == b"secret"
    assert "Failed to delete paste" in caplog.text

    # Still on disk, but never served a second time.
    assert storage.exists(locator)
    with pytest.raises(NotFoundError):
        store.get(locator)


# ---------------------------------------------------------------------
# Never
# ---------------------------------------------------------------------

@pytest.mark.parametrize("selector", ["", "0"])
def test_never_paste_survives_many_reads(store, storage, clock, selector):
    locator = _put(store, b"forever", selector)
    assert _entries(storage, locator) == (True, False)

    for _ in range(5):
        clock.advance(86400 * 365)
        assert _read(store, locator) == b"forever"

    store.delete(locator)
    with pytest.raises(NotFoundError):
        store.get(locator)


def test_delete_is_idempotent(store):
    locator = _put(store, b"bye", "1h")
    store.delete(locator)
    store.delete(locator)


# ---------------------------------------------------------------------
# Validation and failure cleanup
# ---------------------------------------------------------------------

@pytest.mark.parametrize("selector", ["", "view", "5m"])
def test_scenario_empty_upload_leaves_nothing(store, storage, selector):
    with pytest.raises(ValidationError):
        _put(store, b"", selector)
    assert not os.path.isdir(storage.root) or os.listdir(storage.root) == []


def test_upload_over_limit_leaves_nothing(store, storage):
    with pytest.raises(UploadTooLargeError):
        _put(store, b"x" * 1025, "view")
    assert os.listdir(storage.root) == []


def test_upload_at_limit_is_accepted(store):
    locator = _put(store, b"x" * 1024)
    assert _read(store, locator) == b"x" * 1024


def test_rejects_unsafe_extension(store):
    with pytest.raises(ValidationError):
        store.put(io.BytesIO(b"x"), ExpiryPolicy.never(), "/../../x")


@pytest.mark.parametrize("locator", ["nope.txt", "../../etc/passwd", "abc.txt.meta", "abc"])
def test_unknown_or_malformed_locators_are_not_found(store, locator):
    with pytest.raises(NotFoundError):
        store.get(locator)


def test_malformed_sidecar_means_never_expires(store, storage, clock):
    locator = _put(store, b"keep", "5m")
    storage.put_object(metadata_key(locator), b"{not json")

    clock.advance(3600)
    assert _read(store, locator) == b"keep"
    assert storage.exists(locator)


def test_storage_write_failure_is_storage_error(store, storage, monkeypatch):
    def broken_put(key, stream, content_type="application/octet-stream"):
        raise OSError("read-only file system")

    monkeypatch.setattr(storage, "put_stream", broken_put)
    with pytest.raises(StorageError):
        _put(store, b"data", "1h")
    assert not os.path.isdir(storage.root) or os.listdir(storage.root) == []


# ---------------------------------------------------------------------
# Locator allocation
# ---------------------------------------------------------------------

def test_collision_retries_with_a_new_id(store, monkeypatch):
    ids = iter(["aaaaaa", "aaaaaa", "bbbbbb"])
    monkeypatch.setattr("slenpaste.pastes.store.generate_id", lambda n: next(ids))

    first = _put(store, b"one")
    second = _put(store, b"two")

    assert first == "aaaaaa.txt"
    assert second == "bbbbbb.txt"
    assert _read(store, first) == b"one"


def test_collision_attempts_are_bounded(storage, clock, monkeypatch):
    store = PasteStore(storage, clock=clock, id_attempts=3)
    monkeypatch.setattr("slenpaste.pastes.store.generate_id", lambda n: "same00")

    _put(store, b"one")
    with pytest.raises(StorageError):
        _put(store, b"two")
    assert _read(store, "same00.txt") == b"one"


def test_orphan_sidecar_blocks_reuse_of_its_locator(store, storage, monkeypatch):
    storage.put_object(metadata_key("taken0.txt"), ExpiryPolicy.on_view().to_record())
    ids = iter(["taken0", "free00"])
    monkeypatch.setattr("slenpaste.pastes.store.generate_id", lambda n: next(ids))

    assert _put(store, b"x") == "free00.txt"
