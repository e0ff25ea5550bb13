from datetime import datetime, timedelta, timezone

import pytest

from slenpaste.pastes.store import PasteStore
from slenpaste.providers.impl.storage_local_files import LocalFilesStorageProvider


class FakeClock:
    """Manually advanced clock usable both as a datetime and a monotonic source."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self._start = start
        self._offset = 0.0

    def __call__(self) -> datetime:
        return self._start + timedelta(seconds=self._offset)

    def monotonic(self) -> float:
        return self._offset

    def advance(self, seconds: float) -> None:
        self._offset += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage(tmp_path):
    return LocalFilesStorageProvider(str(tmp_path / "static"))


@pytest.fixture
def store(storage, clock):
    return PasteStore(storage, clock=clock, max_upload_bytes=1024)
