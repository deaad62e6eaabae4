"""Shared fixtures: temp store files, lock paths and an initialised locket home."""

from pathlib import Path

import pytest

from locket.models import Record
from locket.store import RecordStore


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "locket.db"


@pytest.fixture
def store(store_path: Path) -> RecordStore:
    return RecordStore.init(store_path)


@pytest.fixture
def lock_path(tmp_path: Path) -> Path:
    return tmp_path / "locket.lck"


@pytest.fixture
def github() -> Record:
    return Record(name="github", username="a", password="p")
