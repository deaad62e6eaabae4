"""Record store: the credential collection and the file it is bound to.

RecordStore is the public API:
    store = RecordStore.init("/path/to/locket.db")   # new, empty file
    store = RecordStore.open("/path/to/locket.db")   # existing file
    record_id = store.add(Record("github", "octocat", "hunter2"))
    store.query("gh")        # [(record_id, Record(...))]
    store.remove(record_id)
    store.sync()             # rewrite the whole file

File layout (single MessagePack document, no header):
    {"records": {"<uuid>": {"name": ..., "username": ..., "password": ...}}}

A zero-length file is also a valid "no records" encoding. The store's own
path is never written into the file.

sync() writes to <path>.tmp and renames it over <path>, so a crash leaves
either the old or the new file, never a torn one. The whole file is the unit
of consistency; nothing is appended or patched in place.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

import msgpack

from locket.matcher import rank
from locket.models import Record, new_record_id

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger = logging.getLogger("locket.store")


class StoreExistsError(FileExistsError):
    """Raised by RecordStore.init when something already exists at the path."""


class StoreDecodeError(ValueError):
    """Raised by RecordStore.open when a non-empty file cannot be decoded."""


class IdCollisionError(AssertionError):
    """A freshly generated record ID was already in use."""


def _encode(records: dict[str, Record]) -> bytes:
    doc = {"records": {rid: rec.to_dict() for rid, rec in records.items()}}
    return msgpack.packb(doc, use_bin_type=True)  # type: ignore[no-any-return]


def _decode(data: bytes) -> dict[str, Record]:
    try:
        doc: Any = msgpack.unpackb(data, raw=False)
    except (ValueError, TypeError) as exc:  # msgpack's unpack errors are ValueErrors
        msg = f"not a valid store document: {exc}"
        raise StoreDecodeError(msg) from exc

    if not isinstance(doc, dict) or not isinstance(doc.get("records"), dict):
        msg = "store document has no 'records' mapping"
        raise StoreDecodeError(msg)

    records: dict[str, Record] = {}
    for rid, raw in doc["records"].items():
        if not isinstance(rid, str):
            msg = f"record key must be a string, got {type(rid).__name__}"
            raise StoreDecodeError(msg)
        try:
            records[rid] = Record.from_dict(raw)
        except TypeError as exc:
            msg = f"record {rid}: {exc}"
            raise StoreDecodeError(msg) from exc
    return records


class RecordStore:
    """In-memory credential collection bound to a single file."""

    def __init__(self, path: Path | str, records: dict[str, Record] | None = None) -> None:
        self.path = Path(path)
        self.records: dict[str, Record] = records if records is not None else {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @classmethod
    def init(cls, path: Path | str) -> RecordStore:
        """Create a new, empty store file. Raises StoreExistsError if path exists."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
        except FileExistsError as exc:
            msg = f"A store already exists at {path}"
            raise StoreExistsError(msg) from exc

        store = cls(path)
        with os.fdopen(fd, "wb") as f:
            f.write(_encode(store.records))
        logger.info("initialised store at %s", path)
        return store

    @classmethod
    def open(cls, path: Path | str) -> RecordStore:
        """Load an existing store file.

        A missing file raises FileNotFoundError; creating one is the
        caller's decision (see RecordStore.init). An empty file loads as an
        empty store. Anything else that fails to decode raises
        StoreDecodeError and nothing is loaded.
        """
        path = Path(path)
        with path.open("rb") as f:
            data = f.read()

        records = _decode(data) if data else {}
        logger.info("opened store at %s (%d records)", path, len(records))
        return cls(path, records)

    def sync(self) -> None:
        """Serialise the whole collection and replace the bound file with it."""
        data = _encode(self.records)
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            with tmp.open("wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            tmp.replace(self.path)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
        logger.info("synced %d records to %s", len(self.records), self.path)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add(self, record: Record) -> str:
        """Insert record under a fresh ID and return the ID."""
        record_id = new_record_id()
        if record_id in self.records:
            msg = f"generated record ID {record_id} is already in use"
            raise IdCollisionError(msg)
        self.records[record_id] = record
        return record_id

    def append(self, records: Iterable[Record]) -> list[str]:
        """Add each record in turn; returns the new IDs in input order."""
        return [self.add(record) for record in records]

    def remove(self, record_id: str) -> Record | None:
        """Remove and return the record, or None if the ID is unknown."""
        return self.records.pop(record_id, None)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, record_id: str) -> Record | None:
        return self.records.get(record_id)

    def query(self, name: str | None = None) -> list[tuple[str, Record]]:
        """Return (id, record) pairs matching name, best match first.

        No name (or an empty one) returns every record.
        """
        if not self.records:
            return []
        if not name:
            return list(self.records.items())
        ranked = rank(((rid, rec.name) for rid, rec in self.records.items()), name)
        return [(rid, self.records[rid]) for rid in ranked]

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self.records

    def __iter__(self) -> Iterator[tuple[str, Record]]:
        return iter(list(self.records.items()))
