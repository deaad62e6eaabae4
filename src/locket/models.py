"""Data models for the credential store."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Any

_FIELDS = ("name", "username", "password")


def new_record_id() -> str:
    """Generate an opaque record ID: canonical uuid4 text."""
    return str(uuid.uuid4())


def normalize_record_id(raw: str) -> str | None:
    """Return the canonical form of a record ID, or None if it is not a UUID.

    Accepts the hyphenated and the 32-hex-char simple forms.
    """
    try:
        return str(uuid.UUID(raw))
    except (ValueError, AttributeError, TypeError):
        return None


@dataclass(frozen=True)
class Record:
    """A single credential: name, username and password, stored verbatim."""

    name: str
    username: str
    password: str

    def __repr__(self) -> str:
        return f"Record(name={self.name!r}, username={self.username!r})"

    __str__ = __repr__

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Record:
        """Build a record from a mapping; every field must be a string."""
        if not isinstance(d, dict):
            msg = f"record must be a mapping, got {type(d).__name__}"
            raise TypeError(msg)
        values = []
        for key in _FIELDS:
            value = d.get(key)
            if not isinstance(value, str):
                msg = f"record field {key!r} must be a string"
                raise TypeError(msg)
            values.append(value)
        return cls(*values)

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "username": self.username,
            "password": self.password,
        }


class PayloadError(ValueError):
    """A records payload was not UTF-8 JSON or not an array of records."""


def records_from_json(raw: bytes | str) -> list[Record]:
    """Parse a JSON array of {name, username, password} objects.

    The whole payload is validated before anything is returned, so callers
    can append the result knowing no record will be rejected half-way.
    """
    try:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        data = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        msg = f"payload is not UTF-8 JSON: {exc}"
        raise PayloadError(msg) from exc

    if not isinstance(data, list):
        msg = f"payload must be a JSON array, got {type(data).__name__}"
        raise PayloadError(msg)

    records: list[Record] = []
    for i, item in enumerate(data):
        try:
            records.append(Record.from_dict(item))
        except TypeError as exc:
            msg = f"payload item {i}: {exc}"
            raise PayloadError(msg) from exc
    return records
