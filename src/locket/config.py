"""LocketConfig: per-user configuration for the credential store.

Default layout (all relative to the locket home, ~/.locket or $LOCKET_HOME):

    locket.toml           # config
    locket.db             # the record store (MessagePack)

The instance lock lives outside the home, in the system temp dir, unless
[lock].path says otherwise.

locket.toml example:

    [store]
    path = "locket.db"    # relative to the home dir
    auto_init = false     # create the store on first use if it is missing

    [server]
    host = "127.0.0.1"
    port = 56423

    [lock]
    path = ""             # empty = <tempdir>/locket.lck
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from locket.lock import default_lock_path

_CONFIG_FILENAME = "locket.toml"
_DEFAULT_HOME = "~/.locket"
_DEFAULT_STORE = "locket.db"
_DEFAULT_HOST = "127.0.0.1"
_DEFAULT_PORT = 56423

HOME_ENV = "LOCKET_HOME"


@dataclass
class StoreConfig:
    path: Path = field(default_factory=Path)
    auto_init: bool = False     # caller-side create-on-open


@dataclass
class ServerConfig:
    host: str = _DEFAULT_HOST
    port: int = _DEFAULT_PORT


@dataclass
class LockConfig:
    path: Path = field(default_factory=default_lock_path)


@dataclass
class LocketConfig:
    """Resolved configuration."""

    home: Path                      # directory that contains locket.toml
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    lock: LockConfig = field(default_factory=LockConfig)

    @property
    def config_path(self) -> Path:
        return self.home / _CONFIG_FILENAME

    @property
    def store_path(self) -> Path:
        return self.store.path


def resolve_home(home: Path | str | None = None) -> Path:
    """Pick the locket home: explicit arg, then $LOCKET_HOME, then ~/.locket."""
    raw = home or os.environ.get(HOME_ENV) or _DEFAULT_HOME
    return Path(raw).expanduser().resolve()


def _check_port(port: Any) -> int:
    value = int(port)
    if not 0 < value < 65535:
        msg = f"invalid port number: {value}"
        raise ValueError(msg)
    return value


def load_config(home: Path | str | None = None) -> LocketConfig:
    """Load locket.toml from the home dir; missing file or keys use defaults."""
    home_path = resolve_home(home)
    config_path = home_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    store_section = raw.get("store", {})
    srv_section = raw.get("server", {})
    lock_section = raw.get("lock", {})

    store_path = Path(str(store_section.get("path", _DEFAULT_STORE))).expanduser()
    lock_raw = str(lock_section.get("path", ""))

    return LocketConfig(
        home=home_path,
        store=StoreConfig(
            path=store_path if store_path.is_absolute() else home_path / store_path,
            auto_init=bool(store_section.get("auto_init", False)),
        ),
        server=ServerConfig(
            host=str(srv_section.get("host", _DEFAULT_HOST)),
            port=_check_port(srv_section.get("port", _DEFAULT_PORT)),
        ),
        lock=LockConfig(
            path=Path(lock_raw).expanduser() if lock_raw else default_lock_path(),
        ),
    )


def init_config(
    home: Path,
    port: int | None = None,
    store_path: str | None = None,
    auto_init: bool = False,
) -> Path:
    """Write a default locket.toml in home. Raises if it already exists."""
    home.mkdir(parents=True, exist_ok=True)
    config_path = home / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"locket.toml already exists at {config_path}"
        raise FileExistsError(msg)

    port = _check_port(port if port is not None else _DEFAULT_PORT)
    content = f"""\
[store]
path = {_toml_str(store_path or _DEFAULT_STORE)}
auto_init = {"true" if auto_init else "false"}   # create the store on first use if missing

[server]
# host = "{_DEFAULT_HOST}"
port = {port}

# [lock]
# path = ""   # empty = <tempdir>/locket.lck
"""
    config_path.write_text(content)
    return config_path


def _toml_str(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
