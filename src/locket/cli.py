"""locket CLI: a small local password manager.

Commands:
    locket init [--port N]       create locket.toml + an empty store
    locket new                   add a login (prompts for name/username/password)
    locket query [NAME]          fuzzy-search logins and print them as a table
    locket remove [ID]           remove a login by id, or pick one interactively
    locket import FILE           append logins from a JSON array file
    locket serve                 run the HTTP API until Ctrl+C

Every command except init holds the instance lock for its whole run, opens
the store, and syncs it back to disk before releasing the lock.
"""

from __future__ import annotations

import contextlib
import json
import logging
from typing import TYPE_CHECKING, Any

import click

from locket.config import LocketConfig, init_config, load_config, resolve_home
from locket.lock import AlreadyLockedError, InstanceLock, LockMissingError
from locket.models import PayloadError, Record, normalize_record_id, records_from_json
from locket.store import RecordStore, StoreDecodeError, StoreExistsError

if TYPE_CHECKING:
    from collections.abc import Iterator

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg(ctx: click.Context) -> LocketConfig:
    try:
        return load_config(ctx.obj["home"])
    except (OSError, ValueError) as exc:
        raise click.ClickException(f"Failed to load configuration: {exc}") from exc


def _open_store(cfg: LocketConfig) -> RecordStore:
    """Open the configured store, creating it first only if auto_init is set."""
    path = cfg.store_path
    try:
        return RecordStore.open(path)
    except FileNotFoundError:
        if not cfg.store.auto_init:
            raise click.ClickException(
                f"No store at {path}. Run `locket init` first, "
                "or set [store] auto_init = true in locket.toml."
            ) from None
    except StoreDecodeError as exc:
        raise click.ClickException(f"Failed to parse the store at {path}: {exc}") from exc
    except OSError as exc:
        raise click.ClickException(f"Failed to open the store at {path}: {exc}") from exc

    click.echo(f"No store at {path}, creating a new one", err=True)
    try:
        return RecordStore.init(path)
    except OSError as exc:
        raise click.ClickException(f"Failed to initialise a store at {path}: {exc}") from exc


def _release_lock(lock: InstanceLock) -> None:
    try:
        lock.release()
    except LockMissingError:
        click.echo(f"Tried to remove the lock file {lock.path}, but it was already gone", err=True)
        raise SystemExit(1) from None
    except OSError as exc:
        raise click.ClickException(f"Failed to remove the lock file {lock.path}: {exc}") from exc


@contextlib.contextmanager
def _session(cfg: LocketConfig) -> Iterator[RecordStore]:
    """Lock → open → yield store → sync → unlock.

    The store is synced only when the body finishes cleanly; the lock is
    released either way.
    """
    lock = InstanceLock(cfg.lock.path)
    try:
        lock.acquire()
    except AlreadyLockedError:
        click.echo(
            "Another instance of locket is already running, please stop it or wait "
            f"for it to quit before starting another one (lock file: {lock.path})",
            err=True,
        )
        raise SystemExit(1) from None
    except OSError as exc:
        raise click.ClickException(f"Failed to create the lock file {lock.path}: {exc}") from exc

    try:
        store = _open_store(cfg)
        yield store
        try:
            store.sync()
        except OSError as exc:
            raise click.ClickException(f"Failed to sync the store to disk: {exc}") from exc
    finally:
        _release_lock(lock)


def _print_records(matches: list[tuple[str, Record]]) -> None:
    from rich import box
    from rich.console import Console
    from rich.table import Table

    console = Console()
    if not matches:
        console.print("[dim]No records[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=box.ROUNDED)
    table.add_column("Name")
    table.add_column("Username")
    table.add_column("Password")
    table.add_column("ID", style="dim", overflow="fold")
    for record_id, record in matches:
        table.add_row(record.name, record.username, record.password, record_id)
    console.print(table)


def _choose_record(store: RecordStore, name: str | None) -> str | None:
    """List (optionally filtered) records and prompt for one. None = cancelled."""
    matches = store.query(name)
    if not matches:
        click.echo("No records")
        return None
    for i, (_, record) in enumerate(matches, start=1):
        click.echo(f"{i:>3}. {record.name}  ({record.username})")
    choice = click.prompt(
        "Record to remove (0 to cancel)",
        type=click.IntRange(0, len(matches)),
        default=0,
    )
    if choice == 0:
        return None
    return matches[choice - 1][0]


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="locket")
@click.option(
    "--home",
    envvar="LOCKET_HOME",
    default=None,
    help="Directory holding locket.toml and the store (default: ~/.locket)",
)
@click.option("--verbose", "-v", count=True, help="More logging (-v info, -vv debug)")
@click.pass_context
def cli(ctx: click.Context, home: str | None, verbose: int) -> None:
    """locket: a simple password manager."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(message)s")
    ctx.ensure_object(dict)
    ctx.obj["home"] = home


# ---------------------------------------------------------------------------
# locket init
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--port",
    "-p",
    type=click.IntRange(1, 65534),
    default=56423,
    show_default=True,
    prompt="Port number for the server",
)
@click.option("--store", "store_path", default=None, help="Store file, relative to the home dir (default: locket.db)")
@click.option("--auto-init", is_flag=True, help="Let later commands create the store if it goes missing")
@click.pass_context
def init(ctx: click.Context, port: int, store_path: str | None, auto_init: bool) -> None:
    """Create locket.toml and an empty store."""
    home = resolve_home(ctx.obj["home"])
    try:
        config_path = init_config(home, port=port, store_path=store_path, auto_init=auto_init)
    except FileExistsError as exc:
        raise click.ClickException(
            f"A configuration file already exists at {home / 'locket.toml'}, refusing to overwrite it"
        ) from exc
    click.echo(f"Created {config_path}")

    cfg = _load_cfg(ctx)
    try:
        RecordStore.init(cfg.store_path)
    except StoreExistsError as exc:
        raise click.ClickException(
            f"A store already exists at {cfg.store_path}, so a new one cannot be initialised there"
        ) from exc
    except OSError as exc:
        raise click.ClickException(f"Failed to initialise the store: {exc}") from exc
    click.echo(f"Created {cfg.store_path}")


# ---------------------------------------------------------------------------
# locket new / import
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--name", prompt="Name for the login", help="Display/search name")
@click.option("--username", prompt="Username for this login")
@click.password_option("--password", prompt="Password for this login")
@click.pass_context
def new(ctx: click.Context, name: str, username: str, password: str) -> None:
    """Add a login."""
    cfg = _load_cfg(ctx)
    with _session(cfg) as store:
        record_id = store.add(Record(name=name, username=username, password=password))
    click.echo(f"Added {name} ({record_id})")


@cli.command("import")
@click.argument("file", type=click.File("rb"))
@click.pass_context
def import_cmd(ctx: click.Context, file: Any) -> None:
    """Append logins from a JSON array of {name, username, password} (- for stdin)."""
    try:
        records = records_from_json(file.read())
    except PayloadError as exc:
        raise click.ClickException(f"Failed to parse {file.name}: {exc}") from exc

    cfg = _load_cfg(ctx)
    with _session(cfg) as store:
        ids = store.append(records)
    click.echo(f"Imported {len(ids)} login(s)")


# ---------------------------------------------------------------------------
# locket query
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name", required=False)
@click.option("--json", "as_json", is_flag=True, help="Print matches as a JSON array")
@click.pass_context
def query(ctx: click.Context, name: str | None, as_json: bool) -> None:
    """Fuzzy-search logins by name (no NAME lists everything)."""
    cfg = _load_cfg(ctx)
    with _session(cfg) as store:
        matches = store.query(name)

    if as_json:
        click.echo(json.dumps([{"id": rid, **rec.to_dict()} for rid, rec in matches], ensure_ascii=False))
        return
    _print_records(matches)


# ---------------------------------------------------------------------------
# locket remove
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("record_id", required=False)
@click.option("--query", "-q", "name", default=None, help="Narrow the interactive choice by name")
@click.pass_context
def remove(ctx: click.Context, record_id: str | None, name: str | None) -> None:
    """Remove a login by ID, or choose one interactively."""
    cfg = _load_cfg(ctx)
    with _session(cfg) as store:
        if record_id is None:
            chosen = _choose_record(store, name)
            if chosen is None:
                click.echo("Nothing removed")
                return
        else:
            chosen = normalize_record_id(record_id)
            if chosen is None:
                raise click.ClickException(f"Not a valid record ID: {record_id}")

        removed = store.remove(chosen)
        if removed is None:
            raise click.ClickException(f"No record with ID {chosen}")
    click.echo(f"Removed {removed.name} ({chosen})")


# ---------------------------------------------------------------------------
# locket serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", "-b", default=None, help="Bind address (default: [server].host or 127.0.0.1)")
@click.option("--port", "-p", default=None, type=int, help="Port (default: [server].port or 56423)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Serve the HTTP API until Ctrl+C, then sync the store and exit.

    \b
    locket serve                 # http://127.0.0.1:56423/api/v1
    locket serve --port 8080
    """
    cfg = _load_cfg(ctx)
    from locket.web import serve as _web_serve

    with _session(cfg) as store:
        try:
            _web_serve(
                store,
                host or cfg.server.host,
                port if port is not None else cfg.server.port,
            )
        except OSError as exc:
            raise click.ClickException(f"Failed to start the server: {exc}") from exc


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    cli(standalone_mode=True)


if __name__ == "__main__":
    main()
