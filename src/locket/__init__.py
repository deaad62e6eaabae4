"""locket: a local credential store with fuzzy search and an HTTP API.

Layout (under ~/.locket or $LOCKET_HOME):
    locket.toml           # config: store path, server host/port, lock path
    locket.db             # MessagePack document: {"records": {<uuid>: {...}}}

<tempdir>/locket.lck is the single-instance lock. It is a zero-length marker
created with O_EXCL, so a second locket process fails fast instead of racing
the first one's writes.

Records are (name, username, password) triples keyed by a random UUID.
Passwords are stored as plain text.
"""

from locket.config import LocketConfig, init_config, load_config
from locket.lock import AlreadyLockedError, InstanceLock, LockMissingError
from locket.models import Record
from locket.store import RecordStore, StoreDecodeError, StoreExistsError

__all__ = [
    "AlreadyLockedError",
    "InstanceLock",
    "LockMissingError",
    "LocketConfig",
    "Record",
    "RecordStore",
    "StoreDecodeError",
    "StoreExistsError",
    "init_config",
    "load_config",
]
