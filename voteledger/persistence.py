"""
Snapshot backends.

The ledger is persisted write-through as one full snapshot
``{voters, elections, candidates, votes, audit}`` after every successful
mutation.  Three backends share the same small interface:

    file      JSON document on local disk (default), replaced atomically
    postgres  one JSONB row via asyncpg (see ``database.Database``)
    memory    kept in process, for tests and throw-away instances

A missing or unreadable snapshot means "empty system", never a startup
failure.
"""
import json
import logging
import os
import tempfile
from typing import Any

import asyncpg
from pydantic import ValidationError

from . import config
from .database import Database
from .errors import LedgerError, PersistenceFailure
from .store import LedgerStore

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Interface shared by every backend."""

    name = "base"

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def load(self) -> dict[str, Any] | None:
        raise NotImplementedError

    async def save(self, snapshot: dict[str, Any]) -> None:
        raise NotImplementedError


class MemoryStore(SnapshotStore):
    name = "memory"

    def __init__(self, initial: dict[str, Any] | None = None):
        self._payload = json.dumps(initial) if initial is not None else None
        self.saves = 0

    async def load(self) -> dict[str, Any] | None:
        return json.loads(self._payload) if self._payload is not None else None

    async def save(self, snapshot: dict[str, Any]) -> None:
        self._payload = json.dumps(snapshot)
        self.saves += 1


class JsonFileStore(SnapshotStore):
    name = "file"

    def __init__(self, path: str):
        self.path = path

    async def load(self) -> dict[str, Any] | None:
        if not os.path.exists(self.path):
            return None
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    async def save(self, snapshot: dict[str, Any]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(snapshot, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceFailure(f"Could not write {self.path}: {e}") from e


class PostgresStore(SnapshotStore):
    name = "postgres"

    async def open(self) -> None:
        await Database.get_pool()
        await Database.ensure_schema()

    async def close(self) -> None:
        await Database.close()

    async def load(self) -> dict[str, Any] | None:
        try:
            payload = await Database.load_snapshot()
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise PersistenceFailure(f"Could not read snapshot from PostgreSQL: {e}") from e
        return json.loads(payload) if payload is not None else None

    async def save(self, snapshot: dict[str, Any]) -> None:
        try:
            await Database.save_snapshot(json.dumps(snapshot))
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise PersistenceFailure(f"Could not save snapshot to PostgreSQL: {e}") from e


def open_store(kind: str | None = None) -> SnapshotStore:
    """Build the backend named by ``LEDGER_STORE``."""
    kind = (kind or config.LEDGER_STORE).lower()
    if kind == "file":
        return JsonFileStore(config.DATA_FILE)
    if kind == "postgres":
        return PostgresStore()
    if kind == "memory":
        return MemoryStore()
    raise ValueError(f"Unknown LEDGER_STORE: {kind!r}")


async def load_into(store: SnapshotStore, ledger: LedgerStore) -> bool:
    """Restore ``ledger`` from ``store``.  Returns False when starting empty."""
    try:
        snapshot = await store.load()
    except (OSError, ValueError, PersistenceFailure) as e:
        logger.error(f"Snapshot in {store.name} store is unreadable, starting empty: {e}")
        return False

    if snapshot is None:
        logger.info(f"No snapshot in {store.name} store, starting with an empty ledger")
        return False
    if not isinstance(snapshot, dict):
        logger.error(f"Snapshot in {store.name} store is not an object, starting empty")
        return False

    try:
        ledger.restore(snapshot)
    except (ValidationError, TypeError, LedgerError) as e:
        logger.error(f"Snapshot in {store.name} store is corrupt, starting empty: {e}")
        return False
    return True
