"""
PersistenceStrategy interface for pluggable storage backends.

The scheduler owns an in-memory ``World`` during a tick and hands the finished
state to ``commit_tick`` together with the tick's events. A commit is atomic:
either the whole tick (every collection plus its events) becomes durable, or
nothing does and ``PersistenceError`` is raised.

Three included implementations:
1. InMemoryPersistence - dict-based storage, data lost on exit (tests, experiments)
2. JsonPersistence - one JSON document per run directory, human-readable
3. PostgresPersistence - asyncpg, one transaction per commit

Collections are keyed record stores (see ``agentcity.world.COLLECTIONS``). Hosts
can read and patch individual records between ticks with ``get_record``,
``upsert_record``, ``delete_record`` and ``list_records``.

Usage pattern:
    persistence = InMemoryPersistence()  # or JsonPersistence(), PostgresPersistence()
    await persistence.initialize()
    world = await persistence.load_world()      # None before the first commit
    await persistence.commit_tick(world, events)
    await persistence.close()
"""

from __future__ import annotations

import asyncio
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_fixed

from .config import Config
from .logging_utils import log_error
from .schemas import WorldEvent
from .world import COLLECTIONS, World

try:  # Optional dependency (only needed for PostgresPersistence)
    import asyncpg
except ImportError:  # pragma: no cover - asyncpg may not be installed for json/memory usage
    asyncpg = None


Records = Dict[str, Dict[str, Dict[str, Any]]]

IO_RETRY_ATTEMPTS = 3
IO_RETRY_WAIT_SECONDS = 0.05


class PersistenceError(Exception):
    """A storage backend could not complete an operation.

    Raised for I/O and driver failures after transient retries are exhausted.
    Nothing from the failed call has been made durable.
    """

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise KeyError(
            f"Unknown collection '{collection}'. Expected one of: {', '.join(COLLECTIONS)}."
        )


def _filter_events(
    events: List[WorldEvent],
    since_tick: int,
    agent_id: Optional[str],
    limit: Optional[int],
) -> List[WorldEvent]:
    matched = [
        event
        for event in events
        if event.tick >= since_tick and (agent_id is None or event.agent_id == agent_id)
    ]
    return matched[:limit] if limit is not None else matched


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    log_error(
        f"Persistence I/O failed (attempt {retry_state.attempt_number}/{IO_RETRY_ATTEMPTS}): {exc}; retrying"
    )


def _io_retrying() -> AsyncRetrying:
    return AsyncRetrying(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(IO_RETRY_ATTEMPTS),
        wait=wait_fixed(IO_RETRY_WAIT_SECONDS),
        before_sleep=_log_retry,
        reraise=True,
    )


class PersistenceStrategy(ABC):
    """Abstract base class for simulation state persistence.

    Method categories:
    1. Lifecycle: initialize(), close()
    2. Whole world: load_world(), commit_tick()
    3. Keyed records: get_record(), upsert_record(), delete_record(), list_records()
    4. Event log: get_events()
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Open connections, create tables or directories. Called once before use."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections and handles."""

    @abstractmethod
    async def load_world(self) -> Optional[World]:
        """Return the last committed world, or None if nothing was committed yet."""

    @abstractmethod
    async def commit_tick(self, world: World, events: List[WorldEvent]) -> None:
        """Atomically persist ``world`` (tick included) and append ``events``.

        Raises:
            PersistenceError: nothing was persisted
        """

    @abstractmethod
    async def get_record(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        """Fetch one record by key."""

    @abstractmethod
    async def upsert_record(self, collection: str, key: str, record: Dict[str, Any]) -> None:
        """Insert or replace one record."""

    @abstractmethod
    async def delete_record(self, collection: str, key: str) -> None:
        """Remove one record if present."""

    @abstractmethod
    async def list_records(self, collection: str) -> Dict[str, Dict[str, Any]]:
        """All records of a collection keyed by id."""

    @abstractmethod
    async def get_events(
        self,
        since_tick: int = 0,
        agent_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[WorldEvent]:
        """Committed events in emission order, optionally filtered."""


class InMemoryPersistence(PersistenceStrategy):
    """In-memory persistence using Python dicts (no database, no files).

    Commits replace the stored records wholesale, so a commit is trivially atomic.
    Data survives ``close()`` so callers can inspect it after a run.
    """

    def __init__(self):
        self.records: Records = {name: {} for name in COLLECTIONS}
        self.events: List[WorldEvent] = []
        self.tick: Optional[int] = None
        self.size: int = Config.WORLD_SIZE

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def load_world(self) -> Optional[World]:
        if self.tick is None:
            return None
        return World.from_records(json.loads(json.dumps(self.records)), tick=self.tick, size=self.size)

    async def commit_tick(self, world: World, events: List[WorldEvent]) -> None:
        self.records = world.to_records()
        self.tick = world.tick
        self.size = world.size
        self.events.extend(events)

    async def get_record(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        _check_collection(collection)
        record = self.records[collection].get(key)
        return dict(record) if record is not None else None

    async def upsert_record(self, collection: str, key: str, record: Dict[str, Any]) -> None:
        _check_collection(collection)
        self.records[collection][key] = dict(record)

    async def delete_record(self, collection: str, key: str) -> None:
        _check_collection(collection)
        self.records[collection].pop(key, None)

    async def list_records(self, collection: str) -> Dict[str, Dict[str, Any]]:
        _check_collection(collection)
        return {key: dict(value) for key, value in self.records[collection].items()}

    async def get_events(
        self,
        since_tick: int = 0,
        agent_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[WorldEvent]:
        return _filter_events(self.events, since_tick, agent_id, limit)


class JsonPersistence(PersistenceStrategy):
    """File-based persistence using JSON for human-readable storage.

    Directory structure:
    ```
    {base_path}/
      world.json          # {"tick": N, "size": S, "records": {collection: {key: record}}}
      events/
        00001.json        # List[WorldEvent] emitted during tick 1
        00002.json
    ```

    Every file is written to a temporary sibling and moved into place with
    ``os.replace``, so readers never see a half-written file. ``world.json`` is
    the commit point: event files for ticks beyond its tick are ignored (they
    belong to a commit that never completed and are overwritten on retry).

    All file I/O runs in a worker thread (asyncio.to_thread). Transient
    ``OSError`` is retried with tenacity before surfacing as PersistenceError.
    """

    def __init__(self, base_path: Path | str | None = None):
        self.base_path = Path(base_path) if base_path is not None else Config.JSON_STORE_DIR

    @property
    def world_path(self) -> Path:
        return self.base_path / "world.json"

    @property
    def events_dir(self) -> Path:
        return self.base_path / "events"

    async def initialize(self) -> None:
        try:
            async for attempt in _io_retrying():
                with attempt:
                    await asyncio.to_thread(self.events_dir.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Cannot create JSON store at {self.base_path}: {exc}", cause=exc) from exc

    async def close(self) -> None:
        # Nothing to clean up for JSON persistence
        return None

    # -- file helpers (run in worker threads) ---------------------------------

    @staticmethod
    def _write_atomic(path: Path, payload: Any) -> None:
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2), "utf-8")
        os.replace(tmp, path)

    def _read_document(self) -> Optional[Dict[str, Any]]:
        if not self.world_path.exists():
            return None
        return json.loads(self.world_path.read_text("utf-8"))

    def _write_commit(self, document: Dict[str, Any], tick: int, events: List[Dict[str, Any]]) -> None:
        self.events_dir.mkdir(parents=True, exist_ok=True)
        self._write_atomic(self.events_dir / f"{tick:05d}.json", events)
        self._write_atomic(self.world_path, document)

    def _read_events(self) -> List[WorldEvent]:
        document = self._read_document()
        if document is None or not self.events_dir.exists():
            return []
        committed_tick = document["tick"]
        events: List[WorldEvent] = []
        for path in sorted(self.events_dir.glob("*.json")):
            if int(path.stem) > committed_tick:
                continue
            events.extend(WorldEvent.model_validate(item) for item in json.loads(path.read_text("utf-8")))
        return events

    async def _run_io(self, description: str, func, *args):
        try:
            async for attempt in _io_retrying():
                with attempt:
                    return await asyncio.to_thread(func, *args)
        except OSError as exc:
            raise PersistenceError(f"{description} failed in {self.base_path}: {exc}", cause=exc) from exc

    async def _mutate(self, collection: str, mutate) -> None:
        _check_collection(collection)

        def _apply() -> None:
            document = self._read_document() or {
                "tick": 0,
                "size": Config.WORLD_SIZE,
                "records": {name: {} for name in COLLECTIONS},
            }
            mutate(document["records"].setdefault(collection, {}))
            self._write_atomic(self.world_path, document)

        await self._run_io(f"Updating {collection}", _apply)

    # -- interface --------------------------------------------------------------

    async def load_world(self) -> Optional[World]:
        document = await self._run_io("Loading world", self._read_document)
        if document is None:
            return None
        return World.from_records(document["records"], tick=document["tick"], size=document["size"])

    async def commit_tick(self, world: World, events: List[WorldEvent]) -> None:
        document = {"tick": world.tick, "size": world.size, "records": world.to_records()}
        payload = [event.model_dump(mode="json") for event in events]
        await self._run_io(f"Committing tick {world.tick}", self._write_commit, document, world.tick, payload)

    async def get_record(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        _check_collection(collection)
        document = await self._run_io("Reading record", self._read_document)
        if document is None:
            return None
        return document["records"].get(collection, {}).get(key)

    async def upsert_record(self, collection: str, key: str, record: Dict[str, Any]) -> None:
        await self._mutate(collection, lambda records: records.__setitem__(key, dict(record)))

    async def delete_record(self, collection: str, key: str) -> None:
        await self._mutate(collection, lambda records: records.pop(key, None))

    async def list_records(self, collection: str) -> Dict[str, Dict[str, Any]]:
        _check_collection(collection)
        document = await self._run_io("Listing records", self._read_document)
        if document is None:
            return {}
        return document["records"].get(collection, {})

    async def get_events(
        self,
        since_tick: int = 0,
        agent_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[WorldEvent]:
        events = await self._run_io("Reading events", self._read_events)
        return _filter_events(events, since_tick, agent_id, limit)


POSTGRES_SCHEMA = """
CREATE TABLE IF NOT EXISTS agentcity_meta (
    key TEXT PRIMARY KEY,
    value JSONB NOT NULL
);
CREATE TABLE IF NOT EXISTS agentcity_records (
    collection TEXT NOT NULL,
    key TEXT NOT NULL,
    data JSONB NOT NULL,
    PRIMARY KEY (collection, key)
);
CREATE TABLE IF NOT EXISTS agentcity_events (
    seq BIGSERIAL PRIMARY KEY,
    id TEXT NOT NULL,
    tick INTEGER NOT NULL,
    agent_id TEXT,
    type TEXT NOT NULL,
    event JSONB NOT NULL
);
CREATE INDEX IF NOT EXISTS agentcity_events_tick_idx ON agentcity_events (tick);
"""


class PostgresPersistence(PersistenceStrategy):
    """PostgreSQL-backed persistence using an asyncpg connection pool.

    Tables:
    - agentcity_meta: committed tick and world size
    - agentcity_records: (collection, key) -> JSONB record
    - agentcity_events: append-only event log

    ``commit_tick`` rewrites the record table and appends events inside a single
    transaction, so a failed commit leaves the previous tick intact.
    """

    def __init__(self, database_url: Optional[str] = None):
        if asyncpg is None:  # pragma: no cover - handled during runtime when dependency missing
            raise ImportError(
                "asyncpg is required for PostgresPersistence. Install with `pip install agentcity[postgres]`."
            )
        self.database_url = database_url or Config.DATABASE_URL
        self.pool: Optional["asyncpg.Pool"] = None

    def _require_pool(self) -> "asyncpg.Pool":
        if self.pool is None:
            raise PersistenceError("Persistence not initialized. Call initialize() first.")
        return self.pool

    async def initialize(self) -> None:
        if self.pool is not None:
            return
        try:
            async for attempt in _io_retrying():
                with attempt:
                    self.pool = await asyncpg.create_pool(self.database_url)
            async with self.pool.acquire() as conn:
                await conn.execute(POSTGRES_SCHEMA)
        except (OSError, asyncpg.PostgresError) as exc:
            raise PersistenceError(f"Cannot connect to {self.database_url}: {exc}", cause=exc) from exc

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    async def load_world(self) -> Optional[World]:
        pool = self._require_pool()
        async with pool.acquire() as conn:
            meta = await conn.fetchrow("SELECT value FROM agentcity_meta WHERE key = 'world'")
            if meta is None:
                return None
            rows = await conn.fetch("SELECT collection, key, data FROM agentcity_records")
        records: Records = {name: {} for name in COLLECTIONS}
        for row in rows:
            records.setdefault(row["collection"], {})[row["key"]] = json.loads(row["data"])
        info = json.loads(meta["value"])
        return World.from_records(records, tick=info["tick"], size=info["size"])

    async def commit_tick(self, world: World, events: List[WorldEvent]) -> None:
        pool = self._require_pool()
        rows = [
            (collection, key, json.dumps(record))
            for collection, records in world.to_records().items()
            for key, record in records.items()
        ]
        event_rows = [
            (event.id, event.tick, event.agent_id, event.type, event.model_dump_json())
            for event in events
        ]
        meta = json.dumps({"tick": world.tick, "size": world.size})
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute("DELETE FROM agentcity_records")
                    if rows:
                        await conn.executemany(
                            "INSERT INTO agentcity_records (collection, key, data) VALUES ($1, $2, $3::jsonb)",
                            rows,
                        )
                    if event_rows:
                        await conn.executemany(
                            "INSERT INTO agentcity_events (id, tick, agent_id, type, event) "
                            "VALUES ($1, $2, $3, $4, $5::jsonb)",
                            event_rows,
                        )
                    await conn.execute(
                        "INSERT INTO agentcity_meta (key, value) VALUES ('world', $1::jsonb) "
                        "ON CONFLICT (key) DO UPDATE SET value = $1::jsonb",
                        meta,
                    )
        except (OSError, asyncpg.PostgresError) as exc:
            raise PersistenceError(f"Committing tick {world.tick} failed: {exc}", cause=exc) from exc

    async def get_record(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        _check_collection(collection)
        pool = self._require_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT data FROM agentcity_records WHERE collection = $1 AND key = $2",
                collection,
                key,
            )
        return json.loads(row["data"]) if row else None

    async def upsert_record(self, collection: str, key: str, record: Dict[str, Any]) -> None:
        _check_collection(collection)
        pool = self._require_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                "INSERT INTO agentcity_records (collection, key, data) VALUES ($1, $2, $3::jsonb) "
                "ON CONFLICT (collection, key) DO UPDATE SET data = $3::jsonb",
                collection,
                key,
                json.dumps(record),
            )

    async def delete_record(self, collection: str, key: str) -> None:
        _check_collection(collection)
        pool = self._require_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                "DELETE FROM agentcity_records WHERE collection = $1 AND key = $2",
                collection,
                key,
            )

    async def list_records(self, collection: str) -> Dict[str, Dict[str, Any]]:
        _check_collection(collection)
        pool = self._require_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT key, data FROM agentcity_records WHERE collection = $1",
                collection,
            )
        return {row["key"]: json.loads(row["data"]) for row in rows}

    async def get_events(
        self,
        since_tick: int = 0,
        agent_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[WorldEvent]:
        pool = self._require_pool()
        query = "SELECT event FROM agentcity_events WHERE tick >= $1 AND ($2::text IS NULL OR agent_id = $2) ORDER BY seq"
        args: List[Any] = [since_tick, agent_id]
        if limit is not None:
            query += " LIMIT $3"
            args.append(limit)
        async with pool.acquire() as conn:
            rows = await conn.fetch(query, *args)
        return [WorldEvent.model_validate_json(row["event"]) for row in rows]


def create_persistence(backend: Optional[str] = None, **options: Any) -> PersistenceStrategy:
    """Build the backend named by ``backend`` (defaults to ``Config.PERSISTENCE_BACKEND``)."""
    name = (backend or Config.PERSISTENCE_BACKEND).lower()
    if name == "memory":
        return InMemoryPersistence()
    if name == "json":
        return JsonPersistence(options.get("base_path"))
    if name == "postgres":
        return PostgresPersistence(options.get("database_url"))
    raise ValueError(f"Unknown persistence backend '{name}'. Use one of: memory, json, postgres.")
