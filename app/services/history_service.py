# app/services/history_service.py
import asyncio
import json
import logging
import sqlite3
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple

from pydantic import ValidationError

from app.models import Report

logger = logging.getLogger(__name__)

HISTORY_KEY = "reports"
DEFAULT_HISTORY_LIMIT = 50


class HistoryPersistenceError(Exception):
    """The history could not be loaded from or written to the key-value backend."""


# --- Key-value backends ---
class KeyValueStore(Protocol):
    async def get(self, namespace: str, key: str) -> Optional[str]: ...

    async def put(self, namespace: str, key: str, value: str) -> None: ...


class InMemoryKeyValueStore:
    """Process-local backend, used in tests and for throwaway runs."""

    def __init__(self) -> None:
        self._data: Dict[Tuple[str, str], str] = {}

    async def get(self, namespace: str, key: str) -> Optional[str]:
        return self._data.get((namespace, key))

    async def put(self, namespace: str, key: str, value: str) -> None:
        self._data[(namespace, key)] = value


class SQLiteKeyValueStore:
    """
    SQLite-backed key-value table.

    Table: kv
    - namespace (text)
    - key (text)
    - value (text)
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_db(self) -> None:
        conn = self._get_connection()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    namespace TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    PRIMARY KEY (namespace, key)
                )
                """
            )
            conn.commit()
        finally:
            conn.close()
        self._initialized = True

    def _get(self, namespace: str, key: str) -> Optional[str]:
        if not self._initialized:
            self._init_db()
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT value FROM kv WHERE namespace = ? AND key = ?", (namespace, key)
            ).fetchone()
            return row[0] if row else None
        finally:
            conn.close()

    def _put(self, namespace: str, key: str, value: str) -> None:
        if not self._initialized:
            self._init_db()
        conn = self._get_connection()
        try:
            # single statement inside one transaction, so readers see old or new value
            conn.execute(
                "INSERT OR REPLACE INTO kv (namespace, key, value) VALUES (?, ?, ?)",
                (namespace, key, value),
            )
            conn.commit()
        finally:
            conn.close()

    async def get(self, namespace: str, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get, namespace, key)

    async def put(self, namespace: str, key: str, value: str) -> None:
        await asyncio.to_thread(self._put, namespace, key, value)


# --- Per-user actor ---
_Operation = Tuple[Callable[..., Awaitable[Any]], Tuple[Any, ...], "asyncio.Future[Any]"]


class HistoryStore:
    """
    Bounded, most-recent-first report log for one user key.

    Operations go through a queue served by a single worker task, so they run
    one at a time in arrival order. The worker loads the persisted log before
    it serves the first operation and exits once the queue is empty.
    """

    def __init__(
        self,
        user_key: str,
        backend: KeyValueStore,
        limit: int = DEFAULT_HISTORY_LIMIT,
        on_idle: Optional[Callable[["HistoryStore"], None]] = None,
    ) -> None:
        self.user_key = user_key
        self.limit = limit
        self._backend = backend
        self._on_idle = on_idle
        self._reports: List[Report] = []
        self._ready = False
        self._queue: "asyncio.Queue[_Operation]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def busy(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def add(self, report: Report) -> None:
        """Prepends `report`, trims the log to the limit and persists it before returning."""
        await self._submit(self._add, report)

    async def list(self) -> Tuple[Report, ...]:
        """Returns an immutable snapshot of the log, most recent first."""
        return await self._submit(self._list)

    async def close(self) -> None:
        if self.busy:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        while not self._queue.empty():
            _, _, future = self._queue.get_nowait()
            if not future.done():
                future.cancel()

    async def _submit(self, operation: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((operation, args, future))
        if not self.busy:
            self._worker = asyncio.create_task(self._run(), name=f"history-{self.user_key}")
        return await future

    async def _run(self) -> None:
        # The worker lives only while there is queued work
        while not self._queue.empty():
            operation, args, future = self._queue.get_nowait()
            try:
                if not self._ready:
                    await self._load()
                result = await operation(*args)
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._queue.task_done()

        if self._on_idle is not None:
            self._on_idle(self)

    async def _load(self) -> None:
        try:
            raw = await self._backend.get(self.user_key, HISTORY_KEY)
            items = json.loads(raw) if raw else []
            reports = [Report.model_validate(item) for item in items]
        except (ValidationError, ValueError, TypeError) as e:
            logger.error("Stored history for %s is unreadable", self.user_key, exc_info=True)
            raise HistoryPersistenceError(f"Could not read history: {e}") from e
        except Exception as e:
            logger.error("Could not load history for %s", self.user_key, exc_info=True)
            raise HistoryPersistenceError(f"Could not load history: {e}") from e

        self._reports = reports[: self.limit]
        self._ready = True
        logger.debug("Loaded %d reports for %s", len(self._reports), self.user_key)

    async def _add(self, report: Report) -> None:
        self._reports.insert(0, report)
        if len(self._reports) > self.limit:
            logger.debug("Evicting %d reports for %s", len(self._reports) - self.limit, self.user_key)
            self._reports = self._reports[: self.limit]

        # The in-memory log is not rolled back if this write fails.
        payload = json.dumps([r.model_dump(mode="json", by_alias=True) for r in self._reports])
        try:
            await self._backend.put(self.user_key, HISTORY_KEY, payload)
        except Exception as e:
            logger.error("Could not persist history for %s", self.user_key, exc_info=True)
            raise HistoryPersistenceError(f"Could not save history: {e}") from e

    async def _list(self) -> Tuple[Report, ...]:
        return tuple(self._reports)


class HistoryRegistry:
    """
    Maps user keys to their HistoryStore, creating stores on first use.

    A store is dropped as soon as its queue drains; the next operation on that
    key starts a fresh store that reloads the persisted log first.
    """

    def __init__(self, backend: KeyValueStore, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.backend = backend
        self.limit = limit
        self._stores: Dict[str, HistoryStore] = {}

    def __len__(self) -> int:
        return len(self._stores)

    def get(self, user_key: str) -> HistoryStore:
        store = self._stores.get(user_key)
        if store is None:
            store = HistoryStore(user_key, self.backend, limit=self.limit, on_idle=self._release)
            self._stores[user_key] = store
        return store

    def _release(self, store: HistoryStore) -> None:
        if self._stores.get(store.user_key) is store:
            del self._stores[store.user_key]

    async def add(self, user_key: str, report: Report) -> None:
        await self.get(user_key).add(report)

    async def list(self, user_key: str) -> Tuple[Report, ...]:
        return await self.get(user_key).list()

    async def close(self) -> None:
        stores = list(self._stores.values())
        self._stores.clear()
        for store in stores:
            await store.close()
