"""Durable key-value store used by the repositories.

The store keeps a whole collection in memory and writes every mutation
through to a backend before returning. Backends are plain synchronous
objects; the store runs them in a worker thread so the event loop never
blocks on disk or network I/O.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import json
import logging
import os
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any, Final, Generic, Protocol, TypeVar

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from .errors import PersistenceFailure
from .models import utc_now

log: Final = logging.getLogger("vetting-bot")

Item = dict[str, Any]
Snapshot = dict[str, Item]


class Record(Protocol):
    updated_at: Any

    def to_item(self) -> Item: ...


T = TypeVar("T", bound=Record)

_MISSING: Final = object()


class StoreBackend(Protocol):
    def load(self) -> Snapshot | None:
        """Return every stored item, or ``None`` when nothing was ever stored."""

    def initialize(self, snapshot: Snapshot) -> None: ...

    def put(self, key: str, item: Item, snapshot: Snapshot) -> None: ...

    def delete(self, key: str, snapshot: Snapshot) -> None: ...


class JsonFileBackend:
    """One JSON object per collection, rewritten on every change.

    Writes go to a temporary file next to the target and are moved into
    place with ``os.replace`` so a crash mid-write leaves the previous file
    intact.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def load(self) -> Snapshot | None:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not contain a JSON object")
        return data

    def initialize(self, snapshot: Snapshot) -> None:
        self._write(snapshot)

    def put(self, key: str, item: Item, snapshot: Snapshot) -> None:
        self._write(snapshot)

    def delete(self, key: str, snapshot: Snapshot) -> None:
        self._write(snapshot)

    def _write(self, snapshot: Snapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f".tmp_{self.path.name}")
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(snapshot, fh, indent=2)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, self.path)


class MemoryBackend:
    """Keeps the serialized collection in process; used by tests and dry runs."""

    def __init__(self, items: Snapshot | None = None) -> None:
        self.items = self._copy(items) if items is not None else None
        self.writes = 0

    @staticmethod
    def _copy(snapshot: Snapshot) -> Snapshot:
        return json.loads(json.dumps(snapshot))

    def load(self) -> Snapshot | None:
        if self.items is None:
            return None
        return self._copy(self.items)

    def initialize(self, snapshot: Snapshot) -> None:
        self.items = self._copy(snapshot)
        self.writes += 1

    def put(self, key: str, item: Item, snapshot: Snapshot) -> None:
        self.items = self._copy(snapshot)
        self.writes += 1

    def delete(self, key: str, snapshot: Snapshot) -> None:
        self.items = self._copy(snapshot)
        self.writes += 1


class DynamoDBBackend:
    """Stores each record as its own item in a DynamoDB table.

    Items are keyed ``pk = "<COLLECTION>#<id>"`` and hold the record as a
    JSON string, which sidesteps DynamoDB's Decimal conversion of numbers.
    """

    def __init__(self, table, collection: str) -> None:
        self._table = table
        self.collection = collection.upper()

    def _pk(self, key: str) -> str:
        return f"{self.collection}#{key}"

    def load(self) -> Snapshot | None:
        if self._table is None:
            raise PersistenceFailure("DynamoDB table is not configured")
        prefix = f"{self.collection}#"
        scan_kwargs: dict[str, object] = {
            "FilterExpression": Attr("pk").begins_with(prefix)
        }
        snapshot: Snapshot = {}
        try:
            while True:
                response = self._table.scan(**scan_kwargs)
                for item in response.get("Items", []):
                    key = str(item["pk"])[len(prefix) :]
                    snapshot[key] = json.loads(item["record"])
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                scan_kwargs["ExclusiveStartKey"] = last_key
        except (BotoCoreError, ClientError) as exc:
            raise PersistenceFailure(f"DynamoDB scan failed: {exc}") from exc
        except (KeyError, ValueError) as exc:
            raise PersistenceFailure(f"Malformed {self.collection} item: {exc!r}") from exc
        return snapshot

    def initialize(self, snapshot: Snapshot) -> None:
        return None

    def put(self, key: str, item: Item, snapshot: Snapshot) -> None:
        try:
            self._table.put_item(
                Item={
                    "pk": self._pk(key),
                    "collection": self.collection,
                    "record": json.dumps(item),
                    "updated_at": item.get("updatedAt") or "",
                }
            )
        except (BotoCoreError, ClientError) as exc:
            raise PersistenceFailure(f"DynamoDB put_item failed: {exc}") from exc

    def delete(self, key: str, snapshot: Snapshot) -> None:
        try:
            self._table.delete_item(Key={"pk": self._pk(key)})
        except (BotoCoreError, ClientError) as exc:
            raise PersistenceFailure(f"DynamoDB delete_item failed: {exc}") from exc


class KeyedMutex:
    """One asyncio lock per key, discarded when nobody holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @contextlib.asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]


class KeyValueStore(Generic[T]):
    """Write-through mapping from string key to record ``T``.

    ``decode`` turns a stored item back into a record; records encode
    themselves through ``to_item``. Reads hand out deep copies so a caller
    can only change stored state through :meth:`set`.
    """

    def __init__(
        self,
        backend: StoreBackend,
        decode: Callable[[Item], T],
        *,
        name: str = "data",
    ) -> None:
        self._backend = backend
        self._decode = decode
        self.name = name
        self._data: dict[str, T] = {}
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()
        self._guards = KeyedMutex()

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def init(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            try:
                items = await asyncio.to_thread(self._backend.load)
            except (OSError, ValueError) as exc:
                raise PersistenceFailure(
                    f"Unable to load {self.name} data: {exc}"
                ) from exc

            if items is None:
                log.info("No existing %s data found, starting fresh", self.name)
                await self._run_backend(self._backend.initialize, {})
                items = {}

            data: dict[str, T] = {}
            for key, item in items.items():
                try:
                    data[key] = self._decode(item)
                except (KeyError, TypeError, ValueError) as exc:
                    raise PersistenceFailure(
                        f"Corrupt {self.name} record {key!r}: {exc}"
                    ) from exc

            self._data = data
            self._initialized = True
            log.info("%s storage initialized with %d entries", self.name, len(data))

    def guard(self, key: str) -> contextlib.AbstractAsyncContextManager[None]:
        """Serialize read-modify-write sequences on ``key``."""
        return self._guards.hold(key)

    async def get(self, key: str) -> T | None:
        await self.init()
        record = self._data.get(key)
        return copy.deepcopy(record) if record is not None else None

    async def has(self, key: str) -> bool:
        await self.init()
        return key in self._data

    async def set(self, key: str, record: T) -> T:
        await self.init()
        record.updated_at = utc_now()
        stored = copy.deepcopy(record)
        async with self._write_lock:
            previous = self._data.get(key, _MISSING)
            self._data[key] = stored
            try:
                await self._run_backend(
                    self._backend.put, key, stored.to_item(), self._snapshot()
                )
            except PersistenceFailure:
                self._restore(key, previous)
                raise
        return record

    async def delete(self, key: str) -> bool:
        await self.init()
        async with self._write_lock:
            if key not in self._data:
                return False
            previous = self._data.pop(key)
            try:
                await self._run_backend(self._backend.delete, key, self._snapshot())
            except PersistenceFailure:
                self._restore(key, previous)
                raise
        return True

    async def values(self) -> list[T]:
        await self.init()
        return [copy.deepcopy(record) for record in self._data.values()]

    async def entries(self) -> list[tuple[str, T]]:
        await self.init()
        return [(key, copy.deepcopy(record)) for key, record in self._data.items()]

    async def keys(self) -> list[str]:
        await self.init()
        return list(self._data)

    async def size(self) -> int:
        await self.init()
        return len(self._data)

    async def find(self, predicate: Callable[[T], bool]) -> T | None:
        await self.init()
        for record in self._data.values():
            if predicate(record):
                return copy.deepcopy(record)
        return None

    async def filter(self, predicate: Callable[[T], bool]) -> list[T]:
        await self.init()
        return [
            copy.deepcopy(record) for record in self._data.values() if predicate(record)
        ]

    def _snapshot(self) -> dict[str, Item]:
        return {key: record.to_item() for key, record in self._data.items()}

    def _restore(self, key: str, previous: object) -> None:
        if previous is _MISSING:
            self._data.pop(key, None)
        else:
            self._data[key] = previous  # type: ignore[assignment]

    async def _run_backend(self, func: Callable[..., None], *args: Any) -> None:
        try:
            await asyncio.to_thread(func, *args)
        except PersistenceFailure:
            log.error("Error saving %s data", self.name)
            raise
        except (OSError, TypeError, ValueError) as exc:
            log.exception("Error saving %s data: %s", self.name, exc)
            raise PersistenceFailure(f"Unable to save {self.name} data: {exc}") from exc


__all__ = [
    "DynamoDBBackend",
    "JsonFileBackend",
    "KeyValueStore",
    "KeyedMutex",
    "MemoryBackend",
    "StoreBackend",
]
