from __future__ import annotations

import asyncio
import sys
from collections import defaultdict
from copy import deepcopy
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT))

from backend.app.db.mongo import MongoConnectionManager  # noqa: E402
from backend.app.db.redis import RedisConnectionManager  # noqa: E402
from backend.app.dependencies import get_now  # noqa: E402
from backend.app.main import app  # noqa: E402
from backend.app.services.catalog import get_catalog_policy  # noqa: E402

# 2024-01-01 10:00 in Asia/Bangkok
FIXED_NOW = datetime(2024, 1, 1, 3, 0, tzinfo=timezone.utc)


def _matches(doc: dict, query: dict) -> bool:
    for key, cond in query.items():
        value = doc.get(key)
        if isinstance(cond, dict) and cond and all(op.startswith("$") for op in cond):
            for op, arg in cond.items():
                if op == "$ne":
                    if (arg in value) if isinstance(value, list) else (value == arg):
                        return False
                elif op == "$in":
                    if value not in arg:
                        return False
                elif op == "$nin":
                    if value in arg:
                        return False
                elif op == "$gte":
                    if value is None or value < arg:
                        return False
                elif op == "$lte":
                    if value is None or value > arg:
                        return False
                else:
                    raise NotImplementedError(op)
        elif isinstance(value, list) and not isinstance(cond, list):
            if cond not in value:
                return False
        elif value != cond:
            return False
    return True


def _apply_update(doc: dict, update: dict, *, inserting: bool) -> None:
    for op, fields in update.items():
        for key, arg in fields.items():
            if op == "$set":
                doc[key] = deepcopy(arg)
            elif op == "$setOnInsert":
                if inserting:
                    doc[key] = deepcopy(arg)
            elif op == "$inc":
                doc[key] = doc.get(key, 0) + arg
            elif op == "$max":
                doc[key] = arg if doc.get(key) is None else max(doc[key], arg)
            elif op == "$push":
                doc.setdefault(key, []).append(deepcopy(arg))
            elif op == "$addToSet":
                items = doc.setdefault(key, [])
                if arg not in items:
                    items.append(deepcopy(arg))
            else:
                raise NotImplementedError(op)


@dataclass
class _UpdateResult:
    matched_count: int
    modified_count: int
    upserted_id: Any = None


@dataclass
class _InsertResult:
    inserted_id: Any


class InMemoryCursor:
    def __init__(self, docs: list[dict]) -> None:
        self._docs = docs
        self._limit: int | None = None

    def sort(self, key: str | list[tuple[str, int]], direction: int = 1) -> InMemoryCursor:
        keys = key if isinstance(key, list) else [(key, direction)]
        for field, field_direction in reversed(keys):
            self._docs.sort(key=lambda doc: doc.get(field), reverse=field_direction < 0)
        return self

    def limit(self, count: int) -> InMemoryCursor:
        self._limit = count or None
        return self

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        docs = self._docs if self._limit is None else self._docs[: self._limit]
        for doc in docs:
            yield deepcopy(doc)


class InMemoryCollection:
    """Just enough of AsyncIOMotorCollection for the services under test."""

    def __init__(self) -> None:
        self.docs: dict[Any, dict] = {}

    async def create_index(self, *_args: Any, **_kwargs: Any) -> str:
        return "index"

    async def insert_one(self, doc: dict) -> _InsertResult:
        doc = deepcopy(doc)
        doc.setdefault("_id", ObjectId())
        if doc["_id"] in self.docs:
            raise DuplicateKeyError(f"duplicate _id {doc['_id']}")
        self.docs[doc["_id"]] = doc
        return _InsertResult(inserted_id=doc["_id"])

    async def find_one(self, query: dict) -> dict | None:
        for doc in self.docs.values():
            if _matches(doc, query):
                return deepcopy(doc)
        return None

    def find(self, query: dict | None = None) -> InMemoryCursor:
        return InMemoryCursor([doc for doc in self.docs.values() if _matches(doc, query or {})])

    async def count_documents(self, query: dict) -> int:
        return sum(1 for doc in self.docs.values() if _matches(doc, query))

    def _upsert_document(self, query: dict, update: dict) -> dict:
        doc = {k: deepcopy(v) for k, v in query.items() if not (isinstance(v, dict) and v)}
        _apply_update(doc, update, inserting=True)
        doc.setdefault("_id", ObjectId())
        self.docs[doc["_id"]] = doc
        return doc

    async def update_one(self, query: dict, update: dict, upsert: bool = False) -> _UpdateResult:
        for doc in self.docs.values():
            if _matches(doc, query):
                before = deepcopy(doc)
                _apply_update(doc, update, inserting=False)
                return _UpdateResult(matched_count=1, modified_count=int(doc != before))
        if upsert:
            doc = self._upsert_document(query, update)
            return _UpdateResult(matched_count=0, modified_count=0, upserted_id=doc["_id"])
        return _UpdateResult(matched_count=0, modified_count=0)

    async def find_one_and_update(
        self,
        query: dict,
        update: dict,
        upsert: bool = False,
        return_document: ReturnDocument = ReturnDocument.BEFORE,
    ) -> dict | None:
        for doc in self.docs.values():
            if _matches(doc, query):
                before = deepcopy(doc)
                _apply_update(doc, update, inserting=False)
                return deepcopy(doc) if return_document == ReturnDocument.AFTER else before
        if upsert:
            doc = self._upsert_document(query, update)
            return deepcopy(doc) if return_document == ReturnDocument.AFTER else None
        return None


class InMemoryDatabase:
    def __init__(self) -> None:
        self._collections: dict[str, InMemoryCollection] = defaultdict(InMemoryCollection)

    def __getitem__(self, name: str) -> InMemoryCollection:
        return self._collections[name]


class _InMemoryAdmin:
    async def command(self, name: str) -> dict:
        return {"ok": 1.0}


class InMemoryMongoClient:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db
        self.admin = _InMemoryAdmin()

    def __getitem__(self, _name: str) -> InMemoryDatabase:
        return self._db

    def close(self) -> None:
        return None


class InMemoryLock:
    def __init__(self, lock: asyncio.Lock, blocking_timeout: float | None) -> None:
        self._lock = lock
        self._blocking_timeout = blocking_timeout

    async def acquire(self) -> bool:
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self._blocking_timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def release(self) -> None:
        self._lock.release()


class InMemoryRedis:
    def __init__(self) -> None:
        self.locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def lock(self, name: str, timeout: float | None = None, blocking_timeout: float | None = None) -> InMemoryLock:
        return InMemoryLock(self.locks[name], blocking_timeout)

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None


@pytest.fixture
def db() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def redis() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def policy():
    return get_catalog_policy()


@pytest.fixture(autouse=True)
def stub_infrastructure(monkeypatch: pytest.MonkeyPatch, db: InMemoryDatabase, redis: InMemoryRedis) -> None:
    """Route the connection managers to the in-memory MongoDB/Redis doubles."""
    mongo_client = InMemoryMongoClient(db)

    async def _noop_close(cls: type) -> None:
        return None

    monkeypatch.setattr(MongoConnectionManager, "get_client", classmethod(lambda cls: mongo_client))
    monkeypatch.setattr(RedisConnectionManager, "get_client", classmethod(lambda cls: redis))
    monkeypatch.setattr(MongoConnectionManager, "close", classmethod(_noop_close))
    monkeypatch.setattr(RedisConnectionManager, "close", classmethod(_noop_close))


@pytest_asyncio.fixture
async def client(now: datetime):
    app.dependency_overrides[get_now] = lambda: now
    try:
        async with LifespanManager(app):
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
                yield http_client
    finally:
        app.dependency_overrides.clear()
