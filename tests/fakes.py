"""
In-memory stand-ins for the Motor collections the app talks to.

Only the query surface the services use is supported: equality, $ne, $in,
$gte, $lte, $regex (with $options "i") and a top-level $or; $set/$unset
updates; find() cursors with sort/skip/limit.
"""

import copy
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from bson import ObjectId

from bizhub.rbac import AccessStore


# ── Results ──────────────────────────────────────────────────────
@dataclass
class InsertOneResult:
    inserted_id: Any


@dataclass
class InsertManyResult:
    inserted_ids: list


@dataclass
class UpdateResult:
    matched_count: int
    modified_count: int


@dataclass
class DeleteResult:
    deleted_count: int


# ── Matching ─────────────────────────────────────────────────────
_MISSING = object()


def _match_value(actual: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        for op, expected in condition.items():
            if op == "$ne":
                if actual is not _MISSING and actual == expected:
                    return False
            elif op == "$in":
                if actual is _MISSING or actual not in expected:
                    return False
            elif op == "$gte":
                if actual is _MISSING or actual is None or actual < expected:
                    return False
            elif op == "$lte":
                if actual is _MISSING or actual is None or actual > expected:
                    return False
            elif op == "$regex":
                flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
                if not isinstance(actual, str) or not re.search(expected, actual, flags):
                    return False
            elif op == "$options":
                continue
            else:
                raise NotImplementedError(f"operator {op} not supported by fake")
        return True
    if actual is _MISSING:
        return condition is None
    return actual == condition


def matches(doc: dict, query: Optional[dict]) -> bool:
    for key, condition in (query or {}).items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
            continue
        if not _match_value(doc.get(key, _MISSING), condition):
            return False
    return True


def _project(doc: dict, projection: Optional[dict]) -> dict:
    doc = copy.deepcopy(doc)
    if not projection:
        return doc
    if all(not v for v in projection.values()):
        for key in projection:
            doc.pop(key, None)
        return doc
    keep = {k for k, v in projection.items() if v}
    keep.add("_id")
    return {k: v for k, v in doc.items() if k in keep}


def _apply_update(doc: dict, update: dict) -> bool:
    before = copy.deepcopy(doc)
    for key, value in update.get("$set", {}).items():
        doc[key] = copy.deepcopy(value)
    for key in update.get("$unset", {}):
        doc.pop(key, None)
    return doc != before


# ── Cursor / Collection / Database ───────────────────────────────
class FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs
        self._skip = 0
        self._limit = 0

    def sort(self, key, direction=1):
        def sort_key(doc):
            value = doc.get(key)
            return (value is None, value if value is not None else 0)

        self._docs = sorted(self._docs, key=sort_key, reverse=direction == -1)
        return self

    def skip(self, n: int):
        self._skip = n
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    def _window(self) -> list[dict]:
        docs = self._docs[self._skip:]
        return docs[: self._limit] if self._limit else docs

    def __aiter__(self):
        self._iter = iter(self._window())
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration from None

    async def to_list(self, length=None):
        docs = self._window()
        return docs[:length] if length else docs


class FakeCollection:
    def __init__(self, name: str):
        self.name = name
        self.docs: list[dict] = []

    # Synchronous seeding for tests
    def seed(self, doc: dict) -> dict:
        doc.setdefault("_id", ObjectId())
        self.docs.append(copy.deepcopy(doc))
        return doc

    def _matching(self, query: Optional[dict]) -> list[dict]:
        return [d for d in self.docs if matches(d, query)]

    async def find_one(self, filter=None, projection=None, **kwargs):
        found = self._matching(filter)
        return _project(found[0], projection) if found else None

    def find(self, filter=None, projection=None, **kwargs):
        return FakeCursor([_project(d, projection) for d in self._matching(filter)])

    async def count_documents(self, filter=None, **kwargs) -> int:
        return len(self._matching(filter))

    async def insert_one(self, document: dict, **kwargs):
        document.setdefault("_id", ObjectId())
        self.docs.append(copy.deepcopy(document))
        return InsertOneResult(document["_id"])

    async def insert_many(self, documents: list[dict], **kwargs):
        ids = [(await self.insert_one(doc)).inserted_id for doc in documents]
        return InsertManyResult(ids)

    async def update_one(self, filter, update, **kwargs):
        found = self._matching(filter)
        if not found:
            return UpdateResult(0, 0)
        return UpdateResult(1, int(_apply_update(found[0], update)))

    async def update_many(self, filter, update, **kwargs):
        found = self._matching(filter)
        modified = sum(int(_apply_update(doc, update)) for doc in found)
        return UpdateResult(len(found), modified)

    async def find_one_and_update(self, filter, update, return_document=False, **kwargs):
        found = self._matching(filter)
        if not found:
            return None
        before = copy.deepcopy(found[0])
        _apply_update(found[0], update)
        return copy.deepcopy(found[0]) if return_document else before

    async def delete_one(self, filter, **kwargs):
        found = self._matching(filter)
        if found:
            self.docs.remove(found[0])
        return DeleteResult(len(found[:1]))

    async def create_index(self, *args, **kwargs):
        return "fake_index"


class FakeDatabase:
    def __init__(self):
        self._collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]


class FakeAccessStore(AccessStore):
    """AccessStore whose membership/role join runs in Python instead of $lookup."""

    def __init__(self, db: FakeDatabase):
        super().__init__(db)
        self.grant_lookups = 0

    async def get_membership_grants(self, user_id: str, tenant_id: str) -> Optional[dict]:
        self.grant_lookups += 1
        membership = await self.memberships.find_one(
            {"user_id": user_id, "tenant_id": tenant_id, "status": "active"}
        )
        if membership is None:
            return None
        role = await self.get_role(membership["role_id"], tenant_id)
        if role is None:
            return None
        return {
            "membership_id": str(membership["_id"]),
            "role_id": membership["role_id"],
            "role_name": role.get("name"),
            "role_active": role.get("is_active", True),
            "role_permissions": role.get("permissions", []),
            "is_system_role": role.get("is_system_role", False),
            "custom_permissions": membership.get("custom_permissions", []),
        }


# ── Clocks ───────────────────────────────────────────────────────
class FakeClock:
    """Monotonic clock for TTL caches."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUtcClock:
    """Wall clock for sessions; starts at the real time so JWT exp stays valid."""

    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


def make_request(
    method: str = "GET",
    path: str = "/api/v1/customers/",
    headers: Optional[dict] = None,
    query_string: bytes = b"",
    body: bytes = b"",
):
    """A bare Starlette request for exercising resolvers outside the app."""
    from starlette.requests import Request

    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "scheme": "http",
        "server": ("testserver", 80),
        "client": ("127.0.0.1", 50000),
        "query_string": query_string,
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
    }

    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)
