"""
Server-side session store.

A session document is the source of truth for authentication:
    {_id: sid, user_id, tenant_id, created_at, expires_at, revoked}

Expiry is checked against the injected clock, not the database TTL index
(which only garbage-collects old documents).
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from motor.motor_asyncio import AsyncIOMotorCollection

from bizhub.utils import Logger

logger = Logger("auth")

UtcClock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    # Mongo hands back naive UTC datetimes unless the client is tz_aware
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SessionStore:
    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        ttl: timedelta,
        clock: UtcClock = utcnow,
    ):
        self.collection = collection
        self.ttl = ttl
        self.clock = clock

    async def create(self, user_id: str, tenant_id: Optional[str]) -> dict:
        now = self.clock()
        session = {
            "_id": secrets.token_urlsafe(32),
            "user_id": user_id,
            "tenant_id": tenant_id,
            "created_at": now,
            "expires_at": now + self.ttl,
            "revoked": False,
        }
        await self.collection.insert_one(session)
        logger.info(f"Session opened for user {user_id} in tenant {tenant_id}")
        return session

    async def get_active(self, session_id: str) -> Optional[dict]:
        """The session if it exists, is not revoked and has not expired."""
        session = await self.collection.find_one({"_id": session_id})
        if session is None:
            logger.debug("Session lookup: unknown session id")
            return None
        if session.get("revoked"):
            logger.debug(f"Session lookup: session of user {session.get('user_id')} is revoked")
            return None
        expires_at = session.get("expires_at")
        if expires_at is None or _aware(expires_at) <= self.clock():
            logger.debug(f"Session lookup: session of user {session.get('user_id')} has expired")
            return None
        return session

    async def revoke(self, session_id: str) -> bool:
        result = await self.collection.update_one(
            {"_id": session_id, "revoked": False},
            {"$set": {"revoked": True, "revoked_at": self.clock()}},
        )
        return result.modified_count > 0

    async def revoke_user(self, user_id: str, tenant_id: Optional[str] = None) -> int:
        """Revoke every open session of a user, optionally only those pinned to one tenant."""
        query: dict = {"user_id": user_id, "revoked": False}
        if tenant_id is not None:
            query["tenant_id"] = tenant_id
        result = await self.collection.update_many(
            query, {"$set": {"revoked": True, "revoked_at": self.clock()}}
        )
        return result.modified_count
