from contextlib import asynccontextmanager
from typing import AsyncIterator

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorClientSession,
    AsyncIOMotorDatabase,
)
from pymongo import ASCENDING, DESCENDING

from bizhub.utils.logger import Logger
from .settings import settings

logger = Logger("database")


class DatabaseManager:
    """MongoDB connection manager: true singleton."""

    _instance = None
    _client: AsyncIOMotorClient | None = None
    _database: AsyncIOMotorDatabase | None = None
    _connected: bool = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    async def connect(self) -> None:
        if self._connected:
            return
        try:
            self._client = AsyncIOMotorClient(settings.mongodb_atlas_uri)
            self._database = self._client[settings.database_name]
            await self._client.admin.command("ping")
            self._connected = True
            logger.info(f"Connected to MongoDB [{settings.database_name}]")
        except Exception as e:
            self._connected = False
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._connected = False
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    @property
    def database(self) -> AsyncIOMotorDatabase:
        if self._database is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._database

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def ensure_indexes(self) -> None:
        await ensure_indexes(self.database)


# ── Module-level singleton ──────────────────────────────────────
db_manager = DatabaseManager()


async def get_database() -> AsyncIOMotorDatabase:
    """FastAPI dependency: returns the database instance."""
    if not db_manager.is_connected:
        await db_manager.connect()
    return db_manager.database


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """
    Create the indexes that back tenant isolation.

    Every uniqueness rule on a tenant-scoped collection leads with
    tenant_id, so the same name/phone may exist once per tenant.
    """
    await db["tenants"].create_index("subdomain", unique=True, background=True)
    await db["tenants"].create_index("status", background=True)

    await db["users"].create_index("email", unique=True, background=True)

    await db["roles"].create_index(
        [("tenant_id", ASCENDING), ("name", ASCENDING)],
        unique=True,
        background=True,
    )

    # Exactly one active membership per (tenant, user)
    await db["memberships"].create_index(
        [("tenant_id", ASCENDING), ("user_id", ASCENDING)],
        unique=True,
        partialFilterExpression={"status": "active"},
        background=True,
    )
    await db["memberships"].create_index(
        [("tenant_id", ASCENDING), ("role_id", ASCENDING)], background=True
    )

    await db["customers"].create_index(
        [("tenant_id", ASCENDING), ("phone", ASCENDING)],
        unique=True,
        partialFilterExpression={"is_deleted": False},
        background=True,
    )

    await db["audit_logs"].create_index(
        [("tenant_id", ASCENDING), ("timestamp", DESCENDING)], background=True
    )
    await db["audit_logs"].create_index(
        [("tenant_id", ASCENDING), ("resource_id", ASCENDING)], background=True
    )

    await db["sessions"].create_index(
        "expires_at", expireAfterSeconds=0, background=True
    )
    logger.info("Tenant isolation indexes ensured")


@asynccontextmanager
async def transaction(
    db: AsyncIOMotorDatabase,
) -> AsyncIterator[AsyncIOMotorClientSession | None]:
    """
    Run a block of writes atomically.

    Yields the client session to pass as ``session=`` to every write. With
    ``use_transactions`` disabled (standalone dev servers) it yields None
    and the writes run unwrapped.
    """
    if not settings.use_transactions:
        yield None
        return

    async with await db.client.start_session() as session:
        async with session.start_transaction():
            yield session
