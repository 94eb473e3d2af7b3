"""
AccessControl: the dependency-injection root of the access-control core.

One instance per application, created in the lifespan handler and stored
on ``app.state.access``. It owns the tenant cache and the session store,
so their lifecycle (creation, invalidation, teardown) is tied to the app
rather than to module import.
"""

import time
from datetime import timedelta
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from starlette.requests import Request

from bizhub.auth.identity import IdentityProvider
from bizhub.auth.sessions import SessionStore, UtcClock, utcnow
from bizhub.cache import Clock, TTLCache
from bizhub.config import settings
from bizhub.rbac import (
    AccessDecisionEngine,
    AccessStore,
    PermissionResolver,
    SystemRoleGuard,
)
from bizhub.tenant.resolver import TenantResolver
from bizhub.utils import Logger

logger = Logger("access")


class AccessControl:
    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        store: Optional[AccessStore] = None,
        clock: Clock = time.monotonic,
        utc_clock: UtcClock = utcnow,
    ):
        self.db = db
        self.store = store or AccessStore(db)

        self.tenant_cache = TTLCache(
            ttl=settings.tenant_cache_ttl_seconds,
            max_entries=settings.tenant_cache_max_entries,
            clock=clock,
        )
        self.sessions = SessionStore(
            db["sessions"],
            ttl=timedelta(minutes=settings.session_ttl_minutes),
            clock=utc_clock,
        )

        self.identity = IdentityProvider(self.store, self.sessions)
        self.tenants = TenantResolver(self.store, self.tenant_cache)
        self.permissions = PermissionResolver(self.store)
        self.engine = AccessDecisionEngine(self.permissions)
        self.role_guard = SystemRoleGuard(self.store)

        logger.info(
            f"Access control ready (tenant cache ttl={settings.tenant_cache_ttl_seconds}s, "
            f"session ttl={settings.session_ttl_minutes}m)"
        )

    def close(self) -> None:
        self.tenant_cache.clear()


def get_access_control(request: Request) -> AccessControl:
    """FastAPI dependency: returns the app's AccessControl instance."""
    access = getattr(request.app.state, "access", None)
    if access is None:
        raise RuntimeError("AccessControl not initialised. Is the app lifespan running?")
    return access
