"""
Tenant resolution.

The acting tenant comes from transport or session context only:
  1. explicit tenant header            (X-Tenant-ID: <tenant id>)
  2. subdomain of the Host header      (acme.bizhub.local → "acme")
  3. tenant pinned by the session      (chosen at login)

When several sources are present they must agree. When none is present the
request is refused; there is no fallback tenant. A tenant id supplied in a
write request's query string or JSON body is never used for resolution and
must match the resolved tenant.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from starlette.requests import Request

from bizhub.cache import TTLCache
from bizhub.config import settings
from bizhub.rbac.errors import (
    AccessServiceError,
    TenantInactive,
    TenantMismatch,
    TenantNotFound,
)
from bizhub.rbac.store import AccessStore
from bizhub.utils import Logger

logger = Logger("tenant")

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
PAYLOAD_TENANT_KEYS = ("tenant_id", "tenantId")
FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class TenantStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    ARCHIVED = "archived"


class TenantPlan(str, Enum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


@dataclass(frozen=True)
class TenantContext:
    id: str
    subdomain: str
    name: str
    status: TenantStatus
    plan: str
    source: str

    @classmethod
    def from_doc(cls, doc: dict, source: str) -> "TenantContext":
        try:
            tenant_status = TenantStatus(doc.get("status"))
        except ValueError:
            tenant_status = TenantStatus.INACTIVE
        return cls(
            id=str(doc["_id"]),
            subdomain=doc.get("subdomain", ""),
            name=doc.get("name", ""),
            status=tenant_status,
            plan=doc.get("plan", TenantPlan.FREE.value),
            source=source,
        )

    @property
    def is_active(self) -> bool:
        return self.status is TenantStatus.ACTIVE


def extract_subdomain(host: str | None, root_domain: str) -> Optional[str]:
    """
    Subdomain of ``host`` relative to ``root_domain``.

    "acme.bizhub.local:8000" → "acme"; the bare root domain, "www." and
    plain localhost yield None. "acme.localhost" works for development.
    """
    if not host:
        return None
    hostname = host.split(":")[0].strip().lower()
    root = root_domain.split(":")[0].strip().lower()

    if hostname.endswith(".localhost"):
        sub = hostname[: -len(".localhost")]
        return sub or None
    if hostname in ("localhost", "127.0.0.1"):
        return None

    if hostname in (root, f"www.{root}") or not hostname.endswith(f".{root}"):
        return None
    sub = hostname[: -len(root) - 1]
    return sub or None


class TenantResolver:
    def __init__(self, store: AccessStore, cache: TTLCache):
        self.store = store
        self.cache = cache

    # ── Lookups (cached) ─────────────────────────────────────
    async def _lookup(self, key: tuple[str, str]) -> Optional[dict]:
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        kind, value = key
        try:
            if kind == "id":
                doc = await self.store.get_tenant(value)
            else:
                doc = await self.store.get_tenant_by_subdomain(value)
        except Exception as exc:
            logger.exception(f"Tenant lookup failed for {kind}={value}")
            raise AccessServiceError(reason=f"tenant lookup failed: {exc}") from exc

        if doc is not None:
            snapshot = {k: v for k, v in doc.items() if k in ("_id", "subdomain", "name", "status", "plan")}
            self.cache.set(("id", str(doc["_id"])), snapshot)
            if doc.get("subdomain"):
                self.cache.set(("subdomain", doc["subdomain"]), snapshot)
            return snapshot
        return None

    def invalidate(self, tenant_id: str | None = None, subdomain: str | None = None) -> None:
        """Drop cached lookups; call on any tenant status/subdomain change."""
        if tenant_id:
            self.cache.invalidate(("id", str(tenant_id)))
        if subdomain:
            self.cache.invalidate(("subdomain", subdomain))

    # ── Resolution ───────────────────────────────────────────
    async def resolve(
        self,
        request: Request,
        session_tenant_id: Optional[str] = None,
    ) -> TenantContext:
        candidates: list[tuple[str, tuple[str, str]]] = []

        header_value = request.headers.get(settings.tenant_header)
        if header_value:
            candidates.append(("header", ("id", header_value.strip())))

        subdomain = extract_subdomain(request.headers.get("host"), settings.root_domain)
        if subdomain:
            candidates.append(("subdomain", ("subdomain", subdomain)))

        if session_tenant_id:
            candidates.append(("session", ("id", session_tenant_id)))

        if not candidates:
            raise TenantNotFound(reason="request carries no tenant identifier")

        resolved: Optional[TenantContext] = None
        for source, key in candidates:
            doc = await self._lookup(key)
            if doc is None:
                raise TenantNotFound(reason=f"no tenant for {source} {key[1]!r}")
            ctx = TenantContext.from_doc(doc, source)
            if resolved is None:
                resolved = ctx
            elif ctx.id != resolved.id:
                logger.warning(
                    f"Tenant sources disagree: {resolved.source}={resolved.id} "
                    f"vs {source}={ctx.id} on {request.method} {request.url.path}"
                )
                raise TenantMismatch(reason=f"{resolved.source} and {source} resolve to different tenants")

        if not resolved.is_active:
            raise TenantInactive(reason=f"tenant {resolved.id} is {resolved.status.value}")

        return resolved

    async def ensure_payload_matches(self, request: Request, tenant_id: str) -> None:
        """
        Reject write requests whose query string or body names another tenant.

        Any body not declared as a form is read as JSON whatever its
        Content-Type says: some FastAPI versions parse a header-less body as
        JSON before the handler sees it. A body that does not decode carries
        no tenant claim and is left to request validation.
        """
        if request.method not in WRITE_METHODS:
            return

        claimed: list[Any] = [
            request.query_params[k] for k in PAYLOAD_TENANT_KEYS if k in request.query_params
        ]

        content_type = request.headers.get("content-type", "").lower()
        if not content_type.startswith(FORM_CONTENT_TYPES):
            raw = await request.body()
            if raw:
                try:
                    payload = json.loads(raw)
                except ValueError:
                    payload = None
                items = payload if isinstance(payload, list) else [payload]
                for item in items:
                    if isinstance(item, dict):
                        claimed.extend(item[k] for k in PAYLOAD_TENANT_KEYS if k in item)

        for value in claimed:
            if str(value) != tenant_id:
                logger.warning(
                    f"Tenant confusion blocked: payload tenant {value!r} != resolved {tenant_id} "
                    f"on {request.method} {request.url.path}"
                )
                raise TenantMismatch(reason=f"payload tenant {value!r} differs from {tenant_id}")
