"""
Declarative access guards for route handlers.

Usage:
    @router.delete("/{customer_id}")
    @with_permissions(Permission.CUSTOMERS_DELETE)
    async def delete_customer(request: Request, customer_id: str, ...):
        ctx = get_access_context(request)
        ...

Must be applied AFTER (below) the route decorator, and the handler must
take a ``request: Request`` parameter.

Per request the guard runs, in order:
    principal  (bearer token / session cookie; may be None)
    tenant     (header / subdomain / session pin; fail closed)
    decision   (bypass policy, then ANY/ALL over effective permissions)
    payload    (write requests may not name another tenant)
and only then calls the handler. Every outcome, including bypass and
refusals raised before a decision exists, produces one ``access`` log line.

FastAPI validates the handler's declared body, query and dependency
parameters before the guarded endpoint runs, so a malformed request gets
its 422 ahead of any 401/403. Handlers that must not reveal their input
schema to anonymous callers read the body themselves from ``request``.
"""

from dataclasses import dataclass
from functools import wraps
from typing import Optional

from starlette.requests import Request

from bizhub.rbac import (
    NO_BYPASS,
    AccessError,
    AccessServiceError,
    AuthRequired,
    BypassPolicy,
    Decision,
    EffectivePermissions,
    GlobalRole,
    Permission,
    Principal,
)
from bizhub.rbac.engine import PermissionSpec, normalize_required
from bizhub.tenant.resolver import TenantContext
from bizhub.utils import Logger
from .container import get_access_control

logger = Logger("access")


@dataclass(frozen=True)
class AccessPolicy:
    """What a guarded route demands. Attached to the handler as ``__access_policy__``."""

    required: tuple[Permission, ...]
    require_all: bool = False
    bypass: BypassPolicy = NO_BYPASS
    allow_anonymous: bool = False
    global_role: Optional[GlobalRole] = None
    tenant_scoped: bool = True


@dataclass(frozen=True)
class AccessContext:
    """Injected into guarded handlers via ``request.state.access_context``."""

    user: Optional[Principal]
    tenant: Optional[TenantContext]
    permissions: EffectivePermissions
    decision: Optional[Decision] = None

    @property
    def tenant_id(self) -> Optional[str]:
        return self.tenant.id if self.tenant else None

    @property
    def user_id(self) -> Optional[str]:
        return self.user.id if self.user else None


def get_access_context(request: Request) -> AccessContext:
    ctx = getattr(request.state, "access_context", None)
    if ctx is None:
        raise RuntimeError(
            f"{request.method} {request.url.path} reached a handler without an access check"
        )
    return ctx


# ── Helpers ──────────────────────────────────────────────────────
def _find_request(args, kwargs) -> Optional[Request]:
    request = kwargs.get("request")
    if isinstance(request, Request):
        return request
    for arg in args:
        if isinstance(arg, Request):
            return arg
    return None


def _route_label(request: Request) -> str:
    return f"{request.method} {request.url.path}"


def _log_decision(record: dict) -> None:
    line = (
        f"{record['outcome']} | route={record['route']} "
        f"principal={record['principal_id']} role={record['global_role']} "
        f"tenant={record['tenant_id']} logic={record['logic']} "
        f"required={','.join(record['required'])} "
        f"matched={','.join(record['matched'])} "
        f"bypass={record['bypass_policy'] if record['bypass'] else 'no'} "
        f"reason={record['reason']}"
    )
    if record["allowed"]:
        logger.info(line)
    else:
        logger.warning(f"{line} held={','.join(record.get('held', []))}")


def _refusal_record(
    policy: AccessPolicy,
    route: str,
    principal: Optional[Principal],
    tenant: Optional[TenantContext],
    err: AccessError,
) -> dict:
    return {
        "outcome": err.code.lower(),
        "allowed": False,
        "bypass": False,
        "bypass_policy": None,
        "principal_id": principal.id if principal else None,
        "global_role": principal.global_role.value if principal else None,
        "tenant_id": tenant.id if tenant else None,
        "route": route,
        "logic": "ALL" if policy.require_all else "ANY",
        "required": [p.value for p in policy.required],
        "matched": [],
        "reason": err.reason,
    }


def _inject(request: Request, ctx: AccessContext) -> None:
    request.state.user = ctx.user.to_dict() if ctx.user else None
    request.state.principal = ctx.user
    request.state.tenant = ctx.tenant
    request.state.tenant_id = ctx.tenant_id
    request.state.user_permissions = sorted(p.value for p in ctx.permissions.all)
    request.state.access_context = ctx


def _missing_request(func) -> RuntimeError:
    return RuntimeError(
        f"{func.__qualname__} is guarded but takes no `request: Request` parameter"
    )


# ── Guards ───────────────────────────────────────────────────────
def with_permissions(
    required: PermissionSpec,
    require_all: bool = False,
    bypass: BypassPolicy = NO_BYPASS,
    allow_anonymous: bool = False,
):
    """
    Guard a handler with a tenant-scoped permission check.

    ``required`` is one key or several; ANY of them suffices unless
    ``require_all`` is set. Unknown keys raise UnknownPermissionError here,
    at import time of the route module.
    """
    policy = AccessPolicy(
        required=normalize_required(required),
        require_all=require_all,
        bypass=bypass,
        allow_anonymous=allow_anonymous,
    )

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            request = _find_request(args, kwargs)
            if request is None:
                raise _missing_request(func)

            access = get_access_control(request)
            route = _route_label(request)
            principal: Optional[Principal] = None
            tenant: Optional[TenantContext] = None
            decision: Optional[Decision] = None

            try:
                principal = await access.identity.resolve_principal(request)
                tenant = await access.tenants.resolve(
                    request, principal.session_tenant_id if principal else None
                )
                decision = await access.engine.decide(
                    principal,
                    tenant.id,
                    policy.required,
                    require_all=policy.require_all,
                    bypass=policy.bypass,
                    allow_anonymous=policy.allow_anonymous,
                )
                if decision.allowed:
                    await access.tenants.ensure_payload_matches(request, tenant.id)
            except AccessError as err:
                _log_decision(_refusal_record(policy, route, principal, tenant, err))
                return err.to_response()
            except Exception as exc:
                logger.exception(f"Access check crashed on {route}")
                err = AccessServiceError(reason=f"access check failed: {exc}")
                _log_decision(_refusal_record(policy, route, principal, tenant, err))
                return err.to_response()

            _log_decision(decision.audit_record(route))
            if not decision.allowed:
                return decision.to_error().to_response()

            _inject(
                request,
                AccessContext(
                    user=principal,
                    tenant=tenant,
                    permissions=decision.permissions or EffectivePermissions.empty(),
                    decision=decision,
                ),
            )
            return await func(*args, **kwargs)

        wrapper.__access_policy__ = policy
        return wrapper

    return decorator


def with_global_role(role: GlobalRole):
    """
    Guard a platform-level handler that acts across tenants.

    Only principals whose global role is at least ``role`` get through; no
    tenant is resolved and no tenant permission applies.
    """
    policy = AccessPolicy(required=(), global_role=role, tenant_scoped=False)

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            request = _find_request(args, kwargs)
            if request is None:
                raise _missing_request(func)

            access = get_access_control(request)
            route = _route_label(request)
            principal: Optional[Principal] = None

            try:
                principal = await access.identity.resolve_principal(request)
                if principal is None:
                    raise AuthRequired(reason="no authenticated principal")
                if not principal.global_role.at_least(role):
                    raise AccessError(
                        message="Access denied. Platform administrator role required",
                        reason=f"global role {principal.global_role.value} below {role.value}",
                    )
            except AccessError as err:
                _log_decision(_refusal_record(policy, route, principal, None, err))
                return err.to_response()

            logger.info(
                f"granted | route={route} principal={principal.id} "
                f"role={principal.global_role.value} tenant=None "
                f"reason=global role {principal.global_role.value} >= {role.value}"
            )
            _inject(
                request,
                AccessContext(
                    user=principal,
                    tenant=None,
                    permissions=EffectivePermissions.full_catalog()
                    if principal.global_role.is_highest
                    else EffectivePermissions.empty(),
                ),
            )
            return await func(*args, **kwargs)

        wrapper.__access_policy__ = policy
        return wrapper

    return decorator
