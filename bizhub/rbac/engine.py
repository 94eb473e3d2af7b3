"""
Access decision engine.

Per request the engine answers one question: may this principal, inside
this tenant, do something that requires these permissions?

    no principal                → AUTH_REQUIRED (unless the route allows anonymous)
    role in the bypass policy   → allow, tagged as bypass
    otherwise                   → resolve effective permissions, then
                                  ANY (default) or ALL of the required keys

A Decision carries the full diagnostic picture for the audit log. Only
``Decision.to_error()`` is meant for clients, and it never includes the
caller's own permission set.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Union

from .context import Principal
from .errors import AccessError, AccessServiceError, AuthRequired, InsufficientPermissions
from .permissions import Permission, parse_permissions
from .resolver import EffectivePermissions, PermissionResolver
from .roles import NO_BYPASS, BypassPolicy

PermissionSpec = Union[str, Permission, Iterable[Union[str, Permission]]]


class DecisionOutcome(str, Enum):
    GRANTED = "granted"
    BYPASS = "bypass"
    ANONYMOUS = "anonymous"
    AUTH_REQUIRED = "auth_required"
    INSUFFICIENT_PERMISSIONS = "insufficient_permissions"
    SERVICE_ERROR = "service_error"


def normalize_required(required: PermissionSpec) -> tuple[Permission, ...]:
    """Single key or collection of keys -> ordered, de-duplicated tuple."""
    if isinstance(required, (str, Permission)):
        keys = [required]
    else:
        keys = list(required)
    if not keys:
        raise ValueError("At least one required permission must be given")
    parsed = parse_permissions(keys)
    ordered = []
    for key in keys:
        perm = Permission(key)
        if perm in parsed and perm not in ordered:
            ordered.append(perm)
    return tuple(ordered)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    outcome: DecisionOutcome
    required: tuple[Permission, ...]
    require_all: bool
    tenant_id: Optional[str]
    principal: Optional[Principal] = None
    permissions: Optional[EffectivePermissions] = None
    matched: frozenset[Permission] = field(default_factory=frozenset)
    bypass_policy: Optional[str] = None
    reason: str = ""

    @property
    def is_bypass(self) -> bool:
        return self.outcome is DecisionOutcome.BYPASS

    @property
    def missing(self) -> tuple[Permission, ...]:
        return tuple(p for p in self.required if p not in self.matched)

    def to_error(self) -> Optional[AccessError]:
        """Client-facing error for a denial; None when allowed."""
        if self.allowed:
            return None
        if self.outcome is DecisionOutcome.AUTH_REQUIRED:
            return AuthRequired(reason=self.reason)
        if self.outcome is DecisionOutcome.SERVICE_ERROR:
            return AccessServiceError(reason=self.reason)
        return InsufficientPermissions(
            [p.value for p in self.required], require_all=self.require_all
        )

    def audit_record(self, route: Optional[str] = None) -> dict:
        """Everything worth keeping about this decision. Server-side only."""
        principal = self.principal
        return {
            "outcome": self.outcome.value,
            "allowed": self.allowed,
            "bypass": self.is_bypass,
            "bypass_policy": self.bypass_policy,
            "principal_id": principal.id if principal else None,
            "global_role": principal.global_role.value if principal else None,
            "tenant_id": self.tenant_id,
            "route": route,
            "logic": "ALL" if self.require_all else "ANY",
            "required": [p.value for p in self.required],
            "matched": sorted(p.value for p in self.matched),
            "held": sorted(p.value for p in self.permissions.all) if self.permissions else [],
            "role_id": self.permissions.role_id if self.permissions else None,
            "reason": self.reason,
        }


class AccessDecisionEngine:
    def __init__(self, resolver: PermissionResolver):
        self.resolver = resolver

    async def decide(
        self,
        principal: Optional[Principal],
        tenant_id: Optional[str],
        required: PermissionSpec,
        require_all: bool = False,
        bypass: BypassPolicy = NO_BYPASS,
        allow_anonymous: bool = False,
    ) -> Decision:
        required_perms = normalize_required(required)
        base = dict(required=required_perms, require_all=require_all, tenant_id=tenant_id)

        # ── Unauthenticated ──────────────────────────────────
        if principal is None:
            if allow_anonymous:
                return Decision(
                    allowed=True,
                    outcome=DecisionOutcome.ANONYMOUS,
                    reason="anonymous access allowed by route",
                    **base,
                )
            return Decision(
                allowed=False,
                outcome=DecisionOutcome.AUTH_REQUIRED,
                reason="no authenticated principal",
                **base,
            )

        # ── Bypass policy ────────────────────────────────────
        if bypass.applies_to(principal.global_role):
            return Decision(
                allowed=True,
                outcome=DecisionOutcome.BYPASS,
                principal=principal,
                permissions=EffectivePermissions.full_catalog(),
                matched=frozenset(required_perms),
                bypass_policy=bypass.name,
                reason=f"global role {principal.global_role.value} in policy {bypass.name}",
                **base,
            )

        if tenant_id is None:
            return Decision(
                allowed=False,
                outcome=DecisionOutcome.INSUFFICIENT_PERMISSIONS,
                principal=principal,
                reason="no tenant to resolve permissions in",
                **base,
            )

        # ── Resolved permissions ─────────────────────────────
        try:
            effective = await self.resolver.resolve(
                principal.id, tenant_id, principal.global_role
            )
        except AccessServiceError as exc:
            return Decision(
                allowed=False,
                outcome=DecisionOutcome.SERVICE_ERROR,
                principal=principal,
                reason=exc.reason,
                **base,
            )

        matched = frozenset(p for p in required_perms if effective.has(p))
        if require_all:
            allowed = len(matched) == len(required_perms)
        else:
            allowed = bool(matched)

        if allowed:
            outcome = DecisionOutcome.BYPASS if effective.bypass else DecisionOutcome.GRANTED
            reason = (
                "top global role granted full catalog"
                if effective.bypass
                else f"role {effective.role_name or effective.role_id} plus custom permissions"
            )
        else:
            outcome = DecisionOutcome.INSUFFICIENT_PERMISSIONS
            reason = (
                "no active membership in tenant"
                if not effective.has_membership and not effective.bypass
                else "missing required permissions"
            )

        return Decision(
            allowed=allowed,
            outcome=outcome,
            principal=principal,
            permissions=effective,
            matched=matched,
            reason=reason,
            **base,
        )
