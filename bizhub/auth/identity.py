"""
Principal resolution from trusted credentials.

Accepted credentials, in order:
  1. ``Authorization: Bearer <token>``
  2. the HTTP-only session cookie set at login

A missing, malformed, forged, expired or revoked credential yields None;
the reason goes to the server log only. Whether None is acceptable is the
decision engine's call. Storage failures are not credential problems and
raise AccessServiceError.
"""

from typing import Optional

from starlette.requests import Request

from bizhub.config import settings
from bizhub.rbac import AccessServiceError, AccessStore, GlobalRole, Principal
from bizhub.utils import Logger
from .helpers import InvalidToken, decode_session_token
from .sessions import SessionStore

logger = Logger("auth")


def extract_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    if auth_header:
        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
        return None
    return request.cookies.get(settings.session_cookie_name)


class IdentityProvider:
    def __init__(self, store: AccessStore, sessions: SessionStore):
        self.store = store
        self.sessions = sessions

    async def resolve_principal(self, request: Request) -> Optional[Principal]:
        token = extract_token(request)
        if token is None:
            return None

        try:
            claims = decode_session_token(token)
        except InvalidToken as exc:
            logger.warning(f"Rejected credential on {request.url.path}: {exc}")
            return None

        try:
            session = await self.sessions.get_active(claims["sid"])
            if session is None or session.get("user_id") != claims["sub"]:
                logger.warning(f"Rejected credential on {request.url.path}: session not active")
                return None

            user = await self.store.get_user(claims["sub"])
        except Exception as exc:
            logger.exception(f"Identity lookup failed on {request.url.path}")
            raise AccessServiceError(reason=f"identity lookup failed: {exc}") from exc

        if user is None or not user.get("is_active", True):
            logger.warning(
                f"Rejected credential on {request.url.path}: user {claims['sub']} missing or inactive"
            )
            return None

        return Principal(
            id=str(user["_id"]),
            email=user.get("email", ""),
            name=user.get("name", ""),
            global_role=GlobalRole.parse(user.get("global_role")),
            session_id=session["_id"],
            session_tenant_id=session.get("tenant_id"),
        )
