"""Low-level auth helpers: password hashing + session token encode/decode."""

import secrets
import string
from datetime import datetime

from passlib.context import CryptContext
from jose import JWTError, jwt

from bizhub.config import settings

# ── Password hashing ────────────────────────────────────────────
_pwd_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(plain: str) -> str:
    return _pwd_ctx.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    return _pwd_ctx.verify(plain, hashed)


def generate_temp_password(length: int = 12) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


# ── Session tokens ──────────────────────────────────────────────
class InvalidToken(Exception):
    """Token failed signature, expiry or shape checks. Never shown to clients."""


def create_session_token(
    user_id: str,
    session_id: str,
    tenant_id: str | None,
    expires_at: datetime,
) -> str:
    """
    Signed JWT pointing at a server-side session.

    Payload: sub (user id), sid (session id), tid (pinned tenant), exp.
    The token alone never authenticates anyone; the session it names must
    still exist and be valid.
    """
    payload = {
        "sub": user_id,
        "sid": session_id,
        "tid": tenant_id,
        "exp": expires_at,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_session_token(token: str) -> dict:
    """Decode and verify a session JWT. Raises InvalidToken on failure."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as exc:
        raise InvalidToken(str(exc)) from exc

    if not payload.get("sub") or not payload.get("sid"):
        raise InvalidToken("token is missing sub or sid")
    return payload
