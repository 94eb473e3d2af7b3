from .helpers import (
    InvalidToken,
    create_session_token,
    decode_session_token,
    generate_temp_password,
    hash_password,
    verify_password,
)
from .sessions import SessionStore, utcnow
from .identity import IdentityProvider, extract_token
from .routes import auth_router

__all__ = [
    "InvalidToken",
    "create_session_token",
    "decode_session_token",
    "generate_temp_password",
    "hash_password",
    "verify_password",
    "SessionStore",
    "utcnow",
    "IdentityProvider",
    "extract_token",
    "auth_router",
]
