from fastapi import APIRouter, Depends, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from bizhub.config import get_database, settings
from bizhub.rbac import AuthRequired
from bizhub.utils import success_response
from .helpers import InvalidToken, decode_session_token
from .identity import extract_token
from .schemas import LoginRequest
from .service import AuthService

auth_router = APIRouter()


@auth_router.post("/login")
async def login(
    request: Request,
    body: LoginRequest,
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """Authenticate a user into one tenant; returns a session token and sets the session cookie."""
    svc = AuthService(db, request.app.state.access.sessions)
    result = await svc.authenticate(
        identifier=body.identifier,
        password=body.password,
        subdomain=body.subdomain,
    )
    response = success_response(data=result, message="Login successful")
    response.set_cookie(
        key=settings.session_cookie_name,
        value=result["access_token"],
        max_age=settings.session_ttl_minutes * 60,
        httponly=True,
        secure=settings.environment == "production",
        samesite="lax",
    )
    return response


@auth_router.post("/logout")
async def logout(
    request: Request,
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """Revoke the current session and clear the session cookie."""
    token = extract_token(request)
    if token is None:
        raise AuthRequired(reason="logout without credential")
    try:
        claims = decode_session_token(token)
    except InvalidToken as exc:
        raise AuthRequired(reason=f"logout with invalid credential: {exc}") from exc

    svc = AuthService(db, request.app.state.access.sessions)
    await svc.logout(claims["sid"])

    response = success_response(message="Logged out")
    response.delete_cookie(settings.session_cookie_name)
    return response


@auth_router.get("/me")
async def me(request: Request):
    """Current principal; 401 when the request carries no valid session."""
    principal = await request.app.state.access.identity.resolve_principal(request)
    if principal is None:
        raise AuthRequired(reason="no principal on /me")
    data = principal.to_dict()
    data["session_tenant_id"] = principal.session_tenant_id
    return success_response(data=data)
