"""
BizHub Business Suite: Main application.

Assembles all packages: config, access control, auth, tenants, roles,
memberships, customers, audit.
"""

import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from bizhub.config import settings, db_manager
from bizhub.middleware import AccessControl, verify_route_guards
from bizhub.rbac import AccessError
from bizhub.utils import Logger, error_response

# ── Route imports ────────────────────────────────────────────────
from bizhub.auth import auth_router
from bizhub.tenants import setup_router, tenants_router
from bizhub.roles import roles_router
from bizhub.memberships import memberships_router
from bizhub.customers import customers_router
from bizhub.audit import audit_router

logger = Logger("request")


# ── Request Logging Middleware ───────────────────────────────────
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request: method, path, status code, and duration."""

    async def dispatch(self, request: Request, call_next):
        start = time.time()
        method = request.method
        path = request.url.path
        client = request.client.host if request.client else "unknown"

        logger.info(f"--> {method} {path} (from {client})")

        try:
            response = await call_next(request)
        except Exception as exc:
            duration = round((time.time() - start) * 1000, 2)
            logger.error(f"<-- {method} {path} | 500 | {duration}ms")
            logger.error(f"    Exception: {exc}")
            raise

        duration = round((time.time() - start) * 1000, 2)
        status = response.status_code

        if status >= 500:
            logger.error(f"<-- {method} {path} | {status} | {duration}ms")
        elif status >= 400:
            logger.warning(f"<-- {method} {path} | {status} | {duration}ms")
        else:
            logger.info(f"<-- {method} {path} | {status} | {duration}ms")

        return response


# ── Lifespan ─────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    owns_access = getattr(app.state, "access", None) is None
    if owns_access:
        await db_manager.connect()
        await db_manager.ensure_indexes()
        app.state.access = AccessControl(db_manager.database)
    yield
    app.state.access.close()
    if owns_access:
        app.state.access = None
        db_manager.close()


# ── App factory ──────────────────────────────────────────────────
def create_app(access: Optional[AccessControl] = None) -> FastAPI:
    """
    Build the application.

    ``access`` injects a ready AccessControl (tests); otherwise one is built
    on the real database during startup.
    """
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Multi-tenant business suite with tenant-scoped access control",
        docs_url="/api/docs",
        lifespan=lifespan,
    )
    app.state.access = access

    # ── CORS (must be first) ─────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allowed_methods,
        allow_headers=settings.cors_allowed_headers,
    )

    # ── Request logging (runs on every request) ──────────────
    app.add_middleware(RequestLoggingMiddleware)

    # ── Exception handlers ───────────────────────────────────
    @app.exception_handler(AccessError)
    async def access_error_handler(request: Request, exc: AccessError):
        logger.warning(
            f"{exc.code} on {request.method} {request.url.path}: {exc.reason}"
        )
        return exc.to_response()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if isinstance(exc.detail, dict):
            details = {k: v for k, v in exc.detail.items() if k != "message"}
            message = exc.detail.get("message", "Request failed")
        else:
            details, message = None, str(exc.detail)
        return error_response(
            message=message,
            status_code=exc.status_code,
            details=details or None,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return error_response(
            message="Validation error",
            status_code=422,
            code="VALIDATION_ERROR",
            details={"errors": jsonable_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.method} {request.url.path}:")
        logger.error(traceback.format_exc())
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": {
                    "code": 500,
                    "message": str(exc) if settings.debug else "Internal server error",
                },
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    # ── Routes ───────────────────────────────────────────────
    v = settings.api_version  # "v1"

    app.include_router(
        auth_router,
        prefix=f"/api/{v}/auth",
        tags=["Authentication"],
    )
    app.include_router(
        setup_router,
        prefix=f"/base/api/{v}",
        tags=["Tenant Setup"],
    )
    app.include_router(
        tenants_router,
        prefix=f"/api/{v}/tenants",
        tags=["Tenants"],
    )
    app.include_router(
        roles_router,
        prefix=f"/api/{v}/roles",
        tags=["Roles & Permissions"],
    )
    app.include_router(
        memberships_router,
        prefix=f"/api/{v}/memberships",
        tags=["Staff Memberships"],
    )
    app.include_router(
        customers_router,
        prefix=f"/api/{v}/customers",
        tags=["Customers"],
    )
    app.include_router(
        audit_router,
        prefix=f"/api/{v}/audit-logs",
        tags=["Audit Logs"],
    )

    # ── Health check ─────────────────────────────────────────
    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "app": settings.app_name,
            "version": settings.app_version,
            "database": db_manager.is_connected,
        }

    verify_route_guards(app)
    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


# ── Create the app instance ──────────────────────────────────────
app = create_app()
