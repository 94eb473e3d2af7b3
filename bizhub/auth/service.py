"""Authentication service: login into one tenant, logout."""

from fastapi import HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from bizhub.rbac import GlobalRole, TenantAccessDenied
from bizhub.tenant import TenantStatus, get_global_collection
from bizhub.utils import Logger, serialize_mongo_doc
from .helpers import create_session_token, verify_password
from .sessions import SessionStore

logger = Logger("auth")


class AuthService:
    def __init__(self, db: AsyncIOMotorDatabase, sessions: SessionStore):
        self.db = db
        self.sessions = sessions

    async def authenticate(self, identifier: str, password: str, subdomain: str) -> dict:
        """
        1. Verify the tenant exists and is active.
        2. Look up the user in the global `users` collection.
        3. Verify password and tenant membership.
        4. Open a server-side session and return a token pointing at it.
        """
        # ── 1. Check tenant ──────────────────────────────────────
        tenants = get_global_collection(self.db, "tenants")
        tenant = await tenants.find_one({"subdomain": subdomain.strip().lower()})
        if not tenant or tenant.get("status") != TenantStatus.ACTIVE.value:
            logger.warning(f"Login refused: tenant {subdomain!r} unknown or not active")
            raise TenantAccessDenied(reason=f"login into unknown/inactive tenant {subdomain!r}")
        tenant_id = str(tenant["_id"])

        # ── 2. Find user ─────────────────────────────────────────
        users = get_global_collection(self.db, "users")
        user = await users.find_one({"email": identifier.strip().lower()})
        if not user or not verify_password(password, user.get("password", "")):
            logger.warning(f"Login refused for {identifier!r}: invalid credentials")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid credentials",
            )

        if not user.get("is_active", True):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account is deactivated",
            )

        user_id = str(user["_id"])

        # ── 3. Membership ────────────────────────────────────────
        global_role = GlobalRole.parse(user.get("global_role"))
        if not global_role.is_highest:
            membership = await self.db["memberships"].find_one(
                {"tenant_id": tenant_id, "user_id": user_id, "status": "active"}
            )
            if not membership:
                logger.warning(f"Login refused: user {user_id} has no active membership in {tenant_id}")
                raise TenantAccessDenied(reason=f"user {user_id} not a member of {tenant_id}")

        # ── 4. Session + token ───────────────────────────────────
        session = await self.sessions.create(user_id, tenant_id)
        token = create_session_token(user_id, session["_id"], tenant_id, session["expires_at"])

        await users.update_one(
            {"_id": user["_id"]},
            {"$set": {"last_login": session["created_at"]}},
        )

        user_data = serialize_mongo_doc(user)
        user_data.pop("password", None)
        logger.info(f"User {user_id} logged into tenant {tenant_id}")

        return {
            "access_token": token,
            "token_type": "bearer",
            "expires_at": session["expires_at"].isoformat(),
            "user": user_data,
            "tenant": serialize_mongo_doc(tenant),
        }

    async def logout(self, session_id: str) -> bool:
        revoked = await self.sessions.revoke(session_id)
        logger.info(f"Session logout ({'revoked' if revoked else 'already closed'})")
        return revoked
