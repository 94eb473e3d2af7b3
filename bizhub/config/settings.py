from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    # ── Application ──────────────────────────────────────────────
    app_name: str = "BizHub Business Suite"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"
    api_version: str = "v1"

    # ── Database ─────────────────────────────────────────────────
    mongodb_atlas_uri: Optional[str] = None
    database_name: str = "bizhub_db"
    use_transactions: bool = True  # requires a replica set

    # ── JWT / Sessions ───────────────────────────────────────────
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    session_ttl_minutes: int = 1440  # 24 hours
    session_cookie_name: str = "auth_token"

    # ── Tenancy ──────────────────────────────────────────────────
    root_domain: str = "bizhub.local"
    tenant_header: str = "X-Tenant-ID"
    tenant_cache_ttl_seconds: int = 600
    tenant_cache_max_entries: int = 1024

    # ── Platform key (for tenant set-up endpoint) ────────────────
    app_key: str = "bizhub_application"

    # ── CORS ─────────────────────────────────────────────────────
    cors_allowed_origins: list[str] = [
        "http://localhost:4200",
        "http://localhost:3000",
        "http://127.0.0.1:4200",
    ]
    cors_allow_credentials: bool = True
    cors_allowed_methods: list[str] = ["*"]
    cors_allowed_headers: list[str] = ["*"]

    class Config:
        env_file = ".env.local"
        extra = "ignore"


# ── Module-level singleton ──────────────────────────────────────
settings = Settings()
