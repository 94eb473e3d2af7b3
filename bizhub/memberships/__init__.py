from .service import MembershipService
from .routes import memberships_router

__all__ = ["MembershipService", "memberships_router"]
