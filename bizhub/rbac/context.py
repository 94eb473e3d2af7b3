from dataclasses import dataclass
from typing import Optional

from .roles import GlobalRole


@dataclass(frozen=True)
class Principal:
    """The authenticated user behind a request."""

    id: str
    email: str
    name: str
    global_role: GlobalRole
    session_id: Optional[str] = None
    # Tenant the session was opened for, if any
    session_tenant_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.global_role.value,
        }
