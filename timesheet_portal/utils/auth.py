"""Authentication and authorization utilities.

Token issuance and verification happen upstream; by the time a request
reaches this service the gateway has attached the verified identity as
``X-User-ID`` and the role claim as ``X-User-Role``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Optional

from fastapi import Depends, Header

from timesheet_portal.utils.errors import ForbiddenError, UnauthorizedError


class UserRole(str, Enum):
    """Role claims, highest privilege first."""

    LEVEL1 = "LEVEL1"
    LEVEL2 = "LEVEL2"
    LEVEL3 = "LEVEL3"


@dataclass
class CurrentUser:
    """Represents the currently authenticated user."""

    id: str
    role: UserRole = UserRole.LEVEL3

    def has_role(self, role: UserRole) -> bool:
        return self.role == role


def get_current_user(
    x_user_id: Annotated[Optional[str], Header(alias="X-User-ID")] = None,
    x_user_role: Annotated[Optional[str], Header(alias="X-User-Role")] = None,
) -> CurrentUser:
    """Build the current user from the identity headers."""
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError("Missing X-User-ID header")

    role = UserRole.LEVEL3
    if x_user_role:
        try:
            role = UserRole(x_user_role.strip().upper())
        except ValueError:
            raise ForbiddenError(
                message=f"Unknown role '{x_user_role}'",
                details={"allowed_roles": [r.value for r in UserRole]},
            )

    return CurrentUser(id=x_user_id.strip(), role=role)


def require_import_permission(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> CurrentUser:
    """Require the LEVEL1 (administrator) role for CSV management."""
    if not current_user.has_role(UserRole.LEVEL1):
        raise ForbiddenError(
            message="You don't have permission to manage CSV data",
            details={"required_roles": [UserRole.LEVEL1.value]},
        )
    return current_user
