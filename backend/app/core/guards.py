"""
Security guards for role-based and ownership-based access control.

Provides dependencies for protecting endpoints.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from backend.app.models.enums import UserRole
from backend.app.core.dependencies import get_current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.patch("/bookings/{booking_id}/handover")
        async def handover(current_user: dict = Depends(require_role([UserRole.OWNER]))):
            ...

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")

        if not user_role_str:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Role information missing from token"
            )

        try:
            user_role = UserRole(user_role_str)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role in token"
            )

        if user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    """Dependency for admin-only endpoints."""
    if current_user.get("role") != UserRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return current_user


def is_admin(current_user: dict) -> bool:
    return current_user.get("role") == UserRole.ADMIN.value


class OwnershipGuard:
    """
    Class-based guard for booking-party access.

    A booking has two parties: the renter and the owner of the rented item.
    Admins pass every check.

    Usage:
        ownership_guard.enforce_party(booking, item, current_user)
    """

    def enforce_item_owner(self, item, current_user: dict, allow_admin: bool = True):
        """
        Raise 403 unless the caller owns the item.

        Raises:
            HTTPException 403 if ownership check fails
        """
        if allow_admin and is_admin(current_user):
            return
        if item.owner_id != current_user.get("user_id"):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied. You do not own this item."
            )

    def enforce_party(self, booking, item, current_user: dict):
        """Raise 403 unless the caller is the renter, the item owner, or an admin."""
        if is_admin(current_user):
            return
        user_id = current_user.get("user_id")
        if user_id not in (booking.renter_id, item.owner_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied. You are not a party to this booking."
            )


ownership_guard = OwnershipGuard()
