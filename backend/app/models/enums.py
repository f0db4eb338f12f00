"""
User roles enumeration.

Defines the role types for the Rentivo marketplace.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Adjudicates disputes and manages the insurance pool
        OWNER: Lists items and hands them over to renters
        RENTER: Books and pays for items (default role)
    """
    ADMIN = "ADMIN"
    OWNER = "OWNER"
    RENTER = "RENTER"
