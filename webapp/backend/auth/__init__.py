"""
Authentication module for the tutoring marketplace.

Provides:
- JWT token creation and validation
- Password hashing
- FastAPI dependencies for route protection
"""

from .jwt_handler import create_access_token, create_user_token, verify_token
from .passwords import hash_password, verify_password
from .dependencies import (
    get_current_user,
    get_optional_user,
    require_admin,
    require_role,
    require_student,
    require_tutor,
)

__all__ = [
    "create_access_token",
    "create_user_token",
    "verify_token",
    "hash_password",
    "verify_password",
    "get_current_user",
    "get_optional_user",
    "require_admin",
    "require_role",
    "require_student",
    "require_tutor",
]
