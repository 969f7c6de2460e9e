"""
FastAPI dependencies for authentication and authorization.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from constants import UserRole
from database import get_db
from models import User
from .jwt_handler import verify_token


def get_token_from_request(request: Request) -> Optional[str]:
    """Token from an Authorization: Bearer header, falling back to the access_token cookie.

    An explicit header wins over a cookie the browser attached on its own.
    """
    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get("access_token") or None


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """
    Get the currently authenticated user.

    Raises HTTPException 401 if not authenticated.

    Usage:
        @router.get("/protected")
        def protected_route(current_user: User = Depends(get_current_user)):
            ...
    """
    token = get_token_from_request(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    payload = verify_token(token)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    user_id = payload.get("sub")
    if not user_id or not str(user_id).isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    user = db.query(User).filter(User.id == int(user_id)).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    return user


def get_optional_user(
    request: Request,
    db: Session = Depends(get_db),
) -> Optional[User]:
    """The authenticated user, or None for anonymous callers."""
    try:
        return get_current_user(request, db)
    except HTTPException:
        return None


def require_role(*allowed_roles: UserRole):
    """
    Factory function to create a dependency that requires specific roles.

    Usage:
        @router.get("/earnings")
        def earnings(user: User = Depends(require_role(UserRole.TUTOR))):
            ...
    """
    allowed = {role.value for role in allowed_roles}

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(sorted(allowed))}",
            )
        return current_user

    return role_checker


require_admin = require_role(UserRole.ADMIN)
require_student = require_role(UserRole.STUDENT)
require_tutor = require_role(UserRole.TUTOR)
