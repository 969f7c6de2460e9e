"""
Authentication router: email/password registration and login with a JWT cookie.
"""

import logging
import os
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from constants import UserRole
from database import get_db
from models import StudentProfile, TutorProfile, User
from schemas import LoginRequest, LoginResponse, RegisterRequest, TokenRefreshResponse, UserResponse
from auth.dependencies import get_current_user, get_token_from_request
from auth.jwt_handler import ACCESS_TOKEN_EXPIRE_HOURS, create_refreshed_token, create_user_token, get_token_time_remaining
from auth.passwords import hash_password, verify_password
from services.errors import AuthenticationRequired, Conflict
from utils.rate_limiter import check_ip_rate_limit

router = APIRouter()
logger = logging.getLogger(__name__)

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")


def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key="access_token",
        value=token,
        httponly=True,
        secure=ENVIRONMENT == "production",
        samesite="lax",
        max_age=ACCESS_TOKEN_EXPIRE_HOURS * 3600,  # Match token expiry
    )


@router.post("/auth/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Create an account with an empty profile for its role.

    Admin accounts are provisioned out of band, never registered here.
    """
    check_ip_rate_limit(request, "auth_register")

    email = payload.email.strip().lower()
    if db.query(User.id).filter(User.email == email).first():
        raise Conflict("Email is already registered")

    user = User(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        role=payload.role,
    )
    try:
        db.add(user)
        db.flush()
        if payload.role == UserRole.TUTOR.value:
            db.add(TutorProfile(user_id=user.id, hourly_rate=0, subjects=""))
        else:
            db.add(StudentProfile(user_id=user.id))
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Email is already registered")
    except Exception:
        db.rollback()
        raise

    db.refresh(user)
    logger.info("Registered %s user #%d", user.role, user.id)
    return user


@router.post("/auth/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    """Verify credentials, set the access_token cookie and return the token."""
    check_ip_rate_limit(request, "auth_login")

    user = db.query(User).filter(User.email == payload.email.strip().lower()).first()
    if not user or not verify_password(payload.password, user.password_hash):
        logger.info("Failed login for %s", payload.email)
        raise AuthenticationRequired("Invalid email or password")

    token = create_user_token(user)
    _set_auth_cookie(response, token)
    logger.info("Login successful for user #%d", user.id)
    return LoginResponse(
        access_token=token,
        expires_in=ACCESS_TOKEN_EXPIRE_HOURS * 3600,
        user=UserResponse.model_validate(user),
    )


@router.get("/auth/me", response_model=UserResponse)
def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get the currently authenticated user's info."""
    return current_user


@router.post("/auth/logout")
def logout(response: Response):
    """
    Log out the current user by clearing the auth cookie.
    """
    response.delete_cookie(
        key="access_token",
        httponly=True,
        secure=ENVIRONMENT == "production",
        samesite="lax",
    )
    return {"message": "Logged out successfully"}


@router.post("/auth/refresh", response_model=TokenRefreshResponse)
def refresh_token(request: Request, response: Response):
    """
    Refresh the authentication token.

    Extends the expiry of a valid token, or of one that expired within the
    grace period, and returns it as a new HTTP-only cookie.
    """
    token = get_token_from_request(request)

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token provided"
        )

    new_token = create_refreshed_token(token)

    if not new_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token cannot be refreshed. Please log in again."
        )

    expires_in = get_token_time_remaining(new_token) or (ACCESS_TOKEN_EXPIRE_HOURS * 3600)
    _set_auth_cookie(response, new_token)

    return TokenRefreshResponse(
        success=True,
        expires_in=expires_in,
        message="Token refreshed successfully"
    )
