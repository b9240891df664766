"""
Bearer-token authentication and the two authorization predicates the API uses:
admin-only and owner-or-admin.

Tokens are HS256 JWTs carrying the user id in ``id``. There is no login or
registration here: users are provisioned externally, and
``create_access_token`` issues tokens for those existing users.
"""
import os
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError

from database import utcnow
from repositories import UserRepository, get_user_repository
from schemas import UserOut

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

# auto_error=False so a missing header gets our own 401 message
security = HTTPBearer(auto_error=False)


def get_jwt_secret() -> str:
    return os.getenv("JWT_SECRET", "your-secret-key")


def get_token_lifetime() -> timedelta:
    return timedelta(minutes=int(os.getenv("JWT_EXPIRES_MINUTES", str(60 * 24 * 7))))


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Issue a signed token for ``user_id``."""
    expire = utcnow() + (expires_delta if expires_delta is not None else get_token_lifetime())
    payload = {"id": user_id, "exp": expire}
    return jwt.encode(payload, get_jwt_secret(), algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, get_jwt_secret(), algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except JWTError as e:
        logger.info(f"Authentication error: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def authenticate(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    users: UserRepository = Depends(get_user_repository),
) -> UserOut:
    """
    Dependency resolving the calling user from the Authorization header.

    Usage:
        @app.get("/api/orders/my-orders")
        def my_orders(user: UserOut = Depends(authenticate)):
            ...
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization token missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(credentials.credentials)
    user = users.find_by_id(payload.get("id"))
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token or user does not exist",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return UserOut(
        id=str(user["_id"]),
        name=user.get("name", ""),
        email=user["email"],
        role=user.get("role", "user"),
    )


def require_admin(user: UserOut = Depends(authenticate)) -> UserOut:
    if user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. Admin permissions required",
        )
    return user


def ensure_owner_or_admin(resource: Dict[str, Any], user: UserOut) -> None:
    """Raise 403 unless ``user`` owns ``resource`` (via its user_id) or is an admin."""
    is_owner = resource.get("user_id") is not None and str(resource["user_id"]) == user.id
    if is_owner or user.role == "admin":
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Access denied. Not authorized",
    )
