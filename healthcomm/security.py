# healthcomm/security.py
import logging
from typing import Optional, Tuple

from fastapi import Depends, HTTPException, Request, status
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import models
from .config import get_settings
from .database import get_db
from .token_codec import get_token_codec

security_logger = logging.getLogger("security")

AUTH_COOKIE = "auth-token"
SESSION_COOKIE = "user-session"

INVALID_TOKEN = "invalid token"
USER_NOT_FOUND = "user not found"
ADMIN_REQUIRED = "admin access required"
AUTH_REQUIRED = "Authentication required"

# Password hashing
pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
    argon2__rounds=4,
    argon2__memory_cost=65536,
    argon2__parallelism=1,
)

# Verified against when the username is unknown so both failure paths cost the same
_DUMMY_HASH = pwd_context.hash("healthcomm-timing-equaliser")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception:
        # Unknown/legacy hash formats should not crash login; treat as non-match
        return False


def get_password_hash(password: str) -> str:
    """Generate password hash"""
    return pwd_context.hash(password)


def burn_password_check(plain_password: str) -> None:
    verify_password(plain_password, _DUMMY_HASH)


# Session validation
def resolve_user(db: Session, credential: Optional[str], codec=None) -> Tuple[Optional[models.User], Optional[str]]:
    """Resolve a credential to its user. Returns ``(user, None)`` or ``(None, error)``."""
    codec = codec or get_token_codec(get_settings())
    decoded = codec.decode(credential)
    if not decoded.valid:
        return None, INVALID_TOKEN

    user = db.query(models.User).filter(models.User.id == decoded.user_id).first()
    if user is None:
        return None, USER_NOT_FOUND
    return user, None


def resolve_admin(db: Session, credential: Optional[str], codec=None) -> Tuple[Optional[models.User], Optional[str]]:
    """Like resolve_user, additionally requiring the stored role to be admin."""
    user, error = resolve_user(db, credential, codec)
    if error:
        return None, error
    # The stored role is authoritative, not the role claimed in the credential
    if user.role != models.UserRole.admin:
        return None, ADMIN_REQUIRED
    return user, None


def extract_credential(request: Request) -> Optional[str]:
    """Credential from the auth cookie, else from an ``Authorization: Bearer`` header."""
    token = request.cookies.get(AUTH_COOKIE)
    if token:
        return token
    authorization = request.headers.get("authorization", "")
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


# Dependencies for FastAPI
def get_current_user(request: Request, db: Session = Depends(get_db)) -> models.User:
    credential = extract_credential(request)
    if not credential:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=AUTH_REQUIRED)

    user, error = resolve_user(db, credential)
    if error:
        security_logger.info(f"Rejected credential on {request.url.path}: {error}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=error)
    return user


def require_role(*allowed_roles: str):
    """Dependency factory for role-based access control"""
    def role_dependency(current_user: models.User = Depends(get_current_user)) -> models.User:
        if current_user.role.value not in allowed_roles:
            security_logger.warning(
                f"User '{current_user.username}' denied; required roles: {', '.join(allowed_roles)}"
            )
            detail = ADMIN_REQUIRED if allowed_roles == ("admin",) else \
                f"Access denied. Required roles: {', '.join(allowed_roles)}"
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
        return current_user

    return role_dependency


require_admin = require_role("admin")


def sanitize_user(user: models.User) -> dict:
    """Public view of a user; never includes the password hash."""
    return {
        "id": user.id,
        "username": user.username,
        "role": user.role.value,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
        "updatedAt": user.updated_at.isoformat() if user.updated_at else None,
    }


# Middleware helper for security headers
def add_security_headers(response):
    """Add security headers to response"""
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    return response
