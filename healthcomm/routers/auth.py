# healthcomm/routers/auth.py
import json
import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from .. import crud, models, schemas, security
from ..config import get_settings
from ..database import get_db
from ..token_codec import get_token_codec

logger = logging.getLogger(__name__)

INVALID_LOGIN = "Invalid username or password"

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)


def _cookie_options() -> dict:
    settings = get_settings()
    return {
        "path": "/",
        "samesite": "lax",
        "secure": settings.is_production,
        "max_age": settings.auth_cookie_max_age,
    }


def _set_session_cookies(response: Response, token: str, user: models.User) -> None:
    options = _cookie_options()
    response.set_cookie(security.AUTH_COOKIE, token, httponly=True, **options)
    # Readable by the browser UI; carries no secret
    session_json = json.dumps(security.sanitize_user(user), separators=(",", ":"))
    response.set_cookie(security.SESSION_COOKIE, quote(session_json), httponly=False, **options)


@router.post("/login", response_model=schemas.LoginResponse)
def login(credentials: schemas.LoginRequest, response: Response, db: Session = Depends(get_db)):
    if not credentials.username or not credentials.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username and password are required")

    user = crud.get_user_by_username(db, username=credentials.username)
    if user is None:
        security.burn_password_check(credentials.password)
        verified = False
    else:
        verified = security.verify_password(credentials.password, user.password_hash)

    if not verified:
        logger.warning(f"Failed login attempt for username: {credentials.username}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_LOGIN)

    token = get_token_codec(get_settings()).encode(user.id, user.role.value)
    _set_session_cookies(response, token, user)

    crud.create_audit_log(
        db=db, user_id=user.id, action=models.AuditAction.LOGIN, category="AUTHENTICATION",
        details=f"User {user.username} logged in successfully."
    )
    logger.info(f"User '{user.username}' successfully authenticated.")
    return {"message": "Login successful", "user": user, "token": token}


@router.post("/logout", response_model=schemas.MessageResponse)
def logout(request: Request, response: Response, db: Session = Depends(get_db)):
    settings = get_settings()
    user, _ = security.resolve_user(db, security.extract_credential(request))
    if user is not None:
        crud.create_audit_log(
            db=db, user_id=user.id, action=models.AuditAction.LOGOUT, category="AUTHENTICATION",
            details=f"User {user.username} logged out."
        )
    for name, http_only in ((security.AUTH_COOKIE, True), (security.SESSION_COOKIE, False)):
        response.set_cookie(
            name, "", max_age=0, expires=0, path="/", samesite="lax",
            secure=settings.is_production, httponly=http_only,
        )
    return {"message": "Logged out successfully"}


@router.get("/validate", response_model=schemas.ValidateResponse)
def validate_session(current_user: models.User = Depends(security.get_current_user)):
    """
    Resolve the caller's credential to their user record.
    """
    return {"valid": True, "user": current_user}
