# healthcomm/token_codec.py
"""
Bearer credential codecs.

Two interchangeable formats carry the same claims (user id, role, issue time):

* ``StructuralTokenCodec`` - the plain ``"<userId>:<role>:<issuedAtMillis>"`` string.
  No signature and no expiry; anyone who knows a user id can forge one.
* ``SignedTokenCodec`` - an HS256 JWT with ``sub``, ``role``, ``iat`` and ``exp``.

Both decode fail-closed: anything unexpected yields an invalid result, never an exception.
"""
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from .config import Settings

MIN_TOKEN_LENGTH = 10
DEFAULT_ROLE = "user"


@dataclass(frozen=True)
class DecodedToken:
    valid: bool
    user_id: Optional[str] = None
    role: Optional[str] = None
    issued_at: Optional[int] = None

    @classmethod
    def invalid(cls) -> "DecodedToken":
        return cls(valid=False)


def _passes_precheck(credential: Optional[str]) -> bool:
    return bool(credential) and len(credential) >= MIN_TOKEN_LENGTH


class StructuralTokenCodec:
    format_name = "structural"

    def encode(self, user_id: str, role: str) -> str:
        return f"{user_id}:{role}:{int(time.time() * 1000)}"

    def decode(self, credential: Optional[str]) -> DecodedToken:
        if not _passes_precheck(credential):
            return DecodedToken.invalid()
        parts = credential.split(":")
        if len(parts) < 2 or not parts[0]:
            return DecodedToken.invalid()
        issued_at = int(parts[2]) if len(parts) > 2 and parts[2].isdigit() else None
        return DecodedToken(
            valid=True,
            user_id=parts[0],
            role=parts[1] or DEFAULT_ROLE,
            issued_at=issued_at,
        )


class SignedTokenCodec:
    format_name = "signed"

    def __init__(self, secret_key: str, algorithm: str = "HS256", lifetime: timedelta = timedelta(days=7)):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.lifetime = lifetime

    def encode(self, user_id: str, role: str) -> str:
        issued_at = datetime.now(timezone.utc)
        claims = {
            "sub": user_id,
            "role": role,
            "iat": issued_at,
            "exp": issued_at + self.lifetime,
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def decode(self, credential: Optional[str]) -> DecodedToken:
        if not _passes_precheck(credential):
            return DecodedToken.invalid()
        try:
            payload = jwt.decode(credential, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            return DecodedToken.invalid()

        user_id = payload.get("sub")
        if not user_id or not isinstance(user_id, str):
            return DecodedToken.invalid()
        issued_at = payload.get("iat")
        return DecodedToken(
            valid=True,
            user_id=user_id,
            role=payload.get("role") or DEFAULT_ROLE,
            issued_at=int(issued_at) * 1000 if isinstance(issued_at, (int, float)) else None,
        )


def get_token_codec(settings: Settings):
    """Codec selected by TOKEN_FORMAT; the same instance type is used to mint and to read."""
    if settings.token_format == "structural":
        return StructuralTokenCodec()
    return SignedTokenCodec(
        secret_key=settings.secret_key,
        algorithm=settings.algorithm,
        lifetime=timedelta(days=settings.auth_cookie_max_age_days),
    )
