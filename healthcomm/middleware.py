# healthcomm/middleware.py
"""
Request gate applied to every request before routing.

Only credential *presence* is checked here; resolving the credential to a
user (and role checks) happens in the route dependencies in ``security``.
"""
import logging
from urllib.parse import urlencode

from fastapi import Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, Response

from .security import AUTH_REQUIRED, add_security_headers, extract_credential

logger = logging.getLogger(__name__)

PUBLIC_PATHS = frozenset({
    "/",
    "/login",
    "/api/auth/login",
    "/api/health",
    "/api/webhooks/twilio",
})

PROTECTED_PREFIXES = (
    "/dashboard",
    "/api/patients",
    "/api/appointments",
    "/api/communications",
    "/api/templates",
    "/api/patient-groups",
    "/api/settings",
    "/api/analytics",
    "/api/users",
)

CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization"]


def _normalize(path: str) -> str:
    return path.rstrip("/") or "/"


def is_public(path: str) -> bool:
    return _normalize(path) in PUBLIC_PATHS


def is_protected(path: str) -> bool:
    path = _normalize(path)
    return any(path == prefix or path.startswith(prefix + "/") for prefix in PROTECTED_PREFIXES)


def is_api(path: str) -> bool:
    return path == "/api" or path.startswith("/api/")


class ApiCORSMiddleware(CORSMiddleware):
    """Starlette's CORS handling, limited to /api paths."""

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and not is_api(scope["path"]):
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)

    def preflight_response(self, request_headers):
        return add_security_headers(super().preflight_response(request_headers))


def _finish(response: Response) -> Response:
    add_security_headers(response)
    return response


async def auth_gateway(request: Request, call_next):
    path = request.url.path
    has_credential = bool(extract_credential(request))

    if _normalize(path) == "/login" and has_credential:
        return _finish(RedirectResponse(url="/dashboard", status_code=status.HTTP_302_FOUND))

    if not is_public(path) and is_protected(path) and not has_credential:
        if is_api(path):
            logger.info(f"Unauthenticated API request blocked: {request.method} {path}")
            response = JSONResponse({"error": AUTH_REQUIRED}, status_code=status.HTTP_401_UNAUTHORIZED)
        else:
            response = RedirectResponse(
                url="/login?" + urlencode({"redirect": path}),
                status_code=status.HTTP_302_FOUND,
            )
        return _finish(response)

    try:
        response = await call_next(request)
    except Exception as e:
        logger.exception(f"Unhandled error on {request.method} {path}: {e}")
        response = JSONResponse({"error": "Internal server error"}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return _finish(response)
