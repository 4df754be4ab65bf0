# healthcomm/main.py
import logging

import uvicorn
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from healthcomm.bootstrap import create_or_update_admin
from healthcomm.config import get_settings
from healthcomm.core.logging import setup_logging
from healthcomm.crud import CRUDError
from healthcomm.database import create_tables
from healthcomm.exceptions import PortalError
from healthcomm.middleware import CORS_HEADERS, CORS_METHODS, ApiCORSMiddleware, auth_gateway
from healthcomm.routers import (
    analytics, appointments, auth, communications, health, pages,
    patient_groups, patients, settings, templates, users, webhooks,
)

setup_logging(level=logging.DEBUG if get_settings().debug else logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title=get_settings().app_name, version=get_settings().app_version)


@app.on_event("startup")
def on_startup():
    create_tables()
    create_or_update_admin()


# --- Error handling: every failure leaves as {"error": message} ---
def _error(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code, headers=headers)


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    return _error(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    logger.info(f"Validation error on {request.url.path}: {errors}")
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    else:
        message = "Invalid request"
    return _error(status.HTTP_400_BAD_REQUEST, message)


@app.exception_handler(CRUDError)
async def crud_error_handler(request: Request, exc: CRUDError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


app.middleware("http")(auth_gateway)
# Registered after the gateway so preflights are answered before it runs
app.add_middleware(
    ApiCORSMiddleware,
    allow_origin_regex=".*",
    allow_credentials=True,
    allow_methods=CORS_METHODS,
    allow_headers=CORS_HEADERS,
)

app.include_router(auth.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(patients.router, prefix="/api")
app.include_router(appointments.router, prefix="/api")
app.include_router(templates.router, prefix="/api")
app.include_router(communications.router, prefix="/api")
app.include_router(patient_groups.router, prefix="/api")
app.include_router(settings.router, prefix="/api")
app.include_router(analytics.router, prefix="/api")
app.include_router(webhooks.router, prefix="/api")
app.include_router(health.router, prefix="/api")
app.include_router(pages.router)


if __name__ == "__main__":
    uvicorn.run("healthcomm.main:app", host="0.0.0.0", port=8000, reload=get_settings().debug)
