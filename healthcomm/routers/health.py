# healthcomm/routers/health.py
from datetime import datetime, timezone

from fastapi import APIRouter

from .. import schemas

router = APIRouter(
    prefix="/health",
    tags=["Health Checks"],
)


@router.get("", response_model=schemas.HealthResponse)
def health_check():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc),
        "message": "HealthComm API is running",
    }
