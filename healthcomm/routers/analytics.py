# healthcomm/routers/analytics.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import schemas, security
from ..database import get_db
from ..services.analytics import communication_analytics

router = APIRouter(
    prefix="/analytics",
    tags=["Analytics"],
    dependencies=[Depends(security.get_current_user)],
)


@router.get("", response_model=schemas.AnalyticsResponse)
def read_analytics(days: int = Query(30, ge=1, le=365), db: Session = Depends(get_db)):
    return communication_analytics(db, days=days)
