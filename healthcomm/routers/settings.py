# healthcomm/routers/settings.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from .. import crud, models, schemas, security
from ..config import get_settings
from ..database import get_db
from ..services import settings_toggle
from ..services.messaging import messaging_config_from_settings

router = APIRouter(
    prefix="/settings",
    tags=["Settings"],
    dependencies=[Depends(security.get_current_user)],
)


@router.get("", response_model=schemas.SettingsResponse)
def read_settings():
    settings = get_settings()
    return {
        "messaging_mode": settings_toggle.get_mode(),
        "effective_mode": messaging_config_from_settings(settings).effective_mode,
        "twilio_configured": settings.twilio_configured,
        "twilio_phone_number": settings.twilio_phone_number,
    }


@router.post("", response_model=schemas.SettingsUpdateResponse)
def update_settings(payload: schemas.SettingsUpdate, request: Request, db: Session = Depends(get_db)):
    """
    Switch between demo (simulated) and live (Twilio) messaging. Admin only.
    """
    credential = security.extract_credential(request)
    mode = settings_toggle.set_mode(db, payload.messaging_mode, credential)

    admin, _ = security.resolve_user(db, credential)
    crud.create_audit_log(
        db=db, user_id=admin.id, action=models.AuditAction.UPDATE, category="SETTINGS",
        details=f"Messaging mode set to {mode}"
    )
    return {
        "success": True,
        "messaging_mode": mode,
        "message": f"Messaging mode updated to {mode}",
    }
