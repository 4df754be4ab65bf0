# healthcomm/routers/webhooks.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from twilio.request_validator import RequestValidator

from ..config import get_settings
from ..database import get_db
from ..exceptions import ValidationError
from ..services import delivery_reconciler

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/webhooks",
    tags=["Webhooks"],
)


def _verify_signature(request: Request, form: dict) -> None:
    settings = get_settings()
    if not (settings.twilio_validate_signatures and settings.twilio_auth_token):
        return
    validator = RequestValidator(settings.twilio_auth_token)
    url = str(request.url)
    if settings.public_base_url:
        url = settings.public_base_url.rstrip("/") + request.url.path
    signature = request.headers.get("X-Twilio-Signature", "")
    if not validator.validate(url, form, signature):
        logger.warning(f"Rejected Twilio callback with invalid signature for {url}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")


@router.post("/twilio")
async def twilio_status_callback(request: Request, db: Session = Depends(get_db)):
    """
    Receive asynchronous delivery status updates for messages and calls.
    Unknown SIDs are acknowledged with 200 so the provider does not retry.
    """
    form = dict(await request.form())
    _verify_signature(request, form)

    transport_id = form.get("MessageSid") or form.get("CallSid")
    transport_status = form.get("MessageStatus") or form.get("CallStatus")
    logger.info(f"Twilio status callback: sid={transport_id} status={transport_status}")
    if not transport_id or not transport_status:
        raise ValidationError("Missing required fields")

    communication = delivery_reconciler.reconcile(db, transport_id, transport_status)
    if communication is None:
        return {"message": "Communication not found"}
    return {"message": "Status updated successfully", "status": communication.status.value}
