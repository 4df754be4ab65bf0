# healthcomm/services/delivery_reconciler.py
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session

from .. import crud, models
from ..models import CommunicationStatus, TERMINAL_STATUSES

logger = structlog.get_logger(__name__)

# Provider status vocabulary (SMS and voice) mapped onto the Communication lifecycle
STATUS_MAP = {
    "queued": CommunicationStatus.SENT,
    "sending": CommunicationStatus.SENT,
    "sent": CommunicationStatus.SENT,
    "initiated": CommunicationStatus.SENT,
    "ringing": CommunicationStatus.SENT,
    "in-progress": CommunicationStatus.SENT,
    "delivered": CommunicationStatus.DELIVERED,
    "received": CommunicationStatus.DELIVERED,
    "completed": CommunicationStatus.DELIVERED,
    "failed": CommunicationStatus.FAILED,
    "undelivered": CommunicationStatus.FAILED,
    "busy": CommunicationStatus.FAILED,
    "no-answer": CommunicationStatus.FAILED,
    "cancelled": CommunicationStatus.CANCELLED,
    "canceled": CommunicationStatus.CANCELLED,
}


def map_transport_status(transport_status: Optional[str]) -> Optional[CommunicationStatus]:
    return STATUS_MAP.get((transport_status or "").strip().lower())


def reconcile(db: Session, transport_message_id: str, transport_status: str) -> Optional[models.Communication]:
    """
    Apply an asynchronous provider status to the matching Communication.

    Returns the communication (changed or not) or None when no record carries
    the id. Records already DELIVERED, FAILED or CANCELLED are never modified:
    the update is conditional on the current status, so duplicate and
    out-of-order callbacks are harmless.
    """
    log = logger.bind(transport_message_id=transport_message_id, transport_status=transport_status)
    communication = crud.get_communication_by_transport_id(db, transport_message_id)
    if communication is None:
        log.warning("status_callback_unmatched")
        return None

    new_status = map_transport_status(transport_status)
    if new_status is None:
        log.info("status_callback_ignored", reason="unrecognised status")
        return communication

    now = datetime.now(timezone.utc)
    values = {"status": new_status, "updated_at": now}
    if new_status == CommunicationStatus.DELIVERED:
        values["delivered_at"] = now
    elif new_status in (CommunicationStatus.FAILED, CommunicationStatus.CANCELLED):
        values["failed_at"] = now
        if new_status == CommunicationStatus.FAILED:
            values["error_message"] = f"Provider reported status '{transport_status}'"

    applied = db.execute(
        update(models.Communication)
        .where(
            models.Communication.id == communication.id,
            models.Communication.status.notin_(list(TERMINAL_STATUSES)),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()
    db.refresh(communication)

    if applied:
        log.info("status_callback_applied", communication_id=communication.id, status=new_status.value)
    else:
        log.info("status_callback_skipped", communication_id=communication.id,
                 reason="already terminal", status=communication.status.value)
    return communication
