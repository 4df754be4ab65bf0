# healthcomm/services/messaging.py
import re
from datetime import datetime, timezone
from typing import Mapping, Optional, Tuple

import structlog
from fastapi import Depends
from sqlalchemy import update
from sqlalchemy.orm import Session

from .. import models
from ..config import get_settings
from ..exceptions import ValidationError
from .template_variables import substitute_template_variables
from .transport import DeliveryResult, MessagingConfig, build_transport

logger = structlog.get_logger(__name__)

MIN_PHONE_DIGITS = 10
INVALID_PHONE = "Invalid phone number format"

_NON_DIGITS = re.compile(r"\D")
_DATE_PARTS = re.compile(r"\b(\d+)/(\d+)/(\d+)\b")
_TIME_PARTS = re.compile(r"\b(\d+):(\d+)\b")
_UNSPEAKABLE = re.compile(r"[^\w\s.,!?-]")
_WHITESPACE = re.compile(r"\s+")


def normalize_phone_number(phone_number: Optional[str]) -> str:
    """
    Normalize to E.164. Numbers without a country code are treated as North American.

    >>> normalize_phone_number("5551234567")
    '+15551234567'
    """
    raw = (phone_number or "").strip()
    digits = _NON_DIGITS.sub("", raw)
    if len(digits) < MIN_PHONE_DIGITS:
        raise ValidationError(INVALID_PHONE)
    if raw.startswith("+") or digits.startswith("1"):
        return f"+{digits}"
    return f"+1{digits}"


def format_message_for_voice(message: str) -> str:
    """Rewrite text so a speech engine reads it naturally."""
    spoken = message.replace("&", "and").replace("$", "dollars").replace("@", "at")
    spoken = _DATE_PARTS.sub(r"\1 \2 \3", spoken)
    spoken = _TIME_PARTS.sub(r"\1 \2", spoken)
    spoken = _UNSPEAKABLE.sub(" ", spoken)
    return _WHITESPACE.sub(" ", spoken).strip()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessagingDispatcher:
    """
    Sends one message and records its outcome on a Communication row.

    The row is committed as PENDING before the transport is called, so a crash
    mid-send leaves a visible PENDING record instead of nothing. The outcome is
    applied with a conditional update that only touches rows still PENDING.
    """

    def __init__(self, config: MessagingConfig, transport=None, clinic_defaults: Optional[Mapping[str, str]] = None):
        self.config = config
        self.transport = transport or build_transport(config)
        self.clinic_defaults = dict(clinic_defaults or {})

    @property
    def mode(self) -> str:
        return self.config.effective_mode

    def render(self, raw_content: str, patient=None, appointment=None, template=None,
               custom_variables: Optional[Mapping[str, str]] = None) -> str:
        return substitute_template_variables(
            raw_content,
            patient=patient,
            appointment=appointment,
            template_variables=(template.variables if template is not None else None),
            custom_variables=custom_variables,
            clinic_defaults=self.clinic_defaults,
        )

    def send(
        self,
        db: Session,
        comm_type: models.CommunicationType,
        phone_number: str,
        raw_content: str,
        patient: models.Patient,
        appointment: Optional[models.Appointment] = None,
        template: Optional[models.Template] = None,
        custom_variables: Optional[Mapping[str, str]] = None,
    ) -> Tuple[models.Communication, DeliveryResult]:
        # Validation happens before anything is written or sent
        recipient = normalize_phone_number(phone_number)
        content = self.render(raw_content, patient, appointment, template, custom_variables)
        if not content.strip():
            raise ValidationError("Message content is required")

        communication = models.Communication(
            patient_id=patient.id,
            type=comm_type,
            content=content,
            phone_number=recipient,
            template_id=template.id if template is not None else None,
            appointment_id=appointment.id if appointment is not None else None,
            status=models.CommunicationStatus.PENDING,
        )
        db.add(communication)
        db.commit()
        db.refresh(communication)
        log = logger.bind(communication_id=communication.id, type=comm_type.value, mode=self.mode)

        outbound = format_message_for_voice(content) if comm_type == models.CommunicationType.VOICE else content
        result = self.transport.send(comm_type, recipient, outbound)

        now = _utcnow()
        values = {"transport_message_id": result.message_id} if result.message_id else {}
        if result.success:
            values.update(status=models.CommunicationStatus.SENT, sent_at=now)
        else:
            values.update(
                status=models.CommunicationStatus.FAILED,
                failed_at=now,
                error_message=result.error or "Unknown error",
            )
        values["updated_at"] = now

        applied = db.execute(
            update(models.Communication)
            .where(
                models.Communication.id == communication.id,
                models.Communication.status == models.CommunicationStatus.PENDING,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        ).rowcount
        db.commit()
        if not applied:
            log.warning("outcome_not_applied", reason="record no longer pending")
        db.refresh(communication)

        if result.success:
            log.info("message_sent", message_id=result.message_id)
        else:
            log.warning("message_failed", error=result.error)
        return communication, result


def messaging_config_from_settings(settings) -> MessagingConfig:
    callback = None
    if settings.public_base_url:
        callback = settings.public_base_url.rstrip("/") + "/api/webhooks/twilio"
    return MessagingConfig(
        mode=settings.messaging_mode,
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_phone_number,
        timeout_seconds=settings.transport_timeout_seconds,
        demo_success_rate=settings.demo_success_rate,
        status_callback_url=callback,
    )


def clinic_defaults_from_settings(settings) -> dict:
    return {
        "clinicName": settings.clinic_name,
        "providerName": settings.provider_name,
        "clinicPhone": settings.twilio_phone_number or settings.clinic_phone,
    }


# FastAPI dependencies; settings are read per request so a mode switch applies to the next send
def get_messaging_config() -> MessagingConfig:
    return messaging_config_from_settings(get_settings())


def get_dispatcher(config: MessagingConfig = Depends(get_messaging_config)) -> MessagingDispatcher:
    return MessagingDispatcher(config, clinic_defaults=clinic_defaults_from_settings(get_settings()))
