# healthcomm/routers/communications.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security, models
from ..database import get_db
from ..exceptions import NotFoundError, ValidationError
from ..models import CommunicationType
from ..services.messaging import MessagingDispatcher, get_dispatcher

logger = logging.getLogger(__name__)

CHANNEL_DISABLED = {
    CommunicationType.SMS: "SMS is disabled for this patient",
    CommunicationType.VOICE: "Voice calls are disabled for this patient",
}

router = APIRouter(
    tags=["Communications"],
    dependencies=[Depends(security.get_current_user)],
)


def _channel_enabled(patient: models.Patient, comm_type: CommunicationType) -> bool:
    return patient.sms_enabled if comm_type == CommunicationType.SMS else patient.voice_enabled


def _load_template(db: Session, template_id: Optional[str], comm_type: CommunicationType) -> Optional[models.Template]:
    if not template_id:
        return None
    template = crud.get_template(db, template_id)
    if template is None:
        raise NotFoundError("Template not found")
    if template.type != comm_type:
        raise ValidationError(f"Template is not a {comm_type.value} template")
    return template


def _audit_send(db: Session, user: models.User, communication: models.Communication) -> None:
    crud.create_audit_log(
        db=db, user_id=user.id, action=models.AuditAction.SEND, category="COMMUNICATION",
        resource_id=communication.id,
        details=f"{communication.type.value} to patient {communication.patient_id}: {communication.status.value}"
    )


@router.get("/communications", response_model=List[schemas.CommunicationResponse])
def read_communications(
    patient_id: Optional[str] = Query(None, alias="patientId"),
    type: Optional[CommunicationType] = None,
    comm_status: Optional[models.CommunicationStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db)
):
    """Most recent 100 communications, newest first."""
    return crud.get_communications(db, patient_id=patient_id, comm_type=type, comm_status=comm_status)


@router.post("/communications", response_model=schemas.CommunicationResponse, status_code=status.HTTP_201_CREATED)
def create_communication(
    payload: schemas.CommunicationCreate,
    db: Session = Depends(get_db),
    dispatcher: MessagingDispatcher = Depends(get_dispatcher),
    current_user: models.User = Depends(security.get_current_user)
):
    patient = crud.get_patient(db, payload.patient_id)
    if patient is None:
        raise NotFoundError("Patient not found")
    template = _load_template(db, payload.template_id, payload.type)

    if payload.appointment_id:
        appointment = crud.get_appointment(db, payload.appointment_id)
        if appointment is None or appointment.patient_id != patient.id:
            raise NotFoundError("Appointment not found")
    else:
        appointment = crud.get_latest_appointment(db, patient.id)

    communication, _ = dispatcher.send(
        db, payload.type, payload.phone_number or patient.phone_number, payload.content,
        patient=patient, appointment=appointment, template=template,
    )
    _audit_send(db, current_user, communication)
    return communication


def _send_to_patient(
    db: Session,
    dispatcher: MessagingDispatcher,
    user: models.User,
    comm_type: CommunicationType,
    payload: schemas.SendRequest,
) -> dict:
    patient = crud.get_patient(db, payload.patient_id)
    if patient is None:
        raise NotFoundError("Patient not found")
    if not _channel_enabled(patient, comm_type):
        raise ValidationError(CHANNEL_DISABLED[comm_type])

    template = _load_template(db, payload.template_id, comm_type)
    appointment = None
    if payload.appointment_id:
        appointment = crud.get_appointment(db, payload.appointment_id)
        if appointment is None or appointment.patient_id != patient.id:
            raise NotFoundError("Appointment not found")

    content = payload.custom_message or (template.content if template is not None else None)
    if not content or not content.strip():
        raise ValidationError("Message content is required")

    communication, result = dispatcher.send(
        db, comm_type, patient.phone_number, content,
        patient=patient, appointment=appointment, template=template,
        custom_variables=payload.custom_variables,
    )
    _audit_send(db, user, communication)
    return {"communication": communication, "result": result.as_dict()}


@router.post("/communications/sms", response_model=schemas.SendResponse, status_code=status.HTTP_201_CREATED)
def send_sms(
    payload: schemas.SendRequest,
    db: Session = Depends(get_db),
    dispatcher: MessagingDispatcher = Depends(get_dispatcher),
    current_user: models.User = Depends(security.get_current_user)
):
    return _send_to_patient(db, dispatcher, current_user, CommunicationType.SMS, payload)


@router.post("/communications/voice", response_model=schemas.SendResponse, status_code=status.HTTP_201_CREATED)
def make_voice_call(
    payload: schemas.SendRequest,
    db: Session = Depends(get_db),
    dispatcher: MessagingDispatcher = Depends(get_dispatcher),
    current_user: models.User = Depends(security.get_current_user)
):
    return _send_to_patient(db, dispatcher, current_user, CommunicationType.VOICE, payload)


@router.post("/communications/bulk", response_model=schemas.BulkSendResponse)
def send_bulk(
    payload: schemas.BulkSendRequest,
    db: Session = Depends(get_db),
    dispatcher: MessagingDispatcher = Depends(get_dispatcher),
    current_user: models.User = Depends(security.get_current_user)
):
    """
    Send one message to every patient in a list or a group.
    Each patient is dispatched independently; a failure for one never stops the rest.
    """
    if not payload.patient_ids and not payload.group_id:
        raise ValidationError("Either patientIds or groupId is required")

    if payload.group_id:
        group = crud.get_patient_group(db, payload.group_id)
        if group is None:
            raise NotFoundError("Patient group not found")
        patients = [member.patient for member in group.members]
    else:
        patients = crud.get_patients_by_ids(db, payload.patient_ids)
    if not patients:
        raise ValidationError("No patients found to message")

    template = _load_template(db, payload.template_id, payload.type)
    content = payload.custom_message or (template.content if template is not None else None)
    if not content or not content.strip():
        raise ValidationError("Message content is required")

    results = []
    for patient in patients:
        item = {"patient_id": patient.id, "patient_name": patient.full_name}
        if not _channel_enabled(patient, payload.type):
            results.append(schemas.BulkResultItem(success=False, error=CHANNEL_DISABLED[payload.type], **item))
            continue
        try:
            communication, result = dispatcher.send(
                db, payload.type, patient.phone_number, content,
                patient=patient, appointment=crud.get_latest_appointment(db, patient.id), template=template,
            )
        except ValidationError as e:
            results.append(schemas.BulkResultItem(success=False, error=e.message, **item))
            continue
        results.append(schemas.BulkResultItem(
            success=result.success,
            communication_id=communication.id,
            message_id=result.message_id,
            error=result.error,
            **item
        ))

    success_count = sum(1 for r in results if r.success)
    failure_count = len(results) - success_count
    crud.create_audit_log(
        db=db, user_id=current_user.id, action=models.AuditAction.BULK_ACTION, category="COMMUNICATION",
        details=f"Bulk {payload.type.value} to {len(patients)} patients: {success_count} sent, {failure_count} failed"
    )
    logger.info(f"Bulk {payload.type.value} finished: {success_count} sent, {failure_count} failed")
    return {
        "message": f"Bulk {payload.type.value} completed: {success_count} sent, {failure_count} failed",
        "total_patients": len(patients),
        "success_count": success_count,
        "failure_count": failure_count,
        "results": results,
    }
