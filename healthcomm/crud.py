# healthcomm/crud.py
import logging
from typing import Optional, List, Iterable

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from sqlalchemy.orm import Session, joinedload

from . import models, schemas
from .security import get_password_hash

logger = logging.getLogger(__name__)


class CRUDError(Exception):
    pass


# ==================== USER CRUD OPERATIONS ====================

def get_user(db: Session, user_id: str) -> Optional[models.User]:
    try:
        return db.query(models.User).filter(models.User.id == user_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching user {user_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_user_by_username(db: Session, username: str) -> Optional[models.User]:
    try:
        return db.query(models.User).filter(models.User.username == username).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching user by username {username}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_users(db: Session) -> List[models.User]:
    return db.query(models.User).order_by(models.User.created_at.desc()).all()


def create_user(db: Session, user: schemas.UserCreate) -> models.User:
    db_user = models.User(
        username=user.username,
        password_hash=get_password_hash(user.password),
        role=user.role,
    )
    try:
        db.add(db_user)
        db.commit()
        db.refresh(db_user)
        logger.info(f"User created: {db_user.username} ({db_user.role.value})")
        return db_user
    except IntegrityError:
        db.rollback()
        raise CRUDError("Username already exists")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating user {user.username}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def update_user(db: Session, db_user: models.User, user_update: schemas.UserUpdate) -> models.User:
    update_data = user_update.model_dump(exclude_unset=True)
    password = update_data.pop("password", None)
    for key, value in update_data.items():
        if value is not None:
            setattr(db_user, key, value)
    if password:
        db_user.password_hash = get_password_hash(password)
    db.commit()
    db.refresh(db_user)
    return db_user


def delete_user(db: Session, db_user: models.User) -> None:
    db.delete(db_user)
    db.commit()


# ==================== PATIENT CRUD OPERATIONS ====================

def get_patient(db: Session, patient_id: str) -> Optional[models.Patient]:
    return db.query(models.Patient).filter(models.Patient.id == patient_id).first()


def get_patient_by_phone(db: Session, phone_number: str) -> Optional[models.Patient]:
    return db.query(models.Patient).filter(models.Patient.phone_number == phone_number).first()


def get_patients(db: Session) -> List[models.Patient]:
    return db.query(models.Patient).order_by(models.Patient.created_at.desc()).all()


def get_patients_by_ids(db: Session, patient_ids: Iterable[str]) -> List[models.Patient]:
    patient_ids = list(patient_ids)
    if not patient_ids:
        return []
    return db.query(models.Patient).filter(models.Patient.id.in_(patient_ids)).all()


def count_related(db: Session, model, patient_ids: List[str]) -> dict:
    """Map of patient id to number of ``model`` rows referencing it."""
    if not patient_ids:
        return {}
    rows = (
        db.query(model.patient_id, func.count(model.id))
        .filter(model.patient_id.in_(patient_ids))
        .group_by(model.patient_id)
        .all()
    )
    return {patient_id: count for patient_id, count in rows}


def create_patient(db: Session, data: dict) -> models.Patient:
    """Insert a patient from already validated/normalized field values."""
    db_patient = models.Patient(**data)
    try:
        db.add(db_patient)
        db.commit()
        db.refresh(db_patient)
        return db_patient
    except IntegrityError:
        db.rollback()
        raise CRUDError("A patient with this phone number already exists")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating patient: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def update_patient(db: Session, db_patient: models.Patient, data: dict) -> models.Patient:
    for key, value in data.items():
        setattr(db_patient, key, value)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise CRUDError("A patient with this phone number already exists")
    db.refresh(db_patient)
    return db_patient


def delete_patient(db: Session, db_patient: models.Patient) -> None:
    db.delete(db_patient)
    db.commit()


# ==================== TEMPLATE CRUD OPERATIONS ====================

def get_template(db: Session, template_id: str) -> Optional[models.Template]:
    return db.query(models.Template).filter(models.Template.id == template_id).first()


def get_templates(db: Session, template_type: Optional[models.CommunicationType] = None) -> List[models.Template]:
    query = db.query(models.Template)
    if template_type:
        query = query.filter(models.Template.type == template_type)
    return query.order_by(models.Template.created_at.desc()).all()


def create_template(db: Session, template: schemas.TemplateCreate) -> models.Template:
    data = template.model_dump()
    if template.type != models.CommunicationType.VOICE:
        data["voice_speed"] = None
        data["voice_pitch"] = None
    else:
        data["voice_speed"] = data["voice_speed"] if data["voice_speed"] is not None else 1.0
        data["voice_pitch"] = data["voice_pitch"] if data["voice_pitch"] is not None else 0.0
    db_template = models.Template(**data)
    db.add(db_template)
    db.commit()
    db.refresh(db_template)
    return db_template


def update_template(db: Session, db_template: models.Template, template_update: schemas.TemplateUpdate) -> models.Template:
    for key, value in template_update.model_dump(exclude_unset=True).items():
        setattr(db_template, key, value)
    db.commit()
    db.refresh(db_template)
    return db_template


def delete_template(db: Session, db_template: models.Template) -> None:
    db.delete(db_template)
    db.commit()


# ==================== APPOINTMENT CRUD OPERATIONS ====================

def get_appointment(db: Session, appointment_id: str) -> Optional[models.Appointment]:
    return (
        db.query(models.Appointment)
        .options(joinedload(models.Appointment.patient))
        .filter(models.Appointment.id == appointment_id)
        .first()
    )


def get_appointments(db: Session, patient_id: Optional[str] = None) -> List[models.Appointment]:
    query = db.query(models.Appointment).options(joinedload(models.Appointment.patient))
    if patient_id:
        query = query.filter(models.Appointment.patient_id == patient_id)
    return query.order_by(models.Appointment.appointment_date.asc()).all()


def get_latest_appointment(db: Session, patient_id: str) -> Optional[models.Appointment]:
    return (
        db.query(models.Appointment)
        .filter(models.Appointment.patient_id == patient_id)
        .order_by(models.Appointment.appointment_date.desc())
        .first()
    )


def create_appointment(db: Session, appointment: schemas.AppointmentCreate) -> models.Appointment:
    db_appointment = models.Appointment(**appointment.model_dump())
    db.add(db_appointment)
    db.commit()
    db.refresh(db_appointment)
    return db_appointment


def update_appointment(db: Session, db_appointment: models.Appointment, appointment_update: schemas.AppointmentUpdate) -> models.Appointment:
    for key, value in appointment_update.model_dump(exclude_unset=True).items():
        setattr(db_appointment, key, value)
    db.commit()
    db.refresh(db_appointment)
    return db_appointment


def delete_appointment(db: Session, db_appointment: models.Appointment) -> None:
    db.delete(db_appointment)
    db.commit()


# ==================== COMMUNICATION QUERIES ====================

def get_communication(db: Session, communication_id: str) -> Optional[models.Communication]:
    return db.query(models.Communication).filter(models.Communication.id == communication_id).first()


def get_communication_by_transport_id(db: Session, transport_message_id: str) -> Optional[models.Communication]:
    return (
        db.query(models.Communication)
        .filter(models.Communication.transport_message_id == transport_message_id)
        .first()
    )


def get_communications(
    db: Session,
    patient_id: Optional[str] = None,
    comm_type: Optional[models.CommunicationType] = None,
    comm_status: Optional[models.CommunicationStatus] = None,
    limit: int = 100,
) -> List[models.Communication]:
    query = db.query(models.Communication).options(
        joinedload(models.Communication.patient),
        joinedload(models.Communication.template),
        joinedload(models.Communication.appointment),
    )
    if patient_id:
        query = query.filter(models.Communication.patient_id == patient_id)
    if comm_type:
        query = query.filter(models.Communication.type == comm_type)
    if comm_status:
        query = query.filter(models.Communication.status == comm_status)
    return query.order_by(models.Communication.created_at.desc()).limit(limit).all()


# ==================== PATIENT GROUP OPERATIONS ====================

def get_patient_group(db: Session, group_id: str) -> Optional[models.PatientGroup]:
    return db.query(models.PatientGroup).filter(models.PatientGroup.id == group_id).first()


def get_patient_groups(db: Session) -> List[models.PatientGroup]:
    return (
        db.query(models.PatientGroup)
        .options(joinedload(models.PatientGroup.members).joinedload(models.PatientGroupMember.patient))
        .order_by(models.PatientGroup.created_at.desc())
        .all()
    )


def create_patient_group(db: Session, group: schemas.PatientGroupCreate) -> models.PatientGroup:
    db_group = models.PatientGroup(name=group.name, description=group.description, color=group.color)
    # Duplicate and unknown ids are dropped rather than failing the whole group
    for patient in get_patients_by_ids(db, dict.fromkeys(group.patient_ids)):
        db_group.members.append(models.PatientGroupMember(patient=patient))
    db.add(db_group)
    db.commit()
    db.refresh(db_group)
    return db_group


# ==================== AUDIT LOG ====================

def create_audit_log(db: Session, user_id=None, action=None, category=None, details=None, **kwargs):
    """Create a new audit log entry. Never raises: auditing must not break the request."""
    try:
        username = kwargs.get("username")
        if username is None and user_id:
            username = db.query(models.User.username).filter(models.User.id == user_id).scalar()

        if not isinstance(action, models.AuditAction):
            action = models.AuditAction(str(action).upper())
        if hasattr(category, "value"):
            category = category.value

        entry = models.AuditLog(
            user_id=user_id,
            username=username or "System",
            action=action,
            category=category or "GENERAL",
            resource_id=kwargs.get("resource_id"),
            details=details,
        )
        db.add(entry)
        db.commit()
        return entry
    except (SQLAlchemyError, ValueError) as e:
        db.rollback()
        logger.error(f"Error creating audit log: {e}")
        return None
