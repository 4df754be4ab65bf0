# healthcomm/models.py
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Date, Float,
    Enum as SQLAlchemyEnum, Boolean, JSON, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from .database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, enum.Enum):
    admin = "admin"
    user = "user"


class CommunicationType(str, enum.Enum):
    SMS = "SMS"
    VOICE = "VOICE"


class CommunicationStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    CommunicationStatus.DELIVERED,
    CommunicationStatus.FAILED,
    CommunicationStatus.CANCELLED,
})


class AuditAction(str, enum.Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    ACCESS_DENIED = "ACCESS_DENIED"
    SEND = "SEND"
    BULK_ACTION = "BULK_ACTION"
    IMPORT = "IMPORT"


class User(Base):
    """Portal operator account. Admins manage users and the messaging mode."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    username = Column(String(50), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(SQLAlchemyEnum(UserRole, name="user_role"), default=UserRole.user, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    audit_logs = relationship("AuditLog", back_populates="user")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin


class Patient(Base):
    __tablename__ = "patients"
    __table_args__ = (
        Index("idx_patients_name", "last_name", "first_name"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    phone_number = Column(String(20), unique=True, index=True, nullable=False)
    email = Column(String(255), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    sms_enabled = Column(Boolean, default=True, nullable=False)
    voice_enabled = Column(Boolean, default=True, nullable=False)
    medical_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    appointments = relationship(
        "Appointment", back_populates="patient", cascade="all, delete-orphan",
        order_by="Appointment.appointment_date"
    )
    communications = relationship(
        "Communication", back_populates="patient", cascade="all, delete-orphan",
        order_by="Communication.created_at.desc()"
    )
    group_memberships = relationship("PatientGroupMember", back_populates="patient", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Template(Base):
    __tablename__ = "templates"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    type = Column(SQLAlchemyEnum(CommunicationType, name="communication_type"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    variables = Column(JSON, nullable=True)
    voice_speed = Column(Float, nullable=True)
    voice_pitch = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    communications = relationship("Communication", back_populates="template")


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_patient_date", "patient_id", "appointment_date"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    appointment_date = Column(DateTime(timezone=True), nullable=False)
    duration = Column(Integer, default=30, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    patient = relationship("Patient", back_populates="appointments")
    communications = relationship("Communication", back_populates="appointment")


class Communication(Base):
    """One outbound SMS or voice call and its delivery lifecycle."""
    __tablename__ = "communications"
    __table_args__ = (
        Index("idx_communications_patient_created", "patient_id", "created_at"),
        Index("idx_communications_status", "status"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    type = Column(SQLAlchemyEnum(CommunicationType, name="communication_type"), nullable=False)
    content = Column(Text, nullable=False)
    phone_number = Column(String(20), nullable=False)
    template_id = Column(String(36), ForeignKey("templates.id", ondelete="SET NULL"), nullable=True)
    appointment_id = Column(String(36), ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True)
    status = Column(
        SQLAlchemyEnum(CommunicationStatus, name="communication_status"),
        default=CommunicationStatus.PENDING, nullable=False
    )
    sent_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    transport_message_id = Column(String(64), unique=True, index=True, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    patient = relationship("Patient", back_populates="communications")
    template = relationship("Template", back_populates="communications")
    appointment = relationship("Appointment", back_populates="communications")


class PatientGroup(Base):
    __tablename__ = "patient_groups"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(7), default="#3B82F6", nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    members = relationship("PatientGroupMember", back_populates="group", cascade="all, delete-orphan")


class PatientGroupMember(Base):
    __tablename__ = "patient_group_members"
    __table_args__ = (
        UniqueConstraint("patient_id", "group_id", name="uq_patient_group_member"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    group_id = Column(String(36), ForeignKey("patient_groups.id", ondelete="CASCADE"), nullable=False)

    patient = relationship("Patient", back_populates="group_memberships")
    group = relationship("PatientGroup", back_populates="members")


class AuditLog(Base):
    """Audit trail for logins, user management, settings changes and sends"""
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_user_date", "user_id", "timestamp"),
        Index("idx_audit_action_date", "action", "timestamp"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    username = Column(String(50), nullable=True)  # Denormalized for audit integrity
    action = Column(SQLAlchemyEnum(AuditAction, name="audit_action"), nullable=False)
    category = Column(String(50), nullable=False, default="GENERAL", index=True)
    resource_id = Column(String(36), nullable=True)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow, index=True)

    user = relationship("User", back_populates="audit_logs")
