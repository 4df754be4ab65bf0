# healthcomm/schemas.py
from datetime import datetime, date
from typing import List, Optional, Dict, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import UserRole, CommunicationType, CommunicationStatus


# --- Base Schemas ---
class BaseSchema(BaseModel):
    # JSON is camelCase on the wire, snake_case in Python and on the ORM
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class MessageResponse(BaseSchema):
    message: str


# --- Auth Schemas ---
class LoginRequest(BaseSchema):
    username: Optional[str] = None
    password: Optional[str] = None


class UserResponse(BaseSchema):
    id: str
    username: str
    role: UserRole
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LoginResponse(BaseSchema):
    message: str
    user: UserResponse
    token: str


class ValidateResponse(BaseSchema):
    valid: bool
    user: UserResponse


# --- User Schemas ---
class UserCreate(BaseSchema):
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1)
    role: UserRole = UserRole.user


class UserUpdate(BaseSchema):
    username: Optional[str] = Field(None, min_length=1, max_length=50)
    password: Optional[str] = Field(None, min_length=1)
    role: Optional[UserRole] = None


# --- Patient Schemas ---
class PatientBase(BaseSchema):
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    phone_number: str = Field(..., min_length=1, max_length=32)
    email: Optional[str] = Field(None, max_length=255)
    date_of_birth: Optional[date] = None
    sms_enabled: bool = True
    voice_enabled: bool = True
    medical_notes: Optional[str] = None


class PatientCreate(PatientBase):
    pass


class PatientUpdate(BaseSchema):
    first_name: Optional[str] = Field(None, min_length=1, max_length=255)
    last_name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone_number: Optional[str] = Field(None, min_length=1, max_length=32)
    email: Optional[str] = Field(None, max_length=255)
    date_of_birth: Optional[date] = None
    sms_enabled: Optional[bool] = None
    voice_enabled: Optional[bool] = None
    medical_notes: Optional[str] = None


class PatientResponse(PatientBase):
    id: str
    created_at: datetime
    updated_at: datetime


class PatientSummary(BaseSchema):
    id: str
    first_name: str
    last_name: str
    phone_number: str


class PatientListItem(PatientResponse):
    appointment_count: int = 0
    communication_count: int = 0


# --- Template Schemas ---
class TemplateBase(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    type: CommunicationType
    content: str = Field(..., min_length=1)
    variables: Optional[Dict[str, str]] = None
    voice_speed: Optional[float] = None
    voice_pitch: Optional[float] = None


class TemplateCreate(TemplateBase):
    pass


class TemplateUpdate(BaseSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[CommunicationType] = None
    content: Optional[str] = Field(None, min_length=1)
    variables: Optional[Dict[str, str]] = None
    voice_speed: Optional[float] = None
    voice_pitch: Optional[float] = None


class TemplateResponse(TemplateBase):
    id: str
    created_at: datetime
    updated_at: datetime


class TemplateSummary(BaseSchema):
    id: str
    name: str


# --- Appointment Schemas ---
class AppointmentBase(BaseSchema):
    patient_id: str
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    appointment_date: datetime
    duration: int = Field(30, gt=0)


class AppointmentCreate(AppointmentBase):
    pass


class AppointmentUpdate(BaseSchema):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    appointment_date: Optional[datetime] = None
    duration: Optional[int] = Field(None, gt=0)


class AppointmentResponse(AppointmentBase):
    id: str
    created_at: datetime
    updated_at: datetime
    patient: Optional[PatientSummary] = None


class AppointmentSummary(BaseSchema):
    id: str
    title: str
    appointment_date: datetime


# --- Communication Schemas ---
class CommunicationResponse(BaseSchema):
    id: str
    patient_id: str
    type: CommunicationType
    content: str
    phone_number: str
    template_id: Optional[str] = None
    appointment_id: Optional[str] = None
    status: CommunicationStatus
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    transport_message_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    patient: Optional[PatientSummary] = None
    template: Optional[TemplateSummary] = None
    appointment: Optional[AppointmentSummary] = None


class PatientDetail(PatientResponse):
    appointments: List[AppointmentSummary] = Field(default_factory=list)
    communications: List[CommunicationResponse] = Field(default_factory=list)


class CommunicationCreate(BaseSchema):
    patient_id: str
    type: CommunicationType
    content: str = Field(..., min_length=1)
    phone_number: Optional[str] = None
    template_id: Optional[str] = None
    appointment_id: Optional[str] = None


class SendRequest(BaseSchema):
    patient_id: str
    template_id: Optional[str] = None
    appointment_id: Optional[str] = None
    custom_message: Optional[str] = None
    custom_variables: Optional[Dict[str, str]] = None


class DeliveryResult(BaseSchema):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class SendResponse(BaseSchema):
    communication: CommunicationResponse
    result: DeliveryResult


class BulkSendRequest(BaseSchema):
    patient_ids: Optional[List[str]] = None
    group_id: Optional[str] = None
    type: CommunicationType
    template_id: Optional[str] = None
    custom_message: Optional[str] = None


class BulkResultItem(BaseSchema):
    patient_id: str
    patient_name: str
    success: bool
    communication_id: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None


class BulkSendResponse(BaseSchema):
    message: str
    total_patients: int
    success_count: int
    failure_count: int
    results: List[BulkResultItem]


# --- Patient Group Schemas ---
class PatientGroupCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    color: str = Field("#3B82F6", pattern=r"^#[0-9A-Fa-f]{6}$")
    patient_ids: List[str] = Field(default_factory=list)


class PatientGroupResponse(BaseSchema):
    id: str
    name: str
    description: Optional[str] = None
    color: str
    created_at: datetime
    patients: List[PatientSummary] = Field(default_factory=list)
    patient_count: int = 0


# --- Settings Schemas ---
class SettingsResponse(BaseSchema):
    messaging_mode: str
    effective_mode: str
    twilio_configured: bool
    twilio_phone_number: Optional[str] = None


class SettingsUpdate(BaseSchema):
    messaging_mode: Optional[str] = None


class SettingsUpdateResponse(BaseSchema):
    success: bool
    messaging_mode: str
    message: str


# --- Import Schemas ---
class PatientImportRequest(BaseSchema):
    csv_data: Union[str, List[List[str]]]
    skip_header: bool = True

    @field_validator("csv_data")
    @classmethod
    def require_data(cls, v):
        if not v:
            raise ValueError("CSV data is required")
        return v


class ImportResults(BaseSchema):
    total: int = 0
    successful: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
    imported: List[PatientSummary] = Field(default_factory=list)


class PatientImportResponse(BaseSchema):
    message: str
    results: ImportResults


class ImportTemplateResponse(BaseSchema):
    template: List[List[str]]
    headers: List[str]
    description: Dict[str, str]


# --- Analytics Schemas ---
class ChannelStats(BaseSchema):
    total: int
    delivered: int
    failed: int
    pending: int


class CommunicationStats(BaseSchema):
    total_communications: int
    sms: ChannelStats
    voice: ChannelStats


class SuccessRates(BaseSchema):
    sms: float
    voice: float


class DailyStat(BaseSchema):
    date: str
    sms: int
    voice: int
    total: int


class TopPatient(BaseSchema):
    name: str
    count: int


class RecentFailure(BaseSchema):
    id: str
    type: CommunicationType
    patient: str
    phone_number: str
    error_message: Optional[str] = None
    failed_at: Optional[datetime] = None


class DateRange(BaseSchema):
    # "from" is a keyword, so this one field keeps an explicit alias
    start: datetime = Field(..., alias="from")
    to: datetime
    days: int


class AnalyticsResponse(BaseSchema):
    stats: CommunicationStats
    success_rates: SuccessRates
    daily_stats: List[DailyStat]
    top_patients: List[TopPatient]
    recent_failures: List[RecentFailure]
    date_range: DateRange


class HealthResponse(BaseSchema):
    status: str
    timestamp: datetime
    message: str
