# healthcomm/services/template_variables.py
import re
from datetime import datetime
from typing import Dict, Mapping, Optional

from .. import models

PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")

AVAILABLE_VARIABLES = {
    "{firstName}": "Patient's first name",
    "{lastName}": "Patient's last name",
    "{fullName}": "Patient's full name",
    "{phoneNumber}": "Patient's phone number",
    "{email}": "Patient's email address",
    "{appointmentDate}": "Appointment date (e.g., Monday, June 23, 2025)",
    "{appointmentTime}": "Appointment time (e.g., 2:30 PM)",
    "{appointmentDateTime}": "Full appointment date and time",
    "{appointmentTitle}": "Appointment title/type",
    "{appointmentDescription}": "Appointment description",
    "{clinicName}": "Clinic or practice name",
    "{providerName}": "Healthcare provider name",
    "{clinicPhone}": "Clinic phone number",
}


def format_date(value: datetime) -> str:
    return f"{value:%A}, {value:%B} {value.day}, {value.year}"


def format_time(value: datetime) -> str:
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {meridiem}"


def format_date_time(value: datetime) -> str:
    return f"{format_date(value)} at {format_time(value)}"


def patient_variables(patient: models.Patient) -> Dict[str, str]:
    return {
        "firstName": patient.first_name,
        "lastName": patient.last_name,
        "fullName": f"{patient.first_name} {patient.last_name}",
        "phoneNumber": patient.phone_number,
        "email": patient.email or "",
    }


def appointment_variables(appointment: models.Appointment) -> Dict[str, str]:
    return {
        "appointmentTitle": appointment.title,
        "appointmentDescription": appointment.description or "",
        "appointmentDate": format_date(appointment.appointment_date),
        "appointmentTime": format_time(appointment.appointment_date),
        "appointmentDateTime": format_date_time(appointment.appointment_date),
    }


def substitute_template_variables(
    content: str,
    patient: Optional[models.Patient] = None,
    appointment: Optional[models.Appointment] = None,
    template_variables: Optional[Mapping[str, str]] = None,
    custom_variables: Optional[Mapping[str, str]] = None,
    clinic_defaults: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Replace ``{name}`` placeholders in a single pass.

    Names match case-insensitively. Later sources win: template variable map,
    clinic defaults, patient, appointment, then explicit custom variables.
    A placeholder with no value anywhere is left exactly as written.
    """
    values: Dict[str, str] = {}
    sources = (
        template_variables,
        clinic_defaults,
        patient_variables(patient) if patient is not None else None,
        appointment_variables(appointment) if appointment is not None else None,
        custom_variables,
    )
    for source in sources:
        for key, value in (source or {}).items():
            if value is not None:
                values[key.lower()] = str(value)

    def _replace(match):
        return values.get(match.group(1).lower(), match.group(0))

    return PLACEHOLDER_PATTERN.sub(_replace, content)
