# healthcomm/services/patient_import.py
import csv
import io
import logging
from typing import List, Sequence, Union

from sqlalchemy.orm import Session

from .. import crud, schemas
from ..exceptions import ValidationError
from .messaging import normalize_phone_number

logger = logging.getLogger(__name__)

CSV_COLUMNS = ["firstName", "lastName", "phoneNumber", "email", "smsEnabled", "voiceEnabled", "medicalNotes"]

TEMPLATE_ROWS = [
    CSV_COLUMNS,
    ["John", "Doe", "+12345678901", "john.doe@example.com", "true", "true", "Regular checkup patient"],
    ["Jane", "Smith", "+19876543210", "jane.smith@example.com", "true", "false", "Prefers SMS only"],
    ["Robert", "Johnson", "+15551234567", "", "false", "true", "Elderly patient, prefers voice calls"],
]

COLUMN_DESCRIPTIONS = {
    "firstName": "Patient first name (required)",
    "lastName": "Patient last name (required)",
    "phoneNumber": "Phone number, e.g. +15551234567 or 5551234567 (required)",
    "email": "Email address (optional)",
    "smsEnabled": "true/false - whether SMS is enabled for this patient (default: true)",
    "voiceEnabled": "true/false - whether voice calls are enabled for this patient (default: true)",
    "medicalNotes": "Any additional notes about the patient (optional)",
}


def parse_csv_rows(csv_data: Union[str, Sequence[Sequence[str]]]) -> List[List[str]]:
    """Accept raw CSV text or pre-split rows; blank lines are dropped."""
    if isinstance(csv_data, str):
        rows = list(csv.reader(io.StringIO(csv_data.strip())))
    else:
        rows = [list(row) for row in csv_data]
    return [row for row in rows if any((cell or "").strip() for cell in row)]


def parse_flag(value: str) -> bool:
    value = (value or "").strip().lower()
    if not value:
        return True
    return value in ("true", "1")


def import_patients(db: Session, csv_data, skip_header: bool = True) -> schemas.ImportResults:
    """Create one patient per row. A bad row is reported and skipped; it never aborts the import."""
    rows = parse_csv_rows(csv_data)
    if skip_header and rows:
        rows = rows[1:]
    first_row_number = 2 if skip_header else 1

    results = schemas.ImportResults(total=len(rows))
    for offset, row in enumerate(rows):
        row_number = first_row_number + offset
        cells = [(cell or "").strip() for cell in row] + [""] * (len(CSV_COLUMNS) - len(row))
        first_name, last_name, phone_number, email, sms_enabled, voice_enabled, medical_notes = cells[:7]

        if not first_name or not last_name or not phone_number:
            results.errors.append(f"Row {row_number}: firstName, lastName, and phoneNumber are required")
            results.failed += 1
            continue

        try:
            formatted_phone = normalize_phone_number(phone_number)
        except ValidationError:
            results.errors.append(f"Row {row_number}: Invalid phone number format: {phone_number}")
            results.failed += 1
            continue

        if crud.get_patient_by_phone(db, formatted_phone):
            results.errors.append(f"Row {row_number}: Patient with phone number {formatted_phone} already exists")
            results.failed += 1
            continue

        try:
            patient = crud.create_patient(db, {
                "first_name": first_name,
                "last_name": last_name,
                "phone_number": formatted_phone,
                "email": email or None,
                "sms_enabled": parse_flag(sms_enabled),
                "voice_enabled": parse_flag(voice_enabled),
                "medical_notes": medical_notes or None,
            })
        except crud.CRUDError as e:
            logger.error(f"Import row {row_number} failed: {e}")
            results.errors.append(f"Row {row_number}: {e}")
            results.failed += 1
            continue

        results.imported.append(schemas.PatientSummary.model_validate(patient))
        results.successful += 1

    logger.info(f"Patient import finished: {results.successful} successful, {results.failed} failed")
    return results
