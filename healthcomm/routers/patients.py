# healthcomm/routers/patients.py
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security, models
from ..database import get_db
from ..exceptions import ConflictError
from ..services import patient_import
from ..services.messaging import normalize_phone_number

logger = logging.getLogger(__name__)

DUPLICATE_PHONE = "A patient with this phone number already exists"

router = APIRouter(
    tags=["Patients"],
    dependencies=[Depends(security.get_current_user)],
    responses={404: {"description": "Not found"}},
)


def _get_patient_or_404(db: Session, patient_id: str) -> models.Patient:
    db_patient = crud.get_patient(db, patient_id=patient_id)
    if db_patient is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return db_patient


@router.get("/patients", response_model=List[schemas.PatientListItem])
def read_all_patients(db: Session = Depends(get_db)):
    patients = crud.get_patients(db)
    ids = [p.id for p in patients]
    appointment_counts = crud.count_related(db, models.Appointment, ids)
    communication_counts = crud.count_related(db, models.Communication, ids)
    return [
        schemas.PatientListItem.model_validate(patient).model_copy(update={
            "appointment_count": appointment_counts.get(patient.id, 0),
            "communication_count": communication_counts.get(patient.id, 0),
        })
        for patient in patients
    ]


@router.post("/patients", response_model=schemas.PatientResponse, status_code=status.HTTP_201_CREATED)
def create_new_patient(
    patient: schemas.PatientCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    data = patient.model_dump()
    data["phone_number"] = normalize_phone_number(patient.phone_number)
    if crud.get_patient_by_phone(db, phone_number=data["phone_number"]):
        raise ConflictError(DUPLICATE_PHONE)

    try:
        new_patient = crud.create_patient(db, data)
    except crud.CRUDError as e:
        raise ConflictError(str(e))
    crud.create_audit_log(
        db=db, user_id=current_user.id, action=models.AuditAction.CREATE, category="PATIENT",
        resource_id=new_patient.id, details=f"Created new patient: {new_patient.full_name}"
    )
    return new_patient


@router.get("/patients/import/template", response_model=schemas.ImportTemplateResponse)
def read_import_template():
    return {
        "template": patient_import.TEMPLATE_ROWS,
        "headers": patient_import.CSV_COLUMNS,
        "description": patient_import.COLUMN_DESCRIPTIONS,
    }


@router.post("/patients/import", response_model=schemas.PatientImportResponse)
def import_patients(
    payload: schemas.PatientImportRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    """
    Bulk-create patients from CSV text or pre-split rows.
    Rows that fail validation are reported individually and skipped.
    """
    results = patient_import.import_patients(db, payload.csv_data, skip_header=payload.skip_header)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action=models.AuditAction.IMPORT, category="PATIENT",
        details=f"Imported {results.successful} of {results.total} patients"
    )
    return {
        "message": f"Import completed: {results.successful} successful, {results.failed} failed",
        "results": results,
    }


@router.get("/patients/{patient_id}", response_model=schemas.PatientDetail)
def read_patient_details(patient_id: str, db: Session = Depends(get_db)):
    return _get_patient_or_404(db, patient_id)


@router.put("/patients/{patient_id}", response_model=schemas.PatientResponse)
def update_existing_patient(
    patient_id: str,
    patient_update: schemas.PatientUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    db_patient = _get_patient_or_404(db, patient_id)
    data = patient_update.model_dump(exclude_unset=True)
    if data.get("phone_number"):
        data["phone_number"] = normalize_phone_number(data["phone_number"])
        existing = crud.get_patient_by_phone(db, phone_number=data["phone_number"])
        if existing and existing.id != patient_id:
            raise ConflictError(DUPLICATE_PHONE)
    else:
        data.pop("phone_number", None)
    for required in ("first_name", "last_name", "sms_enabled", "voice_enabled"):
        if required in data and data[required] is None:
            data.pop(required)

    try:
        updated = crud.update_patient(db, db_patient, data)
    except crud.CRUDError as e:
        raise ConflictError(str(e))
    crud.create_audit_log(
        db=db, user_id=current_user.id, action=models.AuditAction.UPDATE, category="PATIENT",
        resource_id=patient_id, details=f"Updated patient: {updated.full_name}"
    )
    return updated


@router.delete("/patients/{patient_id}", response_model=schemas.MessageResponse)
def delete_existing_patient(
    patient_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    db_patient = _get_patient_or_404(db, patient_id)
    name = db_patient.full_name
    crud.delete_patient(db, db_patient)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action=models.AuditAction.DELETE, category="PATIENT",
        resource_id=patient_id, details=f"Deleted patient: {name}"
    )
    return {"message": "Patient deleted successfully"}
