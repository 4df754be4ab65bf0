# healthcomm/routers/appointments.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security, models
from ..database import get_db

router = APIRouter(
    tags=["Appointments"],
    dependencies=[Depends(security.get_current_user)],
    responses={404: {"description": "Not found"}},
)


def _get_appointment_or_404(db: Session, appointment_id: str) -> models.Appointment:
    db_appointment = crud.get_appointment(db, appointment_id)
    if db_appointment is None:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return db_appointment


@router.get("/appointments", response_model=List[schemas.AppointmentResponse])
def read_appointments(patient_id: Optional[str] = Query(None, alias="patientId"), db: Session = Depends(get_db)):
    return crud.get_appointments(db, patient_id=patient_id)


@router.post("/appointments", response_model=schemas.AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_new_appointment(
    appointment: schemas.AppointmentCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    if crud.get_patient(db, appointment.patient_id) is None:
        raise HTTPException(status_code=404, detail="Patient not found")

    new_appointment = crud.create_appointment(db, appointment)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action=models.AuditAction.CREATE, category="APPOINTMENT",
        resource_id=new_appointment.id, details=f"Created appointment '{new_appointment.title}'"
    )
    return new_appointment


@router.get("/appointments/{appointment_id}", response_model=schemas.AppointmentResponse)
def read_appointment(appointment_id: str, db: Session = Depends(get_db)):
    return _get_appointment_or_404(db, appointment_id)


@router.put("/appointments/{appointment_id}", response_model=schemas.AppointmentResponse)
def update_existing_appointment(
    appointment_id: str,
    appointment_update: schemas.AppointmentUpdate,
    db: Session = Depends(get_db)
):
    db_appointment = _get_appointment_or_404(db, appointment_id)
    return crud.update_appointment(db, db_appointment, appointment_update)


@router.delete("/appointments/{appointment_id}", response_model=schemas.MessageResponse)
def delete_existing_appointment(
    appointment_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    db_appointment = _get_appointment_or_404(db, appointment_id)
    crud.delete_appointment(db, db_appointment)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action=models.AuditAction.DELETE, category="APPOINTMENT",
        resource_id=appointment_id, details="Deleted appointment"
    )
    return {"message": "Appointment deleted successfully"}
