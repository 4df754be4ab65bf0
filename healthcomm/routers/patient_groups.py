# healthcomm/routers/patient_groups.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security, models
from ..database import get_db

router = APIRouter(
    tags=["Patient Groups"],
    dependencies=[Depends(security.get_current_user)],
)


def _group_response(group: models.PatientGroup) -> schemas.PatientGroupResponse:
    patients = [schemas.PatientSummary.model_validate(member.patient) for member in group.members]
    return schemas.PatientGroupResponse(
        id=group.id,
        name=group.name,
        description=group.description,
        color=group.color,
        created_at=group.created_at,
        patients=patients,
        patient_count=len(patients),
    )


@router.get("/patient-groups", response_model=List[schemas.PatientGroupResponse])
def read_patient_groups(db: Session = Depends(get_db)):
    return [_group_response(group) for group in crud.get_patient_groups(db)]


@router.post("/patient-groups", response_model=schemas.PatientGroupResponse, status_code=status.HTTP_201_CREATED)
def create_patient_group(
    group: schemas.PatientGroupCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    db_group = crud.create_patient_group(db, group)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action=models.AuditAction.CREATE, category="PATIENT_GROUP",
        resource_id=db_group.id, details=f"Created patient group '{db_group.name}' with {len(db_group.members)} members"
    )
    return _group_response(db_group)
