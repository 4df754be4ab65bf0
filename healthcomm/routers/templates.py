# healthcomm/routers/templates.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security, models
from ..database import get_db
from ..services.template_variables import AVAILABLE_VARIABLES

router = APIRouter(
    tags=["Message Templates"],
    dependencies=[Depends(security.get_current_user)],
)


def _get_template_or_404(db: Session, template_id: str) -> models.Template:
    db_template = crud.get_template(db, template_id)
    if db_template is None:
        raise HTTPException(status_code=404, detail="Template not found")
    return db_template


@router.get("/templates", response_model=List[schemas.TemplateResponse])
def read_templates(type: Optional[models.CommunicationType] = None, db: Session = Depends(get_db)):
    return crud.get_templates(db, template_type=type)


@router.get("/templates/variables")
def read_template_variables():
    """Placeholders understood by message substitution, with a short description of each."""
    return AVAILABLE_VARIABLES


@router.post("/templates", response_model=schemas.TemplateResponse, status_code=status.HTTP_201_CREATED)
def create_message_template(template: schemas.TemplateCreate, db: Session = Depends(get_db)):
    return crud.create_template(db, template)


@router.get("/templates/{template_id}", response_model=schemas.TemplateResponse)
def read_template(template_id: str, db: Session = Depends(get_db)):
    return _get_template_or_404(db, template_id)


@router.put("/templates/{template_id}", response_model=schemas.TemplateResponse)
def update_message_template(template_id: str, template_update: schemas.TemplateUpdate, db: Session = Depends(get_db)):
    db_template = _get_template_or_404(db, template_id)
    return crud.update_template(db, db_template, template_update)


@router.delete("/templates/{template_id}", response_model=schemas.MessageResponse)
def delete_message_template(template_id: str, db: Session = Depends(get_db)):
    crud.delete_template(db, _get_template_or_404(db, template_id))
    return {"message": "Template deleted successfully"}
