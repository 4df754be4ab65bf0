# healthcomm/routers/users.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List

from .. import crud, schemas, security, models
from ..database import get_db

router = APIRouter(
    tags=["Users"],
    dependencies=[Depends(security.require_admin)],
    responses={404: {"description": "Not found"}},
)


def _get_user_or_404(db: Session, user_id: str) -> models.User:
    db_user = crud.get_user(db, user_id=user_id)
    if not db_user:
        raise HTTPException(status_code=404, detail="User not found")
    return db_user


@router.get("/users", response_model=List[schemas.UserResponse])
def read_all_users(db: Session = Depends(get_db)):
    return crud.get_users(db)


@router.post("/users", response_model=schemas.UserResponse, status_code=status.HTTP_201_CREATED)
def create_new_user(
    user: schemas.UserCreate,
    db: Session = Depends(get_db),
    current_admin: models.User = Depends(security.require_admin)
):
    if crud.get_user_by_username(db, username=user.username):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists")

    new_user = crud.create_user(db=db, user=user)
    crud.create_audit_log(
        db=db, user_id=current_admin.id, action=models.AuditAction.CREATE, category="USER",
        resource_id=new_user.id, details=f"Created new user: {new_user.username} with role {new_user.role.value}"
    )
    return new_user


@router.get("/users/{user_id}", response_model=schemas.UserResponse)
def read_user(user_id: str, db: Session = Depends(get_db)):
    return _get_user_or_404(db, user_id)


@router.put("/users/{user_id}", response_model=schemas.UserResponse)
def update_existing_user(
    user_id: str,
    user_update: schemas.UserUpdate,
    db: Session = Depends(get_db),
    current_admin: models.User = Depends(security.require_admin)
):
    db_user = _get_user_or_404(db, user_id)
    if user_update.username and user_update.username != db_user.username:
        if crud.get_user_by_username(db, username=user_update.username):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists")

    updated_user = crud.update_user(db, db_user, user_update)
    crud.create_audit_log(
        db=db, user_id=current_admin.id, action=models.AuditAction.UPDATE, category="USER",
        resource_id=user_id, details=f"Updated user: {updated_user.username}"
    )
    return updated_user


@router.delete("/users/{user_id}", response_model=schemas.MessageResponse)
def delete_existing_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_admin: models.User = Depends(security.require_admin)
):
    db_user = _get_user_or_404(db, user_id)

    # Admin accounts are never deletable, including by themselves
    if db_user.role == models.UserRole.admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot delete admin users")

    username = db_user.username
    crud.delete_user(db, db_user)
    crud.create_audit_log(
        db=db, user_id=current_admin.id, action=models.AuditAction.DELETE, category="USER",
        resource_id=user_id, details=f"Deleted user: {username}"
    )
    return {"message": "User deleted successfully"}
