# app/api/v1/endpoints/suppression.py
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api import deps
from app.crud.crud_suppression import suppression as suppression_crud
from app.db.session import get_db
from app.schemas.suppression import SuppressionCreate, SuppressionResponse
from app.schemas.token import TokenPayload

router = APIRouter()


@router.get("", response_model=List[SuppressionResponse])
def list_entries(
    type: Optional[Literal["email", "domain"]] = None,
    skip: int = 0,
    limit: int = Query(100, le=1000),
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return suppression_crud.get_multi(db, type=type, skip=skip, limit=limit)


@router.post("", response_model=SuppressionResponse, status_code=status.HTTP_201_CREATED)
def create_entry(
    entry_in: SuppressionCreate,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Adding an entry that already exists returns the existing one."""
    return suppression_crud.create(db, obj_in=entry_in)


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_entry(
    entry_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    entry = suppression_crud.get(db, entry_id)
    if not entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Suppression entry not found")
    suppression_crud.remove(db, db_obj=entry)
