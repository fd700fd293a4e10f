# app/api/v1/endpoints/segments.py
"""
Segment management endpoints.

Segments are saved audience definitions. Exclusion references are checked
for cycles on write; a segment still used by a campaign or another
segment's exclusion cannot be deleted.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api import deps
from app.crud.crud_segment import segment as segment_crud
from app.db.session import get_db
from app.schemas.segment import (
    SegmentCreate,
    SegmentRecipientCount,
    SegmentRecipientPreview,
    SegmentResponse,
    SegmentUpdate,
)
from app.schemas.token import TokenPayload
from app.services.campaigns.segment_resolver import (
    check_exclusion_chain,
    count_recipients,
    resolve_recipients,
)

router = APIRouter()


def _get_or_404(db: Session, segment_id: str):
    segment = segment_crud.get(db, segment_id)
    if not segment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Segment not found")
    return segment


@router.get("", response_model=List[SegmentResponse])
def list_segments(
    organization_id: Optional[str] = None,
    skip: int = 0,
    limit: int = Query(100, le=500),
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return segment_crud.get_multi(db, organization_id=organization_id, skip=skip, limit=limit)


@router.post("", response_model=SegmentResponse, status_code=status.HTTP_201_CREATED)
def create_segment(
    segment_in: SegmentCreate,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    if segment_in.exclude_segment_id:
        check_exclusion_chain(db, segment_id=None, exclude_segment_id=segment_in.exclude_segment_id)
    return segment_crud.create(db, obj_in=segment_in)


@router.get("/{segment_id}", response_model=SegmentResponse)
def get_segment(
    segment_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return _get_or_404(db, segment_id)


@router.patch("/{segment_id}", response_model=SegmentResponse)
def update_segment(
    segment_id: str,
    segment_in: SegmentUpdate,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    segment = _get_or_404(db, segment_id)
    if segment_in.exclude_segment_id:
        check_exclusion_chain(
            db, segment_id=segment_id, exclude_segment_id=segment_in.exclude_segment_id
        )
    return segment_crud.update(db, db_obj=segment, obj_in=segment_in)


@router.delete("/{segment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_segment(
    segment_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    segment = _get_or_404(db, segment_id)
    if segment_crud.is_referenced(db, segment_id=segment_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Segment is used by a campaign or another segment's exclusion",
        )
    segment_crud.remove(db, db_obj=segment)


@router.get("/{segment_id}/recipients/count", response_model=SegmentRecipientCount)
def get_recipient_count(
    segment_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return SegmentRecipientCount(segment_id=segment_id, count=count_recipients(db, segment_id))


@router.get("/{segment_id}/recipients/preview", response_model=List[SegmentRecipientPreview])
def preview_recipients(
    segment_id: str,
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return [
        SegmentRecipientPreview(lead_id=r.lead_id, contact_id=r.contact_id, email=r.email)
        for r in resolve_recipients(db, segment_id, limit=limit)
    ]
