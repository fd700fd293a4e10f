# app/api/v1/endpoints/campaigns.py
"""
Operator endpoints for campaigns.

Lifecycle actions (send, schedule, clone, A/B winner, remainder) delegate to
the campaign service; its validation errors surface as 400 and unknown ids
as 404 through the application's exception handlers. Sending itself is
asynchronous: the response only reports how many sends were enqueued.
"""

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.api import deps
from app.core.limiter import limiter
from app.crud.crud_campaign import campaign as campaign_crud
from app.db.session import get_db
from app.schemas.campaign import (
    ABSummary,
    ABWinner,
    CampaignCreate,
    CampaignResponse,
    CampaignSchedule,
    CampaignStats,
    CampaignUpdate,
    FailedSend,
    LinkClickReport,
    SendLog,
    SendResult,
)
from app.schemas.token import TokenPayload
from app.services.campaigns import campaign_service

router = APIRouter()


@router.get("", response_model=List[CampaignResponse])
def list_campaigns(
    status_filter: Optional[str] = Query(None, alias="status"),
    skip: int = 0,
    limit: int = Query(100, le=500),
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return campaign_crud.get_multi(db, status=status_filter, skip=skip, limit=limit)


@router.post("", response_model=CampaignResponse, status_code=status.HTTP_201_CREATED)
def create_campaign(
    campaign_in: CampaignCreate,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Created as 'scheduled' when scheduled_at is given, otherwise as 'draft'."""
    return campaign_service.create_campaign(db, obj_in=campaign_in, user_id=current_user.sub)


@router.get("/{campaign_id}", response_model=CampaignResponse)
def get_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return campaign_service.get_campaign(db, campaign_id)


@router.patch("/{campaign_id}", response_model=CampaignResponse)
def update_campaign(
    campaign_id: str,
    campaign_in: CampaignUpdate,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return campaign_service.update_campaign(db, campaign_id=campaign_id, obj_in=campaign_in)


@router.delete("/{campaign_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    campaign_service.delete_campaign(db, campaign_id=campaign_id)


@router.post("/{campaign_id}/send", response_model=SendResult)
@limiter.limit("10/minute")
def send_campaign(
    request: Request,
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return campaign_service.send_now(db, campaign_id=campaign_id, user_id=current_user.sub)


@router.post("/{campaign_id}/schedule", response_model=CampaignResponse)
def schedule_campaign(
    campaign_id: str,
    schedule_in: CampaignSchedule,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return campaign_service.schedule_campaign(
        db, campaign_id=campaign_id, scheduled_at=schedule_in.scheduled_at
    )


@router.post("/{campaign_id}/clone", response_model=CampaignResponse, status_code=status.HTTP_201_CREATED)
def clone_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return campaign_service.clone_campaign(db, campaign_id=campaign_id, user_id=current_user.sub)


@router.get("/{campaign_id}/stats", response_model=CampaignStats)
def get_campaign_stats(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return campaign_service.get_campaign_stats(db, campaign_id=campaign_id)


@router.get("/{campaign_id}/ab-summary", response_model=ABSummary)
def get_ab_summary(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return campaign_service.get_ab_summary(db, campaign_id=campaign_id)


@router.post("/{campaign_id}/apply-ab-winner", response_model=ABWinner)
def apply_ab_winner(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return campaign_service.apply_ab_winner(db, campaign_id=campaign_id)


@router.post("/{campaign_id}/send-remainder", response_model=SendResult)
@limiter.limit("10/minute")
def send_remainder(
    request: Request,
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return campaign_service.send_remainder_to_non_openers(
        db, campaign_id=campaign_id, user_id=current_user.sub
    )


@router.get("/{campaign_id}/send-log", response_model=SendLog)
def get_send_log(
    campaign_id: str,
    format: Literal["json", "csv"] = "json",
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    if format == "csv":
        output = campaign_service.send_log_csv(db, campaign_id=campaign_id)
        return StreamingResponse(
            output,
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename=campaign_{campaign_id}_sends.csv"},
        )
    return campaign_service.get_send_log(db, campaign_id=campaign_id)


@router.get("/{campaign_id}/link-clicks", response_model=List[LinkClickReport])
def get_link_clicks(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return campaign_service.get_link_clicks(db, campaign_id=campaign_id)


@router.get("/{campaign_id}/failed-sends", response_model=List[FailedSend])
def get_failed_sends(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return campaign_service.get_failed_sends(db, campaign_id=campaign_id)
