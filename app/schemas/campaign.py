# app/schemas/campaign.py
"""
Pydantic schemas for campaigns, their persisted JSON configuration blobs
(A/B split, send window) and the reports built from their sends.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from app.utils.time import ensure_utc, utcnow


class CampaignStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENDING = "sending"
    SENT = "sent"


class CampaignChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


Variant = Literal["A", "B"]


class VariantContent(BaseModel):
    """Per-variant overrides. A missing field falls back to the template."""

    subject: Optional[str] = None
    body_html: Optional[str] = None


class ABConfig(BaseModel):
    split_percent: int = Field(0, ge=0, le=100, description="Share of recipients that get variant A")
    variant_a: Optional[VariantContent] = None
    variant_b: Optional[VariantContent] = None
    winner: Optional[Variant] = None
    # Set once the winner has been sent to the non-openers; locks the winner
    remainder_sent_at: Optional[datetime] = None

    def content_for(self, variant: Optional[str]) -> Optional[VariantContent]:
        if variant == "A":
            return self.variant_a
        if variant == "B":
            return self.variant_b
        return None


class SendWindow(BaseModel):
    start: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$", examples=["09:00"])
    end: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$", examples=["17:30"])
    timezone: str = Field("UTC", min_length=1, examples=["Europe/Berlin"])


class ScheduleConfig(BaseModel):
    send_window: Optional[SendWindow] = None


def parse_ab_config(raw: Optional[Dict[str, Any]]) -> Optional[ABConfig]:
    return ABConfig.model_validate(raw) if raw else None


def parse_schedule_config(raw: Optional[Dict[str, Any]]) -> Optional[ScheduleConfig]:
    return ScheduleConfig.model_validate(raw) if raw else None


class CampaignCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    segment_id: str
    template_id: str
    channel: CampaignChannel = CampaignChannel.EMAIL
    scheduled_at: Optional[datetime] = Field(None, description="Schedule for future sending")
    ab_config: Optional[ABConfig] = None
    schedule_config: Optional[ScheduleConfig] = None
    from_name: Optional[str] = Field(None, max_length=200)
    from_email: Optional[str] = Field(None, max_length=255)
    reply_to: Optional[str] = Field(None, max_length=255)

    @field_validator("scheduled_at")
    @classmethod
    def validate_scheduled_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and ensure_utc(v) <= utcnow():
            raise ValueError("scheduled_at must be in the future")
        return v


class CampaignUpdate(BaseModel):
    """Only draft and scheduled campaigns accept updates."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    segment_id: Optional[str] = None
    template_id: Optional[str] = None
    channel: Optional[CampaignChannel] = None
    scheduled_at: Optional[datetime] = None
    ab_config: Optional[ABConfig] = None
    schedule_config: Optional[ScheduleConfig] = None
    from_name: Optional[str] = Field(None, max_length=200)
    from_email: Optional[str] = Field(None, max_length=255)
    reply_to: Optional[str] = Field(None, max_length=255)


class CampaignSchedule(BaseModel):
    scheduled_at: datetime


class CampaignResponse(BaseModel):
    id: str
    name: str
    segment_id: str
    template_id: Optional[str]
    channel: str
    status: str
    scheduled_at: Optional[datetime]
    sent_at: Optional[datetime]
    ab_config: Optional[ABConfig]
    schedule_config: Optional[ScheduleConfig]
    from_name: Optional[str]
    from_email: Optional[str]
    reply_to: Optional[str]
    created_by_user_id: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SendResult(BaseModel):
    message: str
    recipient_count: int


class CampaignStats(BaseModel):
    campaign_id: str
    status: str
    total: int
    sent: int
    failed: int
    pending: int
    opened: int
    clicked: int
    open_rate: float = Field(0.0, description="Percentage of sent emails opened")
    click_rate: float = Field(0.0, description="Percentage of sent emails clicked")


class VariantSummary(BaseModel):
    sent: int
    opened: int
    open_rate: int = Field(..., description="Rounded percentage")


class ABSummary(BaseModel):
    has_ab: bool
    variant_a: Optional[VariantSummary] = None
    variant_b: Optional[VariantSummary] = None
    winner: Optional[Variant] = None
    applied_winner: Optional[Variant] = None
    confidence: Optional[float] = Field(
        None, description="Chi-square confidence that the open rates differ (informational)"
    )


class ABWinner(BaseModel):
    winner: Variant


class SendLogRow(BaseModel):
    email: str
    sent_at: Optional[datetime]
    variant: Optional[str]
    opened: bool
    clicked: bool


class SendLog(BaseModel):
    campaign_name: str
    sends: List[SendLogRow]


class LinkClick(BaseModel):
    email: str
    contact_id: Optional[str]
    clicked_at: datetime


class LinkClickReport(BaseModel):
    url: str
    click_count: int
    clicks: List[LinkClick]


class FailedSend(BaseModel):
    id: str
    email: str
    variant: Optional[str]
    failed_at: datetime
    last_error: Optional[str]

    model_config = {"from_attributes": True}
