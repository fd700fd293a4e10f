# app/services/campaigns/campaign_service.py
"""
Campaign lifecycle: draft -> scheduled -> sending -> sent.

All enqueue paths (send-now, scheduled promotion, A/B remainder) go through
`_enqueue`, which runs the audience pipeline
(resolve -> suppression/frequency filter -> variant split) and then, in one
transaction, performs the conditional status transition together with the
batch insert of CampaignSends. Jobs are handed to the delivery queue only
after that commit, so a campaign is never left half-enqueued and two racing
starters cannot both insert a batch.
"""

import logging
from datetime import datetime
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from sqlalchemy.orm import Session

from app.crud.crud_campaign import campaign as campaign_crud
from app.crud.crud_campaign_send import campaign_send as campaign_send_crud
from app.crud.crud_segment import segment as segment_crud
from app.crud.crud_tracking import tracking_event as tracking_event_crud
from app.crud.crud_tracking import tracking_link as tracking_link_crud
from app.models.campaign import Campaign
from app.models.email_template import EmailTemplate
from app.schemas.campaign import (
    ABConfig,
    ABSummary,
    ABWinner,
    CampaignChannel,
    CampaignCreate,
    CampaignStats,
    CampaignStatus,
    CampaignUpdate,
    FailedSend,
    LinkClick,
    LinkClickReport,
    SendLog,
    SendLogRow,
    SendResult,
    VariantSummary,
    parse_ab_config,
    parse_schedule_config,
)
from app.services.campaigns.audience_filter import filter_recipients
from app.services.campaigns.delivery_queue import CampaignSendJob, enqueue_send_jobs
from app.services.campaigns.exceptions import CampaignValidationError, NotFoundError
from app.services.campaigns.segment_resolver import (
    Recipient,
    deliverable_contact_ids,
    resolve_recipients,
)
from app.services.campaigns.send_window import is_within_send_window
from app.services.campaigns.variant_assigner import (
    assign_variants,
    calculate_confidence,
    pick_winner,
    rate_percent,
)
from app.tasks.webhook_tasks import publish_event
from app.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = (CampaignStatus.DRAFT.value, CampaignStatus.SCHEDULED.value)
CLONEABLE_STATUSES = (
    CampaignStatus.DRAFT.value,
    CampaignStatus.SCHEDULED.value,
    CampaignStatus.SENT.value,
)


# ---------------------------------------------------------------------------
# Lookups and validation helpers
# ---------------------------------------------------------------------------

def get_campaign(db: Session, campaign_id: str) -> Campaign:
    campaign = campaign_crud.get(db, campaign_id)
    if campaign is None:
        raise NotFoundError("Campaign", campaign_id)
    return campaign


def _check_references(db: Session, *, segment_id: Optional[str], template_id: Optional[str]) -> None:
    if segment_id is not None and segment_crud.get(db, segment_id) is None:
        raise CampaignValidationError(f"Segment {segment_id} does not exist")
    if template_id is not None and db.get(EmailTemplate, template_id) is None:
        raise CampaignValidationError(f"Email template {template_id} does not exist")


def _require_future(scheduled_at: datetime, now: datetime) -> datetime:
    scheduled_at = ensure_utc(scheduled_at)
    if scheduled_at <= now:
        raise CampaignValidationError("Scheduled time must be in the future")
    return scheduled_at


def _dump(model) -> Optional[Dict[str, Any]]:
    return model.model_dump(mode="json") if model is not None else None


def _without_ab_outcome(ab_config: Optional[ABConfig]) -> Optional[ABConfig]:
    """winner and remainder_sent_at are only ever written by the A/B operations."""
    if ab_config is None:
        return None
    return ab_config.model_copy(update={"winner": None, "remainder_sent_at": None})


# ---------------------------------------------------------------------------
# CRUD transitions
# ---------------------------------------------------------------------------

def create_campaign(
    db: Session, *, obj_in: CampaignCreate, user_id: Optional[str], now: Optional[datetime] = None
) -> Campaign:
    now = now or utcnow()
    _check_references(db, segment_id=obj_in.segment_id, template_id=obj_in.template_id)

    scheduled_at = _require_future(obj_in.scheduled_at, now) if obj_in.scheduled_at else None
    campaign = campaign_crud.create(
        db,
        data={
            "name": obj_in.name,
            "segment_id": obj_in.segment_id,
            "template_id": obj_in.template_id,
            "channel": obj_in.channel.value,
            "status": (CampaignStatus.SCHEDULED if scheduled_at else CampaignStatus.DRAFT).value,
            "scheduled_at": scheduled_at,
            "ab_config": _dump(_without_ab_outcome(obj_in.ab_config)),
            "schedule_config": _dump(obj_in.schedule_config),
            "from_name": obj_in.from_name,
            "from_email": obj_in.from_email,
            "reply_to": obj_in.reply_to,
            "created_by_user_id": user_id,
        },
    )
    logger.info(f"Created campaign {campaign.id} ({campaign.status})")
    return campaign


def update_campaign(
    db: Session, *, campaign_id: str, obj_in: CampaignUpdate, now: Optional[datetime] = None
) -> Campaign:
    """Only draft/scheduled campaigns can change. Setting or clearing scheduled_at toggles the status."""
    campaign = get_campaign(db, campaign_id)
    if campaign.status not in EDITABLE_STATUSES:
        raise CampaignValidationError("Only draft or scheduled campaigns can be updated")

    fields = obj_in.model_dump(exclude_unset=True)
    _check_references(db, segment_id=fields.get("segment_id"), template_id=fields.get("template_id"))

    data: Dict[str, Any] = {}
    for key in ("name", "segment_id", "template_id", "from_name", "from_email", "reply_to"):
        if key in fields:
            data[key] = fields[key]
    if "channel" in fields and obj_in.channel is not None:
        data["channel"] = obj_in.channel.value
    if "ab_config" in fields:
        data["ab_config"] = _dump(_without_ab_outcome(obj_in.ab_config))
    if "schedule_config" in fields:
        data["schedule_config"] = _dump(obj_in.schedule_config)
    if "scheduled_at" in fields:
        if obj_in.scheduled_at is None:
            data["scheduled_at"] = None
            data["status"] = CampaignStatus.DRAFT.value
        else:
            data["scheduled_at"] = _require_future(obj_in.scheduled_at, now or utcnow())
            data["status"] = CampaignStatus.SCHEDULED.value

    return campaign_crud.update(db, db_obj=campaign, data=data)


def schedule_campaign(
    db: Session, *, campaign_id: str, scheduled_at: datetime, now: Optional[datetime] = None
) -> Campaign:
    campaign = get_campaign(db, campaign_id)
    if campaign.status != CampaignStatus.DRAFT.value:
        raise CampaignValidationError("Only draft campaigns can be scheduled")
    scheduled_at = _require_future(scheduled_at, now or utcnow())
    return campaign_crud.update(
        db,
        db_obj=campaign,
        data={"scheduled_at": scheduled_at, "status": CampaignStatus.SCHEDULED.value},
    )


def delete_campaign(db: Session, *, campaign_id: str) -> None:
    campaign = get_campaign(db, campaign_id)
    if campaign.status not in EDITABLE_STATUSES:
        raise CampaignValidationError("Only draft or scheduled campaigns can be deleted")
    campaign_crud.remove(db, db_obj=campaign)
    logger.info(f"Deleted campaign {campaign_id}")


def clone_campaign(db: Session, *, campaign_id: str, user_id: Optional[str]) -> Campaign:
    """Copy a draft/scheduled/sent campaign into a new draft. Sends are never copied."""
    source = get_campaign(db, campaign_id)
    if source.status not in CLONEABLE_STATUSES:
        raise CampaignValidationError("Campaigns that are still sending cannot be cloned")

    ab_config = _without_ab_outcome(parse_ab_config(source.ab_config))

    clone = campaign_crud.create(
        db,
        data={
            "name": f"Copy of {source.name}"[:200],
            "segment_id": source.segment_id,
            "template_id": source.template_id,
            "channel": source.channel,
            "status": CampaignStatus.DRAFT.value,
            "ab_config": _dump(ab_config),
            "schedule_config": source.schedule_config,
            "from_name": source.from_name,
            "from_email": source.from_email,
            "reply_to": source.reply_to,
            "created_by_user_id": user_id,
        },
    )
    logger.info(f"Cloned campaign {campaign_id} into {clone.id}")
    return clone


# ---------------------------------------------------------------------------
# Enqueue paths
# ---------------------------------------------------------------------------

def _ensure_deliverable(db: Session, campaign: Campaign) -> None:
    if campaign.channel != CampaignChannel.EMAIL.value:
        raise CampaignValidationError(f"Channel '{campaign.channel}' is not supported for sending")
    if campaign.template_id is None or db.get(EmailTemplate, campaign.template_id) is None:
        raise CampaignValidationError("Campaign has no email template")


def _enqueue(
    db: Session,
    *,
    campaign: Campaign,
    recipients: Sequence[Recipient],
    from_status: str,
    user_id: Optional[str],
    transition_values: Dict[str, Any],
    split_percent: int = 0,
    fixed_variant: Optional[str] = None,
) -> int:
    if fixed_variant is not None:
        labeled: List[Tuple[Recipient, Optional[str]]] = [(r, fixed_variant) for r in recipients]
    else:
        labeled = assign_variants(recipients, split_percent)

    campaign_id = campaign.id
    moved = campaign_crud.transition_status(
        db,
        campaign_id=campaign_id,
        from_status=from_status,
        to_status=CampaignStatus.SENDING.value,
        values=transition_values,
    )
    if not moved:
        db.rollback()
        raise CampaignValidationError(
            f"Campaign {campaign_id} is no longer {from_status}; another send already started"
        )

    try:
        sends = campaign_send_crud.add_batch(
            db,
            campaign_id=campaign_id,
            rows=(
                {
                    "lead_id": r.lead_id,
                    "contact_id": r.contact_id,
                    "email": r.email,
                    "variant": variant,
                }
                for r, variant in labeled
            ),
        )
        send_ids = [s.id for s in sends]
        db.commit()
    except Exception:
        db.rollback()
        raise

    enqueue_send_jobs(CampaignSendJob(campaign_send_id=sid, user_id=user_id) for sid in send_ids)
    logger.info(f"Campaign {campaign_id}: enqueued {len(send_ids)} sends")
    return len(send_ids)


def _audience(db: Session, campaign: Campaign, now: datetime) -> List[Recipient]:
    recipients = resolve_recipients(db, campaign.segment_id)
    filtered = filter_recipients(db, recipients, now=now)
    if not filtered:
        raise CampaignValidationError("No recipients in segment after suppression and frequency cap")
    return filtered


def send_now(
    db: Session, *, campaign_id: str, user_id: Optional[str], now: Optional[datetime] = None
) -> SendResult:
    now = now or utcnow()
    campaign = get_campaign(db, campaign_id)
    if campaign.status != CampaignStatus.DRAFT.value:
        raise CampaignValidationError("Only draft campaigns can be sent now")
    _ensure_deliverable(db, campaign)

    schedule = parse_schedule_config(campaign.schedule_config)
    if schedule and schedule.send_window and not is_within_send_window(schedule.send_window, now):
        window = schedule.send_window
        raise CampaignValidationError(
            f"Outside send window ({window.start}-{window.end} {window.timezone})"
        )

    ab_config = parse_ab_config(campaign.ab_config)
    count = _enqueue(
        db,
        campaign=campaign,
        recipients=_audience(db, campaign, now),
        from_status=CampaignStatus.DRAFT.value,
        user_id=user_id,
        transition_values={"sent_at": now},
        split_percent=ab_config.split_percent if ab_config else 0,
    )
    return SendResult(message="Campaign send started", recipient_count=count)


def start_scheduled_send(
    db: Session, *, campaign: Campaign, now: Optional[datetime] = None
) -> Optional[int]:
    """
    Scheduler path for a due campaign. Returns None when the send window is
    closed (the campaign stays scheduled for the next tick), else the number
    of sends enqueued.
    """
    now = now or utcnow()
    schedule = parse_schedule_config(campaign.schedule_config)
    if schedule and schedule.send_window and not is_within_send_window(schedule.send_window, now):
        return None
    _ensure_deliverable(db, campaign)

    ab_config = parse_ab_config(campaign.ab_config)
    return _enqueue(
        db,
        campaign=campaign,
        recipients=_audience(db, campaign, now),
        from_status=CampaignStatus.SCHEDULED.value,
        user_id=campaign.created_by_user_id,
        transition_values={"sent_at": now},
        split_percent=ab_config.split_percent if ab_config else 0,
    )


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

def finalize_campaign(db: Session, *, campaign: Campaign, now: Optional[datetime] = None) -> bool:
    """sending -> sent once every send has a terminal marker. Publishes `campaign.sent`."""
    if campaign.status != CampaignStatus.SENDING.value:
        return False
    if campaign_send_crud.count_pending(db, campaign.id) > 0:
        return False

    campaign_id = campaign.id
    recipient_count = campaign_send_crud.count_by_campaign(db, campaign_id)
    segment = segment_crud.get(db, campaign.segment_id)
    payload = {
        "campaign_id": campaign_id,
        "campaign_name": campaign.name,
        "segment_id": campaign.segment_id,
        "segment_name": segment.name if segment else None,
        "recipient_count": recipient_count,
        "sent_at": ensure_utc(campaign.sent_at).isoformat() if campaign.sent_at else None,
        "completed_at": (now or utcnow()).isoformat(),
    }

    moved = campaign_crud.transition_status(
        db,
        campaign_id=campaign_id,
        from_status=CampaignStatus.SENDING.value,
        to_status=CampaignStatus.SENT.value,
    )
    db.commit()
    if not moved:
        return False

    logger.info(f"Campaign {campaign_id} finalized with {recipient_count} recipients")
    publish_event("campaign.sent", payload)
    return True


# ---------------------------------------------------------------------------
# A/B testing
# ---------------------------------------------------------------------------

def _variant_counts(db: Session, campaign_id: str) -> Dict[str, Tuple[int, int]]:
    sends = campaign_send_crud.get_by_campaign(db, campaign_id, sent_only=True)
    opened_ids = tracking_event_crud.send_ids_with_event(db, campaign_id=campaign_id, type="open")
    counts = {"A": [0, 0], "B": [0, 0]}
    for send in sends:
        if send.variant in counts:
            counts[send.variant][0] += 1
            if send.id in opened_ids:
                counts[send.variant][1] += 1
    return {k: (v[0], v[1]) for k, v in counts.items()}


def get_ab_summary(db: Session, *, campaign_id: str) -> ABSummary:
    campaign = get_campaign(db, campaign_id)
    ab_config = parse_ab_config(campaign.ab_config)
    if not ab_config or not ab_config.split_percent:
        return ABSummary(has_ab=False)

    counts = _variant_counts(db, campaign_id)
    (a_sent, a_opened), (b_sent, b_opened) = counts["A"], counts["B"]
    return ABSummary(
        has_ab=True,
        variant_a=VariantSummary(sent=a_sent, opened=a_opened, open_rate=rate_percent(a_opened, a_sent)),
        variant_b=VariantSummary(sent=b_sent, opened=b_opened, open_rate=rate_percent(b_opened, b_sent)),
        winner=pick_winner(a_sent, a_opened, b_sent, b_opened),
        applied_winner=ab_config.winner,
        confidence=calculate_confidence(a_sent, a_opened, b_sent, b_opened),
    )


def apply_ab_winner(db: Session, *, campaign_id: str) -> ABWinner:
    """
    Persist the current winner. Recomputed on every call until the remainder
    send has consumed it; after that the recorded winner is returned as is.
    """
    campaign = get_campaign(db, campaign_id)
    if campaign.status != CampaignStatus.SENT.value:
        raise CampaignValidationError("Only sent campaigns can have a winner applied")
    ab_config = parse_ab_config(campaign.ab_config)
    if not ab_config or not ab_config.split_percent:
        raise CampaignValidationError("Campaign has no A/B test")
    if ab_config.remainder_sent_at and ab_config.winner:
        return ABWinner(winner=ab_config.winner)

    counts = _variant_counts(db, campaign_id)
    winner = pick_winner(*counts["A"], *counts["B"])
    campaign_crud.update(
        db, db_obj=campaign, data={"ab_config": _dump(ab_config.model_copy(update={"winner": winner}))}
    )
    logger.info(f"Campaign {campaign_id}: A/B winner set to {winner}")
    return ABWinner(winner=winner)


def send_remainder_to_non_openers(
    db: Session, *, campaign_id: str, user_id: Optional[str], now: Optional[datetime] = None
) -> SendResult:
    """
    Send the winning variant to recipients of the losing variant who never
    opened it. Contacts that have since unsubscribed or been marked
    do-not-contact are dropped. Contacts that already got a winner-variant send in this
    campaign are skipped, so repeating the operation only reaches the rest.
    """
    now = now or utcnow()
    campaign = get_campaign(db, campaign_id)
    if campaign.status != CampaignStatus.SENT.value:
        raise CampaignValidationError("Only sent campaigns can send the remainder")
    ab_config = parse_ab_config(campaign.ab_config)
    winner = ab_config.winner if ab_config else None
    if not winner:
        raise CampaignValidationError("Apply the A/B winner before sending the remainder")
    _ensure_deliverable(db, campaign)

    loser = "B" if winner == "A" else "A"
    loser_sends = campaign_send_crud.get_by_campaign(db, campaign_id, variant=loser, sent_only=True)
    opened_ids = tracking_event_crud.send_ids_with_event(db, campaign_id=campaign_id, type="open")
    already_reached = {
        s.contact_id for s in campaign_send_crud.get_by_campaign(db, campaign_id, variant=winner)
    }

    candidates: List[Recipient] = []
    seen = set()
    for send in loser_sends:
        if send.id in opened_ids or not send.contact_id or not send.lead_id:
            continue
        if send.contact_id in already_reached or send.contact_id in seen:
            continue
        seen.add(send.contact_id)
        candidates.append(Recipient(lead_id=send.lead_id, contact_id=send.contact_id, email=send.email))

    allowed = deliverable_contact_ids(db, campaign.segment, [r.contact_id for r in candidates])
    candidates = [r for r in candidates if r.contact_id in allowed]

    recipients = filter_recipients(db, candidates, now=now)
    if not recipients:
        return SendResult(message="No remainder to send", recipient_count=0)

    locked = ab_config.model_copy(update={"remainder_sent_at": now})
    count = _enqueue(
        db,
        campaign=campaign,
        recipients=recipients,
        from_status=CampaignStatus.SENT.value,
        user_id=user_id,
        transition_values={"ab_config": _dump(locked)},
        fixed_variant=winner,
    )
    return SendResult(message="Remainder send started", recipient_count=count)


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def get_campaign_stats(db: Session, *, campaign_id: str) -> CampaignStats:
    campaign = get_campaign(db, campaign_id)
    sends = campaign_send_crud.get_by_campaign(db, campaign_id)
    sent = sum(1 for s in sends if s.sent_at is not None)
    failed = sum(1 for s in sends if s.failed_at is not None)
    opened = tracking_event_crud.count_by_type(db, campaign_id=campaign_id, type="open")
    clicked = tracking_event_crud.count_by_type(db, campaign_id=campaign_id, type="click")
    return CampaignStats(
        campaign_id=campaign_id,
        status=campaign.status,
        total=len(sends),
        sent=sent,
        failed=failed,
        pending=len(sends) - sent - failed,
        opened=opened,
        clicked=clicked,
        open_rate=round(opened / sent * 100, 2) if sent else 0.0,
        click_rate=round(clicked / sent * 100, 2) if sent else 0.0,
    )


def get_send_log(db: Session, *, campaign_id: str) -> SendLog:
    campaign = get_campaign(db, campaign_id)
    sends = campaign_send_crud.get_by_campaign(db, campaign_id)
    opened_ids = tracking_event_crud.send_ids_with_event(db, campaign_id=campaign_id, type="open")
    clicked_ids = tracking_event_crud.send_ids_with_event(db, campaign_id=campaign_id, type="click")
    return SendLog(
        campaign_name=campaign.name,
        sends=[
            SendLogRow(
                email=s.email,
                sent_at=ensure_utc(s.sent_at),
                variant=s.variant,
                opened=s.id in opened_ids,
                clicked=s.id in clicked_ids,
            )
            for s in sends
        ],
    )


SEND_LOG_COLUMNS = ["email", "sent_at", "variant", "opened", "clicked"]


def send_log_csv(db: Session, *, campaign_id: str) -> BytesIO:
    log = get_send_log(db, campaign_id=campaign_id)
    df = pd.DataFrame(
        [
            {
                "email": row.email,
                "sent_at": row.sent_at.isoformat() if row.sent_at else "",
                "variant": row.variant or "",
                "opened": "yes" if row.opened else "no",
                "clicked": "yes" if row.clicked else "no",
            }
            for row in log.sends
        ],
        columns=SEND_LOG_COLUMNS,
    )
    output = BytesIO()
    df.to_csv(output, index=False)
    output.seek(0)
    return output


def get_link_clicks(db: Session, *, campaign_id: str) -> List[LinkClickReport]:
    """Per-URL click counts with who clicked and when, most-clicked first."""
    get_campaign(db, campaign_id)
    links = tracking_link_crud.get_by_campaign(db, campaign_id)
    events_by_link = tracking_event_crud.clicks_for_links(db, link_ids=[link.id for link in links])

    by_url: Dict[str, LinkClickReport] = {}
    for link in links:
        report = by_url.setdefault(link.url, LinkClickReport(url=link.url, click_count=0, clicks=[]))
        for event in events_by_link.get(link.id, []):
            report.click_count += 1
            report.clicks.append(
                LinkClick(
                    email=link.campaign_send.email,
                    contact_id=link.campaign_send.contact_id,
                    clicked_at=ensure_utc(event.created_at),
                )
            )
    for report in by_url.values():
        report.clicks.sort(key=lambda c: c.clicked_at)
    return sorted(by_url.values(), key=lambda r: (-r.click_count, r.url))


def get_failed_sends(db: Session, *, campaign_id: str) -> List[FailedSend]:
    get_campaign(db, campaign_id)
    return [
        FailedSend(
            id=s.id,
            email=s.email,
            variant=s.variant,
            failed_at=ensure_utc(s.failed_at),
            last_error=s.last_error,
        )
        for s in campaign_send_crud.get_failed(db, campaign_id)
    ]
