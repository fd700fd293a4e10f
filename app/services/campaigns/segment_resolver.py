# app/services/campaigns/segment_resolver.py
"""
Turns a saved segment into the list of people a campaign should reach.

Each predicate compiles to one SQL clause on `leads`; the clauses are ANDed
together with the deliverability rules on the lead's primary contact. The
result is ordered by (lead.created_at, lead.id) and deduplicated by contact
so that a contact who is primary on several leads is reached once, through
their oldest matching lead.

A segment may name an exclusion segment. Its resolved contacts (with its own
exclusion applied, recursively) are removed from the result.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Set

from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.crud.crud_segment import segment as segment_crud
from app.models.campaign_send import CampaignSend
from app.models.contact import Contact
from app.models.lead import Lead, lead_tags
from app.models.segment import Segment
from app.models.sequence_enrollment import SequenceEnrollment
from app.models.tracking import EmailTrackingEvent
from app.schemas.segment import (
    CampaignEngagementPredicate,
    CreatedAtRangePredicate,
    CustomFieldPredicate,
    OrganizationPredicate,
    PipelinePredicate,
    ScoreRangePredicate,
    SegmentFilter,
    SequenceEnrollmentPredicate,
    SourcePredicate,
    StagePredicate,
    TagsPredicate,
    UtmPredicate,
    parse_filters,
)
from app.services.campaigns.exceptions import NotFoundError, SegmentValidationError
from app.utils.time import ensure_utc

logger = logging.getLogger(__name__)

_UTM_COLUMNS = {
    "source": Lead.utm_source,
    "medium": Lead.utm_medium,
    "campaign": Lead.utm_campaign,
}


@dataclass(frozen=True)
class Recipient:
    lead_id: str
    contact_id: str
    email: str


def _has_tracking_event(event_type: str):
    return exists().where(
        EmailTrackingEvent.campaign_send_id == CampaignSend.id,
        EmailTrackingEvent.type == event_type,
    )


def compile_predicate(predicate):
    """Build the SQL clause for a single predicate."""
    if isinstance(predicate, PipelinePredicate):
        return Lead.pipeline_id == predicate.pipeline_id

    if isinstance(predicate, StagePredicate):
        return Lead.current_stage_id.in_(predicate.stage_ids)

    if isinstance(predicate, TagsPredicate):
        return exists().where(
            lead_tags.c.lead_id == Lead.id,
            lead_tags.c.tag_id.in_(predicate.tag_ids),
        )

    if isinstance(predicate, SourcePredicate):
        return Lead.source == predicate.value

    if isinstance(predicate, OrganizationPredicate):
        return Lead.organization_id == predicate.organization_id

    if isinstance(predicate, ScoreRangePredicate):
        clauses = []
        if predicate.min is not None:
            clauses.append(Lead.score >= predicate.min)
        if predicate.max is not None:
            clauses.append(Lead.score <= predicate.max)
        return and_(*clauses)

    if isinstance(predicate, CreatedAtRangePredicate):
        clauses = []
        if predicate.after is not None:
            clauses.append(Lead.created_at >= ensure_utc(predicate.after))
        if predicate.before is not None:
            clauses.append(Lead.created_at <= ensure_utc(predicate.before))
        return and_(*clauses)

    if isinstance(predicate, UtmPredicate):
        return _UTM_COLUMNS[predicate.field] == predicate.value

    if isinstance(predicate, CustomFieldPredicate):
        field = Lead.custom_fields[predicate.key].as_string()
        if predicate.op == "equals":
            return field == predicate.value
        if predicate.op == "contains":
            return field.contains(predicate.value, autoescape=True)
        return field.isnot(None)

    if isinstance(predicate, SequenceEnrollmentPredicate):
        enrollment = SequenceEnrollment.lead_id == Lead.id
        in_sequence = SequenceEnrollment.sequence_id == predicate.sequence_id
        if predicate.state == "enrolled":
            return exists().where(
                enrollment, in_sequence, SequenceEnrollment.state.in_(("active", "paused"))
            )
        if predicate.state == "completed":
            return exists().where(enrollment, in_sequence, SequenceEnrollment.state == "completed")
        return ~exists().where(enrollment, in_sequence)

    if isinstance(predicate, CampaignEngagementPredicate):
        engagement = {
            "opened": _has_tracking_event("open"),
            "clicked": _has_tracking_event("click"),
            "never_opened": ~_has_tracking_event("open"),
        }[predicate.engagement]
        return exists().where(
            CampaignSend.contact_id == Contact.id,
            CampaignSend.campaign_id == predicate.campaign_id,
            engagement,
        )

    raise TypeError(f"Unsupported segment predicate: {type(predicate).__name__}")


def _contact_clauses(filters: SegmentFilter) -> list:
    clauses = [
        Contact.email.isnot(None),
        func.trim(Contact.email) != "",
        Contact.dnc_at.is_(None),
    ]
    if not filters.include_unsubscribed:
        clauses.append(Contact.unsubscribed_at.is_(None))
    if filters.exclude_bounced:
        clauses.append(Contact.bounced_at.is_(None))
    return clauses


def _get_segment(db: Session, segment_id: str) -> Segment:
    segment = segment_crud.get(db, segment_id)
    if segment is None:
        raise NotFoundError("Segment", segment_id)
    return segment


def _resolve_base(db: Session, segment: Segment, limit: int) -> List[Recipient]:
    filters = parse_filters(segment.filters)

    clauses = [Lead.deleted_at.is_(None)]
    if segment.organization_id:
        clauses.append(Lead.organization_id == segment.organization_id)
    clauses.extend(compile_predicate(p) for p in filters.predicates)
    clauses.extend(_contact_clauses(filters))

    stmt = (
        select(Lead.id, Contact.id, Contact.email)
        .join(Contact, Lead.primary_contact_id == Contact.id)
        .where(*clauses)
        .order_by(Lead.created_at.asc(), Lead.id.asc())
        .limit(limit)
    )

    recipients: List[Recipient] = []
    seen: Set[str] = set()
    for lead_id, contact_id, email in db.execute(stmt):
        if contact_id in seen:
            continue
        seen.add(contact_id)
        recipients.append(Recipient(lead_id=lead_id, contact_id=contact_id, email=email.strip()))
    return recipients


def _resolve(
    db: Session, segment_id: str, limit: int, chain: tuple
) -> List[Recipient]:
    if segment_id in chain:
        raise SegmentValidationError(
            f"Segment exclusion cycle: {' -> '.join(chain + (segment_id,))}"
        )
    segment = _get_segment(db, segment_id)
    recipients = _resolve_base(db, segment, limit)

    if segment.exclude_segment_id and recipients:
        excluded = _resolve(
            db,
            segment.exclude_segment_id,
            settings.SEGMENT_EXCLUDE_RESOLVE_LIMIT,
            chain + (segment_id,),
        )
        excluded_contacts = {r.contact_id for r in excluded}
        recipients = [r for r in recipients if r.contact_id not in excluded_contacts]
        logger.debug(
            f"Segment {segment_id}: excluded {len(excluded_contacts)} contacts "
            f"via segment {segment.exclude_segment_id}"
        )
    return recipients


def resolve_recipients(
    db: Session, segment_id: str, limit: Optional[int] = None
) -> List[Recipient]:
    """
    Resolve a segment to deduplicated recipients.

    Raises NotFoundError for an unknown segment (including a dangling
    exclusion reference) and SegmentValidationError for an exclusion cycle.
    """
    return _resolve(db, segment_id, limit or settings.SEGMENT_RESOLVE_LIMIT, ())


def count_recipients(db: Session, segment_id: str) -> int:
    return len(resolve_recipients(db, segment_id))


def check_exclusion_chain(
    db: Session, *, segment_id: Optional[str], exclude_segment_id: Optional[str]
) -> None:
    """
    Validate that pointing `segment_id` at `exclude_segment_id` does not
    create a cycle. `segment_id` is None for a segment being created.
    """
    seen = {segment_id} if segment_id else set()
    current = exclude_segment_id
    while current:
        if current in seen:
            raise SegmentValidationError("Segment exclusion would create a cycle")
        seen.add(current)
        target = _get_segment(db, current)
        current = target.exclude_segment_id


def deliverable_contact_ids(db: Session, segment: Optional[Segment], contact_ids) -> Set[str]:
    """
    The subset of `contact_ids` that the segment's contact rules still allow,
    read from the contacts' current state. Used when re-targeting earlier
    recipients, whose unsubscribe or do-not-contact status may have changed
    since they were resolved.
    """
    clauses = _contact_clauses(parse_filters(segment.filters if segment else None))
    unique_ids = list(dict.fromkeys(contact_ids))
    allowed: Set[str] = set()
    for start in range(0, len(unique_ids), 500):
        chunk = unique_ids[start:start + 500]
        allowed.update(db.scalars(select(Contact.id).where(Contact.id.in_(chunk), *clauses)))
    return allowed
