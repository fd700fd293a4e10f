# app/schemas/segment.py
"""
Pydantic schemas for segments.

The filter document is a list of typed predicates combined with AND. Each
predicate carries a `kind` discriminator so that an unknown or misspelled
filter is rejected on write instead of being silently ignored at send time.
Documents stored by older clients use a flat camelCase layout; they are
upgraded on read by `parse_filters`.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator


class PipelinePredicate(BaseModel):
    kind: Literal["pipeline"] = "pipeline"
    pipeline_id: str


class StagePredicate(BaseModel):
    kind: Literal["stage"] = "stage"
    stage_ids: List[str] = Field(..., min_length=1)


class TagsPredicate(BaseModel):
    """Lead carries at least one of the tags."""

    kind: Literal["tags"] = "tags"
    tag_ids: List[str] = Field(..., min_length=1)


class SourcePredicate(BaseModel):
    kind: Literal["source"] = "source"
    value: str


class OrganizationPredicate(BaseModel):
    kind: Literal["organization"] = "organization"
    organization_id: str


class ScoreRangePredicate(BaseModel):
    """Inclusive lead score range."""

    kind: Literal["score_range"] = "score_range"
    min: Optional[int] = None
    max: Optional[int] = None

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min is None and self.max is None:
            raise ValueError("score_range needs at least one of min or max")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("score_range min must not exceed max")
        return self


class CreatedAtRangePredicate(BaseModel):
    """Inclusive lead creation time range."""

    kind: Literal["created_at_range"] = "created_at_range"
    after: Optional[datetime] = None
    before: Optional[datetime] = None

    @model_validator(mode="after")
    def check_bounds(self):
        if self.after is None and self.before is None:
            raise ValueError("created_at_range needs at least one of after or before")
        return self


class UtmPredicate(BaseModel):
    kind: Literal["utm"] = "utm"
    field: Literal["source", "medium", "campaign"]
    value: str


class CustomFieldPredicate(BaseModel):
    kind: Literal["custom_field"] = "custom_field"
    key: str = Field(..., min_length=1)
    op: Literal["equals", "contains", "exists"]
    value: Optional[str] = None

    @model_validator(mode="after")
    def check_value(self):
        if self.op != "exists" and self.value is None:
            raise ValueError(f"custom_field op '{self.op}' requires a value")
        return self


class SequenceEnrollmentPredicate(BaseModel):
    """`enrolled` means an active or paused enrollment in the sequence."""

    kind: Literal["sequence_enrollment"] = "sequence_enrollment"
    sequence_id: str
    state: Literal["enrolled", "not_enrolled", "completed"] = "enrolled"


class CampaignEngagementPredicate(BaseModel):
    """Primary contact received a send of the campaign matching the engagement."""

    kind: Literal["campaign_engagement"] = "campaign_engagement"
    campaign_id: str
    engagement: Literal["opened", "clicked", "never_opened"]


SegmentPredicate = Annotated[
    Union[
        PipelinePredicate,
        StagePredicate,
        TagsPredicate,
        SourcePredicate,
        OrganizationPredicate,
        ScoreRangePredicate,
        CreatedAtRangePredicate,
        UtmPredicate,
        CustomFieldPredicate,
        SequenceEnrollmentPredicate,
        CampaignEngagementPredicate,
    ],
    Field(discriminator="kind"),
]


class SegmentFilter(BaseModel):
    predicates: List[SegmentPredicate] = Field(default_factory=list)
    include_unsubscribed: bool = False
    exclude_bounced: bool = False

    @classmethod
    def from_legacy(cls, data: Dict[str, Any]) -> "SegmentFilter":
        """Upgrade a flat camelCase filter document to the predicate form."""
        predicates: List[Dict[str, Any]] = []

        if data.get("pipelineId"):
            predicates.append({"kind": "pipeline", "pipeline_id": data["pipelineId"]})
        if data.get("stageIds"):
            predicates.append({"kind": "stage", "stage_ids": data["stageIds"]})
        if data.get("tagIds"):
            predicates.append({"kind": "tags", "tag_ids": data["tagIds"]})
        if data.get("source"):
            predicates.append({"kind": "source", "value": data["source"]})
        if data.get("organizationId"):
            predicates.append({"kind": "organization", "organization_id": data["organizationId"]})

        for field in ("source", "medium", "campaign"):
            value = data.get(f"utm{field.capitalize()}")
            if value:
                predicates.append({"kind": "utm", "field": field, "value": value})

        if data.get("scoreMin") is not None or data.get("scoreMax") is not None:
            predicates.append(
                {"kind": "score_range", "min": data.get("scoreMin"), "max": data.get("scoreMax")}
            )
        if data.get("createdAtAfter") or data.get("createdAtBefore"):
            predicates.append(
                {
                    "kind": "created_at_range",
                    "after": data.get("createdAtAfter"),
                    "before": data.get("createdAtBefore"),
                }
            )

        for cf in data.get("customFieldFilters") or []:
            # Old clients sent equals/contains without a value; those were no-ops
            if cf.get("op") in ("equals", "contains") and cf.get("value") is None:
                continue
            predicates.append(
                {
                    "kind": "custom_field",
                    "key": cf.get("key"),
                    "op": cf.get("op"),
                    "value": None if cf.get("value") is None else str(cf["value"]),
                }
            )

        if data.get("sequenceId"):
            predicates.append(
                {
                    "kind": "sequence_enrollment",
                    "sequence_id": data["sequenceId"],
                    "state": data.get("sequenceEnrollment") or "enrolled",
                }
            )
        if data.get("campaignId") and data.get("campaignEngagement"):
            predicates.append(
                {
                    "kind": "campaign_engagement",
                    "campaign_id": data["campaignId"],
                    "engagement": data["campaignEngagement"],
                }
            )

        return cls.model_validate(
            {
                "predicates": predicates,
                "include_unsubscribed": data.get("notUnsubscribed") is False,
                "exclude_bounced": data.get("notBounced") is True,
            }
        )


_CURRENT_KEYS = {"predicates", "include_unsubscribed", "exclude_bounced"}


def parse_filters(raw: Optional[Dict[str, Any]]) -> SegmentFilter:
    """Validate a stored filter document, upgrading the legacy layout if needed."""
    if not raw:
        return SegmentFilter()
    if set(raw) <= _CURRENT_KEYS:
        return SegmentFilter.model_validate(raw)
    return SegmentFilter.from_legacy(raw)


class SegmentBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: Literal["static", "dynamic"] = "dynamic"
    organization_id: Optional[str] = None
    exclude_segment_id: Optional[str] = None


class SegmentCreate(SegmentBase):
    filters: SegmentFilter = Field(default_factory=SegmentFilter)


class SegmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    type: Optional[Literal["static", "dynamic"]] = None
    organization_id: Optional[str] = None
    exclude_segment_id: Optional[str] = None
    filters: Optional[SegmentFilter] = None


class SegmentResponse(SegmentBase):
    id: str
    filters: SegmentFilter
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @model_validator(mode="before")
    @classmethod
    def upgrade_filters(cls, data: Any) -> Any:
        # ORM rows carry the raw JSON document
        raw = getattr(data, "filters", None) if not isinstance(data, dict) else data.get("filters")
        if isinstance(raw, dict):
            parsed = parse_filters(raw)
            if isinstance(data, dict):
                return {**data, "filters": parsed}
            return {
                "id": data.id,
                "name": data.name,
                "type": data.type,
                "organization_id": data.organization_id,
                "exclude_segment_id": data.exclude_segment_id,
                "filters": parsed,
                "created_at": data.created_at,
                "updated_at": data.updated_at,
            }
        return data


class SegmentRecipientCount(BaseModel):
    segment_id: str
    count: int


class SegmentRecipientPreview(BaseModel):
    lead_id: str
    contact_id: str
    email: str
