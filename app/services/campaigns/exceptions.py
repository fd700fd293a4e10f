# app/services/campaigns/exceptions.py


class CampaignValidationError(ValueError):
    """A request that conflicts with the campaign's current state or data."""


class SegmentValidationError(ValueError):
    """Invalid segment definition (for example an exclusion cycle)."""


class NotFoundError(LookupError):
    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")
