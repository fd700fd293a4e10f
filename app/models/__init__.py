# app/models/__init__.py
# Import all models to ensure SQLAlchemy can resolve relationships
# and Base.metadata knows every table.

from app.db.base_class import Base
from app.models.organization import Organization
from app.models.user import User
from app.models.contact import Contact
from app.models.lead import Lead, lead_tags
from app.models.sequence_enrollment import SequenceEnrollment
from app.models.email_template import EmailTemplate
from app.models.activity import Activity
from app.models.segment import Segment
from app.models.campaign import Campaign
from app.models.campaign_send import CampaignSend
from app.models.tracking import TrackingLink, EmailTrackingEvent
from app.models.suppression_entry import SuppressionEntry
