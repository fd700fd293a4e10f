# app/crud/__init__.py
from .crud_segment import segment
from .crud_campaign import campaign
from .crud_campaign_send import campaign_send
from .crud_suppression import suppression
from .crud_tracking import tracking_link, tracking_event
