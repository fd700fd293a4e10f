# app/services/campaigns/send_window.py
import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.schemas.campaign import SendWindow
from app.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)


def is_within_send_window(window: SendWindow, now: Optional[datetime] = None) -> bool:
    """
    True when the wall-clock time in the window's timezone is within
    [start, end], both inclusive, compared as zero-padded HHMM strings.

    An unknown timezone fails open: the send is allowed and a warning logged.
    """
    try:
        tz = ZoneInfo(window.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown send window timezone '{window.timezone}', allowing send")
        return True

    local = ensure_utc(now or utcnow()).astimezone(tz)
    current = local.strftime("%H%M")
    start = window.start.replace(":", "")
    end = window.end.replace(":", "")
    return start <= current <= end
