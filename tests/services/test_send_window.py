from datetime import datetime, timezone

from app.schemas.campaign import SendWindow
from app.services.campaigns.send_window import is_within_send_window

NEW_YORK_WINDOW = SendWindow(start="09:00", end="17:00", timezone="America/New_York")


def test_inside_window_local_time():
    # 14:00 UTC in January is 09:00 in New York
    assert is_within_send_window(NEW_YORK_WINDOW, datetime(2026, 1, 15, 14, 0, tzinfo=timezone.utc))
    # 15:00 UTC -> 10:00 in New York
    assert is_within_send_window(NEW_YORK_WINDOW, datetime(2026, 1, 15, 15, 0, tzinfo=timezone.utc))


def test_outside_window_local_time():
    # 01:00 UTC next day -> 20:00 in New York
    assert not is_within_send_window(NEW_YORK_WINDOW, datetime(2026, 1, 16, 1, 0, tzinfo=timezone.utc))
    # 13:59 UTC -> 08:59 in New York
    assert not is_within_send_window(NEW_YORK_WINDOW, datetime(2026, 1, 15, 13, 59, tzinfo=timezone.utc))


def test_bounds_are_inclusive():
    # 22:00 UTC in January -> 17:00 in New York
    assert is_within_send_window(NEW_YORK_WINDOW, datetime(2026, 1, 15, 22, 0, tzinfo=timezone.utc))
    assert not is_within_send_window(NEW_YORK_WINDOW, datetime(2026, 1, 15, 22, 1, tzinfo=timezone.utc))


def test_daylight_saving_is_respected():
    # 13:00 UTC in July is 09:00 EDT
    assert is_within_send_window(NEW_YORK_WINDOW, datetime(2026, 7, 15, 13, 0, tzinfo=timezone.utc))


def test_unknown_timezone_allows_send():
    window = SendWindow(start="09:00", end="10:00", timezone="Mars/Olympus_Mons")

    assert is_within_send_window(window, datetime(2026, 1, 15, 3, 0, tzinfo=timezone.utc))
