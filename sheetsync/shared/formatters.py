"""
Formatting utilities for spreadsheet cells.

All values are rendered as strings that Google Sheets interprets
when written with USER_ENTERED input.
"""

from datetime import datetime


def format_date(value: datetime) -> str:
    """
    Format a date as 'YYYY-MM-DD'.

    Args:
        value: Datetime (local start time of an activity)

    Returns:
        Formatted string (e.g., '2024-05-01')
    """
    return value.strftime("%Y-%m-%d")


def format_distance_km(meters: float) -> str:
    """
    Format distance in kilometers with two decimals.

    Args:
        meters: Distance in meters

    Returns:
        Formatted string (e.g., '10.50 km')
    """
    return f"{meters / 1000:.2f} km"


def format_duration(seconds: int) -> str:
    """
    Format duration as 'HH:MM:SS'.

    Hours are not wrapped at 24, so a 26 hour effort stays '26:00:00'.
    """
    seconds = max(int(seconds), 0)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_pace(moving_time_s: int, distance_m: float) -> str:
    """
    Format pace as 'M:SS /km'.

    Returns an empty string when time or distance is missing.
    """
    if moving_time_s <= 0 or distance_m <= 0:
        return ""

    pace_s_per_km = moving_time_s / (distance_m / 1000)
    minutes = int(pace_s_per_km // 60)
    seconds = int(pace_s_per_km) % 60

    return f"{minutes}:{seconds:02d} /km"


def format_elevation(meters: float) -> str:
    """Format elevation gain as whole meters (e.g., '120 m')."""
    return f"{meters:.0f} m"


def format_heart_rate(bpm: float | None) -> str:
    """Format average heart rate; empty when the activity has no HR data."""
    if not bpm or bpm <= 0:
        return ""
    return f"{bpm:.0f} bpm"
