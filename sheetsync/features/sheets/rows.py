"""
Activity to spreadsheet row mapping.

Column layout (Sheet1, header in row 1, data from row 2):
    A date | B name | C type | D distance | E duration | F pace
    G elevation | H heart rate | I kudos
"""

from typing import Any, Sequence

from sheetsync.features.strava.models import Activity
from sheetsync.shared.formatters import (
    format_date,
    format_distance_km,
    format_duration,
    format_elevation,
    format_heart_rate,
    format_pace,
)

SHEET_NAME = "Sheet1"
FIRST_DATA_ROW = 2
FIRST_COLUMN = "A"
LAST_COLUMN = "I"
COLUMN_COUNT = 9

# Column layout of row 1. The header row belongs to the sheet owner and is
# never written; data rows follow this order.
HEADERS = [
    "Date",
    "Name",
    "Type",
    "Distance",
    "Duration",
    "Pace",
    "Elevation",
    "Heart Rate",
    "Kudos",
]


def activity_to_row(activity: Activity) -> list[Any]:
    """Map one activity to its 9 ordered cells."""
    pace = ""
    if activity.is_run:
        pace = format_pace(activity.moving_time, activity.distance)

    return [
        format_date(activity.local_start),
        activity.name,
        activity.type,
        format_distance_km(activity.distance),
        format_duration(activity.moving_time),
        pace,
        format_elevation(activity.total_elevation_gain),
        format_heart_rate(activity.average_heartrate),
        activity.kudos_count,
    ]


def activities_to_rows(activities: Sequence[Activity]) -> list[list[Any]]:
    return [activity_to_row(a) for a in activities]


def write_range(row_count: int) -> str:
    """
    A1 range sized exactly to the rows written.

    Example: write_range(3) -> 'Sheet1!A2:I4'
    """
    last_row = FIRST_DATA_ROW + row_count - 1
    return f"{SHEET_NAME}!{FIRST_COLUMN}{FIRST_DATA_ROW}:{LAST_COLUMN}{last_row}"


def data_range() -> str:
    """Open-ended range covering every data row ('Sheet1!A2:I')."""
    return f"{SHEET_NAME}!{FIRST_COLUMN}{FIRST_DATA_ROW}:{LAST_COLUMN}"
