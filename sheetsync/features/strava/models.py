"""
Strava activity schema.

Parsed straight from the /athlete/activities response. Only the summary
fields the spreadsheet needs are kept; no GPS data.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Activity(BaseModel):
    """Summary of one Strava activity. Immutable once fetched."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    name: str = ""
    type: str = ""
    sport_type: str = ""

    distance: float = 0.0               # meters
    moving_time: int = 0                # seconds
    elapsed_time: int = 0               # seconds
    total_elevation_gain: float = 0.0   # meters

    start_date: datetime                # UTC
    start_date_local: Optional[datetime] = None
    timezone: str = ""

    average_speed: float = 0.0          # m/s
    max_speed: float = 0.0              # m/s
    average_heartrate: Optional[float] = None
    max_heartrate: Optional[float] = None

    kudos_count: int = Field(default=0)
    comment_count: int = Field(default=0)

    @property
    def local_start(self) -> datetime:
        """Local start time, falling back to UTC when Strava omits it."""
        return self.start_date_local or self.start_date

    @property
    def is_run(self) -> bool:
        return self.type == "Run"

    def __repr__(self):
        return f"<Activity {self.id} {self.type} {self.distance}m>"
