"""
Strava integration.

Usage:
    from sheetsync.features.strava import StravaClient, Activity

Components:
- StravaClient: activity fetch behind token management
- StravaOAuth: refresh-token exchange
- Activity: activity summary schema
"""

from .models import Activity
from .oauth import StravaOAuth
from .client import StravaClient
from .errors import is_reauth_required

__all__ = [
    "Activity",
    "StravaOAuth",
    "StravaClient",
    "is_reauth_required",
]
