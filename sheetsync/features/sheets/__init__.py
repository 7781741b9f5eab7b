"""
Google Sheets integration.

Usage:
    from sheetsync.features.sheets import SheetsClient

Components:
- SheetsClient: access validation and activity writes behind token management
- GoogleOAuth: refresh-token exchange
- rows: activity to row mapping and write ranges
"""

from .oauth import GoogleOAuth
from .client import SheetsClient, SpreadsheetInfo
from .rows import activities_to_rows, activity_to_row, write_range
from .errors import is_reauth_required

__all__ = [
    "GoogleOAuth",
    "SheetsClient",
    "SpreadsheetInfo",
    "activities_to_rows",
    "activity_to_row",
    "write_range",
    "is_reauth_required",
]
