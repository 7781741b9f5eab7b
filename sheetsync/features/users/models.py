"""
User-related models.

Models:
- User: account with connected Strava/Google credentials and sync preferences
"""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String, Text

from sheetsync.models.base import Base


class User(Base):
    """
    Application user.

    Holds OAuth tokens for both providers (should be encrypted at rest by
    whoever writes them) and the target spreadsheet.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")

    # Target spreadsheet
    spreadsheet_id = Column(String(255), nullable=True)

    # Preferences
    automation_enabled = Column(Boolean, default=False, nullable=False)
    email_notifications_enabled = Column(Boolean, default=True, nullable=False)

    # Strava OAuth
    strava_athlete_id = Column(BigInteger, nullable=True)
    strava_access_token = Column(Text, nullable=True)
    strava_refresh_token = Column(Text, nullable=True)
    strava_token_expiry = Column(DateTime(timezone=True), nullable=True)

    # Google OAuth
    google_access_token = Column(Text, nullable=True)
    google_refresh_token = Column(Text, nullable=True)
    google_token_expiry = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<User {self.id} ({self.email})>"
