"""
Database Models

Import all models here to ensure they are registered with SQLAlchemy.
"""

from sheetsync.models.base import Base


def _get_user_models():
    """Lazy import of User models."""
    from sheetsync.features.users.models import User
    return User
