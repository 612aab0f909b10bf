"""Key/value application settings stored in the local database."""

from datetime import datetime, timezone

from sqlalchemy import Column, Text, DateTime, JSON

from .base import Base


class AppSetting(Base):
    """One persisted application setting.

    Used for the saved ERP connection settings (never including the password)
    and for the last reference-data sync status.

    Attributes:
        key: Unique setting key
        value: JSON value
        updated_at: When the value was last written
    """

    __tablename__ = "app_setting"

    key = Column(Text, primary_key=True)
    value = Column(JSON, nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return f"<AppSetting(key={self.key})>"
