"""
Connection settings store

Persists the non-secret ERP connection settings (host, port, database, user,
TLS flags, order defaults) as JSON in the local app_setting table. Passwords
are never written here; see credential_vault.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.orm import sessionmaker

from database import get_db_session
from models import AppSetting
from .schemas import ConnectionSettings


logger = logging.getLogger(__name__)

CONNECTION_SETTINGS_KEY = "erp_connection_settings_v2"


class ConnectionSettingsStore:
    """
    Key/value backed store for ConnectionSettings.

    A save replaces the stored settings wholesale: the previous record is
    deleted before the new one is inserted so that values of an old
    connection identity can never leak into a new one.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        """
        Args:
            session_factory: Session factory of the local store. Defaults to
                database.SessionLocal.
        """
        self._session_factory = session_factory

    def save(self, connection_settings: ConnectionSettings) -> None:
        """Replace the stored connection settings."""
        payload = connection_settings.model_dump(mode="json", exclude={"password"})

        with get_db_session(self._session_factory) as session:
            session.query(AppSetting).filter(AppSetting.key == CONNECTION_SETTINGS_KEY).delete()
            session.flush()
            session.add(AppSetting(key=CONNECTION_SETTINGS_KEY, value=payload))

        logger.info(
            "ERP connection settings saved (password kept in credential vault)",
            extra={"server": connection_settings.host},
        )

    def load(self) -> Optional[ConnectionSettings]:
        """
        Read the stored connection settings.

        Returns:
            ConnectionSettings, or None if nothing is stored or the stored
            record no longer validates
        """
        payload = self.get_value(CONNECTION_SETTINGS_KEY)
        if not payload:
            return None

        try:
            return ConnectionSettings(**payload)
        except ValidationError as e:
            logger.error(f"Stored ERP connection settings are invalid and ignored: {e}")
            return None

    def clear(self) -> None:
        """Remove the stored connection settings."""
        self.delete_value(CONNECTION_SETTINGS_KEY)

    def get_value(self, key: str, default: Any = None) -> Any:
        """Read a raw setting value."""
        with get_db_session(self._session_factory) as session:
            record = session.get(AppSetting, key)
            if record is None:
                return default
            return record.value

    def set_value(self, key: str, value: Any) -> None:
        """Insert or overwrite a raw setting value."""
        with get_db_session(self._session_factory) as session:
            record = session.get(AppSetting, key)
            if record is None:
                session.add(AppSetting(key=key, value=value))
            else:
                record.value = value
                record.updated_at = datetime.now(timezone.utc)

    def delete_value(self, key: str) -> None:
        """Remove a raw setting value if present."""
        with get_db_session(self._session_factory) as session:
            session.query(AppSetting).filter(AppSetting.key == key).delete()
