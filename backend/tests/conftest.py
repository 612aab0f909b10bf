"""Pytest fixtures shared by all tests.

Provides reusable test fixtures for:
- Local store on in-memory SQLite, fresh per test
- In-memory keyring backend replacing the OS credential vault
- Saved ERP connection settings

Usage:
    def test_load(settings_store, saved_settings):
        assert settings_store.load() == saved_settings
"""

import sys
import os
from pathlib import Path

# Set environment variables BEFORE any imports to ensure they take effect
os.environ.setdefault("LOCAL_DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_JSON", "false")

import keyring
import pytest
from keyring.backend import KeyringBackend
from keyring.errors import PasswordDeleteError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from typing import Generator

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))
sys.path.insert(0, str(Path(__file__).parent))

from models import Base
from connectors.credential_vault import CredentialVault
from connectors.schemas import ConnectionSettings, ErpOrderDefaults
from connectors.settings_store import ConnectionSettingsStore


TEST_KEYRING_SERVICE = "ErpOrderBridge-Test"


class InMemoryKeyring(KeyringBackend):
    """Keyring backend keeping secrets in a dict."""

    priority = 1

    def __init__(self):
        super().__init__()
        self.passwords = {}

    def set_password(self, service, username, password):
        self.passwords[(service, username)] = password

    def get_password(self, service, username):
        return self.passwords.get((service, username))

    def delete_password(self, service, username):
        try:
            del self.passwords[(service, username)]
        except KeyError:
            raise PasswordDeleteError("Password not found")


@pytest.fixture(scope="function")
def memory_keyring() -> Generator[InMemoryKeyring, None, None]:
    """Install an in-memory keyring for the duration of one test."""
    previous = keyring.get_keyring()
    backend = InMemoryKeyring()
    keyring.set_keyring(backend)
    try:
        yield backend
    finally:
        keyring.set_keyring(previous)


@pytest.fixture(scope="function")
def vault(memory_keyring) -> CredentialVault:
    return CredentialVault(service_name=TEST_KEYRING_SERVICE)


@pytest.fixture(scope="function")
def local_engine():
    """In-memory SQLite local store with all tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(local_engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=local_engine)


@pytest.fixture(scope="function")
def settings_store(session_factory) -> ConnectionSettingsStore:
    return ConnectionSettingsStore(session_factory)


@pytest.fixture
def order_defaults() -> ErpOrderDefaults:
    return ErpOrderDefaults(erp_user_id=1, shop_id=0, platform_id=1, language_id=1)


@pytest.fixture
def connection_settings(order_defaults) -> ConnectionSettings:
    return ConnectionSettings(
        host="wawi.example.local",
        port=1433,
        database="eazybusiness",
        user="crm",
        trust_server_certificate=True,
        order_defaults=order_defaults,
    )


@pytest.fixture
def saved_settings(settings_store, connection_settings) -> ConnectionSettings:
    """Connection settings already persisted in the local store."""
    settings_store.save(connection_settings)
    return connection_settings
