"""Unit tests for the credential vault adapter.

Tests the tri-state password semantics against an in-memory keyring.
"""

import pytest
from unittest.mock import patch
from keyring.errors import KeyringError

from connectors.credential_vault import CredentialVault, UNCHANGED
from connectors.ports import CredentialStoreError
from connectors.schemas import ConnectionIdentity


@pytest.fixture
def identity():
    return ConnectionIdentity(host="wawi.example.local", port=1433, database="eazybusiness", user="crm")


class TestVaultAccount:

    def test_account_format(self, identity):
        assert identity.vault_account == "wawi.example.local:1433-eazybusiness-crm"

    def test_account_uses_default_port(self):
        identity = ConnectionIdentity(host="srv", database="db", user="sa")
        assert identity.vault_account == "srv:1433-db-sa"


class TestTriStateSave:
    """Omitted / empty / non-empty password on save."""

    def test_non_empty_password_is_stored(self, vault, identity, memory_keyring):
        vault.save(identity, "s3cret")

        assert vault.get(identity) == "s3cret"
        assert memory_keyring.passwords[(vault.service_name, identity.vault_account)] == "s3cret"

    def test_non_empty_password_overwrites(self, vault, identity):
        vault.save(identity, "old")
        vault.save(identity, "new")

        assert vault.get(identity) == "new"

    def test_omitted_password_leaves_secret_untouched(self, vault, identity):
        vault.save(identity, "s3cret")
        vault.save(identity)
        vault.save(identity, UNCHANGED)

        assert vault.get(identity) == "s3cret"

    def test_none_password_leaves_secret_untouched(self, vault, identity):
        vault.save(identity, "s3cret")
        vault.save(identity, None)

        assert vault.get(identity) == "s3cret"

    def test_empty_password_deletes_secret(self, vault, identity):
        vault.save(identity, "s3cret")
        vault.save(identity, "")

        assert vault.get(identity) is None

    def test_empty_password_without_secret_is_not_an_error(self, vault, identity):
        vault.save(identity, "")

        assert vault.get(identity) is None

    def test_identities_are_isolated(self, vault, identity):
        other = ConnectionIdentity(host="other", database="eazybusiness", user="crm")
        vault.save(identity, "one")
        vault.save(other, "two")

        assert vault.get(identity) == "one"
        assert vault.get(other) == "two"


class TestClear:

    def test_clear_existing_secret(self, vault, identity):
        vault.save(identity, "s3cret")

        assert vault.clear(identity) is True
        assert vault.get(identity) is None

    def test_clear_missing_secret(self, vault, identity):
        assert vault.clear(identity) is False


class TestKeyringFailures:

    def test_save_failure_raises_credential_store_error(self, vault, identity):
        with patch("connectors.credential_vault.keyring.set_password", side_effect=KeyringError("locked")):
            with pytest.raises(CredentialStoreError) as exc_info:
                vault.save(identity, "s3cret")

        assert "Failed to save credentials securely" in str(exc_info.value)
        assert "locked" in str(exc_info.value)

    def test_get_failure_raises_credential_store_error(self, vault, identity):
        with patch("connectors.credential_vault.keyring.get_password", side_effect=KeyringError("no backend")):
            with pytest.raises(CredentialStoreError):
                vault.get(identity)

    def test_delete_failure_raises_credential_store_error(self, vault, identity):
        with patch("connectors.credential_vault.keyring.delete_password", side_effect=KeyringError("denied")):
            with pytest.raises(CredentialStoreError):
                vault.clear(identity)

    def test_default_service_name_from_config(self, memory_keyring):
        from config import settings

        assert CredentialVault().service_name == settings.ERP_KEYRING_SERVICE
