"""
Credential vault for the ERP database password

Stores the password in the OS-provided secret store (macOS Keychain, Windows
Credential Locker, Secret Service on Linux) through the keyring library. The
password never touches the settings store.

Entries are addressed by (service, account) where account is derived from the
connection identity: host:port-database-user.
"""

import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from config import settings
from .ports import CredentialStoreError
from .schemas import ConnectionIdentity


logger = logging.getLogger(__name__)


class _Unchanged:
    """Marker for "no password change requested"."""

    def __repr__(self) -> str:
        return "UNCHANGED"


UNCHANGED = _Unchanged()


class CredentialVault:
    """
    Adapter over the OS credential vault.

    save() distinguishes three intents:
    - password omitted (UNCHANGED): the stored secret is left alone
    - empty string: the stored secret is deleted
    - non-empty string: the stored secret is written or overwritten

    Usage:
        vault = CredentialVault()
        vault.save(settings.identity, "s3cret")
        password = vault.get(settings.identity)
    """

    def __init__(self, service_name: Optional[str] = None):
        """
        Args:
            service_name: Vault service name. Defaults to ERP_KEYRING_SERVICE.
        """
        self.service_name = service_name or settings.ERP_KEYRING_SERVICE

    def save(self, identity: ConnectionIdentity, password=UNCHANGED) -> None:
        """
        Apply a password change for the given identity.

        Args:
            identity: Connection identity the password belongs to
            password: UNCHANGED, "" (delete) or the new password

        Raises:
            CredentialStoreError: If the OS secret store rejects the operation
        """
        if password is UNCHANGED or password is None:
            logger.debug("Password not part of the update, vault left untouched")
            return

        if password == "":
            self.clear(identity)
            return

        try:
            keyring.set_password(self.service_name, identity.vault_account, password)
        except KeyringError as e:
            logger.error(f"Failed to save password to credential vault: {e}")
            raise CredentialStoreError(f"Failed to save credentials securely: {e}")

        logger.info("Password stored in credential vault", extra={"server": identity.host})

    def get(self, identity: ConnectionIdentity) -> Optional[str]:
        """
        Read the stored password.

        Returns:
            The password, or None if nothing is stored for this identity

        Raises:
            CredentialStoreError: If the OS secret store cannot be read
        """
        try:
            password = keyring.get_password(self.service_name, identity.vault_account)
        except KeyringError as e:
            logger.error(f"Failed to read password from credential vault: {e}")
            raise CredentialStoreError(f"Failed to read credentials from secure storage: {e}")

        if password is None:
            logger.warning(
                "No password in credential vault for this connection, it has to be re-entered",
                extra={"server": identity.host},
            )
        return password

    def clear(self, identity: ConnectionIdentity) -> bool:
        """
        Delete the stored password.

        Returns:
            True if a secret was deleted, False if none was stored

        Raises:
            CredentialStoreError: If the OS secret store rejects the deletion
        """
        try:
            keyring.delete_password(self.service_name, identity.vault_account)
        except PasswordDeleteError:
            logger.info("No stored password to delete", extra={"server": identity.host})
            return False
        except KeyringError as e:
            logger.error(f"Failed to delete password from credential vault: {e}")
            raise CredentialStoreError(f"Failed to save credentials securely: {e}")

        logger.info("Password removed from credential vault", extra={"server": identity.host})
        return True
