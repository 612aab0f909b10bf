"""
Ports and error taxonomy for the ERP integration layer

The integration layer talks to two things it does not own: the CRM's local
customer store (consulted through CustomerLookupPort) and the ERP database
(reached through the pool manager). Everything that can go wrong on the way
is expressed as a ConnectorError subclass; the caller-facing facade turns
these into structured failure results.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .schemas import CustomerSnapshot


class ConnectorError(Exception):
    """
    Base exception for ERP integration errors.

    Raised by the vault, pool manager, synchronizer and order executor.
    ErpIntegrationService catches this and returns {success: False, error}.
    """
    pass


class ConfigurationError(ConnectorError):
    """Required connection settings, password or order defaults are missing."""
    pass


class OrderValidationError(ConnectorError):
    """Order input cannot be placed (unknown/unlinked customer, no valid lines)."""
    pass


class ConnectionFailedError(ConnectorError):
    """
    Handshake or transport failure against the ERP database.

    Attributes:
        original_message: Message of the underlying driver error
    """

    def __init__(self, message: str, original_message: Optional[str] = None):
        super().__init__(message)
        self.original_message = original_message


class OrderTransactionError(ConnectorError):
    """A statement inside the order transaction failed; the transaction was rolled back."""
    pass


class CredentialStoreError(ConnectorError):
    """The OS secret store could not be read or written."""
    pass


class CustomerLookupPort(ABC):
    """
    Abstract interface to the CRM's local customer store.

    Order placement only needs to resolve a local customer into its ERP id and
    address fields, so this is the single operation the integration layer
    requires from the local store.
    """

    @abstractmethod
    def get_customer_by_id(self, customer_id: int) -> Optional[CustomerSnapshot]:
        """
        Look up a local customer.

        Args:
            customer_id: Primary key of the customer in the local store

        Returns:
            CustomerSnapshot, or None if no such customer exists
        """
        pass
