"""
Connectors module - JTL-Wawi ERP integration

Bridges the CRM's local store to the ERP's SQL Server database:
- Password storage in the OS credential vault (keyring)
- Lazily created, self-healing connection pool
- Reference data synchronization into local cache tables
- Transactional sales order placement

ErpIntegrationService is the entry point for callers.
"""

from .ports import (
    ConnectorError,
    ConfigurationError,
    OrderValidationError,
    ConnectionFailedError,
    OrderTransactionError,
    CredentialStoreError,
    CustomerLookupPort,
)
from .credential_vault import CredentialVault, UNCHANGED
from .settings_store import ConnectionSettingsStore
from .pool_manager import ErpPool, ErpPoolManager, PoolState
from .reference_sync import ReferenceDataSynchronizer
from .order_script import OrderScriptBuilder, parse_salutation, split_contact_name
from .order_service import ErpOrderService
from .customer_lookup import SqlAlchemyCustomerLookup
from .integration_service import ErpIntegrationService

__all__ = [
    "ConnectorError",
    "ConfigurationError",
    "OrderValidationError",
    "ConnectionFailedError",
    "OrderTransactionError",
    "CredentialStoreError",
    "CustomerLookupPort",
    "CredentialVault",
    "UNCHANGED",
    "ConnectionSettingsStore",
    "ErpPool",
    "ErpPoolManager",
    "PoolState",
    "ReferenceDataSynchronizer",
    "OrderScriptBuilder",
    "parse_salutation",
    "split_contact_name",
    "ErpOrderService",
    "SqlAlchemyCustomerLookup",
    "ErpIntegrationService",
]
