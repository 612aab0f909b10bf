"""
ERP integration facade

Single entry point for the caller (UI / IPC layer). Every call runs under a
fresh operation id, domain failures (ConnectorError) are logged and returned
as structured results, and programming errors propagate.

Usage:
    service = ErpIntegrationService.create_default()
    result = await service.create_order({"local_customer_id": 7, ...})
    if not result.success:
        show(result.error)
"""

import logging
from typing import List, Optional, Union

from pydantic import ValidationError
from sqlalchemy.orm import sessionmaker

from observability.request_id import generate_operation_id, set_operation_id
from .credential_vault import CredentialVault
from .customer_lookup import SqlAlchemyCustomerLookup
from .order_service import ErpOrderService
from .pool_manager import ErpPoolManager
from .ports import ConnectorError, CredentialStoreError, CustomerLookupPort
from .reference_sync import ReferenceDataSynchronizer
from .schemas import (
    ClearPasswordResult,
    ConnectionSettings,
    ConnectionSettingsUpdate,
    OperationResult,
    OrderInput,
    OrderResult,
    ReferenceEntity,
    ReferenceKind,
    SyncStatus,
    SyncSummary,
)
from .settings_store import ConnectionSettingsStore


logger = logging.getLogger(__name__)


class ErpIntegrationService:
    """
    Caller-facing facade over settings, credentials, pool, sync and orders.

    All collaborators are injected; create_default() wires the production
    ones against the local database and the OS credential vault.
    """

    def __init__(
        self,
        settings_store: ConnectionSettingsStore,
        vault: CredentialVault,
        pool_manager: ErpPoolManager,
        order_service: ErpOrderService,
        synchronizer: ReferenceDataSynchronizer,
    ):
        self.settings_store = settings_store
        self.vault = vault
        self.pool_manager = pool_manager
        self.order_service = order_service
        self.synchronizer = synchronizer

    @classmethod
    def create_default(
        cls,
        session_factory: Optional[sessionmaker] = None,
        customer_lookup: Optional[CustomerLookupPort] = None,
        vault: Optional[CredentialVault] = None,
        engine_factory=None,
    ) -> "ErpIntegrationService":
        settings_store = ConnectionSettingsStore(session_factory)
        vault = vault or CredentialVault()
        pool_manager = ErpPoolManager(settings_store, vault, engine_factory)
        order_service = ErpOrderService(
            pool_manager,
            customer_lookup or SqlAlchemyCustomerLookup(session_factory),
            settings_store,
        )
        synchronizer = ReferenceDataSynchronizer(pool_manager, settings_store, session_factory)
        return cls(settings_store, vault, pool_manager, order_service, synchronizer)

    @staticmethod
    def _begin_operation(name: str) -> str:
        operation_id = generate_operation_id()
        set_operation_id(operation_id)
        logger.debug(f"Starting operation {name}")
        return operation_id

    async def create_order(self, order: Union[OrderInput, dict]) -> OrderResult:
        """Place an order in the ERP. Never raises for domain failures."""
        self._begin_operation("create_order")

        try:
            order_input = order if isinstance(order, OrderInput) else OrderInput(**order)
        except ValidationError as e:
            logger.warning(f"Invalid order input: {e}")
            return OrderResult.failed(f"Invalid order input: {e}")

        try:
            return await self.order_service.create_order(order_input)
        except ConnectorError as e:
            return OrderResult.failed(str(e))

    async def save_settings(self, update: Union[ConnectionSettingsUpdate, dict]) -> OperationResult:
        """
        Replace the connection settings and apply the password change.

        The settings are saved even if the credential vault rejects the
        password; the vault error is returned to the caller. The live pool is
        closed so the next operation connects with the new settings.
        """
        self._begin_operation("save_settings")

        try:
            if not isinstance(update, ConnectionSettingsUpdate):
                update = ConnectionSettingsUpdate(**update)
        except ValidationError as e:
            logger.warning(f"Invalid connection settings: {e}")
            return OperationResult(success=False, error=f"Invalid connection settings: {e}")

        connection_settings = update.to_settings()
        self.settings_store.clear()
        self.settings_store.save(connection_settings)

        error = None
        try:
            if update.password_provided:
                self.vault.save(connection_settings.identity, update.password)
        except CredentialStoreError as e:
            logger.error(f"Connection settings saved but password could not be stored: {e}")
            error = str(e)

        await self.pool_manager.close_pool()
        return OperationResult(success=error is None, error=error)

    async def get_settings(self) -> Optional[ConnectionSettings]:
        """Saved connection settings, without password."""
        self._begin_operation("get_settings")
        return self.settings_store.load()

    async def test_connection(self, update: Union[ConnectionSettingsUpdate, dict]) -> bool:
        """
        Test the given settings. Without a password in the request the stored
        one is used.
        """
        self._begin_operation("test_connection")

        try:
            if not isinstance(update, ConnectionSettingsUpdate):
                update = ConnectionSettingsUpdate(**update)
        except ValidationError as e:
            logger.warning(f"Invalid connection settings: {e}")
            return False

        password = update.password
        if not password:
            try:
                password = self.vault.get(update.identity)
            except CredentialStoreError as e:
                logger.error(f"Connection test aborted: {e}")
                return False

        return await self.pool_manager.test_connection(update.to_settings(), password)

    async def clear_password(self) -> ClearPasswordResult:
        """Delete the stored password of the saved connection."""
        self._begin_operation("clear_password")

        connection_settings = self.settings_store.load()
        if connection_settings is None:
            return ClearPasswordResult(success=False, message="No ERP connection settings saved.")

        try:
            deleted = self.vault.clear(connection_settings.identity)
        except CredentialStoreError as e:
            return ClearPasswordResult(success=False, message=str(e))

        await self.pool_manager.close_pool()
        if deleted:
            return ClearPasswordResult(success=True, message="Stored password removed.")
        return ClearPasswordResult(success=True, message="No stored password found.")

    async def sync_reference_data(self) -> SyncSummary:
        """Synchronize all ERP reference data into the local cache."""
        self._begin_operation("sync_reference_data")
        return await self.synchronizer.sync_all()

    async def list_reference_entities(self, kind: Union[ReferenceKind, str]) -> List[ReferenceEntity]:
        """Cached reference rows of one kind, ordered by name."""
        self._begin_operation("list_reference_entities")
        return self.synchronizer.list_entities(ReferenceKind(kind))

    async def get_last_sync_status(self) -> SyncStatus:
        self._begin_operation("get_last_sync_status")
        return self.synchronizer.get_last_status()

    async def close(self) -> None:
        """Release the ERP connection pool."""
        await self.pool_manager.close_pool()
