"""
Reference data synchronizer

Mirrors the ERP's small lookup tables (legal entities, warehouses, payment
and shipping methods) into local cache tables so that pickers can be filled
without an ERP round trip. Rows are upserted by ERP id and never deleted
locally.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from database import get_db_session
from models import ErpLegalEntity, ErpWarehouse, ErpPaymentMethod, ErpShippingMethod
from observability.metrics import erp_reference_rows_synced_total, erp_reference_sync_failures_total
from .pool_manager import ErpPoolManager, run_blocking
from .ports import ConnectorError
from .schemas import ReferenceEntity, ReferenceKind, SyncKindResult, SyncStatus, SyncSummary
from .settings_store import ConnectionSettingsStore


logger = logging.getLogger(__name__)

SYNC_STATUS_KEY = "erp_reference_sync_status"

REFERENCE_MODELS = {
    ReferenceKind.LEGAL_ENTITY: ErpLegalEntity,
    ReferenceKind.WAREHOUSE: ErpWarehouse,
    ReferenceKind.PAYMENT_METHOD: ErpPaymentMethod,
    ReferenceKind.SHIPPING_METHOD: ErpShippingMethod,
}

# Read-only; inactive rows are skipped where the ERP table has a flag for it
REFERENCE_QUERIES = {
    ReferenceKind.LEGAL_ENTITY: text(
        "SELECT kFirma AS erp_id, cName AS name FROM dbo.tFirma"
    ),
    ReferenceKind.WAREHOUSE: text(
        "SELECT kWarenLager AS erp_id, cName AS name FROM dbo.tWarenLager WHERE nAktiv = 1"
    ),
    ReferenceKind.PAYMENT_METHOD: text(
        "SELECT kZahlungsart AS erp_id, cName AS name FROM dbo.tZahlungsart WHERE nAktiv = 1"
    ),
    ReferenceKind.SHIPPING_METHOD: text(
        "SELECT kVersandArt AS erp_id, cName AS name FROM dbo.tversandart WHERE cAktiv = 'Y'"
    ),
}


class ReferenceDataSynchronizer:
    """
    Pulls ERP reference data and upserts it into the local cache.

    Usage:
        synchronizer = ReferenceDataSynchronizer(pool_manager)
        summary = await synchronizer.sync_all()
    """

    def __init__(
        self,
        pool_manager: ErpPoolManager,
        settings_store: Optional[ConnectionSettingsStore] = None,
        session_factory: Optional[sessionmaker] = None,
    ):
        self.pool_manager = pool_manager
        self.settings_store = settings_store or ConnectionSettingsStore(session_factory)
        self._session_factory = session_factory
        self._sync_lock = asyncio.Lock()

    @property
    def is_syncing(self) -> bool:
        return self._sync_lock.locked()

    async def fetch_all(self, kind: ReferenceKind) -> List[ReferenceEntity]:
        """
        Read all rows of one reference kind from the ERP.

        Rows with a non-positive id are skipped.

        Raises:
            ConfigurationError, ConnectionFailedError: From the pool manager
            SQLAlchemyError: If the query fails
        """
        pool = await self.pool_manager.get_pool()
        query = REFERENCE_QUERIES[kind]

        def _fetch():
            with pool.connect() as conn:
                return conn.execute(query).mappings().all()

        rows = await run_blocking(_fetch)

        entities = []
        for row in rows:
            if row["erp_id"] is None or row["erp_id"] <= 0:
                logger.warning(
                    f"Skipping {kind.value} row without a valid id",
                    extra={"reference_kind": kind.value},
                )
                continue
            entities.append(ReferenceEntity(erp_id=row["erp_id"], name=row["name"]))
        return entities

    def upsert_all(self, kind: ReferenceKind, entities: List[ReferenceEntity]) -> int:
        """
        Insert or rename cached rows by ERP id.

        Running the same upsert twice leaves exactly one row per ERP id.

        Returns:
            Number of rows written
        """
        if not entities:
            return 0

        model = REFERENCE_MODELS[kind]
        now = datetime.now(timezone.utc)
        values = [
            {"erp_id": entity.erp_id, "name": entity.name, "synced_at": now}
            for entity in entities
        ]

        with get_db_session(self._session_factory) as session:
            dialect = session.get_bind().dialect.name
            if dialect == "postgresql":
                stmt = pg_insert(model).values(values)
            else:
                stmt = sqlite_insert(model).values(values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[model.erp_id],
                set_={"name": stmt.excluded.name, "synced_at": stmt.excluded.synced_at},
            )
            session.execute(stmt)

        return len(values)

    def list_entities(self, kind: ReferenceKind) -> List[ReferenceEntity]:
        """Cached rows of one kind, ordered by name."""
        model = REFERENCE_MODELS[kind]
        with get_db_session(self._session_factory) as session:
            rows = session.query(model).order_by(model.name, model.erp_id).all()
            return [ReferenceEntity.model_validate(row) for row in rows]

    async def sync_kind(self, kind: ReferenceKind) -> SyncKindResult:
        """Synchronize one reference kind; failures are reported, not raised."""
        try:
            entities = await self.fetch_all(kind)
            count = self.upsert_all(kind, entities)
        except (ConnectorError, SQLAlchemyError) as e:
            logger.error(
                f"Failed to sync {kind.value}: {e}",
                extra={"reference_kind": kind.value, "error": str(e)},
            )
            erp_reference_sync_failures_total.labels(kind=kind.value).inc()
            return SyncKindResult(kind=kind, success=False, error=str(e))

        erp_reference_rows_synced_total.labels(kind=kind.value).inc(count)
        logger.info(
            f"Synced {count} {kind.value} rows",
            extra={"reference_kind": kind.value, "row_count": count},
        )
        return SyncKindResult(kind=kind, success=True, count=count)

    async def sync_all(self) -> SyncSummary:
        """
        Synchronize every reference kind.

        Each kind is handled independently: one failing kind does not stop the
        others. A run started while another is in progress is skipped.
        """
        if self._sync_lock.locked():
            logger.warning("Reference data sync already in progress, skipping")
            return SyncSummary(success=False, skipped=True, message="Sync already in progress.")

        async with self._sync_lock:
            logger.info("Starting reference data sync")
            self._save_status("Running", "Reference data sync in progress.")

            results = []
            try:
                for kind in ReferenceKind:
                    results.append(await self.sync_kind(kind))
            except Exception as e:
                logger.error(f"Reference data sync aborted: {e}", exc_info=True)
                self._save_status("Error", f"Sync aborted: {e}")
                raise

            failed = [r for r in results if not r.success]
            total = sum(r.count for r in results)
            if failed:
                message = (
                    f"Synced {total} rows; failed: "
                    + ", ".join(f"{r.kind.value} ({r.error})" for r in failed)
                )
                status = "Error" if len(failed) == len(results) else "Partial"
            else:
                message = f"Synced {total} rows."
                status = "Success"

            self._save_status(status, message)
            logger.info(f"Reference data sync finished: {message}", extra={"status": status})

            return SyncSummary(success=not failed, message=message, results=results)

    def get_last_status(self) -> SyncStatus:
        payload = self.settings_store.get_value(SYNC_STATUS_KEY)
        if not payload:
            return SyncStatus()
        return SyncStatus(**payload)

    def _save_status(self, status: str, message: str) -> None:
        record = SyncStatus(status=status, message=message, timestamp=datetime.now(timezone.utc))
        self.settings_store.set_value(SYNC_STATUS_KEY, record.model_dump(mode="json"))

    def reference_counts(self) -> Dict[ReferenceKind, int]:
        """Number of cached rows per kind."""
        with get_db_session(self._session_factory) as session:
            return {kind: session.query(model).count() for kind, model in REFERENCE_MODELS.items()}
