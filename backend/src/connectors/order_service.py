"""
ERP order placement

Validates an order request, builds the order script and runs it as one
explicit transaction on a pooled ERP connection. Either the complete order
(header, addresses, positions, recalculated totals) is committed or nothing
is: any failing statement rolls the whole transaction back and the database
error message is passed on unchanged.
"""

import logging
import time
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from observability.metrics import erp_orders_total, erp_order_duration_seconds
from .order_script import (
    ArticleListEntry,
    ArticleMetadata,
    OrderScript,
    OrderScriptBuilder,
    build_article_list,
    DROP_ARTICLE_LIST_SQL,
    CREATE_ARTICLE_LIST_SQL,
    INSERT_ARTICLE_LIST_SQL,
    INSERT_ORDER_HEADER_SQL,
    INSERT_ORDER_ADDRESS_SQL,
    SELECT_ARTICLE_METADATA_SQL,
    INSERT_ORDER_POSITION_SQL,
    RECALCULATE_ORDER_TOTALS_SQL,
    SELECT_CREATED_ORDER_SQL,
)
from .order_status import OrderState, OrderStateTracker
from .pool_manager import ErpPool, ErpPoolManager, run_blocking
from .ports import (
    ConfigurationError,
    ConnectionFailedError,
    ConnectorError,
    CustomerLookupPort,
    OrderTransactionError,
    OrderValidationError,
)
from .schemas import CustomerSnapshot, ErpOrderDefaults, OrderInput, OrderResult
from .settings_store import ConnectionSettingsStore


logger = logging.getLogger(__name__)

_REQUIRED_ORDER_IDS = ("legal_entity_id", "warehouse_id", "payment_method_id", "shipping_method_id")


def database_message(error: SQLAlchemyError) -> str:
    """Message of the underlying driver error, without SQLAlchemy decoration."""
    original = getattr(error, "orig", None)
    if original is not None:
        return str(original)
    return str(error)


class ErpOrderService:
    """
    Places sales orders in the ERP.

    Usage:
        service = ErpOrderService(pool_manager, SqlAlchemyCustomerLookup())
        result = await service.create_order(order_input)
    """

    def __init__(
        self,
        pool_manager: ErpPoolManager,
        customer_lookup: CustomerLookupPort,
        settings_store: Optional[ConnectionSettingsStore] = None,
        builder: Optional[OrderScriptBuilder] = None,
    ):
        self.pool_manager = pool_manager
        self.customer_lookup = customer_lookup
        self.settings_store = settings_store or pool_manager.settings_store
        self.builder = builder or OrderScriptBuilder()

    async def create_order(self, order: OrderInput) -> OrderResult:
        """
        Place one order.

        Returns:
            OrderResult with the new kAuftrag and cAuftragsNr

        Raises:
            ConfigurationError: Order defaults or connection settings missing
            OrderValidationError: Customer unknown/unlinked, no valid lines
            ConnectionFailedError: ERP not reachable
            OrderTransactionError: A statement failed, transaction rolled back
        """
        tracker = OrderStateTracker(logger)
        log_extra = {"local_customer_id": order.local_customer_id}

        try:
            customer, articles, defaults = self._validate(order)
            log_extra["erp_customer_id"] = customer.erp_customer_id
            log_extra["line_count"] = len(articles)

            tracker.advance(OrderState.BUILDING_SCRIPT)
            script = self.builder.build(order, customer, articles, defaults)
            log_extra["erp_order_number"] = script.order_number
            pool = await self.pool_manager.get_pool()

            tracker.advance(OrderState.EXECUTING)
            logger.info("Executing ERP order transaction", extra={**log_extra, "order_state": tracker.state.value})
            start_time = time.time()
            order_id, order_number = await run_blocking(self._execute, pool, script)
            erp_order_duration_seconds.observe(time.time() - start_time)

            tracker.advance(OrderState.COMMITTED)
        except OrderValidationError as e:
            tracker.fail()
            erp_orders_total.labels(status="rejected").inc()
            logger.warning(f"ERP order rejected: {e}", extra=log_extra)
            raise
        except ConnectorError as e:
            tracker.fail()
            erp_orders_total.labels(status="failed").inc()
            logger.error(f"ERP order failed: {e}", extra={**log_extra, "order_state": tracker.state.value})
            raise

        erp_orders_total.labels(status="committed").inc()
        logger.info(
            "ERP order committed",
            extra={**log_extra, "erp_order_id": order_id, "order_state": tracker.state.value},
        )
        return OrderResult.committed(order_id, order_number)

    def _validate(self, order: OrderInput) -> Tuple[CustomerSnapshot, List[ArticleListEntry], ErpOrderDefaults]:
        """Check everything that can be checked without touching the ERP."""
        connection_settings = self.settings_store.load()
        if connection_settings is None:
            raise ConfigurationError("ERP connection settings are not configured")
        defaults = connection_settings.order_defaults
        if defaults is None:
            raise ConfigurationError(
                "ERP order defaults (user, shop, platform, language) are not configured"
            )

        missing_ids = [name for name in _REQUIRED_ORDER_IDS if getattr(order, name) is None]
        if missing_ids:
            raise OrderValidationError(f"Order is missing ERP ids: {', '.join(missing_ids)}")

        customer = self.customer_lookup.get_customer_by_id(order.local_customer_id)
        if customer is None or customer.erp_customer_id is None:
            raise OrderValidationError(
                f"Customer {order.local_customer_id} not found or not linked to the ERP (missing ERP customer id)"
            )

        articles = build_article_list(order.line_items)
        if not articles:
            raise OrderValidationError("No valid order lines with ERP article id, quantity and price")

        return customer, articles, defaults

    def _execute(self, pool: ErpPool, script: OrderScript) -> Tuple[int, str]:
        """Run the order script in one transaction (blocking)."""
        try:
            conn = pool.connect()
        except SQLAlchemyError as e:
            raise ConnectionFailedError(
                f"Could not obtain an ERP connection: {database_message(e)}",
                original_message=database_message(e),
            ) from e

        try:
            trans = conn.begin()
            try:
                result = self._run_script(conn, script)
                trans.commit()
            except OrderTransactionError:
                self._rollback(trans)
                raise
            except SQLAlchemyError as e:
                self._rollback(trans)
                raise OrderTransactionError(database_message(e)) from e
            except Exception:
                self._rollback(trans)
                raise
            return result
        finally:
            conn.close()

    def _run_script(self, conn, script: OrderScript) -> Tuple[int, str]:
        conn.execute(DROP_ARTICLE_LIST_SQL)
        conn.execute(CREATE_ARTICLE_LIST_SQL)
        conn.execute(INSERT_ARTICLE_LIST_SQL, script.article_list_params())

        order_id = conn.execute(INSERT_ORDER_HEADER_SQL, script.header).scalar()
        if order_id is None:
            raise OrderTransactionError("Order header insert did not return an order id")

        for params in script.address_params(order_id):
            conn.execute(INSERT_ORDER_ADDRESS_SQL, params)

        metadata = self._load_article_metadata(conn, script)
        conn.execute(INSERT_ORDER_POSITION_SQL, script.position_params(order_id, metadata))

        conn.execute(RECALCULATE_ORDER_TOTALS_SQL, {"order_id": order_id})
        conn.execute(DROP_ARTICLE_LIST_SQL)

        row = conn.execute(SELECT_CREATED_ORDER_SQL, {"order_id": order_id}).mappings().first()
        if row is None:
            raise OrderTransactionError(f"Created order {order_id} could not be read back")
        return row["kAuftrag"], row["cAuftragsNr"]

    @staticmethod
    def _load_article_metadata(conn, script: OrderScript) -> dict:
        """Resolve ERP master data for every line in one query, keyed by sequence number."""
        rows = conn.execute(SELECT_ARTICLE_METADATA_SQL, script.metadata_params).mappings().all()

        metadata = {}
        for row in rows:
            if row["found_article_id"] is None:
                continue
            metadata[row["sequence_number"]] = ArticleMetadata(
                erp_article_id=row["erp_article_id"],
                article_number=row["article_number"],
                name=row["name"],
                tax_class_id=row["tax_class_id"],
                tax_rate=row["tax_rate"],
            )

        missing = [a.erp_article_id for a in script.articles if a.sequence_number not in metadata]
        if missing:
            raise OrderTransactionError(
                f"Articles not found in ERP: {', '.join(str(article_id) for article_id in missing)}"
            )
        return metadata

    @staticmethod
    def _rollback(trans) -> None:
        """Roll back; a failing rollback is logged and must not hide the original error."""
        try:
            trans.rollback()
        except SQLAlchemyError as e:
            logger.error(f"Rollback of ERP order transaction failed: {e}")
        else:
            logger.info("ERP order transaction rolled back", extra={"order_state": OrderState.ROLLING_BACK.value})
