"""Observability module for the ERP bridge.

Provides structured logging, operation correlation and metrics.
"""

from .logging_config import configure_logging, mask_value, JSONFormatter, OperationIDFilter
from .metrics import (
    erp_orders_total,
    erp_order_duration_seconds,
    erp_pool_events_total,
    erp_reference_rows_synced_total,
    erp_reference_sync_failures_total,
)
from .request_id import (
    operation_id_var,
    get_operation_id,
    set_operation_id,
    generate_operation_id,
)

__all__ = [
    # Logging
    "configure_logging",
    "JSONFormatter",
    "OperationIDFilter",
    "mask_value",
    # Metrics
    "erp_orders_total",
    "erp_order_duration_seconds",
    "erp_pool_events_total",
    "erp_reference_rows_synced_total",
    "erp_reference_sync_failures_total",
    # Operation ID
    "operation_id_var",
    "get_operation_id",
    "set_operation_id",
    "generate_operation_id",
]
