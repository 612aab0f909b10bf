"""Prometheus metrics for the ERP bridge.

Defines operational metrics for the order placement, pool lifecycle and
reference data synchronization paths.
"""

from prometheus_client import Counter, Histogram

# Order placement
erp_orders_total = Counter(
    "erp_bridge_orders_total",
    "Total ERP order placement attempts",
    ["status"]  # status: committed|failed|rejected
)

erp_order_duration_seconds = Histogram(
    "erp_bridge_order_duration_seconds",
    "Time spent executing the order transaction in seconds",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0]
)

# Connection pool lifecycle
erp_pool_events_total = Counter(
    "erp_bridge_pool_events_total",
    "Connection pool lifecycle events",
    ["event"]  # event: created|reused|errored|closed|connect_failed
)

# Reference data
erp_reference_rows_synced_total = Counter(
    "erp_bridge_reference_rows_synced_total",
    "Reference data rows upserted into the local cache",
    ["kind"]
)

erp_reference_sync_failures_total = Counter(
    "erp_bridge_reference_sync_failures_total",
    "Reference data kinds that failed to synchronize",
    ["kind"]
)
