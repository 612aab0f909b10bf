"""Operation ID management for log correlation.

Every caller-facing operation (create order, save settings, sync, ...) runs
under its own operation ID so that all log lines it produces can be grouped.
"""

import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable for operation_id (async-safe)
operation_id_var: ContextVar[Optional[str]] = ContextVar("operation_id", default=None)


def generate_operation_id() -> str:
    """Generate a new unique operation ID.

    Returns:
        str: UUID v4 operation ID
    """
    return str(uuid.uuid4())


def get_operation_id() -> str:
    """Get current operation ID from context.

    Returns:
        str: Current operation ID or "no-operation-id" if not set
    """
    return operation_id_var.get() or "no-operation-id"


def set_operation_id(operation_id: str) -> None:
    """Set operation ID in current context.

    Args:
        operation_id: Operation ID to set
    """
    operation_id_var.set(operation_id)
