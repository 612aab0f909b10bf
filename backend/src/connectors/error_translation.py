"""
Translation of SQL Server connection errors into user-facing descriptions

Driver errors (pyodbc / ODBC Driver for SQL Server) carry SQLSTATE codes and
native error numbers inside their message text. This module maps the common
ones onto a category, a short explanation and advice on how to fix them.
"""

import re
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ErrorDetail:
    title: str
    description: str
    category: str
    severity: str
    actionable_advice: Optional[str] = None


@dataclass
class ParsedConnectionError:
    """
    User-facing description of a connection error.

    Attributes:
        title: Short headline
        description: What most likely happened
        original_message: Message of the underlying driver error
        code: Matched error code, or "UNKNOWN"
        category: authentication | network | database | ssl | timeout | configuration | unknown
        severity: low | medium | high
        actionable_advice: What the user can try
    """
    title: str
    description: str
    original_message: str
    code: str
    category: str
    severity: str
    actionable_advice: Optional[str] = None


ERROR_DETAILS = {
    "TIMEOUT": ErrorDetail(
        title="Connection Timeout",
        description="The server did not respond within the expected time.",
        category="timeout",
        severity="medium",
        actionable_advice="Ensure the server is running and no firewall is blocking the connection.",
    ),
    "CONNECTION_REFUSED": ErrorDetail(
        title="Connection Refused",
        description="The server actively refused the connection. The database service may not be running or the port is wrong.",
        category="network",
        severity="high",
        actionable_advice="Verify that the SQL Server service is started and the configured port is correct.",
    ),
    "LOGIN_FAILED": ErrorDetail(
        title="Login Failed",
        description="Login to the database server failed.",
        category="authentication",
        severity="high",
        actionable_advice="Check user name and password and that the user may access the database.",
    ),
    "DATABASE_NOT_FOUND": ErrorDetail(
        title="Database Not Found",
        description="The configured database could not be opened on the server.",
        category="database",
        severity="high",
        actionable_advice="Check the database name for typos and that the login has access to it.",
    ),
    "NETWORK_UNREACHABLE": ErrorDetail(
        title="Network Unreachable",
        description="The server could not be reached over the network.",
        category="network",
        severity="high",
        actionable_advice="Check the server address and your network connection.",
    ),
    "SOCKET_ERROR": ErrorDetail(
        title="Communication Link Failure",
        description="The network connection to the server failed or was interrupted.",
        category="network",
        severity="medium",
    ),
    "SSL_CERT_ERROR": ErrorDetail(
        title="SSL Certificate Error",
        description="The server certificate could not be validated.",
        category="ssl",
        severity="medium",
        actionable_advice="For self-signed certificates enable 'Trust server certificate'.",
    ),
    "PORT_NOT_FOUND": ErrorDetail(
        title="Port for Instance Not Found",
        description="The SQL Server Browser could not resolve the port of the named instance.",
        category="configuration",
        severity="medium",
        actionable_advice="Specify the port explicitly or make sure the SQL Server Browser service is running.",
    ),
}

# Ordered: first match wins
_MESSAGE_PATTERNS = (
    ("LOGIN_FAILED", re.compile(r"\(18456\)|login failed|28000", re.IGNORECASE)),
    ("DATABASE_NOT_FOUND", re.compile(r"\(4060\)|cannot open database", re.IGNORECASE)),
    ("SSL_CERT_ERROR", re.compile(r"ssl|certificate", re.IGNORECASE)),
    ("PORT_NOT_FOUND", re.compile(r"port for .* not found|sql server browser", re.IGNORECASE)),
    ("TIMEOUT", re.compile(r"timeout|timed out|HYT00|HYT01", re.IGNORECASE)),
    ("CONNECTION_REFUSED", re.compile(r"refused|ECONNREFUSED", re.IGNORECASE)),
    ("NETWORK_UNREACHABLE", re.compile(r"unreachable|no route to host|name or service not known", re.IGNORECASE)),
    ("SOCKET_ERROR", re.compile(r"communication link failure|08S01|socket|TCP Provider", re.IGNORECASE)),
)


def describe_connection_error(error: object) -> ParsedConnectionError:
    """
    Describe a connection error for the user.

    Args:
        error: Exception raised by the driver/SQLAlchemy, or a plain message

    Returns:
        ParsedConnectionError; unknown errors map to a generic description
    """
    if isinstance(error, BaseException):
        original = getattr(error, "orig", None)
        message = str(original) if original is not None else str(error)
    else:
        message = str(error) if error else "An unknown error occurred."

    for code, pattern in _MESSAGE_PATTERNS:
        if pattern.search(message):
            detail = ERROR_DETAILS[code]
            return ParsedConnectionError(
                title=detail.title,
                description=detail.description,
                original_message=message,
                code=code,
                category=detail.category,
                severity=detail.severity,
                actionable_advice=detail.actionable_advice,
            )

    return ParsedConnectionError(
        title="Connection Error",
        description="Could not connect to the SQL Server or the connection was lost.",
        original_message=message,
        code="UNKNOWN",
        category="unknown",
        severity="medium",
    )
