"""Application configuration via environment variables.

Provides type-safe settings loading using pydantic-settings.
Environment variables can be loaded from a .env file.

Connection parameters for the ERP database itself are NOT configured here:
they are saved by the user at runtime (see connectors.settings_store) and the
password lives in the OS credential vault (see connectors.credential_vault).
"""

from typing import Optional
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Environment Variables:
        LOCAL_DATABASE_URL: SQLAlchemy URL of the local CRM store
        ERP_ODBC_DRIVER: ODBC driver name used for SQL Server connections
        ERP_KEYRING_SERVICE: Service name under which passwords are stored
        ERP_CONNECT_TIMEOUT_SECONDS: Login/query timeout for the live pool
        ERP_TEST_TIMEOUT_SECONDS: Login/query timeout for connection tests
        ERP_POOL_MAX_SIZE: Maximum concurrent connections of the live pool
        ERP_ORDER_NUMBER_PREFIX: Prefix marking externally created orders
        DEBUG: Enable debug mode (default False)
        LOG_LEVEL: Logging level (default INFO)
        LOG_JSON: Emit JSON log lines (default True)
    """

    # Local store
    LOCAL_DATABASE_URL: str = "sqlite:///./erp_bridge.db"

    # ERP database connectivity
    ERP_ODBC_DRIVER: str = "ODBC Driver 18 for SQL Server"
    ERP_KEYRING_SERVICE: str = "ErpOrderBridge-MSSQL"
    ERP_CONNECT_TIMEOUT_SECONDS: int = 15
    ERP_TEST_TIMEOUT_SECONDS: int = 5
    ERP_POOL_MAX_SIZE: int = 10
    ERP_POOL_RECYCLE_SECONDS: Optional[int] = 1800

    # Order placement
    ERP_ORDER_NUMBER_PREFIX: str = "EXTERN"

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache for singleton behavior.
    Call get_settings.cache_clear() to reload settings.
    """
    return Settings()


# Module-level settings instance
settings = get_settings()
