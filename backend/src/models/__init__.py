"""SQLAlchemy models for the local CRM store"""

from .base import Base
from .app_setting import AppSetting
from .customer import Customer
from .reference_data import (
    ErpLegalEntity,
    ErpWarehouse,
    ErpPaymentMethod,
    ErpShippingMethod,
)

__all__ = [
    "Base",
    "AppSetting",
    "Customer",
    "ErpLegalEntity",
    "ErpWarehouse",
    "ErpPaymentMethod",
    "ErpShippingMethod",
]
