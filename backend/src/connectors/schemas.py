"""Pydantic schemas for the ERP integration layer"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


DEFAULT_MSSQL_PORT = 1433


def _coerce_decimal(value: Any) -> Optional[Decimal]:
    """Convert a caller-supplied number to Decimal, or None if it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


class ConnectionIdentity(BaseModel):
    """Identity of one ERP database login.

    Used as the pool dedup key and as the credential vault lookup key.
    """
    host: str = Field(..., min_length=1)
    port: int = Field(DEFAULT_MSSQL_PORT, ge=1, le=65535)
    database: str = Field(..., min_length=1)
    user: str = Field(..., min_length=1)

    class Config:
        frozen = True

    @property
    def vault_account(self) -> str:
        """Account name in the OS credential vault: host:port-database-user"""
        return f"{self.host}:{self.port}-{self.database}-{self.user}"


class ErpOrderDefaults(BaseModel):
    """ERP ids every order header needs that do not come from the order itself.

    kBenutzer, kShop, kPlattform and kSprache in the ERP schema.
    """
    erp_user_id: int = Field(..., ge=0)
    shop_id: int = Field(..., ge=0)
    platform_id: int = Field(..., ge=0)
    language_id: int = Field(..., ge=0)
    currency: str = Field("EUR", min_length=3, max_length=3)
    currency_factor: Decimal = Field(Decimal("1"), gt=0)
    tax_zone_id: int = Field(1, ge=0)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return v.upper()


class ConnectionSettings(BaseModel):
    """Non-secret ERP connection settings as persisted in the settings store."""
    host: str = Field(..., min_length=1)
    port: int = Field(DEFAULT_MSSQL_PORT, ge=1, le=65535)
    database: str = Field(..., min_length=1)
    user: str = Field(..., min_length=1)
    encrypt: bool = True
    trust_server_certificate: bool = False
    order_defaults: Optional[ErpOrderDefaults] = None

    @field_validator('port', mode='before')
    @classmethod
    def default_port(cls, v: Any) -> Any:
        """Blank ports fall back to the SQL Server default."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_MSSQL_PORT
        return v

    @field_validator('host', 'database', 'user')
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @property
    def identity(self) -> ConnectionIdentity:
        return ConnectionIdentity(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
        )


class ConnectionSettingsUpdate(ConnectionSettings):
    """Settings as submitted by the caller, optionally with a password.

    The password is tri-state: omitted (leave the vault untouched), empty
    string (delete the stored secret) or non-empty (store it).
    """
    password: Optional[str] = None

    @property
    def password_provided(self) -> bool:
        return "password" in self.model_fields_set and self.password is not None

    def to_settings(self) -> ConnectionSettings:
        return ConnectionSettings(**self.model_dump(exclude={"password"}))


class ReferenceKind(str, Enum):
    """ERP lookup tables mirrored into the local cache."""
    LEGAL_ENTITY = "LEGAL_ENTITY"
    WAREHOUSE = "WAREHOUSE"
    PAYMENT_METHOD = "PAYMENT_METHOD"
    SHIPPING_METHOD = "SHIPPING_METHOD"


class ReferenceEntity(BaseModel):
    """One row of ERP reference data, keyed by its ERP primary key."""
    erp_id: int = Field(..., gt=0)
    name: str = ""

    class Config:
        from_attributes = True

    @field_validator('name', mode='before')
    @classmethod
    def normalize_name(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()


class CustomerSnapshot(BaseModel):
    """Local customer fields needed to place an ERP order"""
    id: int
    erp_customer_id: Optional[int] = None
    name: str = ""
    first_name: Optional[str] = None
    is_company: bool = False
    company_name: Optional[str] = None
    contact_person_name: Optional[str] = None
    salutation: Optional[str] = None
    street: Optional[str] = None
    zip_code: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    country_iso: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class OrderLineItem(BaseModel):
    """One requested order line.

    Unparseable ids and numbers are kept as None instead of failing the whole
    order; such lines are dropped during validation.
    """
    erp_article_id: Optional[int] = None
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    name: Optional[str] = None
    article_number: Optional[str] = None

    @field_validator('erp_article_id', mode='before')
    @classmethod
    def coerce_article_id(cls, v: Any) -> Optional[int]:
        number = _coerce_decimal(v)
        if number is None or number != number.to_integral_value():
            return None
        return int(number)

    @field_validator('quantity', 'unit_price', mode='before')
    @classmethod
    def coerce_number(cls, v: Any) -> Optional[Decimal]:
        return _coerce_decimal(v)

    @property
    def is_orderable(self) -> bool:
        """True if the line carries a positive ERP article id, a quantity and a unit price."""
        return (
            self.erp_article_id is not None
            and self.erp_article_id > 0
            and self.quantity is not None
            and self.unit_price is not None
        )


class OrderInput(BaseModel):
    """Order placement request built by the caller from a CRM deal."""
    local_customer_id: int
    legal_entity_id: Optional[int] = None
    warehouse_id: Optional[int] = None
    payment_method_id: Optional[int] = None
    shipping_method_id: Optional[int] = None
    line_items: List[OrderLineItem] = Field(default_factory=list)


class OrderResult(BaseModel):
    """Outcome of one order placement.

    Either both ERP identifiers are present (success) or neither is.
    """
    success: bool
    erp_order_id: Optional[int] = None
    erp_order_number: Optional[str] = None
    error: Optional[str] = None

    @model_validator(mode='after')
    def check_identifiers(self) -> "OrderResult":
        has_id = self.erp_order_id is not None
        has_number = self.erp_order_number is not None
        if self.success:
            if not (has_id and has_number):
                raise ValueError("successful order results carry both erp_order_id and erp_order_number")
        elif has_id or has_number:
            raise ValueError("failed order results carry no ERP identifiers")
        return self

    @classmethod
    def committed(cls, erp_order_id: int, erp_order_number: str) -> "OrderResult":
        return cls(success=True, erp_order_id=erp_order_id, erp_order_number=erp_order_number)

    @classmethod
    def failed(cls, error: str) -> "OrderResult":
        return cls(success=False, error=error)


class OperationResult(BaseModel):
    """Generic success/error result returned to the caller"""
    success: bool
    error: Optional[str] = None


class ClearPasswordResult(BaseModel):
    """Result of clearing the stored ERP password"""
    success: bool
    message: str


class SyncKindResult(BaseModel):
    """Synchronization outcome for one reference kind"""
    kind: ReferenceKind
    success: bool
    count: int = 0
    error: Optional[str] = None


class SyncSummary(BaseModel):
    """Outcome of a full reference data synchronization run"""
    success: bool
    message: str
    skipped: bool = False
    results: List[SyncKindResult] = Field(default_factory=list)


class SyncStatus(BaseModel):
    """Last persisted synchronization status"""
    status: str = "Never"
    message: str = "Sync has not been run yet."
    timestamp: Optional[datetime] = None
