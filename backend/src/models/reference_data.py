"""Local cache tables for ERP reference data.

Each table mirrors one small ERP lookup table. Rows are keyed by the ERP
primary key and only ever inserted or renamed by the reference data
synchronizer; the ERP stays authoritative.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, Text, DateTime, Index

from .base import Base


def _utcnow():
    return datetime.now(timezone.utc)


class ErpLegalEntity(Base):
    """ERP company / billing entity (tFirma)."""

    __tablename__ = "erp_legal_entity"
    __table_args__ = (Index("ix_erp_legal_entity_name", "name"),)

    erp_id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(Text, nullable=False)
    synced_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class ErpWarehouse(Base):
    """ERP warehouse (tWarenlager)."""

    __tablename__ = "erp_warehouse"
    __table_args__ = (Index("ix_erp_warehouse_name", "name"),)

    erp_id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(Text, nullable=False)
    synced_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class ErpPaymentMethod(Base):
    """ERP payment method (tZahlungsart)."""

    __tablename__ = "erp_payment_method"
    __table_args__ = (Index("ix_erp_payment_method_name", "name"),)

    erp_id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(Text, nullable=False)
    synced_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class ErpShippingMethod(Base):
    """ERP shipping method (tversandart)."""

    __tablename__ = "erp_shipping_method"
    __table_args__ = (Index("ix_erp_shipping_method_name", "name"),)

    erp_id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(Text, nullable=False)
    synced_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
