"""Customer SQLAlchemy model"""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, Text, Boolean, DateTime, Index

from .base import Base


class Customer(Base):
    """Customer as held in the CRM's local store.

    Only the fields needed to place an ERP order are modelled. A customer can
    be ordered for once it is linked to the ERP, i.e. erp_customer_id is set
    (kKunde in the ERP).
    """
    __tablename__ = "customer"
    __table_args__ = (
        Index("ix_customer_erp_customer_id", "erp_customer_id", unique=True),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    erp_customer_id = Column(Integer, nullable=True)
    name = Column(Text, nullable=False, default="")
    first_name = Column(Text, nullable=True)
    is_company = Column(Boolean, nullable=False, default=False)
    company_name = Column(Text, nullable=True)
    contact_person_name = Column(Text, nullable=True)
    salutation = Column(Text, nullable=True)
    street = Column(Text, nullable=True)
    zip_code = Column(Text, nullable=True)
    city = Column(Text, nullable=True)
    country = Column(Text, nullable=True)
    country_iso = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<Customer(id={self.id}, erp_customer_id={self.erp_customer_id})>"
