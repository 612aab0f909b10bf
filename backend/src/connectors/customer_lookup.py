"""Customer lookup against the local CRM store"""

from typing import Optional

from sqlalchemy.orm import sessionmaker

from database import get_db_session
from models import Customer
from .ports import CustomerLookupPort
from .schemas import CustomerSnapshot


class SqlAlchemyCustomerLookup(CustomerLookupPort):
    """CustomerLookupPort backed by the local customer table."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    def get_customer_by_id(self, customer_id: int) -> Optional[CustomerSnapshot]:
        with get_db_session(self._session_factory) as session:
            customer = session.get(Customer, customer_id)
            if customer is None:
                return None
            return CustomerSnapshot.model_validate(customer)
