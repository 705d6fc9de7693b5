# backend/modules/core/models/core_models.py
"""
Restaurant is the root entity that every order, table and payment is
scoped to.
"""

from enum import Enum

from sqlalchemy import Boolean, Column, Integer, Numeric, String

from core.database import Base
from core.mixins import TimestampMixin


class RestaurantStatus(str, Enum):
    """Restaurant operational status"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class Restaurant(Base, TimestampMixin):
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    slug = Column(String(100), unique=True, index=True)
    status = Column(String(20), nullable=False, default=RestaurantStatus.ACTIVE.value)

    currency = Column(String(3), nullable=False, default="INR")  # ISO currency code
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)  # percent of subtotal

    # Online payments; the provider is chosen here, never by the paying client
    payment_gateway_enabled = Column(Boolean, nullable=False, default=False)
    payment_provider = Column(String(20), nullable=True)

    def __repr__(self):
        return f"<Restaurant(id={self.id}, name='{self.name}')>"
