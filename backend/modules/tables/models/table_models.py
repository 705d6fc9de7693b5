# backend/modules/tables/models/table_models.py

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from core.database import Base
from core.mixins import TimestampMixin


class TableStatus(str, Enum):
    """Table availability status"""

    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    CLEANING = "cleaning"  # Being cleaned


class TableSessionStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


def generate_session_id() -> str:
    return str(uuid.uuid4())


class Table(Base, TimestampMixin):
    """Physical table that customers order from"""

    __tablename__ = "tables"

    id = Column(Integer, primary_key=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    table_number = Column(String(20), nullable=False)
    table_name = Column(String(100))
    capacity = Column(Integer, nullable=False, default=4)

    status = Column(String(20), nullable=False, default=TableStatus.AVAILABLE.value)
    booked_at = Column(DateTime, nullable=True)
    # Denormalized pointer for dashboards; table_sessions is authoritative
    active_session_id = Column(String(36), nullable=True)

    sessions = relationship("TableSession", back_populates="table")

    __table_args__ = (
        UniqueConstraint("restaurant_id", "table_number", name="uq_restaurant_table_number"),
    )


class TableSession(Base, TimestampMixin):
    """Occupancy of one table; groups every order placed while seated"""

    __tablename__ = "table_sessions"

    id = Column(String(36), primary_key=True, default=generate_session_id)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=TableSessionStatus.ACTIVE.value)
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    ended_at = Column(DateTime)
    last_activity_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    closed_reason = Column(String(50))

    # Shared cart edited by everyone at the table before an order is placed
    cart_items = Column(JSON, nullable=False, default=list)

    table = relationship("Table", back_populates="sessions")

    __table_args__ = (
        # At most one active session per table; concurrent creators lose on insert
        Index(
            "uq_table_sessions_active_table",
            "table_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )
