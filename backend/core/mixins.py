from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.orm import declared_attr
from sqlalchemy.sql import func


class TimestampMixin:
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(),
                        onupdate=func.now(), nullable=False)


class VersionedMixin:
    """
    Optimistic concurrency for rows edited by several roles at once.

    SQLAlchemy adds ``version = :read_version`` to every UPDATE predicate
    and raises ``StaleDataError`` when no row matched.
    """

    version = Column(Integer, nullable=False, default=1)

    @declared_attr
    def __mapper_args__(cls):
        return {"version_id_col": cls.version}
