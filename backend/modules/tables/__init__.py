# backend/modules/tables/__init__.py

"""
Tables and table sessions: a session groups a seated party's orders from
the first order until the table is released.
"""

from .models.table_models import Table, TableSession, TableSessionStatus, TableStatus

__all__ = ["Table", "TableSession", "TableSessionStatus", "TableStatus"]
