# backend/modules/tables/services/table_service.py

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import ConflictError, InvalidTransitionError, NotFoundError
from modules.core.models import Restaurant
from modules.realtime.events import ChangeAction, ChangeEntity
from modules.realtime.websocket.realtime_manager import realtime_manager
from ..models.table_models import Table, TableStatus
from ..schemas.table_schemas import TableCreate

logger = logging.getLogger(__name__)


class TableService:
    """Table records; occupancy is owned by the session service"""

    def get_table(self, db: Session, table_id: int) -> Table:
        table = db.query(Table).filter(Table.id == table_id).first()
        if not table:
            raise NotFoundError(f"Table {table_id} not found")
        return table

    def list_tables(
        self, db: Session, restaurant_id: int, status: Optional[TableStatus] = None
    ) -> List[Table]:
        query = db.query(Table).filter(Table.restaurant_id == restaurant_id)
        if status:
            query = query.filter(Table.status == status.value)
        return query.order_by(Table.table_number).all()

    async def create_table(self, db: Session, table_data: TableCreate) -> Table:
        if not db.query(Restaurant).filter(Restaurant.id == table_data.restaurant_id).first():
            raise NotFoundError(f"Restaurant {table_data.restaurant_id} not found")

        table = Table(
            restaurant_id=table_data.restaurant_id,
            table_number=table_data.table_number,
            table_name=table_data.table_name,
            capacity=table_data.capacity,
            status=TableStatus.AVAILABLE.value,
        )
        db.add(table)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ConflictError(
                f"Table {table_data.table_number} already exists in this restaurant"
            ) from e
        db.refresh(table)

        await realtime_manager.publish_change(
            table.restaurant_id, ChangeEntity.TABLE, table.id, ChangeAction.INSERT,
            {"status": table.status},
        )
        return table

    async def set_status(self, db: Session, table_id: int, status: TableStatus) -> Table:
        table = self.get_table(db, table_id)
        if table.active_session_id:
            raise InvalidTransitionError(
                f"Table {table.table_number} has an active session; release it first"
            )

        table.status = status.value
        db.commit()
        logger.info(f"Table {table.table_number} marked {status.value}")

        await realtime_manager.publish_change(
            table.restaurant_id, ChangeEntity.TABLE, table.id, ChangeAction.UPDATE,
            {"status": table.status},
        )
        return table


table_service = TableService()
