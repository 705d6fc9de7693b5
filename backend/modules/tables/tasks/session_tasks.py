"""
Background sweep that closes table sessions left open after guests leave.
"""

import asyncio
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from core.config import settings
from core.database_utils import get_db_context
from core.exceptions import APIError
from ..services.table_session_service import table_session_service

logger = logging.getLogger(__name__)


class SessionSweeper:
    """Periodically close idle sessions whose tables owe nothing"""

    def __init__(self, interval_seconds: int, idle_minutes: Optional[int] = None):
        self.interval_seconds = interval_seconds
        self.idle_minutes = idle_minutes
        self.running = False
        self.task: Optional[asyncio.Task] = None

    async def start(self):
        if self.interval_seconds <= 0:
            logger.info("Session sweeper disabled")
            return
        self.running = True
        self.task = asyncio.create_task(self._run())
        logger.info(f"Session sweeper started (every {self.interval_seconds}s)")

    async def stop(self):
        self.running = False
        if self.task:
            self.task.cancel()
            await asyncio.gather(self.task, return_exceptions=True)
            self.task = None
        logger.info("Session sweeper stopped")

    async def sweep_once(self):
        async with get_db_context() as db:
            return await table_session_service.close_inactive_sessions(db, self.idle_minutes)

    async def _run(self):
        while self.running:
            try:
                await self.sweep_once()
            except (APIError, SQLAlchemyError) as e:
                logger.error(f"Inactive session sweep failed: {e}")
            await asyncio.sleep(self.interval_seconds)


session_sweeper = SessionSweeper(settings.session_sweep_interval_seconds)
