"""
Application startup validation and initialization.

This module performs critical startup checks and initialization
to ensure the application is properly configured before serving requests.
"""

import logging
import sys
from typing import List, Tuple

import redis
import sqlalchemy as sa
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from core.config import settings, validate_production_config
from core.database import engine

logger = logging.getLogger(__name__)

REQUIRED_TABLES = [
    "restaurants",
    "tables",
    "table_sessions",
    "orders",
    "order_payments",
    "payment_gateway_configs",
    "complaints",
]


class StartupValidator:
    """Validates application startup requirements"""

    def __init__(self):
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def check_database_connection(self) -> bool:
        """Check database connectivity"""
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
            logger.info("Database connection successful")
            return True
        except SQLAlchemyError as e:
            self.errors.append(f"Database connection failed: {str(e)}")
            return False

    def check_redis_connection(self) -> bool:
        """Check Redis connectivity (if configured)"""
        if not settings.redis_enabled:
            self.warnings.append(
                "Redis not configured - realtime messages stay within this process"
            )
            return True

        try:
            client = redis.from_url(settings.redis_url)
            client.ping()
            client.close()
            logger.info("Redis connection successful")
            return True
        except redis.RedisError as e:
            if settings.is_production:
                self.errors.append(f"Redis connection failed in production: {str(e)}")
                return False
            self.warnings.append(f"Redis connection failed: {str(e)} - backplane disabled")
            return True

    def check_environment_config(self) -> bool:
        """Validate environment configuration"""
        try:
            validate_production_config()
        except ValueError as e:
            self.errors.append(f"Configuration validation failed: {str(e)}")
            return False

        if not any(
            settings.fallback_gateway_credentials(provider)
            for provider in ("razorpay", "phonepe", "paytm")
        ):
            self.warnings.append(
                "No fallback gateway credentials - restaurants need stored gateway configs"
            )
        return True

    def check_required_tables(self) -> bool:
        """Check if required database tables exist"""
        try:
            existing_tables = sa.inspect(engine).get_table_names()
        except SQLAlchemyError as e:
            self.warnings.append(f"Could not check database tables: {str(e)}")
            return True

        missing_tables = [t for t in REQUIRED_TABLES if t not in existing_tables]
        if missing_tables:
            self.warnings.append(
                f"Missing database tables: {', '.join(missing_tables)}. "
                "Run migrations with: alembic upgrade head"
            )
        return True

    def validate_all(self) -> Tuple[bool, List[str], List[str]]:
        """Run all validation checks"""
        checks = [
            ("Environment Configuration", self.check_environment_config),
            ("Database Connection", self.check_database_connection),
            ("Redis Connection", self.check_redis_connection),
            ("Database Tables", self.check_required_tables),
        ]

        all_passed = True
        for check_name, check_func in checks:
            logger.info(f"Running check: {check_name}")
            if not check_func():
                all_passed = False

        return all_passed, self.errors, self.warnings


def run_startup_checks():
    """Run all startup validation checks"""
    logger.info("=" * 60)
    logger.info("Starting ordering backend")
    logger.info(f"Environment: {settings.environment}")
    logger.info("=" * 60)

    validator = StartupValidator()
    passed, errors, warnings = validator.validate_all()

    for warning in warnings:
        logger.warning(f"Startup warning: {warning}")
    for error in errors:
        logger.error(f"Startup error: {error}")

    if not passed and settings.is_production:
        logger.error("Cannot start in production with errors!")
        sys.exit(1)
    elif not passed:
        logger.warning("Starting in development mode despite errors")
    else:
        logger.info("All startup checks passed")

    return passed, warnings


def configure_startup_logging():
    """Configure logging for startup"""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
