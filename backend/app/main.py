from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError

from core.config import settings
from core.exceptions import register_exception_handlers
from app.startup import configure_startup_logging, run_startup_checks

# ========== Orders ==========
from modules.orders.routes.order_routes import router as order_router

# ========== Payments ==========
from modules.payments.api import payment_router
from modules.payments.services.gateway_registry import gateway_registry

# ========== Table Management ==========
from modules.tables.routes.table_routes import router as table_router
from modules.tables.tasks.session_tasks import session_sweeper

# ========== Complaints ==========
from modules.complaints.routers import complaint_router

# ========== Realtime ==========
from modules.realtime.routes.websocket_routes import router as websocket_router
from modules.realtime.services.redis_backplane import RedisBackplane
from modules.realtime.websocket.realtime_manager import realtime_manager

configure_startup_logging()
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


async def start_realtime_backplane():
    if not settings.redis_enabled:
        return
    backplane = RedisBackplane(settings.redis_url, server_id=realtime_manager.server_id)
    try:
        await realtime_manager.attach_backplane(backplane)
    except RedisError as e:
        if settings.is_production:
            raise
        logger.warning(f"Realtime backplane unavailable, continuing single-process: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize services on startup and release them on shutdown"""
    run_startup_checks()
    await start_realtime_backplane()
    await session_sweeper.start()

    yield

    await session_sweeper.stop()
    await realtime_manager.detach_backplane()
    await gateway_registry.close()


app = FastAPI(
    title="Restaurant Ordering API",
    description="""
    Dine-in and takeaway ordering with online and cash payments.

    ## Features

    * **Orders** - Checkout, item-level kitchen progress and cancellation
    * **Payments** - Razorpay, PhonePe and Paytm checkout, cash, split payments and refunds
    * **Tables** - Table sessions that group a party's orders until release
    * **Complaints** - Issues reported against orders
    * **Realtime** - WebSocket change notifications for kitchen, waiter and customer screens
    """,
    version="1.0.0",
    lifespan=lifespan,
)

# Register exception handlers for consistent error responses
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(order_router, prefix=API_PREFIX)
app.include_router(payment_router, prefix=API_PREFIX)
app.include_router(table_router, prefix=API_PREFIX)
app.include_router(complaint_router, prefix=API_PREFIX)
app.include_router(websocket_router)


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "environment": settings.environment,
        "realtime_backplane": (
            realtime_manager.backplane is not None and realtime_manager.backplane.listening
        ),
    }
