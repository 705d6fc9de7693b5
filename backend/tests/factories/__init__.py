from .base import use_session
from .order import OrderFactory, OrderPaymentFactory, default_items, make_item
from .restaurant import RestaurantFactory, TableFactory

__all__ = [
    "use_session",
    "OrderFactory",
    "OrderPaymentFactory",
    "default_items",
    "make_item",
    "RestaurantFactory",
    "TableFactory",
]
