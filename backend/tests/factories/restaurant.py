# backend/tests/factories/restaurant.py

from decimal import Decimal

import factory

from modules.core.models import Restaurant, RestaurantStatus
from modules.tables.models.table_models import Table, TableStatus
from .base import BaseFactory


class RestaurantFactory(BaseFactory):
    class Meta:
        model = Restaurant

    name = factory.Sequence(lambda n: f"Restaurant {n}")
    slug = factory.Sequence(lambda n: f"restaurant-{n}")
    status = RestaurantStatus.ACTIVE.value
    currency = "INR"
    tax_rate = Decimal("0")
    payment_gateway_enabled = False
    payment_provider = None


class TableFactory(BaseFactory):
    class Meta:
        model = Table

    restaurant_id = factory.LazyFunction(lambda: RestaurantFactory().id)
    table_number = factory.Sequence(lambda n: f"T{n + 1}")
    capacity = 4
    status = TableStatus.AVAILABLE.value
