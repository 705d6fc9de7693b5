# backend/modules/core/models/__init__.py
"""Core models module"""

from .core_models import Restaurant, RestaurantStatus

__all__ = [
    "Restaurant",
    "RestaurantStatus",
]
