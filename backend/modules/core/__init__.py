# backend/modules/core/__init__.py
"""Restaurant records shared by every other module."""
