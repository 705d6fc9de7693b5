# backend/modules/complaints/__init__.py

"""
Complaints module: customer and staff reported issues, one per order,
with their own open -> in_progress -> resolved lifecycle.
"""
