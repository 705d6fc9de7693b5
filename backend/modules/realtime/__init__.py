# backend/modules/realtime/__init__.py
"""
Realtime fan-out: durable change notifications and ephemeral broadcasts
pushed to restaurant dashboards over WebSocket.
"""
