"""
HTTP adapter for the household inventory system.

This package provides a single FastAPI application that exposes:
- Inventory, shopping list and suggestion endpoints
- Notification preferences and unsubscribe links
- Admin triggers for digests, the immediate sweep and the queue preview
"""

from api.main import app

__all__ = ["app"]
