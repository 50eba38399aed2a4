"""
API route modules for the forecast curve dashboard.

This package organizes FastAPI route handlers by business domain:
- curves: Curve catalog browsing, CSV download/upload and default curves
- curve_upload: Definition/instance creation and JSON price-data upload
- curve_schedule: Schedule preview, creation, listing and updates
- delivery_requests: Delivery request list, preview, creation and status
- system: Health check and shared header proxy

All routers carry their own /api prefix.
"""

from __future__ import annotations

from .curve_schedule import router as curve_schedule_router
from .curve_upload import router as curve_upload_router
from .curves import router as curves_router
from .delivery_requests import router as delivery_requests_router
from .system import router as system_router

__all__ = [
    "curves_router",
    "curve_upload_router",
    "curve_schedule_router",
    "delivery_requests_router",
    "system_router",
]
