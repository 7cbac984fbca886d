from .client import SdsApiError, SdsClient
from .guards import NAV_ITEMS, RouteGuard, can_access, visible_nav_items
from .labels import render_label

__all__ = [
    "NAV_ITEMS",
    "RouteGuard",
    "SdsApiError",
    "SdsClient",
    "can_access",
    "render_label",
    "visible_nav_items",
]
