"""Host-side page monitors."""

from .navigation import (
    NAVIGATION_KIND,
    NAVIGATION_PREFIXES,
    SURFACE_SCHEMES,
    NavigationObserver,
    NavigationPolicy,
)

__all__ = [
    "NAVIGATION_KIND",
    "NAVIGATION_PREFIXES",
    "SURFACE_SCHEMES",
    "NavigationObserver",
    "NavigationPolicy",
]
