"""
Rate limiting package for the Sentinel gateway.

Holds the in-process fixed-window counter that enforces per-service and
per-agent request budgets.
"""

from .fixed_window import RateBucket, RateWindow, WINDOW_MS

__all__ = ["RateBucket", "RateWindow", "WINDOW_MS"]
