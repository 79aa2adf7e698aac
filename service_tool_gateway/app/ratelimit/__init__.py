"""
Rate limiting package for the Gateway.

Holds the fixed-window limiter that enforces per-subject, per-tool and
per-IP request budgets against the shared store.
"""

from .fixed_window import FixedWindowRateLimiter, RateLimitPolicy

__all__ = ["FixedWindowRateLimiter", "RateLimitPolicy"]
