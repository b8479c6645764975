"""Rate limiting algorithms."""

from gatekeeper.algorithms.fixed_window import FixedWindowRateLimiter

__all__ = ["FixedWindowRateLimiter"]
