"""
Request context utilities for accessing correlation_id and other request-scoped data.
"""
from fastapi import Request


def get_correlation_id(request: Request) -> str:
    """
    Get the correlation ID from the current request.

    Returns "unknown" when the correlation middleware did not run
    (e.g. bare apps built in tests).
    """
    return getattr(request.state, "correlation_id", "unknown")
