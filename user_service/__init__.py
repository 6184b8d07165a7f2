"""In-memory user management service with health reporting."""

from __future__ import annotations

from typing import Any

from .store import EmailConflictError, UserNotFoundError, UserStore

__version__ = "1.0.0"


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "EmailConflictError",
    "UserNotFoundError",
    "UserStore",
    "create_app",
    "__version__",
]
