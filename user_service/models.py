"""Domain models for the user service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

ROLES: Tuple[str, ...] = ("user", "admin", "moderator")
DEFAULT_ROLE = "user"


@dataclass(frozen=True)
class User:
    """Represents a user record held by the store."""

    id: str
    email: str
    name: str
    role: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class UserPayload:
    """Normalized create/update input that has already passed validation."""

    email: str
    name: str
    role: Optional[str] = None


__all__ = ["DEFAULT_ROLE", "ROLES", "User", "UserPayload"]
