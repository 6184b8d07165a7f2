"""In-memory storage for user records."""

from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List

from .models import DEFAULT_ROLE, User, UserPayload


class UserNotFoundError(LookupError):
    """Raised when an operation references a user that does not exist."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class EmailConflictError(ValueError):
    """Raised when another live record already owns the email address."""

    def __init__(self, email: str) -> None:
        super().__init__(f"Email {email} already exists")
        self.email = email


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserStore:
    """Keyed table of users with email uniqueness and timestamping.

    A single lock covers both the record table and the email index, so a
    uniqueness check and the write that follows it happen as one step.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._clock = clock
        self._id_factory = id_factory
        self._users: Dict[str, User] = {}
        self._ids_by_email: Dict[str, str] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

    def list(self) -> List[User]:
        with self._lock:
            return list(self._users.values())

    def get(self, user_id: str) -> User:
        with self._lock:
            user = self._users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def create(self, payload: UserPayload) -> User:
        with self._lock:
            if payload.email in self._ids_by_email:
                raise EmailConflictError(payload.email)

            user_id = self._mint_id()
            now = self._clock()
            user = User(
                id=user_id,
                email=payload.email,
                name=payload.name,
                role=payload.role or DEFAULT_ROLE,
                created_at=now,
                updated_at=now,
            )
            self._users[user_id] = user
            self._ids_by_email[user.email] = user_id
            return user

    def update(self, user_id: str, payload: UserPayload) -> User:
        with self._lock:
            existing = self._users.get(user_id)
            if existing is None:
                raise UserNotFoundError(user_id)

            owner = self._ids_by_email.get(payload.email)
            if owner is not None and owner != user_id:
                raise EmailConflictError(payload.email)

            updated = replace(
                existing,
                email=payload.email,
                name=payload.name,
                role=payload.role or existing.role,
                updated_at=max(self._clock(), existing.updated_at),
            )
            if existing.email != updated.email:
                del self._ids_by_email[existing.email]
            self._ids_by_email[updated.email] = user_id
            self._users[user_id] = updated
            return updated

    def delete(self, user_id: str) -> None:
        with self._lock:
            user = self._users.pop(user_id, None)
            if user is None:
                raise UserNotFoundError(user_id)
            self._ids_by_email.pop(user.email, None)

    def clear(self) -> None:
        with self._lock:
            self._users.clear()
            self._ids_by_email.clear()

    def _mint_id(self) -> str:
        # Caller holds the lock.
        while True:
            candidate = self._id_factory()
            if candidate and candidate not in self._users:
                return candidate


__all__ = ["EmailConflictError", "UserNotFoundError", "UserStore"]
