"""Request orchestration for the user resource."""

from __future__ import annotations

import logging
from typing import List

from .models import User
from .store import EmailConflictError, UserStore
from .validation import ValidationFailed, validate_user_id, validate_user_payload

logger = logging.getLogger("userservice.users")


class UserService:
    """Validate inbound requests and apply them to a :class:`UserStore`.

    Validation failures raise :class:`ValidationFailed` before the store is
    consulted. Store errors propagate unchanged for the transport to map.
    """

    def __init__(self, store: UserStore) -> None:
        self._store = store

    @property
    def store(self) -> UserStore:
        return self._store

    def list_users(self) -> List[User]:
        return self._store.list()

    def get_user(self, raw_id: object) -> User:
        return self._store.get(self._require_id(raw_id))

    def create_user(self, data: object) -> User:
        result = validate_user_payload(data)
        if not result.valid:
            raise ValidationFailed(result.violations)
        assert result.value is not None

        try:
            user = self._store.create(result.value)
        except EmailConflictError:
            logger.warning("Rejected user creation for duplicate email %s", result.value.email)
            raise
        logger.info("Created user %s", user.id)
        return user

    def update_user(self, raw_id: object, data: object) -> User:
        id_result = validate_user_id(raw_id)
        payload_result = validate_user_payload(data)
        violations = id_result.violations + payload_result.violations
        if violations:
            raise ValidationFailed(violations)
        assert id_result.value is not None and payload_result.value is not None

        try:
            user = self._store.update(id_result.value, payload_result.value)
        except EmailConflictError:
            logger.warning(
                "Rejected update of user %s for duplicate email %s",
                id_result.value,
                payload_result.value.email,
            )
            raise
        logger.info("Updated user %s", user.id)
        return user

    def delete_user(self, raw_id: object) -> None:
        user_id = self._require_id(raw_id)
        self._store.delete(user_id)
        logger.info("Deleted user %s", user_id)

    @staticmethod
    def _require_id(raw_id: object) -> str:
        result = validate_user_id(raw_id)
        if not result.valid:
            raise ValidationFailed(result.violations)
        assert result.value is not None
        return result.value


__all__ = ["UserService"]
