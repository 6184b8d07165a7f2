"""Pure validation helpers for user payloads and path identifiers.

Validators never touch the store. Each returns a :class:`ValidationResult`
carrying either the normalized value or the ordered list of violations.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Mapping, Optional, TypeVar

from email_validator import EmailNotValidError, validate_email

from .models import ROLES, UserPayload

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100

_UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)

T = TypeVar("T")


@dataclass(frozen=True)
class Violation:
    """A single field-level validation failure."""

    field: str
    message: str
    location: str = "body"
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "location": self.location,
            "value": self.value,
            "message": self.message,
        }


@dataclass(frozen=True)
class ValidationResult(Generic[T]):
    value: Optional[T] = None
    violations: List[Violation] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.violations


class ValidationFailed(ValueError):
    """Raised by the handler layer when a request fails validation."""

    def __init__(self, violations: List[Violation]) -> None:
        if not violations:
            raise ValueError("ValidationFailed requires at least one violation")
        self.violations = list(violations)
        super().__init__("; ".join(f"{v.field}: {v.message}" for v in self.violations))

    def to_dict(self) -> Dict[str, object]:
        return {"errors": [violation.to_dict() for violation in self.violations]}


def validate_user_id(value: object, *, field_name: str = "id") -> ValidationResult[str]:
    """Check that ``value`` is a textual UUID and return it lower-cased."""

    if isinstance(value, str) and _UUID_PATTERN.fullmatch(value):
        return ValidationResult(value=value.lower())
    return ValidationResult(
        violations=[Violation(field_name, "Invalid user ID", location="params", value=value)]
    )


def normalize_email(value: str) -> str:
    """Return the canonical comparable form of a syntactically valid address."""

    validated = validate_email(value, check_deliverability=False)
    return validated.normalized.lower()


def _check_email(value: object) -> tuple[Optional[str], Optional[Violation]]:
    if isinstance(value, str):
        try:
            return normalize_email(value.strip()), None
        except EmailNotValidError:
            pass
    return None, Violation("email", "Valid email is required", value=value)


def _check_name(value: object) -> tuple[Optional[str], Optional[Violation]]:
    if isinstance(value, str):
        trimmed = value.strip()
        if NAME_MIN_LENGTH <= len(trimmed) <= NAME_MAX_LENGTH:
            return trimmed, None
    return None, Violation(
        "name",
        f"Name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters",
        value=value,
    )


def _check_role(value: object) -> tuple[Optional[str], Optional[Violation]]:
    if isinstance(value, str) and value in ROLES:
        return value, None
    return None, Violation("role", "Role must be user, admin, or moderator", value=value)


def validate_user_payload(data: object) -> ValidationResult[UserPayload]:
    """Validate and normalize a create/update body.

    Every rule is evaluated so the caller sees all violations at once, in the
    order ``email``, ``name``, ``role``.
    """

    if not isinstance(data, Mapping):
        return ValidationResult(
            violations=[Violation("body", "Request body must be a JSON object", value=None)]
        )

    email, email_error = _check_email(data.get("email"))
    name, name_error = _check_name(data.get("name"))
    # An explicit null is a value, not an omission.
    role, role_error = _check_role(data["role"]) if "role" in data else (None, None)

    violations = [error for error in (email_error, name_error, role_error) if error is not None]
    if violations:
        return ValidationResult(violations=violations)

    assert email is not None and name is not None
    return ValidationResult(value=UserPayload(email=email, name=name, role=role))


__all__ = [
    "NAME_MAX_LENGTH",
    "NAME_MIN_LENGTH",
    "ValidationFailed",
    "ValidationResult",
    "Violation",
    "normalize_email",
    "validate_user_id",
    "validate_user_payload",
]
