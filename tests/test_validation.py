import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from user_service.models import UserPayload
from user_service.validation import (
    ValidationFailed,
    Violation,
    normalize_email,
    validate_user_id,
    validate_user_payload,
)


def _fields(violations):
    return [violation.field for violation in violations]


def test_valid_payload_is_normalized() -> None:
    result = validate_user_payload({"email": "Ann.Smith@Example.COM", "name": "  Ann  "})

    assert result.valid
    assert result.value == UserPayload(email="ann.smith@example.com", name="Ann", role=None)


def test_role_is_kept_when_allowed() -> None:
    result = validate_user_payload({"email": "mod@example.com", "name": "Moderator", "role": "moderator"})

    assert result.valid
    assert result.value is not None
    assert result.value.role == "moderator"


@pytest.mark.parametrize("email", ["invalid-email", "missing@", "@example.com", "", 42, None])
def test_malformed_email_is_rejected(email) -> None:
    result = validate_user_payload({"email": email, "name": "Valid Name"})

    assert not result.valid
    assert _fields(result.violations) == ["email"]
    assert result.violations[0].message == "Valid email is required"


@pytest.mark.parametrize("name", ["A", " B ", "x" * 101, "", None, 12])
def test_name_outside_bounds_is_rejected(name) -> None:
    result = validate_user_payload({"email": "valid@example.com", "name": name})

    assert _fields(result.violations) == ["name"]
    assert result.violations[0].message == "Name must be between 2 and 100 characters"


def test_name_length_bounds_are_inclusive() -> None:
    assert validate_user_payload({"email": "a@example.com", "name": "Al"}).valid
    assert validate_user_payload({"email": "a@example.com", "name": "x" * 100}).valid


def test_unknown_role_is_rejected() -> None:
    result = validate_user_payload({"email": "a@example.com", "name": "Ann", "role": "superuser"})

    assert _fields(result.violations) == ["role"]
    assert result.violations[0].value == "superuser"


def test_explicit_null_role_is_rejected() -> None:
    result = validate_user_payload({"email": "a@example.com", "name": "Ann", "role": None})

    assert _fields(result.violations) == ["role"]
    assert result.violations[0].value is None


def test_every_violation_is_reported_in_field_order() -> None:
    result = validate_user_payload({"email": "nope", "name": "A", "role": "root"})

    assert _fields(result.violations) == ["email", "name", "role"]
    assert all(violation.location == "body" for violation in result.violations)


@pytest.mark.parametrize("body", [None, [], "text", 3])
def test_non_object_body_is_rejected(body) -> None:
    result = validate_user_payload(body)

    assert _fields(result.violations) == ["body"]


@pytest.mark.parametrize(
    "value",
    [
        "3f2b8c4e-1d2a-4b6c-9e8f-0a1b2c3d4e5f",
        "00000000-0000-0000-0000-000000000000",
        "3F2B8C4E-1D2A-4B6C-9E8F-0A1B2C3D4E5F",
    ],
)
def test_uuid_identifiers_are_accepted(value) -> None:
    result = validate_user_id(value)

    assert result.valid
    assert result.value == value.lower()


@pytest.mark.parametrize(
    "value",
    [
        "nope",
        "invalid-id",
        "3f2b8c4e1d2a4b6c9e8f0a1b2c3d4e5f",
        "{3f2b8c4e-1d2a-4b6c-9e8f-0a1b2c3d4e5f}",
        "3f2b8c4e-1d2a-4b6c-9e8f-0a1b2c3d4e5f\n",
        " 3f2b8c4e-1d2a-4b6c-9e8f-0a1b2c3d4e5f",
        None,
    ],
)
def test_malformed_identifiers_are_rejected(value) -> None:
    result = validate_user_id(value)

    assert not result.valid
    assert result.violations == [Violation("id", "Invalid user ID", location="params", value=value)]


def test_normalize_email_lowercases_address() -> None:
    assert normalize_email("USER@Example.Org") == "user@example.org"


def test_validation_failed_serializes_violations() -> None:
    error = ValidationFailed([Violation("email", "Valid email is required", value="bad")])

    assert error.to_dict() == {
        "errors": [
            {"field": "email", "location": "body", "value": "bad", "message": "Valid email is required"}
        ]
    }


def test_validation_failed_requires_violations() -> None:
    with pytest.raises(ValueError):
        ValidationFailed([])
