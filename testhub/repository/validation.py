"""
Structural validation for repository writes.

Every ``clean_*`` function returns either a normalized ``dict`` (or list)
ready for an adapter primitive, or a ``ValidationFailed`` result. Nothing
here raises for bad input.
"""

from __future__ import annotations

from testhub import domain
from testhub.core.results import ValidationFailed


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# Column types of caller-settable fields. JSON payloads (content, details) are opaque.
FIELD_TYPES = {
    **dict.fromkeys(
        (
            "title", "description", "expected_result", "name", "notes",
            "username", "email", "full_name", "avatar", "action", "entity_type",
            "status", "priority", "type", "role", "severity",
        ),
        str,
    ),
    **dict.fromkeys(
        (
            "created_by", "assigned_to", "executed_by", "reported_by",
            "test_case_id", "test_run_result_id", "duration", "user_id", "entity_id",
        ),
        int,
    ),
    "is_active": bool,
}

_TYPE_NAMES = {str: "a string", int: "an integer", bool: "a boolean"}


def _type_error(value, expected: type) -> str | None:
    """Reason ``value`` does not fit ``expected``; None (unset) always fits."""
    if value is None:
        return None
    if expected is int and isinstance(value, bool):
        return f"must be {_TYPE_NAMES[int]}"
    if not isinstance(value, expected):
        return f"must be {_TYPE_NAMES[expected]}"
    return None


def clean(
    resource: str,
    data,
    *,
    allowed: tuple[str, ...],
    required: tuple[str, ...] = (),
    choices: dict[str, set] | None = None,
    defaults: dict | None = None,
    partial: bool = False,
    types: dict[str, type] | None = None,
) -> dict | ValidationFailed:
    """Check ``data`` against the field rules of one entity.

    ``partial`` is for patches: missing fields are fine, but a present
    required field must not be blank and no defaults are applied.
    ``types`` defaults to ``FIELD_TYPES``.
    """
    if not isinstance(data, dict):
        return ValidationFailed(f"{resource} data must be a mapping")

    errors: dict[str, str] = {}
    for key in sorted(set(data) - set(allowed)):
        errors[key] = "unknown or read-only field"

    values = {} if partial else dict(defaults or {})
    values.update({k: v for k, v in data.items() if k in allowed})

    types = FIELD_TYPES if types is None else types
    for key, value in values.items():
        if key in types:
            reason = _type_error(value, types[key])
            if reason:
                errors[key] = reason

    for key in required:
        if key in errors or (partial and key not in values):
            continue
        if _blank(values.get(key)):
            errors[key] = "required"

    for key, options in (choices or {}).items():
        if key in values and key not in errors and values[key] not in options:
            errors[key] = f"must be one of: {', '.join(sorted(options))}"

    if errors:
        return ValidationFailed(f"Invalid {resource}", details=errors)
    return values


def clean_steps(steps) -> list[dict] | ValidationFailed:
    """Normalize a step list; numbering follows list order, starting at 1."""
    if not isinstance(steps, (list, tuple)):
        return ValidationFailed("steps must be a list")

    cleaned: list[dict] = []
    errors: dict[str, str] = {}
    for position, step in enumerate(steps, start=1):
        if not isinstance(step, dict):
            errors[f"steps[{position}]"] = "must be a mapping"
            continue
        description = step.get("description")
        if not isinstance(description, str) or not description.strip():
            errors[f"steps[{position}].description"] = "required"
            continue
        expected_result = step.get("expected_result")
        reason = _type_error(expected_result, str)
        if reason:
            errors[f"steps[{position}].expected_result"] = reason
            continue
        cleaned.append({
            "step_number": position,
            "description": description,
            "expected_result": expected_result,
        })

    if errors:
        return ValidationFailed("Invalid test steps", details=errors)
    return cleaned


# ── Per-entity rules ─────────────────────────────────────────────────────

_TEST_CASE_CHOICES = {
    "status": domain.TEST_CASE_STATUSES,
    "priority": domain.TEST_CASE_PRIORITIES,
    "type": domain.TEST_CASE_TYPES,
}


def clean_test_case(data) -> dict | ValidationFailed:
    return clean(
        "test case", data,
        allowed=domain.TEST_CASE_CREATE_FIELDS,
        required=("title", "created_by"),
        choices=_TEST_CASE_CHOICES,
        defaults={
            "description": None,
            "status": "pending",
            "priority": "medium",
            "type": "functional",
            "assigned_to": None,
            "expected_result": None,
        },
    )


def clean_test_case_patch(patch) -> dict | ValidationFailed:
    return clean(
        "test case", patch,
        allowed=domain.TEST_CASE_PATCH_FIELDS,
        required=("title",),
        choices=_TEST_CASE_CHOICES,
        partial=True,
    )


_USER_FIELDS = ("username", "email", "full_name", "avatar", "role", "is_active")


def clean_user(data, *, partial: bool = False) -> dict | ValidationFailed:
    return clean(
        "user", data,
        allowed=_USER_FIELDS,
        required=("username", "email", "full_name"),
        choices={"role": domain.USER_ROLES},
        defaults={"avatar": None, "role": "tester", "is_active": True},
        partial=partial,
    )


def clean_folder(data, *, partial: bool = False) -> dict | ValidationFailed:
    return clean(
        "folder", data,
        allowed=("name", "description", "created_by"),
        required=("name",),
        defaults={"description": None, "created_by": None},
        partial=partial,
    )


def clean_test_run(data) -> dict | ValidationFailed:
    return clean(
        "test run", data,
        allowed=("name", "description", "status", "executed_by"),
        required=("name", "executed_by"),
        choices={"status": domain.RUN_STATUSES},
        defaults={"description": None, "status": "pending"},
    )


def clean_test_run_patch(patch) -> dict | ValidationFailed:
    # duration and completion time are computed by complete_test_run only
    return clean(
        "test run", patch,
        allowed=("name", "description", "status"),
        required=("name",),
        choices={"status": domain.RUN_STATUSES},
        partial=True,
    )


def clean_run_result(data) -> dict | ValidationFailed:
    return clean(
        "test run result", data,
        allowed=("status", "notes", "executed_by", "duration"),
        required=("status", "executed_by"),
        choices={"status": domain.RESULT_STATUSES},
        defaults={"notes": None, "duration": None},
    )


_BUG_FIELDS = (
    "title", "description", "status", "severity", "test_case_id",
    "test_run_result_id", "reported_by", "assigned_to",
)
_BUG_CHOICES = {"status": domain.BUG_STATUSES, "severity": domain.BUG_SEVERITIES}


def clean_bug(data) -> dict | ValidationFailed:
    return clean(
        "bug", data,
        allowed=_BUG_FIELDS,
        required=("title", "description", "reported_by"),
        choices=_BUG_CHOICES,
        defaults={
            "status": "open",
            "severity": "medium",
            "test_case_id": None,
            "test_run_result_id": None,
            "assigned_to": None,
        },
    )


def clean_bug_patch(patch) -> dict | ValidationFailed:
    return clean(
        "bug", patch,
        allowed=tuple(f for f in _BUG_FIELDS if f != "reported_by"),
        required=("title", "description"),
        choices=_BUG_CHOICES,
        partial=True,
    )


def clean_whiteboard(data, *, partial: bool = False) -> dict | ValidationFailed:
    return clean(
        "whiteboard", data,
        allowed=("name", "content") if partial else ("name", "content", "created_by"),
        required=("name", "created_by"),
        defaults={"content": []},
        partial=partial,
    )


def clean_activity(data) -> dict | ValidationFailed:
    return clean(
        "activity", data,
        allowed=("user_id", "action", "entity_type", "entity_id", "details"),
        required=("user_id", "action", "entity_type", "entity_id"),
        defaults={"details": None},
    )
