"""Typed outcomes returned (not raised) by repository operations.

Always check ``.ok`` (or truthiness) before using a return value:

    result = await repo.update_test_case_with_steps(tc_id, {"title": "x"}, actor_id=1)
    if not result:
        ...  # NotFound or ValidationFailed
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class NotFound:
    """The referenced entity does not exist."""

    resource: str
    resource_id: int | str | None = None

    ok = False

    def __bool__(self) -> bool:
        return False

    @property
    def message(self) -> str:
        msg = self.resource
        if self.resource_id is not None:
            msg += f" id={self.resource_id}"
        return msg + " not found"


@dataclass(frozen=True)
class ValidationFailed:
    """Caller-supplied data violates a structural rule.

    ``details`` maps field names (``steps[1].description``) to reasons.
    """

    message: str
    details: dict = field(default_factory=dict)

    ok = False

    def __bool__(self) -> bool:
        return False
