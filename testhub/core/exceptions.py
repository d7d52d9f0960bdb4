"""
Engine-wide exception hierarchy.

Only failures a caller cannot branch on as a normal outcome are raised.
Missing rows and rejected input come back as result objects
(see ``testhub.core.results``).

Usage:
    from testhub.core.exceptions import BackendUnavailableError, ConflictError

    raise ConflictError(resource="User", field="username", value="admin")
    raise BackendUnavailableError("connection refused", operation="get_test_case")
"""


class ConflictError(Exception):
    """Raised when a write would violate a unique constraint.

    Args:
        resource: Entity name (e.g. "User").
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class BackendUnavailableError(Exception):
    """Raised when the storage backend fails an I/O round trip.

    The engine never retries on its own; the caller decides.

    Args:
        message: Driver error text.
        operation: Name of the adapter primitive that failed.
    """

    def __init__(self, message: str, operation: str | None = None) -> None:
        self.operation = operation
        if operation:
            message = f"{operation}: {message}"
        super().__init__(message)


class PartialWriteError(BackendUnavailableError):
    """A multi-step write failed after some of its steps were committed.

    ``completed`` lists the stages that are already persisted. Nothing is
    rolled back; remediation belongs to the caller.
    """

    def __init__(self, message: str, *, operation: str, completed: list[str]) -> None:
        self.completed = list(completed)
        super().__init__(
            f"{message} (committed: {', '.join(self.completed) or 'nothing'})",
            operation=operation,
        )


class StatusPropagationError(PartialWriteError):
    """A run result was stored but the test case status write failed.

    ``result`` is the persisted TestRunResult; pass it to
    ``propagate_run_status`` to retry the second step.
    """

    def __init__(self, message: str, *, result) -> None:
        self.result = result
        super().__init__(
            message,
            operation="record_run_result",
            completed=["test_run_result"],
        )
