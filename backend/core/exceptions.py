"""Custom exceptions for the workflow engine."""

from typing import Optional


class WorkflowEngineError(Exception):
    """Base exception for the workflow engine."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(WorkflowEngineError):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404)


class ValidationError(WorkflowEngineError):
    """Validation error exception."""

    def __init__(self, message: str = "Validation failed"):
        """Initialize ValidationError with 422 status code."""
        super().__init__(message, 422)


class ConflictError(WorkflowEngineError):
    """Resource conflict exception."""

    def __init__(self, message: str = "Resource conflict"):
        """Initialize ConflictError with 409 status code."""
        super().__init__(message, 409)


class DefinitionError(WorkflowEngineError):
    """The workflow definition cannot be interpreted.

    Raised for unknown states or actions, unmatched transitions, stuck
    states and detected infinite loops. Never routed through ``onError``.
    """

    def __init__(self, message: str = "Invalid workflow definition"):
        super().__init__(message, 422)


class IterationLimitError(DefinitionError):
    """A global or loop-body step cap was hit."""


class ActionError(WorkflowEngineError):
    """An invoked action failed. Recoverable through ``onError``."""

    def __init__(
        self,
        message: str = "Action failed",
        response_status: Optional[int] = None,
        response_body: Optional[str] = None,
    ):
        self.response_status = response_status
        self.response_body = response_body
        super().__init__(message, 502)


class ExecutionCancelled(WorkflowEngineError):
    """Raised inside a run once its execution has been cancelled."""

    def __init__(self, execution_id: int):
        self.execution_id = execution_id
        super().__init__(f"Execution {execution_id} was cancelled", 409)
