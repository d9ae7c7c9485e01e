"""
multikf/errors.py

Exception hierarchy raised by machine lifecycle operations. Every error can be
annotated with the operation name and the machine name it concerns, so the
command layer can log a single line describing what failed and where.
"""

from __future__ import annotations

from typing import Optional


class MultikfError(Exception):
    """Base class for all multikf errors.

    Attributes:
        operation (Optional[str]): The lifecycle operation (e.g. "up").
        machine (Optional[str]): The machine name the operation targeted.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        machine: Optional[str] = None,
    ) -> None:
        self.operation = operation
        self.machine = machine
        self.detail = message
        super().__init__(self._annotate(message))

    def _annotate(self, message: str) -> str:
        if self.operation and self.machine:
            return f"{self.operation} ({self.machine}): {message}"
        if self.operation:
            return f"{self.operation}: {message}"
        return message


class ConfigurationError(MultikfError):
    """Invalid provisioner token, machine name or specification."""


class StateConflictError(MultikfError):
    """The requested action would clobber existing state."""


class BackendExecutionError(MultikfError):
    """The backend's native tool failed or produced unparsable output.

    Attributes:
        return_code (Optional[int]): Exit code of the tool, if it ran.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        machine: Optional[str] = None,
        return_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, operation=operation, machine=machine)
        self.return_code = return_code


class NotFoundError(MultikfError):
    """The operation requires a running machine and none was found."""
