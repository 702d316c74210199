"""Error taxonomy shared by the list and editor engines.

Transport failures and server-rejected requests surface as notices and never
clear already-loaded state. Validation failures are attached to fields.
"""

from __future__ import annotations


class EntityConsoleError(Exception):
    """Base class for every error raised by the console core."""

    def __init__(self, message: str, *, category: str = "", code: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.code = code


class TransportError(EntityConsoleError):
    """The record service could not be reached (connect error, timeout, ...)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, category="transport")


class RecordServiceError(EntityConsoleError):
    """The record service answered with a non-success status."""

    def __init__(
        self, message: str, *, status: int = 400, category: str = "", code: str = ""
    ) -> None:
        super().__init__(message, category=category, code=code)
        self.status = status


class FieldValidationError(EntityConsoleError):
    """Client-side validation failed for one or more fields."""

    def __init__(self, errors: dict[str, str]) -> None:
        fields = ", ".join(sorted(errors))
        super().__init__(f"Invalid value for: {fields}", category="validate")
        self.errors = errors


def format_error(err: BaseException) -> str:
    """Render an error the way notices display it: ``message [CATEGORY] [code]``."""
    if isinstance(err, EntityConsoleError):
        message = err.message
        if err.category:
            message += f" [{err.category.upper()}]"
        if err.code:
            message += f" [{err.code}]"
        return message
    return str(err)
