"""Application-specific exceptions.

:class:`ValidationError` signals bad request input and is raised by
:mod:`carfinance.utils.validation` and the payment estimator.
:class:`Unauthenticated` and :class:`Forbidden` are raised by
:mod:`carfinance.access` and mapped to 401/403 by the app factory.
"""

from __future__ import annotations


class ValidationError(ValueError):
    """Raised when input validation fails.

    Parameters
    ----------
    message:
        Human-readable error message.
    field:
        Optional name of the field/parameter that failed validation.
    code:
        Optional machine-readable error code.
    details:
        Optional extra context (e.g. structured errors).
    """

    default_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation error",
        *,
        field: str | None = None,
        code: str | None = None,
        details: object | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.code = code or self.default_code
        self.details = details

    def to_dict(self) -> dict:
        """Serialize the error into a JSON-friendly dictionary."""

        data = {"message": self.message, "code": self.code}
        if self.field is not None:
            data["field"] = self.field
        if self.details is not None:
            data["details"] = self.details
        return data


class InvalidInputError(ValidationError):
    """Numeric input to the payment estimator is missing, negative or not a number."""

    default_code = "invalid_input"


class ModelOutputInvalidError(ValueError):
    """Raised when the AI model returns an invalid JSON structure."""


class AccessError(Exception):
    """Base class for authorization failures."""

    status = 403
    code = "forbidden"

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)
        self.message = message


class Unauthenticated(AccessError):
    """No valid principal is attached to the request."""

    status = 401
    code = "unauthenticated"

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class Forbidden(AccessError):
    """The principal is authenticated but may not perform this request."""

    status = 403
    code = "forbidden"
