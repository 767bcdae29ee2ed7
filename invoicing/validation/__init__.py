"""
Error envelope and DRF exception handling for the invoicing API.

Engine exceptions live in ``invoicing.exceptions``; this package turns them
(and DRF's own exceptions) into the ``{success, error, request_id}`` body.
"""

from .errors import (
    ErrorCode,
    ErrorDetail,
    ErrorResponse,
    FieldError,
    format_validation_errors,
)

__all__ = [
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "FieldError",
    "format_validation_errors",
]
