"""
Domain exceptions raised by the invoicing engine.

The API layer maps each class onto the standard error envelope using
``error_code`` and ``http_status``.
"""

from typing import Any, Dict, List, Optional

from .validation.errors import ErrorCode


class InvoicingError(Exception):
    error_code = ErrorCode.INTERNAL_ERROR.value
    http_status = 500

    def __init__(self, message: str, error_code: Optional[str] = None, **context: Any):
        self.message = message
        if error_code:
            self.error_code = error_code
        self.context = context
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.error_code,
            'message': self.message,
            'context': self.context,
        }


class ValidationError(InvoicingError):
    """Malformed or out-of-range input. Never retried."""

    error_code = ErrorCode.VALIDATION_ERROR.value
    http_status = 400

    def __init__(self, message: str, errors: Optional[Dict[str, List[str]]] = None, **kwargs: Any):
        self.errors = errors or {}
        super().__init__(message, **kwargs)


class NotFoundError(InvoicingError):
    error_code = ErrorCode.RESOURCE_NOT_FOUND.value
    http_status = 404

    def __init__(self, resource: str, resource_id: Any = None):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource.capitalize()} not found", resource=resource, resource_id=resource_id)


class InvalidStateError(InvoicingError):
    """The document's current status forbids the requested operation."""

    error_code = ErrorCode.INVALID_STATE_TRANSITION.value
    http_status = 409


class TransientStoreError(InvoicingError):
    error_code = ErrorCode.SERVICE_UNAVAILABLE.value
    http_status = 503


class ConcurrentUpdateError(TransientStoreError):
    """A versioned update lost the race against another writer."""

    error_code = ErrorCode.RESOURCE_CONFLICT.value
    http_status = 409
