"""
Standardized Error Envelope

Every API error is rendered as:
{ success: false, error: { code, message, fields? }, request_id }

HTTP Status Code Standards:
- 400: Bad Request (validation errors, malformed input, overpayment)
- 401: Unauthorized (not authenticated)
- 403: Forbidden (not permitted)
- 404: Not Found (missing or not owned by the caller)
- 409: Conflict (invalid state transition, concurrent update)
- 429: Too Many Requests
- 500: Internal Server Error
- 503: Service Unavailable (record store unavailable after retries)
"""

from __future__ import annotations

import uuid
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    FIELD_REQUIRED = "FIELD_REQUIRED"
    FIELD_INVALID = "FIELD_INVALID"
    FIELD_TOO_SHORT = "FIELD_TOO_SHORT"
    FIELD_TOO_LONG = "FIELD_TOO_LONG"
    FIELD_OUT_OF_RANGE = "FIELD_OUT_OF_RANGE"
    FIELD_INVALID_FORMAT = "FIELD_INVALID_FORMAT"

    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    PERMISSION_DENIED = "PERMISSION_DENIED"

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_ALREADY_EXISTS = "RESOURCE_ALREADY_EXISTS"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"

    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"

    RATE_LIMITED = "RATE_LIMITED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    INVOICE_LOCKED = "INVOICE_LOCKED"
    INVOICE_OVERPAYMENT = "INVOICE_OVERPAYMENT"
    QUOTE_NOT_ACCEPTED = "QUOTE_NOT_ACCEPTED"
    QUOTE_ALREADY_CONVERTED = "QUOTE_ALREADY_CONVERTED"


@dataclass
class FieldError:
    field: str
    code: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "field": self.field,
            "code": self.code,
            "message": self.message,
        }


@dataclass
class ErrorDetail:
    code: str
    message: str
    fields: Optional[List[FieldError]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "code": self.code,
            "message": self.message,
        }
        if self.fields:
            result["fields"] = [f.to_dict() for f in self.fields]
        return result


@dataclass
class ErrorResponse:
    success: bool = False
    error: Optional[ErrorDetail] = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error.to_dict() if self.error else None,
            "request_id": self.request_id,
        }


def format_validation_errors(
    errors: Dict[str, Any],
    prefix: str = "",
) -> List[FieldError]:
    field_errors = []

    for field_name, error_list in errors.items():
        full_field = f"{prefix}{field_name}" if prefix else field_name

        if isinstance(error_list, dict):
            field_errors.extend(format_validation_errors(error_list, f"{full_field}."))
        elif isinstance(error_list, list):
            for error in error_list:
                if isinstance(error, dict):
                    field_errors.extend(format_validation_errors(error, f"{full_field}."))
                else:
                    error_str = str(error)
                    code = _infer_error_code(error_str)
                    field_errors.append(FieldError(
                        field=full_field,
                        code=code,
                        message=error_str,
                    ))
        else:
            field_errors.append(FieldError(
                field=full_field,
                code=ErrorCode.FIELD_INVALID.value,
                message=str(error_list),
            ))

    return field_errors


def _infer_error_code(message: str) -> str:
    message_lower = message.lower()

    if "required" in message_lower or "blank" in message_lower or "null" in message_lower:
        return ErrorCode.FIELD_REQUIRED.value
    elif "too short" in message_lower or "at least" in message_lower:
        return ErrorCode.FIELD_TOO_SHORT.value
    elif "too long" in message_lower or "at most" in message_lower or "maximum" in message_lower:
        return ErrorCode.FIELD_TOO_LONG.value
    elif "greater than" in message_lower or "less than" in message_lower or "between" in message_lower \
            or "exceeds" in message_lower or "negative" in message_lower:
        return ErrorCode.FIELD_OUT_OF_RANGE.value
    elif "format" in message_lower or "valid" in message_lower or "invalid" in message_lower:
        return ErrorCode.FIELD_INVALID_FORMAT.value
    else:
        return ErrorCode.FIELD_INVALID.value

