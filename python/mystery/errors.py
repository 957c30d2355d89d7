"""API error definitions.

All API errors are defined here with their corresponding HTTP status codes,
together with the domain errors raised by outbound integrations.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API.

    Format: E_CATEGORY_NAME
    """

    # Authorization errors (403)
    E_FORBIDDEN = "E_FORBIDDEN"
    E_INTERNAL_ONLY = "E_INTERNAL_ONLY"

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_CONVERSATION_NOT_FOUND = "E_CONVERSATION_NOT_FOUND"
    E_PACKAGE_NOT_FOUND = "E_PACKAGE_NOT_FOUND"
    E_CHARACTER_NOT_FOUND = "E_CHARACTER_NOT_FOUND"
    E_ACCESS_TOKEN_INVALID = "E_ACCESS_TOKEN_INVALID"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_EMAIL_RECIPIENT_MISSING = "E_EMAIL_RECIPIENT_MISSING"

    # Upstream errors
    E_GENERATION_TRIGGER_FAILED = "E_GENERATION_TRIGGER_FAILED"  # 502
    E_EMAIL_SEND_FAILED = "E_EMAIL_SEND_FAILED"  # 502
    E_EMAIL_NOT_CONFIGURED = "E_EMAIL_NOT_CONFIGURED"  # 503

    # Server errors
    E_INTERNAL = "E_INTERNAL"  # 500


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_FORBIDDEN: 403,
    ApiErrorCode.E_INTERNAL_ONLY: 403,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_CONVERSATION_NOT_FOUND: 404,
    ApiErrorCode.E_PACKAGE_NOT_FOUND: 404,
    ApiErrorCode.E_CHARACTER_NOT_FOUND: 404,
    ApiErrorCode.E_ACCESS_TOKEN_INVALID: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_EMAIL_RECIPIENT_MISSING: 400,
    ApiErrorCode.E_GENERATION_TRIGGER_FAILED: 502,
    ApiErrorCode.E_EMAIL_SEND_FAILED: 502,
    ApiErrorCode.E_EMAIL_NOT_CONFIGURED: 503,
    ApiErrorCode.E_INTERNAL: 500,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class NotFoundError(ApiError):
    """Resource not found error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class ForbiddenError(ApiError):
    """Authorization failure error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_FORBIDDEN, message: str = "Forbidden"):
        super().__init__(code, message)


class InvalidRequestError(ApiError):
    """Invalid request error."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)


class GenerationTriggerError(Exception):
    """The external generation service could not be triggered."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class EmailSendError(Exception):
    """A transactional email could not be delivered to the email API."""

    def __init__(self, message: str, code: ApiErrorCode = ApiErrorCode.E_EMAIL_SEND_FAILED):
        super().__init__(message)
        self.message = message
        self.code = code
