"""
Error taxonomy for the portfolio API.

Every failure the service reports is a PortfolioError subclass carrying a
machine-readable code, a human-readable message and the HTTP status it maps
to. main.py installs a single handler that renders them as APIError bodies.
"""

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_IDENTIFIER = "INVALID_IDENTIFIER"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    ORIGIN_REJECTED = "ORIGIN_REJECTED"
    DRAFT_UNAVAILABLE = "DRAFT_UNAVAILABLE"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


class APIError(BaseModel):
    """Error response body: {"success": false, "error": <code>, "message": <text>}."""

    success: bool = False
    error: ErrorCode
    message: str


class PortfolioError(Exception):
    code = ErrorCode.VALIDATION_ERROR
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_response(self) -> APIError:
        return APIError(error=self.code, message=self.message)


class InvalidPayload(PortfolioError):
    code = ErrorCode.VALIDATION_ERROR
    status_code = 400
    default_message = "Invalid request payload"


class InvalidIdentifier(PortfolioError):
    code = ErrorCode.INVALID_IDENTIFIER
    status_code = 400
    default_message = "Invalid identifier"


class InvalidTransition(PortfolioError):
    code = ErrorCode.INVALID_TRANSITION
    status_code = 409
    default_message = "Status transition not allowed"


class NotFound(PortfolioError):
    code = ErrorCode.RESOURCE_NOT_FOUND
    status_code = 404
    default_message = "Not found"


class Unauthenticated(PortfolioError):
    """Missing, malformed, forged and expired credentials all look the same."""

    code = ErrorCode.AUTHENTICATION_FAILED
    status_code = 401
    default_message = "Not authenticated"

    def __init__(self):
        super().__init__(self.default_message)


class OriginRejected(PortfolioError):
    code = ErrorCode.ORIGIN_REJECTED
    status_code = 403
    default_message = "Origin not allowed"


class DraftUnavailable(PortfolioError):
    code = ErrorCode.DRAFT_UNAVAILABLE
    status_code = 502
    default_message = "AI reply generation failed. Please try again."


class StorageUnavailable(PortfolioError):
    code = ErrorCode.STORAGE_UNAVAILABLE
    status_code = 503
    default_message = "Database not available"


class ConfigurationError(PortfolioError):
    code = ErrorCode.CONFIGURATION_ERROR
    status_code = 500
    default_message = "Invalid configuration"
