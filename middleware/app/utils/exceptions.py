"""
Custom Exception Classes

Application-specific exceptions. Every failure carries a message, a stable
error code and a details mapping (for CiviCRM calls, the raw response body).
"""

from typing import Any, Dict, Optional


class MiddlewareException(Exception):
    """Base exception for all middleware errors"""

    def __init__(
        self,
        message: str,
        error_code: str = "MIDDLEWARE_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/API responses"""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class GivebutterException(MiddlewareException):
    """Givebutter webhook or API related errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="GIVEBUTTER_ERROR", details=details)


class SignatureException(GivebutterException):
    """Webhook signature verification failed"""

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message, details={"verification": "failed"})


class CiviCRMException(MiddlewareException):
    """CiviCRM API related errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="CIVICRM_ERROR", details=details)


class CiviCRMAPIException(CiviCRMException):
    """Transport failure or non-2xx response from the CiviCRM REST endpoint"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if status_code:
            details["status_code"] = status_code
        self.status_code = status_code
        super().__init__(message, details=details)


class CiviCRMResponseException(CiviCRMException):
    """CiviCRM answered, but not in a shape that carries the expected data"""


class ConfigurationException(MiddlewareException):
    """Configuration or environment errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="CONFIG_ERROR", details=details)


class ValidationException(MiddlewareException):
    """Data validation errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="VALIDATION_ERROR", details=details)
