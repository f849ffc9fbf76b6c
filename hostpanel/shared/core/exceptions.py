from typing import Optional, Dict, Any


class HostPanelException(Exception):
    """Base exception for all HostPanel errors."""
    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class ProviderRequestError(HostPanelException):
    """
    Raised when a call to the Pterodactyl application API fails.

    `provider_status` is the HTTP status returned by the panel, or None when
    the request never got a response (connect error, timeout).
    """
    def __init__(
        self,
        message: str,
        provider_status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = {"provider_status": provider_status, **(details or {})}
        super().__init__(message, code="provider_error", status_code=502, details=merged)
        self.provider_status = provider_status

    @property
    def is_not_found(self) -> bool:
        return self.provider_status == 404


class ProviderResponseError(HostPanelException):
    """Raised when the provider answers with a payload we cannot map."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="provider_bad_response", status_code=502, details=details)


class ConfigurationError(HostPanelException):
    """Raised when application configuration is invalid or missing."""
    def __init__(self, message: str, code: str = "config_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=500, details=details)


class ResourceNotFoundError(HostPanelException):
    """Raised when a requested resource is not found."""
    def __init__(self, message: str, code: str = "not_found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=404, details=details)


class BillingError(HostPanelException):
    """Raised when a credit operation is rejected."""
    def __init__(self, message: str, code: str = "billing_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=400, details=details)
