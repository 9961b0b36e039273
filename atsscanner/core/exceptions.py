"""
Domain exceptions for usage limiting and billing.

Routes translate these into HTTP responses; services never raise HTTPException.
"""


class ATSScannerError(Exception):
    """Base class for all application errors."""

    def __init__(self, message: str = "Application error"):
        super().__init__(message)
        self.message = message


class NotFoundError(ATSScannerError):
    """Raised when a user, membership or plan does not exist."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class ValidationFailure(ATSScannerError):
    """Raised when a request is rejected before any state is mutated."""

    def __init__(self, message: str = "Invalid request"):
        super().__init__(message)


class ExternalServiceFailure(ATSScannerError):
    """Raised when a call to the billing provider fails."""

    def __init__(self, message: str = "External service error", service_name: str = "Stripe"):
        super().__init__(message)
        self.service_name = service_name


class SignatureInvalid(ATSScannerError):
    """Raised when a webhook payload fails signature verification."""

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message)


class ConfigurationMissing(ATSScannerError):
    """Raised when required configuration is absent."""

    def __init__(self, message: str = "Required configuration missing"):
        super().__init__(message)
