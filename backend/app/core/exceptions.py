class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class InvalidInputError(AppError):
    """Raised when a request references bad data (invalid day/time, deleted section, ...)."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class ScheduleConflictError(AppError):
    """Raised when a write would double-book a teacher or a section."""
    def __init__(self, message: str, conflicts: list[dict] | None = None):
        super().__init__(message, status_code=409, details={"conflicts": conflicts or []})

class StateTransitionError(AppError):
    """Raised when a substitute/restore request does not match the schedule's current state."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class SignatureVerificationError(AppError):
    """Raised when an inbound signed request fails authentication."""

class MissingApiKeyError(SignatureVerificationError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, status_code=401)

class StaleTimestampError(SignatureVerificationError):
    def __init__(self, message: str = "Invalid request"):
        super().__init__(message, status_code=400)

class InvalidSignatureError(SignatureVerificationError):
    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, status_code=403)

class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)
