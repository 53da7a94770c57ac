"""Custom exception classes for the Beacon API."""


class BeaconError(Exception):
    """Base exception for Beacon."""

    def __init__(self, code: str, message: str, details=None, status_code: int = 500):
        self.code = code
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(message)


class ValidationError(BeaconError):
    """Request or domain validation failure."""

    def __init__(self, message: str, details=None):
        super().__init__("VALIDATION_ERROR", message, details, status_code=400)


class NotFoundError(BeaconError):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            "NOT_FOUND",
            f"{resource} '{resource_id}' not found",
            status_code=404,
        )


class AuthenticationError(BeaconError):
    """Authentication required or token invalid."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__("AUTHENTICATION_ERROR", message, status_code=401)


class AuthorizationError(BeaconError):
    """Insufficient permissions."""

    def __init__(self, message: str = "Insufficient scope"):
        super().__init__("AUTHORIZATION_ERROR", message, status_code=403)


class ConflictError(BeaconError):
    """Resource state conflict, e.g. an illegal status transition."""

    def __init__(self, message: str, details=None):
        super().__init__("CONFLICT", message, details, status_code=409)


class PersistenceError(BeaconError):
    """Storage unreachable or a write failed."""

    def __init__(self, message: str = "Storage unavailable", details=None):
        super().__init__("PERSISTENCE_ERROR", message, details, status_code=503)


class EscalationResolutionError(BeaconError):
    """An escalation step could not be resolved to a rule, role or user."""

    def __init__(self, message: str):
        super().__init__("ESCALATION_UNRESOLVED", message, status_code=422)
