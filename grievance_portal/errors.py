"""Error taxonomy shared by the lifecycle service, accounts and the HTTP layer."""


class GrievancePortalError(Exception):
    """Base exception; carries a machine-readable kind and an HTTP status."""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ValidationError(GrievancePortalError):
    """Missing or malformed input."""

    kind = "validation"
    status_code = 400


class AuthorizationError(GrievancePortalError):
    """Wrong role, department or level for the requested action."""

    kind = "authorization"
    status_code = 403


class AuthenticationError(AuthorizationError):
    """No usable caller identity."""

    kind = "authentication"
    status_code = 401


class NotFoundError(GrievancePortalError):
    kind = "not_found"
    status_code = 404


class ConflictError(GrievancePortalError):
    """Concurrent-write collision or a transition the record no longer allows."""

    kind = "conflict"
    status_code = 409


class DependencyError(GrievancePortalError):
    """Email or storage failure."""

    kind = "dependency"
    status_code = 500
