from fastapi import status


class EngineError(Exception):
    """Base class for per-operation failures surfaced to the caller."""

    kind = "error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_result(self) -> dict:
        return {"success": False, "error": self.kind, "message": self.message}


class ValidationError(EngineError):
    kind = "validation"
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDeniedError(EngineError):
    kind = "permission"
    status_code = status.HTTP_403_FORBIDDEN


class InvalidStateError(EngineError):
    kind = "invalid_state"
    status_code = status.HTTP_409_CONFLICT


class ConflictError(EngineError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class NotFoundError(EngineError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class DependencyMissingError(EngineError):
    # Raised when a company rate cannot be resolved; time tracking still succeeds
    kind = "dependency_missing"
    status_code = status.HTTP_424_FAILED_DEPENDENCY
