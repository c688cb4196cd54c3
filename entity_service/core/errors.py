from typing import Optional

from fastapi import status


# =========================
# Base
# =========================
class ServiceError(Exception):
    """
    Base class for every classified failure the service raises.

    Each subclass carries the HTTP status it is rendered with, so the
    exception handler in main.py never has to guess.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


# =========================
# Caller faults
# =========================
class InputValidationError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenOperationError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


# =========================
# Engine / assembly failures
# =========================
class EngineFailureError(ServiceError):
    """Non-zero engine status that is not one of the not-found codes."""

    def __init__(self, code: int, message: str):
        super().__init__(message or f"Engine call failed with code {code}", str(code))
        self.engine_code = code


class AssemblyError(ServiceError):
    pass


# =========================
# Concurrency core lifecycle
# =========================
class LifecycleError(ServiceError):
    pass


class PoolClosedError(LifecycleError):
    def __init__(self, message: str = "The worker pool has been closed"):
        super().__init__(message)


class AlreadyBusyError(LifecycleError):
    def __init__(self, message: str = "Worker is already busy with another work unit"):
        super().__init__(message)


class NotInstalledError(LifecycleError):
    def __init__(self, message: str = "No engine provider has been installed"):
        super().__init__(message)


class AlreadyInstalledError(LifecycleError):
    pass


class InvalidTokenError(LifecycleError):
    def __init__(self, message: str = "The access token is not the one issued at install time"):
        super().__init__(message)
