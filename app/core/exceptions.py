from typing import Any, Dict, Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.extra = extra or {}

    @property
    def detail(self) -> Any:
        """Payload for HTTPException.detail: plain message, or message plus extra fields."""
        if not self.extra:
            return self.message
        return {"message": self.message, **self.extra}


class ValidationError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class NotFoundError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ForbiddenError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class InvalidTransitionError(ServiceError):
    """Request lifecycle guard failed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class InvalidStateError(ServiceError):
    """Session state guard failed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class QuotaExceededError(ServiceError):
    def __init__(self, hours_used: float, attempting_to_add: float, weekly_limit: int) -> None:
        super().__init__(
            "Weekly hourly limit exceeded",
            status.HTTP_400_BAD_REQUEST,
            extra={
                "hoursUsed": hours_used,
                "attemptingToAdd": attempting_to_add,
                "weeklyLimit": weekly_limit,
            },
        )
        self.hours_used = hours_used
        self.attempting_to_add = attempting_to_add
        self.weekly_limit = weekly_limit
