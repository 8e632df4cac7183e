# util/errors.py
from fastapi import HTTPException, status
from util.enums import ErrorMessage


class AppError(HTTPException):
    # Flow: raise AppError to short-circuit with a typed status & message.
    def __init__(
        self, message: str, http_status: int = status.HTTP_400_BAD_REQUEST
    ) -> None:
        super().__init__(status_code=http_status, detail=message)
        self.message = message

    @classmethod
    def of(cls, error: ErrorMessage, detail: str | None = None) -> "AppError":
        message = error.value.message
        if detail:
            message = f"{message}: {detail}"
        return cls(message, error.value.http_status)

    def __str__(self) -> str:
        return self.message


class NotFoundError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class AnalysisError(AppError):
    """Unrecoverable failure at the orchestration boundary; message is user-visible."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class InvalidTransitionError(AppError):
    def __init__(self, job_id: str, current: str, target: str) -> None:
        super().__init__(
            f"{ErrorMessage.INVALID_TRANSITION.value.message}: "
            f"job={job_id} {current} -> {target}",
            ErrorMessage.INVALID_TRANSITION.value.http_status,
        )


class LLMError(Exception):
    """Base for anything that makes an LLM attempt unusable."""


class LLMTransportError(LLMError):
    pass


class LLMTimeoutError(LLMTransportError):
    pass


class ImpactResponseError(LLMError):
    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors) or "invalid impact response")
        self.errors = list(errors)
