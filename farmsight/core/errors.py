from fastapi import Request
from fastapi.responses import JSONResponse


class FarmSightError(Exception):
    """Base class for domain errors surfaced through the API."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(FarmSightError):
    status_code = 400


class NotFoundError(FarmSightError):
    status_code = 404


class InsufficientDataError(FarmSightError):
    status_code = 400


class ExternalServiceError(FarmSightError):
    """An outbound call (LLM, SMS gateway, imagery) failed."""

    status_code = 500

    def __init__(self, service: str, detail: str):
        super().__init__(f"{service}: {detail}")
        self.service = service


def farmsight_error_handler(request: Request, exc: FarmSightError):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "error": type(exc).__name__,
        },
    )
