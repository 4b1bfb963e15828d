# backend/attestdb/errors.py
"""
Error taxonomy shared by the training, evidence and compliance apps.

Services raise these; routers translate them 1:1 into HTTP responses via
`to_http_exception`. Nothing here retries.
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, status


class TrainingError(Exception):
    code = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def as_detail(self) -> dict:
        return {"error": self.code, "message": self.message}


class ValidationError(TrainingError):
    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthorized(TrainingError):
    code = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(TrainingError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(TrainingError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(TrainingError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


class ServiceUnavailable(TrainingError):
    code = "ai_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class InternalError(TrainingError):
    code = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(exc: TrainingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.as_detail())
