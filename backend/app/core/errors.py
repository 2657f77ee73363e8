from __future__ import annotations

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    code = "app_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code

    def to_payload(self) -> dict:
        return {"detail": self.message, "code": self.code}


class CatalogConfigError(AppError):
    """Challenge templates are missing or malformed; generation cannot proceed."""

    code = "catalog_config_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ChallengeNotFoundError(AppError):
    code = "challenge_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class RewardApplicationError(AppError):
    """The progress store did not durably record a reward."""

    code = "reward_application_failed"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)
        # challenges completed earlier in the same evaluation, set by the evaluator
        self.completed: list = []

    def to_payload(self) -> dict:
        # completions flipped before the failure are reported here and never again
        payload = super().to_payload()
        payload["completed"] = [item.model_dump(mode="json") for item in self.completed]
        return payload


class EvaluationBusyError(AppError):
    """Another evaluation for the same user holds the lock."""

    code = "evaluation_busy"
    status_code = status.HTTP_409_CONFLICT


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())
