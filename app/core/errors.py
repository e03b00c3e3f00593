"""
Engine error taxonomy.

Business-rule violations are terminal and user-presentable; only
UpstreamStorageFailure is retryable. Every error renders as
{"detail": ..., "code": ..., "retryable": ...}.
"""
from fastapi import Request
from fastapi.responses import JSONResponse


class EngineError(Exception):
    code = "ENGINE_ERROR"
    status_code = 400
    retryable = False

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"detail": self.detail, "code": self.code, "retryable": self.retryable}


class DeadlinePassed(EngineError):
    code = "DEADLINE_PASSED"
    status_code = 403


class DuplicateBid(EngineError):
    code = "DUPLICATE_BID"
    status_code = 409


class AlreadyEvaluated(EngineError):
    code = "ALREADY_EVALUATED"
    status_code = 409


class AlreadyAwarded(EngineError):
    code = "ALREADY_AWARDED"
    status_code = 409


class InvalidTransition(EngineError):
    code = "INVALID_TRANSITION"
    status_code = 400


class ValidationFailed(EngineError):
    code = "VALIDATION_FAILED"
    status_code = 400


class NotFound(EngineError):
    code = "NOT_FOUND"
    status_code = 404


class FinancialsLocked(EngineError):
    code = "FINANCIALS_LOCKED"
    status_code = 403


class CapacityExceeded(EngineError):
    code = "CAPACITY_EXCEEDED"
    status_code = 409


class UpstreamStorageFailure(EngineError):
    code = "UPSTREAM_STORAGE_FAILURE"
    status_code = 503
    retryable = True


async def engine_error_handler(request: Request, exc: EngineError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
