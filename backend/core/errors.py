"""Application exceptions and the handlers that render them.

Every failure leaves the API as ``{"success": false, "message": ..., "code": ...}``.
Services raise the subclasses below; routes never build error payloads by hand.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = 'INTERNAL_ERROR'

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = 'RESOURCE_NOT_FOUND'


class BadRequestError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'VALIDATION_ERROR'


class ScheduleConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = 'SCHEDULE_CONFLICT'


class DuplicateResourceError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = 'DUPLICATE_RESOURCE'


class OutsideWorkingHoursError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'OUTSIDE_WORKING_HOURS'


class InvalidStatusTransitionError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'INVALID_STATUS_TRANSITION'


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = 'INVALID_TOKEN'


class PermissionDeniedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = 'INSUFFICIENT_PERMISSIONS'


class DeliveryFailedError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = 'DELIVERY_FAILED'


class RateLimitError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = 'RATE_LIMIT_EXCEEDED'

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


def error_body(message: str, code: str, **extra) -> dict:
    return {'success': False, 'message': message, 'code': code, **extra}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error('%s %s failed: %s', request.method, request.url.path, exc.message)
    extra = {}
    headers = None
    if isinstance(exc, RateLimitError):
        extra['retryAfter'] = exc.retry_after
        headers = {'Retry-After': str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.code, **extra),
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            'field': '.'.join(str(part) for part in error.get('loc', ()) if part != 'body'),
            'message': error.get('msg', ''),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body('Invalid input data', 'VALIDATION_ERROR', errors=errors),
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Database error on %s %s', request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=error_body(
            'Database unavailable. Verify DATABASE_URL and database credentials.',
            'DATABASE_UNAVAILABLE',
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
