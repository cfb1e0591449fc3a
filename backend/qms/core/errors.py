from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DatabaseError, IntegrityError

from qms.core.logging import logger


class AppError(Exception):
    """Базовое исключение приложения с кодом ошибки."""

    def __init__(
        self, message: str, code: str = "internal_error", details: dict[str, Any] | None = None
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class NotFoundError(AppError):
    """Ошибка когда ресурс не найден."""

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(
            message=f"{resource} with id {resource_id} not found",
            code="not_found",
            details={"resource": resource, "resource_id": resource_id},
        )


class ValidationError(AppError):
    """Ошибка валидации данных."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="validation_error", details=details)


class ConflictError(AppError):
    """Ошибка конфликта (например, пользователь уже назначен на тренинг)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="conflict", details=details)


class InvalidTransitionError(AppError):
    """Недопустимый переход статуса workflow-сущности."""

    def __init__(self, entity: str, current: str, target: str, allowed: list[str]) -> None:
        super().__init__(
            message=f"Cannot change {entity} status from '{current}' to '{target}'",
            code="invalid_transition",
            details={"entity": entity, "from": current, "to": target, "allowed": allowed},
        )


class UnauthorizedError(AppError):
    """Нет валидного токена или пользователь неактивен."""

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message=message, code="unauthorized")


class ForbiddenError(AppError):
    """Недостаточно прав или чужой тенант."""

    def __init__(self, message: str = "Insufficient permissions", details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="forbidden", details=details)


_STATUS_BY_CODE: dict[str, int] = {
    "not_found": 404,
    "conflict": 409,
    "invalid_transition": 409,
    "validation_error": 400,
    "unauthorized": 401,
    "forbidden": 403,
}


def configure_error_handlers(app: FastAPI) -> None:
    """Настройка обработчиков ошибок для FastAPI."""

    @app.exception_handler(AppError)
    async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
        status_code = _STATUS_BY_CODE.get(exc.code, 400)
        headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
        return JSONResponse(
            status_code=status_code,
            content={
                "detail": exc.message,
                "code": exc.code,
                "details": exc.details,
            },
            headers=headers,
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(_: Request, exc: IntegrityError) -> JSONResponse:
        """Обработка ошибок целостности базы данных."""
        logger.error(f"IntegrityError: {exc}", exc_info=True)
        error_msg = str(exc.orig) if hasattr(exc, "orig") else str(exc)

        if "foreign key" in error_msg.lower():
            return JSONResponse(
                status_code=400,
                content={
                    "detail": "Foreign key violation. Check that referenced records exist.",
                    "code": "validation_error",
                    "details": {"error": error_msg},
                },
            )
        elif "unique" in error_msg.lower() or "duplicate" in error_msg.lower():
            return JSONResponse(
                status_code=409,
                content={
                    "detail": "Duplicate record. A resource with these values already exists.",
                    "code": "conflict",
                    "details": {"error": error_msg},
                },
            )
        else:
            return JSONResponse(
                status_code=400,
                content={
                    "detail": "Data integrity error.",
                    "code": "validation_error",
                    "details": {"error": error_msg},
                },
            )

    @app.exception_handler(DatabaseError)
    async def database_error_handler(_: Request, exc: DatabaseError) -> JSONResponse:
        """Обработка общих ошибок базы данных."""
        logger.error(f"DatabaseError: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Database error",
                "code": "database_error",
                "details": {},
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
        """Обработка необработанных исключений."""
        logger.error(f"Unhandled error: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "code": "internal_error",
                "details": {},
            },
        )
