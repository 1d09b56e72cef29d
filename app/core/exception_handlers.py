"""
Manejadores de excepciones centralizados para la aplicación FastAPI.

Este módulo define todos los manejadores de excepciones personalizados y globales,
proporcionando respuestas consistentes y logging apropiado para diferentes tipos de errores.
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import get_settings
from app.utils.error_handler import (
    AppException,
    ConflictException,
    LockAcquisitionError,
    NotFoundException,
    ValidationException,
)

logger = logging.getLogger(__name__)


def _base_content(request: Request, error_type: str, message: str) -> Dict[str, Any]:
    return {
        "error": True,
        "error_type": error_type,
        "message": message,
        "path": str(request.url.path),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request.headers.get("X-Request-ID"),
    }


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Manejador para excepciones personalizadas de la aplicación.

    Args:
        request: Request de FastAPI
        exc: Excepción personalizada de la app

    Returns:
        JSONResponse: Respuesta JSON con error formateado
    """
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"App Exception: {exc.message} - Code: {exc.error_code.value} - URL: {request.url} - Details: {exc.details}")

    content = _base_content(request, "application_error", exc.message)
    content.update(
        {
            "error_code": exc.error_code.value,
            "details": exc.details if get_settings().DEBUG else None,
        }
    )
    return JSONResponse(status_code=exc.status_code, content=content)


async def validation_exception_handler(request: Request, exc: ValidationException) -> JSONResponse:
    """
    Manejador para errores de validación de datos.

    Incluye siempre la lista de errores por campo para que el cliente
    pueda corregir todos de una vez.
    """
    logger.warning(f"Validation Exception: {exc.message} - Field: {exc.field} - URL: {request.url}")

    content = _base_content(request, "validation_error", exc.message)
    content.update(
        {
            "error_code": exc.error_code.value,
            "field": exc.field,
            "invalid_value": exc.invalid_value if get_settings().DEBUG else None,
            "expected_format": exc.expected_format,
            "errors": exc.details.get("errors", []),
        }
    )
    return JSONResponse(status_code=exc.status_code, content=content)


async def conflict_exception_handler(request: Request, exc: ConflictException) -> JSONResponse:
    """
    Manejador para conflictos de versión (concurrencia optimista).
    """
    logger.warning(
        f"Conflict Exception: {exc.message} - Expected: {exc.expected_version} - "
        f"Actual: {exc.actual_version} - URL: {request.url}"
    )

    content = _base_content(request, "conflict_error", exc.message)
    content.update(
        {
            "error_code": exc.error_code.value,
            "resource_id": exc.resource_id,
            "expected_version": exc.expected_version,
            "actual_version": exc.actual_version,
        }
    )
    return JSONResponse(status_code=exc.status_code, content=content)


async def not_found_exception_handler(request: Request, exc: NotFoundException) -> JSONResponse:
    logger.info(f"Not Found: {exc.message} - URL: {request.url}")

    content = _base_content(request, "not_found", exc.message)
    content.update({"error_code": exc.error_code.value, "resource": exc.resource, "resource_id": exc.resource_id})
    return JSONResponse(status_code=exc.status_code, content=content)


async def lock_exception_handler(request: Request, exc: LockAcquisitionError) -> JSONResponse:
    """
    Manejador para órdenes ocupadas (lock no adquirido a tiempo).
    """
    logger.warning(f"Lock Exception: {exc.message} - Key: {exc.lock_key} - URL: {request.url}")

    content = _base_content(request, "resource_busy", exc.message)
    content.update({"error_code": exc.error_code.value, "retry_suggested": True})
    return JSONResponse(status_code=exc.status_code, content=content, headers={"Retry-After": "1"})


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Manejador para errores de validación de FastAPI/Pydantic (tipos del payload).
    """
    logger.warning(f"Request Validation Error: {exc.errors()} - URL: {request.url}")

    content = _base_content(request, "validation_error", "Request payload is invalid")
    content.update(
        {
            "error_code": "VALIDATION_ERROR",
            "errors": [
                {"field": ".".join(str(part) for part in error.get("loc", [])), "message": error.get("msg")}
                for error in exc.errors()
            ],
        }
    )
    return JSONResponse(status_code=422, content=content)


async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Manejador para HTTPException de Starlette (incluye la de FastAPI).
    """
    logger.warning(f"HTTP Exception: {exc.status_code} - {exc.detail} - URL: {request.url}")

    content = _base_content(request, "http_error", str(exc.detail))
    content["status_code"] = exc.status_code
    return JSONResponse(status_code=exc.status_code, content=content)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Manejador global para excepciones no capturadas.

    Args:
        request: Request de FastAPI
        exc: Excepción no manejada

    Returns:
        JSONResponse: Respuesta JSON de error interno
    """
    settings = get_settings()
    logger.error(
        f"Unhandled Exception: {str(exc)} - Type: {type(exc).__name__} - URL: {request.url}",
        exc_info=exc,
    )

    # Respuesta genérica (sin exponer detalles internos)
    error_message = "Internal server error occurred"
    if settings.DEBUG:
        error_message = f"{type(exc).__name__}: {str(exc)}"

    content = _base_content(request, "internal_server_error", error_message)
    content["traceback"] = "".join(traceback.format_exception(exc)) if settings.DEBUG else None
    return JSONResponse(status_code=500, content=content)


def configure_exception_handlers(app: FastAPI) -> None:
    """
    Configura todos los manejadores de excepciones de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    logger.info("🔧 Configurando manejadores de excepciones...")

    # Manejadores específicos (orden de especificidad)
    app.add_exception_handler(ValidationException, validation_exception_handler)
    app.add_exception_handler(ConflictException, conflict_exception_handler)
    app.add_exception_handler(NotFoundException, not_found_exception_handler)
    app.add_exception_handler(LockAcquisitionError, lock_exception_handler)
    app.add_exception_handler(AppException, app_exception_handler)

    # Manejadores HTTP estándar
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, starlette_http_exception_handler)

    # Manejador global (debe ser el último)
    app.add_exception_handler(Exception, global_exception_handler)

    logger.info("✅ Manejadores de excepciones configurados correctamente")
