"""
Sistema de manejo de errores personalizado.

Este módulo define todas las excepciones personalizadas de la aplicación
y proporciona utilidades para manejo consistente de errores.

Los errores de validación, conflicto y no encontrado se lanzan de forma
síncrona al cliente. Los errores de sincronización nunca hacen fallar una
petición: quedan registrados en el SyncRecord correspondiente.
"""

import logging
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class ErrorCode(Enum):
    """
    Códigos de error estandardizados para la aplicación.
    """

    # Errores generales
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Errores de persistencia
    NOT_FOUND = "NOT_FOUND"
    VERSION_CONFLICT = "VERSION_CONFLICT"
    LOCK_ACQUISITION_FAILED = "LOCK_ACQUISITION_FAILED"

    # Errores de sincronización
    SYNC_RETRYABLE = "SYNC_RETRYABLE"
    SYNC_PERMANENT = "SYNC_PERMANENT"
    SYNC_TIMEOUT = "SYNC_TIMEOUT"
    SYNC_DIVERGENCE = "SYNC_DIVERGENCE"


class ErrorSeverity(Enum):
    """
    Niveles de severidad para errores.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AppException(Exception):
    """
    Excepción base para todas las excepciones personalizadas de la aplicación.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        is_retryable: bool = False,
        is_critical: bool = False,
    ):
        """
        Inicializa la excepción.

        Args:
            message: Mensaje de error
            error_code: Código de error estandardizado
            details: Información adicional del error
            status_code: Código HTTP asociado
            severity: Severidad del error
            is_retryable: Si la operación puede reintentarse
            is_critical: Si requiere alerta inmediata
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        self.severity = severity
        self.is_retryable = is_retryable
        self.is_critical = is_critical
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convierte la excepción a diccionario.

        Returns:
            Dict: Representación de la excepción
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code.value,
            "details": self.details,
            "status_code": self.status_code,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
            "is_critical": self.is_critical,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        """String representation del error."""
        return f"{self.error_code.value}: {self.message}"


class ValidationException(AppException):
    """
    Excepción para errores de validación de datos.

    Cuando la validación acumula varios errores, la lista completa viaja
    en ``details["errors"]`` y ``field`` apunta al primero.
    """

    def __init__(
        self,
        message: str,
        field: str,
        invalid_value: Any = None,
        expected_format: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        **kwargs,
    ):
        """
        Inicializa la excepción de validación.

        Args:
            message: Mensaje de error
            field: Campo que falló la validación
            invalid_value: Valor que causó el error
            expected_format: Formato esperado
            errors: Lista estructurada de errores por campo
            **kwargs: Argumentos adicionales para AppException
        """
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=422,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.field = field
        self.invalid_value = invalid_value
        self.expected_format = expected_format
        self.errors = errors or [{"field": field, "message": message}]

        # Agregar detalles específicos
        self.details.update(
            {
                "field": field,
                "invalid_value": str(invalid_value) if invalid_value is not None else None,
                "expected_format": expected_format,
                "errors": self.errors,
            }
        )


class NotFoundException(AppException):
    """
    Excepción para recursos inexistentes (orden, cliente, registro).
    """

    def __init__(self, message: str, resource: str, resource_id: Any, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.NOT_FOUND,
            status_code=404,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.resource = resource
        self.resource_id = resource_id

        self.details.update({"resource": resource, "resource_id": str(resource_id)})


class ConflictException(AppException):
    """
    Excepción para conflictos de concurrencia optimista.
    """

    def __init__(
        self,
        message: str,
        resource_id: Any,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
        **kwargs,
    ):
        """
        Inicializa la excepción de conflicto.

        Args:
            message: Mensaje de error
            resource_id: Identificador del recurso en conflicto
            expected_version: Versión enviada por el cliente
            actual_version: Versión almacenada
            **kwargs: Argumentos adicionales para AppException
        """
        super().__init__(
            message=message,
            error_code=ErrorCode.VERSION_CONFLICT,
            status_code=409,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.resource_id = resource_id
        self.expected_version = expected_version
        self.actual_version = actual_version

        self.details.update(
            {
                "resource_id": str(resource_id),
                "expected_version": expected_version,
                "actual_version": actual_version,
            }
        )


class LockAcquisitionError(AppException):
    """
    Excepción cuando no se puede adquirir un lock dentro del tiempo de espera.
    """

    def __init__(self, message: str, lock_key: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.LOCK_ACQUISITION_FAILED,
            status_code=409,
            severity=ErrorSeverity.MEDIUM,
            is_retryable=True,
            **kwargs,
        )
        self.lock_key = lock_key

        self.details.update({"lock_key": lock_key})


class SyncException(AppException):
    """
    Excepción base para errores de propagación hacia el lado cliente.
    """

    def __init__(
        self,
        message: str,
        operation: str,
        order_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        response_code: Optional[int] = None,
        error_code: ErrorCode = ErrorCode.SYNC_RETRYABLE,
        retry_suggested: bool = True,
        **kwargs,
    ):
        """
        Inicializa la excepción de sincronización.

        Args:
            message: Mensaje de error
            operation: Operación propagada (CREATE, UPDATE, DELETE)
            order_id: Orden afectada
            customer_id: Cliente destino
            response_code: Código HTTP devuelto por el lado remoto
            error_code: Código de error estandardizado
            retry_suggested: Si se sugiere reintentar
            **kwargs: Argumentos adicionales para AppException
        """
        kwargs.setdefault("status_code", 502)
        kwargs.setdefault("severity", ErrorSeverity.MEDIUM)
        super().__init__(
            message=message,
            error_code=error_code,
            is_retryable=retry_suggested,
            **kwargs,
        )

        self.operation = operation
        self.order_id = order_id
        self.customer_id = customer_id
        self.response_code = response_code
        self.retry_suggested = retry_suggested

        self.details.update(
            {
                "operation": operation,
                "order_id": order_id,
                "customer_id": customer_id,
                "response_code": response_code,
                "retry_suggested": retry_suggested,
            }
        )


class RetryableSyncException(SyncException):
    """
    Fallo transitorio (red, timeout, 408, 429, 5xx). Puede reintentarse.
    """

    def __init__(self, message: str, operation: str, timed_out: bool = False, **kwargs):
        super().__init__(
            message=message,
            operation=operation,
            error_code=ErrorCode.SYNC_TIMEOUT if timed_out else ErrorCode.SYNC_RETRYABLE,
            retry_suggested=True,
            **kwargs,
        )
        self.timed_out = timed_out


class PermanentSyncException(SyncException):
    """
    Fallo que no se resuelve reintentando (por ejemplo, cliente inexistente).
    """

    def __init__(self, message: str, operation: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        super().__init__(
            message=message,
            operation=operation,
            error_code=ErrorCode.SYNC_PERMANENT,
            retry_suggested=False,
            **kwargs,
        )


class DivergenceException(AppException):
    """
    Divergencia detectada por el reconciliador entre órdenes y réplicas.
    """

    def __init__(
        self,
        message: str,
        kind: str,
        order_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        repairable: bool = True,
        **kwargs,
    ):
        """
        Inicializa la excepción de divergencia.

        Args:
            message: Mensaje de error
            kind: Tipo de divergencia (missing_replica, stale_replica, orphan_replica, ...)
            order_id: Orden involucrada
            customer_id: Cliente involucrado
            repairable: Si el reconciliador puede repararla automáticamente
            **kwargs: Argumentos adicionales para AppException
        """
        super().__init__(
            message=message,
            error_code=ErrorCode.SYNC_DIVERGENCE,
            status_code=500,
            severity=ErrorSeverity.MEDIUM if repairable else ErrorSeverity.HIGH,
            is_critical=not repairable,
            **kwargs,
        )
        self.kind = kind
        self.order_id = order_id
        self.customer_id = customer_id
        self.repairable = repairable

        self.details.update(
            {
                "kind": kind,
                "order_id": order_id,
                "customer_id": customer_id,
                "repairable": repairable,
            }
        )


# === FUNCIONES DE UTILIDAD ===


def convert_to_app_exception(exception: Exception, context: Optional[Dict[str, Any]] = None) -> AppException:
    """
    Convierte una excepción estándar a AppException.

    Args:
        exception: Excepción a convertir
        context: Contexto adicional

    Returns:
        AppException: Excepción convertida
    """
    if isinstance(exception, AppException):
        return exception

    context = context or {}
    exception_type = type(exception).__name__

    if isinstance(exception, ValueError):
        return ValidationException(
            message=str(exception),
            field=context.get("field", "unknown"),
            invalid_value=context.get("value"),
            details=dict(context),
        )

    # Excepción genérica
    return AppException(
        message=f"{exception_type}: {exception}",
        details={"original_exception": exception_type, **context},
    )


def log_error(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
    level: int = logging.ERROR,
) -> None:
    """
    Loggea un error de manera consistente.

    Args:
        exception: Excepción a loggear
        context: Contexto adicional
        level: Nivel de logging
    """
    context = context or {}

    log_data = {
        "exception_type": type(exception).__name__,
        "exception_message": str(exception),
        **context,
    }

    if isinstance(exception, AppException):
        message = f"{exception.error_code.value}: {exception.message}"
        log_data.update(
            {
                "error_code": exception.error_code.value,
                "severity": exception.severity.value,
                "is_retryable": exception.is_retryable,
                "is_critical": exception.is_critical,
            }
        )
    else:
        message = f"Unhandled exception: {type(exception).__name__}: {str(exception)}"
        log_data["traceback"] = traceback.format_exc()

    logger.log(level, message, extra=log_data)


class ErrorAggregator:
    """
    Agregador de errores para procesos batch (pasadas de reconciliación).
    """

    def __init__(self):
        """Inicializa el agregador."""
        self.errors: List[AppException] = []
        self.warnings: List[AppException] = []
        self.total_processed = 0
        self.start_time = datetime.now(timezone.utc)

    def add_error(self, exception: Union[AppException, Exception], context: Optional[Dict] = None):
        """
        Agrega un error al agregador.

        Args:
            exception: Excepción a agregar
            context: Contexto adicional
        """
        exception = convert_to_app_exception(exception, context)

        if exception.severity in [ErrorSeverity.LOW, ErrorSeverity.MEDIUM]:
            self.warnings.append(exception)
        else:
            self.errors.append(exception)

        # Log inmediato para errores críticos
        if exception.is_critical:
            log_error(exception, context, logging.CRITICAL)
        else:
            log_error(exception, context, logging.WARNING)

    def increment_processed(self, count: int = 1):
        """Incrementa contador de procesados."""
        self.total_processed += count

    def get_summary(self) -> Dict[str, Any]:
        """
        Obtiene resumen de errores.

        Returns:
            Dict: Resumen de errores
        """
        end_time = datetime.now(timezone.utc)
        duration = (end_time - self.start_time).total_seconds()

        return {
            "total_processed": self.total_processed,
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "duration_seconds": duration,
            "start_time": self.start_time.isoformat(),
            "end_time": end_time.isoformat(),
            "errors": [error.to_dict() for error in self.errors],
            "warnings": [warning.to_dict() for warning in self.warnings],
        }
