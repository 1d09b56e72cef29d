"""
Configuración avanzada del sistema de logging.

Este módulo configura un sistema de logging robusto con:
- Múltiples handlers (consola, archivo, rotación)
- Formateo personalizado con colores
- Logging estructurado en JSON para monitoreo
- Contexto por request y por operación de sincronización
"""

import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from app.core.config import get_settings

# Contexto propagado a cada LogRecord
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_log_context_var: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

_STANDARD_RECORD_FIELDS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "message",
    "taskName",
}


class ColoredFormatter(logging.Formatter):
    """
    Formatter personalizado que agrega colores a los logs en consola.
    """

    # Códigos de color ANSI
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Verde
        "WARNING": "\033[33m",  # Amarillo
        "ERROR": "\033[31m",  # Rojo
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",  # Reset
    }

    def format(self, record):
        """
        Formatea el record con colores si es para consola.

        Args:
            record: LogRecord a formatear

        Returns:
            str: Mensaje formateado con colores
        """
        formatted = super().format(record)

        # Agregar color solo si es TTY (terminal)
        if hasattr(sys.stderr, "isatty") and sys.stderr.isatty():
            color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
            reset = self.COLORS["RESET"]
            formatted = formatted.replace(record.levelname, f"{color}{record.levelname}{reset}", 1)

        return formatted


class StructuredFormatter(logging.Formatter):
    """
    Formatter para logging estructurado en JSON.
    Útil para sistemas de monitoreo como ELK Stack.
    """

    def format(self, record):
        """
        Formatea el record como JSON estructurado.

        Args:
            record: LogRecord a formatear

        Returns:
            str: Mensaje en formato JSON
        """
        settings = get_settings()

        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process": record.process,
            "app_name": settings.APP_NAME,
            "app_version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
        }

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        extra_fields = {
            key: value for key, value in record.__dict__.items() if key not in _STANDARD_RECORD_FIELDS
        }
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class RequestContextFilter(logging.Filter):
    """
    Filtro que agrega el request id y el contexto de LogContext a los logs.
    """

    def filter(self, record):
        request_id = request_id_var.get()
        if request_id and not hasattr(record, "request_id"):
            record.request_id = request_id

        for key, value in _log_context_var.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)

        return True


class SyncOperationFilter(logging.Filter):
    """
    Filtro específico para operaciones de sincronización.
    """

    def filter(self, record):
        # Marcar logs relacionados con sincronización
        if "sync" in record.name.lower() or "reconcil" in record.name.lower():
            record.operation_type = "sync"

            if not hasattr(record, "sync_timestamp"):
                record.sync_timestamp = datetime.now(timezone.utc).isoformat()

        return True


def setup_logging() -> None:
    """
    Configura el sistema de logging completo de la aplicación.
    """
    settings = get_settings()

    # Crear directorio de logs si no existe
    if settings.LOG_FILE_PATH:
        log_dir = Path(settings.LOG_FILE_PATH).parent
        log_dir.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(get_logging_configuration())

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL))

    configure_specific_loggers()

    logger = logging.getLogger(__name__)
    logger.info(f"Sistema de logging configurado - Nivel: {settings.LOG_LEVEL}")
    if settings.LOG_FILE_PATH:
        logger.info(f"Logs guardándose en: {settings.LOG_FILE_PATH}")


def get_logging_configuration() -> Dict[str, Any]:
    """
    Genera configuración completa de logging.

    Returns:
        Dict: Configuración de logging
    """
    settings = get_settings()

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_context": {"()": RequestContextFilter},
            "sync_operation": {"()": SyncOperationFilter},
        },
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": ("%(asctime)s - %(name)s - %(levelname)s - %(module)s.%(funcName)s:%(lineno)d - %(message)s"),
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "colored": {
                "()": ColoredFormatter,
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {"()": StructuredFormatter},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": settings.LOG_LEVEL,
                "formatter": "colored" if settings.DEBUG else "standard",
                "filters": ["request_context", "sync_operation"],
                "stream": "ext://sys.stdout",
            }
        },
        "loggers": {
            "uvicorn.access": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn.error": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {"level": settings.LOG_LEVEL, "handlers": ["console"]},
    }

    if settings.LOG_FILE_PATH:
        max_bytes = settings.LOG_MAX_SIZE_MB * 1024 * 1024

        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": settings.LOG_LEVEL,
            "formatter": "detailed",
            "filters": ["request_context", "sync_operation"],
            "filename": settings.LOG_FILE_PATH,
            "maxBytes": max_bytes,
            "backupCount": settings.LOG_BACKUP_COUNT,
            "encoding": "utf-8",
        }

        # Handler de errores separado
        config["handlers"]["error_file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "ERROR",
            "formatter": "detailed",
            "filters": ["request_context"],
            "filename": settings.LOG_FILE_PATH.replace(".log", "_errors.log"),
            "maxBytes": max_bytes,
            "backupCount": settings.LOG_BACKUP_COUNT,
            "encoding": "utf-8",
        }

        # Handler JSON para monitoreo
        if settings.is_production:
            config["handlers"]["json_file"] = {
                "class": "logging.handlers.RotatingFileHandler",
                "level": "INFO",
                "formatter": "json",
                "filters": ["request_context", "sync_operation"],
                "filename": settings.LOG_FILE_PATH.replace(".log", ".json"),
                "maxBytes": max_bytes,
                "backupCount": settings.LOG_BACKUP_COUNT,
                "encoding": "utf-8",
            }
            config["root"]["handlers"].append("json_file")

        config["root"]["handlers"].extend(["file", "error_file"])

    return config


def configure_specific_loggers() -> None:
    """
    Configura loggers específicos para diferentes módulos.
    """
    settings = get_settings()

    # Logger para sincronización y reconciliación
    logging.getLogger("app.services.sync").setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    # Logger para APIs
    logging.getLogger("app.api").setLevel(logging.INFO)

    # Logger para base de datos
    logging.getLogger("app.db").setLevel(logging.INFO if settings.DEBUG else logging.WARNING)

    # Reducir verbosidad de librerías externas
    for logger_name in ["httpx", "aiohttp.access", "aiohttp.client", "redis"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def log_sync_operation(operation: str, order_id: str, status: str, **kwargs):
    """
    Logger específico para operaciones de sincronización.

    Args:
        operation: Operación propagada (CREATE, UPDATE, DELETE)
        order_id: Orden involucrada
        status: Estado resultante del SyncRecord
        **kwargs: Datos adicionales (epoch, attempts, duration, error...)
    """
    logger = logging.getLogger("app.services.sync.operation")

    extra_data = {
        "sync_operation": operation,
        "order_id": order_id,
        "sync_status": status,
        "sync_timestamp": datetime.now(timezone.utc).isoformat(),
        **kwargs,
    }

    level = logging.WARNING if status in ("FAILED", "EXHAUSTED") else logging.INFO
    logger.log(level, f"Sync operation: {operation} order {order_id} -> {status}", extra=extra_data)


class LogContext:
    """
    Context manager para agregar contexto temporal a los logs.

    Seguro con asyncio: el contexto vive en una ContextVar, cada tarea ve
    solo el suyo.

    Example:
        ```python
        with LogContext(order_id=order.id, epoch=record.epoch):
            logger.info("Propagating")  # el record incluye order_id y epoch
        ```
    """

    def __init__(self, **context):
        self.context = context
        self._token = None

    def __enter__(self):
        merged = {**_log_context_var.get(), **self.context}
        self._token = _log_context_var.set(merged)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _log_context_var.reset(self._token)
