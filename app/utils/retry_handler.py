"""
Política de reintentos con backoff exponencial.

El coordinador de sincronización y el reconciliador comparten esta
política: número máximo de intentos, delay base que se duplica en cada
intento, delay máximo y jitter aleatorio.
"""

import logging
import random
from typing import List, Optional, Type

from app.core.config import get_settings
from app.utils.error_handler import AppException, PermanentSyncException, RetryableSyncException

logger = logging.getLogger(__name__)


class RetryPolicy:
    """
    Política de reintentos configurable.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retry_on: Optional[List[Type[Exception]]] = None,
        stop_on: Optional[List[Type[Exception]]] = None,
    ):
        """
        Inicializa la política de reintentos.

        Args:
            max_attempts: Número máximo de intentos (incluye el primero)
            base_delay: Delay base en segundos
            max_delay: Delay máximo en segundos
            exponential_base: Base para backoff exponencial
            jitter: Si agregar jitter aleatorio
            retry_on: Excepciones en las que reintentar
            stop_on: Excepciones que detienen inmediatamente
        """
        if max_attempts < 1:
            raise ValueError("max_attempts debe ser mayor o igual a 1")

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retry_on = retry_on or [AppException]
        self.stop_on = stop_on or []

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """
        Determina si debe reintentar la operación.

        Args:
            exception: Excepción que ocurrió
            attempt: Número de intentos ya realizados

        Returns:
            bool: True si debe reintentar
        """
        # Verificar límite de intentos
        if attempt >= self.max_attempts:
            return False

        # Verificar excepciones que detienen
        for stop_exc in self.stop_on:
            if isinstance(exception, stop_exc):
                return False

        # Verificar excepciones retryables
        if isinstance(exception, AppException):
            return exception.is_retryable

        # Verificar si está en la lista de retry
        for retry_exc in self.retry_on:
            if isinstance(exception, retry_exc):
                return True

        return False

    def calculate_delay(self, attempt: int) -> float:
        """
        Calcula el delay antes del siguiente intento.

        Args:
            attempt: Número de intento que acaba de fallar (1 = primero)

        Returns:
            float: Segundos a esperar
        """
        # Backoff exponencial
        delay = self.base_delay * (self.exponential_base ** (max(attempt, 1) - 1))

        # Limitar delay máximo
        delay = min(delay, self.max_delay)

        # Aplicar jitter
        if self.jitter:
            jitter_range = delay * 0.1
            delay += random.uniform(-jitter_range, jitter_range)

        return max(delay, 0)

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(max_attempts={self.max_attempts}, base_delay={self.base_delay}, "
            f"max_delay={self.max_delay}, exponential_base={self.exponential_base}, jitter={self.jitter})"
        )


def create_sync_retry_policy() -> RetryPolicy:
    """
    Crea la política de reintentos para la propagación de órdenes.

    Returns:
        RetryPolicy: Política configurada desde settings
    """
    settings = get_settings()
    policy = RetryPolicy(
        max_attempts=settings.SYNC_MAX_ATTEMPTS,
        base_delay=settings.SYNC_BASE_DELAY_SECONDS,
        max_delay=settings.SYNC_MAX_DELAY_SECONDS,
        exponential_base=settings.SYNC_BACKOFF_FACTOR,
        jitter=settings.SYNC_RETRY_JITTER,
        retry_on=[RetryableSyncException],
        stop_on=[PermanentSyncException],
    )
    logger.debug(f"Sync retry policy: {policy!r}")
    return policy
