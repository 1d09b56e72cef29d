"""
Configuración centralizada de la aplicación.

Este módulo maneja todas las variables de entorno y configuraciones
de la aplicación usando Pydantic Settings para validación automática.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from app.version import VERSION


class Settings(BaseSettings):
    """
    Configuración de la aplicación usando Pydantic Settings.

    Todas las configuraciones se cargan desde variables de entorno
    con valores por defecto apropiados para desarrollo.
    """

    # === CONFIGURACIÓN BÁSICA DE LA APP ===
    APP_NAME: str = "Order Replica Sync"
    APP_VERSION: str = VERSION
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=True)

    # === CONFIGURACIÓN DEL SERVIDOR ===
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8080)
    WORKERS: int = Field(default=1)
    LOG_LEVEL: str = Field(default="INFO")

    # === CONFIGURACIÓN DE SEGURIDAD ===
    ALLOWED_HOSTS: Optional[List[str]] = Field(default=None)

    # === CONFIGURACIÓN DE REDIS ===
    # Sin REDIS_URL los locks y checkpoints viven en memoria del proceso
    REDIS_URL: Optional[str] = Field(default=None)
    REDIS_SOCKET_TIMEOUT: int = Field(default=5)

    # === CONFIGURACIÓN DEL CLIENTE DE SINCRONIZACIÓN ===
    # "local": réplicas en el mismo proceso; "http": servicio de clientes remoto
    SYNC_CLIENT_MODE: str = Field(default="local")
    CUSTOMER_SERVICE_URL: str = Field(default="http://localhost:8081")
    SYNC_REQUEST_TIMEOUT_SECONDS: float = Field(default=5.0)

    # === CONFIGURACIÓN DE RETRIES ===
    SYNC_MAX_ATTEMPTS: int = Field(default=5)
    SYNC_BASE_DELAY_SECONDS: float = Field(default=0.5)
    SYNC_MAX_DELAY_SECONDS: float = Field(default=30.0)
    SYNC_BACKOFF_FACTOR: float = Field(default=2.0)
    SYNC_RETRY_JITTER: bool = Field(default=True)
    SYNC_RETRY_IN_BACKGROUND: bool = Field(default=True)

    # === CONFIGURACIÓN DE LOCKS ===
    ORDER_LOCK_WAIT_SECONDS: float = Field(default=10.0)
    ORDER_LOCK_TTL_SECONDS: int = Field(default=300)

    # === CONFIGURACIÓN DE RECONCILIACIÓN ===
    ENABLE_SCHEDULED_RECONCILE: bool = Field(default=True)
    RECONCILE_INTERVAL_SECONDS: int = Field(default=300)
    RECONCILE_GRACE_PERIOD_SECONDS: int = Field(default=60)
    RECONCILE_BATCH_SIZE: int = Field(default=100)
    RECONCILE_MAX_DURATION_SECONDS: float = Field(default=120.0)
    RECONCILE_CHECKPOINT_DIR: Optional[str] = Field(default=None)
    SYNC_RECORD_RETENTION_SECONDS: int = Field(default=7 * 24 * 3600)

    # === CONFIGURACIÓN DE LOGGING ===
    LOG_FILE_PATH: Optional[str] = Field(default="logs/app.log")
    LOG_MAX_SIZE_MB: int = Field(default=10)
    LOG_BACKUP_COUNT: int = Field(default=5)

    # === CONFIGURACIÓN DE ALERTAS ===
    ALERT_HISTORY_SIZE: int = Field(default=200)

    # === CONFIGURACIÓN DE DOCUMENTACIÓN ===
    ENABLE_DOCS: bool = Field(default=True)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "allow",  # Permitir valores extra para flexibilidad futura
    }

    @field_validator("ALLOWED_HOSTS", mode="before")
    @classmethod
    def parse_allowed_hosts(cls, v):
        """Parsea ALLOWED_HOSTS como lista separada por comas."""
        if isinstance(v, str):
            return [host.strip() for host in v.split(",") if host.strip()]
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Valida que el nivel de log sea válido."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL debe ser uno de: {valid_levels}")
        return v.upper()

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Valida que el entorno sea válido."""
        valid_envs = ["development", "staging", "production", "testing"]
        if v.lower() not in valid_envs:
            raise ValueError(f"ENVIRONMENT debe ser uno de: {valid_envs}")
        return v.lower()

    @field_validator("SYNC_CLIENT_MODE")
    @classmethod
    def validate_sync_client_mode(cls, v):
        """Valida el modo del cliente de sincronización."""
        valid_modes = ["local", "http"]
        if v.lower() not in valid_modes:
            raise ValueError(f"SYNC_CLIENT_MODE debe ser uno de: {valid_modes}")
        return v.lower()

    @field_validator("SYNC_MAX_ATTEMPTS")
    @classmethod
    def validate_max_attempts(cls, v):
        """El presupuesto de intentos debe permitir al menos un intento."""
        if v < 1:
            raise ValueError("SYNC_MAX_ATTEMPTS debe ser mayor o igual a 1")
        return v

    @field_validator("SYNC_BACKOFF_FACTOR")
    @classmethod
    def validate_backoff_factor(cls, v):
        """Valida que el factor de backoff no reduzca el delay."""
        if v < 1.0:
            raise ValueError("SYNC_BACKOFF_FACTOR debe ser mayor o igual a 1.0")
        return v

    @field_validator("RECONCILE_BATCH_SIZE", "RECONCILE_INTERVAL_SECONDS")
    @classmethod
    def validate_positive(cls, v):
        """Valida valores estrictamente positivos."""
        if v <= 0:
            raise ValueError("El valor debe ser mayor que 0")
        return v

    @field_validator("PORT")
    @classmethod
    def validate_port(cls, v):
        """Valida que el puerto esté en rango válido."""
        if not 1 <= v <= 65535:
            raise ValueError("PORT debe estar entre 1 y 65535")
        return v

    @property
    def is_production(self) -> bool:
        """Verifica si está en entorno de producción."""
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        """Verifica si está en entorno de desarrollo."""
        return self.ENVIRONMENT == "development"

    @property
    def customer_service_base_url(self) -> str:
        """URL base del servicio de clientes sin barra final."""
        return self.CUSTOMER_SERVICE_URL.rstrip("/")


@lru_cache()
def get_settings() -> Settings:
    """
    Obtiene instancia singleton de configuración.

    Usa LRU cache para evitar recrear la configuración
    múltiples veces durante la ejecución.

    Returns:
        Settings: Instancia de configuración
    """
    return Settings()


# Instancia global para uso directo
settings = get_settings()


def reload_settings() -> Settings:
    """
    Recarga la configuración (útil para testing).

    Returns:
        Settings: Nueva instancia de configuración
    """
    get_settings.cache_clear()
    return get_settings()


def get_environment_info() -> dict:
    """
    Obtiene información del entorno actual.

    Returns:
        dict: Información del entorno
    """
    settings = get_settings()

    return {
        "app_name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "debug": settings.DEBUG,
        "is_production": settings.is_production,
        "is_development": settings.is_development,
        "host": settings.HOST,
        "port": settings.PORT,
        "log_level": settings.LOG_LEVEL,
        "features": {
            "scheduled_reconcile": settings.ENABLE_SCHEDULED_RECONCILE,
            "sync_client_mode": settings.SYNC_CLIENT_MODE,
            "retry_in_background": settings.SYNC_RETRY_IN_BACKGROUND,
            "docs": settings.ENABLE_DOCS,
            "redis": bool(settings.REDIS_URL),
        },
    }
