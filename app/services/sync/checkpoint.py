"""
Sistema de checkpoints para la reconciliación.

Guarda la fase y el último identificador procesado por la pasada de
diferencias, permitiendo reanudar una pasada interrumpida (por límite de
tiempo, reinicio o cancelación) donde se detuvo.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ReconcileCheckpointManager:
    """
    Gestor de checkpoints para la reconciliación.

    Guarda el progreso en Redis cuando hay cliente disponible, siempre en
    memoria del proceso, y opcionalmente en archivo local como respaldo.
    """

    def __init__(
        self,
        checkpoint_id: str = "reconciler",
        redis_client: Any = None,
        checkpoint_dir: Optional[str] = None,
        ttl_seconds: int = 86400,
    ):
        """
        Inicializa el gestor de checkpoints.

        Args:
            checkpoint_id: Identificador del checkpoint
            redis_client: Cliente redis.asyncio opcional
            checkpoint_dir: Directorio para el respaldo en archivo (opcional)
            ttl_seconds: TTL del checkpoint en Redis
        """
        self.checkpoint_id = checkpoint_id
        self.redis_client = redis_client
        self.redis_key = f"sync:checkpoint:{checkpoint_id}"
        self.ttl_seconds = ttl_seconds
        self.checkpoint_file: Optional[Path] = None
        if checkpoint_dir:
            directory = Path(checkpoint_dir)
            directory.mkdir(parents=True, exist_ok=True)
            self.checkpoint_file = directory / f"{checkpoint_id}.json"
        self._memory: Optional[Dict[str, Any]] = None

    async def save_checkpoint(self, phase: str, cursor: Optional[str], stats: Optional[Dict[str, int]] = None) -> bool:
        """
        Guarda un checkpoint del progreso actual.

        Args:
            phase: Fase de la pasada ("orders" o "customers")
            cursor: Último identificador procesado en la fase
            stats: Estadísticas parciales

        Returns:
            True si se guardó exitosamente
        """
        checkpoint_data = {
            "checkpoint_id": self.checkpoint_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "phase": phase,
            "cursor": cursor,
            "stats": stats or {},
        }
        self._memory = checkpoint_data

        try:
            if self.redis_client is not None:
                await self.redis_client.setex(self.redis_key, self.ttl_seconds, json.dumps(checkpoint_data))

            if self.checkpoint_file is not None:
                with open(self.checkpoint_file, "w") as f:
                    json.dump(checkpoint_data, f, indent=2)

            logger.debug(f"💾 Reconcile checkpoint saved: phase={phase} cursor={cursor}")
            return True

        except Exception as e:
            logger.error(f"Error saving reconcile checkpoint: {e}")
            return False

    async def load_checkpoint(self) -> Optional[Dict[str, Any]]:
        """
        Carga el último checkpoint disponible.

        Returns:
            Datos del checkpoint o None si no existe
        """
        if self._memory is not None:
            return dict(self._memory)

        try:
            if self.redis_client is not None:
                data = await self.redis_client.get(self.redis_key)
                if data:
                    checkpoint = json.loads(data)
                    logger.info(f"📂 Reconcile checkpoint loaded from Redis: phase={checkpoint['phase']}")
                    return checkpoint

            if self.checkpoint_file is not None and self.checkpoint_file.exists():
                with open(self.checkpoint_file, "r") as f:
                    checkpoint = json.load(f)
                logger.info(f"📂 Reconcile checkpoint loaded from file: phase={checkpoint['phase']}")
                return checkpoint

        except Exception as e:
            logger.error(f"Error loading reconcile checkpoint: {e}")

        return None

    async def delete_checkpoint(self) -> bool:
        """
        Elimina el checkpoint al completar la pasada.

        Returns:
            True si se eliminó exitosamente
        """
        self._memory = None
        try:
            if self.redis_client is not None:
                await self.redis_client.delete(self.redis_key)

            if self.checkpoint_file is not None and self.checkpoint_file.exists():
                self.checkpoint_file.unlink()

            logger.debug(f"Reconcile checkpoint {self.checkpoint_id} deleted")
            return True

        except Exception as e:
            logger.error(f"Error deleting reconcile checkpoint: {e}")
            return False
