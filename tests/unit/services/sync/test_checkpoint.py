"""Tests unitarios para los checkpoints de la reconciliación."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.services.sync.checkpoint import ReconcileCheckpointManager


class TestReconcileCheckpointManager:
    """Tests para ReconcileCheckpointManager."""

    @pytest.mark.asyncio
    async def test_memory_round_trip(self):
        """Debe guardar, cargar y eliminar el checkpoint en memoria."""
        manager = ReconcileCheckpointManager()

        assert await manager.save_checkpoint("orders", "O42", {"orders_checked": 42})
        checkpoint = await manager.load_checkpoint()
        assert (checkpoint["phase"], checkpoint["cursor"]) == ("orders", "O42")

        await manager.delete_checkpoint()
        assert await manager.load_checkpoint() is None

    @pytest.mark.asyncio
    async def test_file_backup_survives_restart(self, tmp_path):
        """Debe recuperar el checkpoint desde archivo en una nueva instancia."""
        await ReconcileCheckpointManager(checkpoint_dir=str(tmp_path)).save_checkpoint("customers", "C7")

        restored = await ReconcileCheckpointManager(checkpoint_dir=str(tmp_path)).load_checkpoint()

        assert (restored["phase"], restored["cursor"]) == ("customers", "C7")
        assert json.loads((tmp_path / "reconciler.json").read_text())["cursor"] == "C7"

    @pytest.mark.asyncio
    async def test_redis_storage(self):
        """Debe persistir en Redis con TTL y leer desde Redis al reiniciar."""
        redis = MagicMock()
        redis.setex = AsyncMock()
        redis.delete = AsyncMock()
        manager = ReconcileCheckpointManager(redis_client=redis, ttl_seconds=600)

        await manager.save_checkpoint("orders", "O1")

        key, ttl, payload = redis.setex.await_args.args
        assert (key, ttl) == ("sync:checkpoint:reconciler", 600)
        redis.get = AsyncMock(return_value=payload)
        restored = await ReconcileCheckpointManager(redis_client=redis).load_checkpoint()
        assert restored["cursor"] == "O1"

        await manager.delete_checkpoint()
        redis.delete.assert_awaited_once_with("sync:checkpoint:reconciler")

    @pytest.mark.asyncio
    async def test_redis_errors_do_not_propagate(self):
        """Debe reportar False sin lanzar si Redis falla."""
        redis = MagicMock()
        redis.setex = AsyncMock(side_effect=ConnectionError("redis down"))
        manager = ReconcileCheckpointManager(redis_client=redis)

        assert await manager.save_checkpoint("orders", "O1") is False
        assert (await manager.load_checkpoint())["cursor"] == "O1"
