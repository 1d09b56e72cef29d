"""Tests unitarios para el scheduler de reconciliación."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core import scheduler


def _reconciler(report=None) -> MagicMock:
    reconciler = MagicMock()
    reconciler.run_once = AsyncMock(return_value=report or {"completed": True})
    reconciler.is_running = False
    return reconciler


class TestManualTrigger:
    """Tests para la reconciliación manual."""

    @pytest.mark.asyncio
    async def test_manual_trigger_runs_reconciler(self):
        """Debe ejecutar una pasada y actualizar el estado del scheduler."""
        reconciler = _reconciler({"completed": True, "repairs": 2})
        runs_before = scheduler.get_scheduler_status()["runs"]

        report = await scheduler.manual_reconcile_trigger(reconciler)

        assert report["repairs"] == 2
        reconciler.run_once.assert_awaited_once()
        status = scheduler.get_scheduler_status()
        assert status["runs"] == runs_before + 1
        assert status["last_run_at"] is not None
        assert status["last_run_error"] is None


class TestSchedulerLifecycle:
    """Tests para el inicio y la detención del scheduler."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        """Debe iniciar la tarea periódica y detenerla limpiamente."""
        await scheduler.start_scheduler(_reconciler(), interval_seconds=3600)
        try:
            status = scheduler.get_scheduler_status()
            assert status["running"] is True
            assert status["task_active"] is True
            assert status["interval_seconds"] == 3600
            assert status["next_run_estimate"] is not None
        finally:
            await scheduler.stop_scheduler()

        status = scheduler.get_scheduler_status()
        assert status["running"] is False
        assert status["task_active"] is False
        assert status["next_run_estimate"] is None

    def test_update_interval_bounds(self):
        """Debe aceptar intervalos entre 1 segundo y 1 día."""
        assert scheduler.update_reconcile_interval(600) is True
        assert scheduler.update_reconcile_interval(0) is False
        assert scheduler.update_reconcile_interval(90000) is False
