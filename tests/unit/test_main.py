"""
Unit tests for the main module — composition root.

Tests verify structlog configuration and the wiring logic
without making real HTTP calls or starting threads.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import structlog

from ca_bundle_sync.adapters.events import KubernetesEventRecorder, LoggingEventRecorder
from ca_bundle_sync.config import AppSettings, KubernetesSettings, TrustBundleSettings
from ca_bundle_sync.main import configure_structlog, create_engine, main, start_engine, stop_engine


@pytest.fixture()
def app_settings(tmp_path: Path) -> AppSettings:
    return AppSettings(
        kubernetes=KubernetesSettings(api_url="https://api.test:6443", token_path=tmp_path / "token", ca_path=None),
        trust_bundle=TrustBundleSettings(system_bundle_path=tmp_path / "bundle.pem"),
    )


class TestConfigureStructlog:
    """Verify structlog configuration function."""

    def test_configure_structlog_sets_log_level(self) -> None:
        """
        GIVEN log_level="WARNING"
        WHEN configure_structlog is called
        THEN structlog is configured (no exception raised).
        """
        configure_structlog("WARNING")
        assert structlog.get_logger() is not None

    def test_configure_structlog_invalid_level_falls_back(self) -> None:
        configure_structlog("NONEXISTENT")
        assert structlog.get_logger() is not None


class TestCreateEngine:
    def test_wires_components(self, app_settings: AppSettings) -> None:
        """
        GIVEN valid settings
        WHEN create_engine is called
        THEN it returns an idle engine with three watch targets.
        """
        engine = create_engine(app_settings)

        assert [target.name for target in engine.watch_targets] == ["proxy", "user", "target"]
        assert engine.loop.is_running() is False
        assert engine.loop.cycles == 0

    def test_uses_kubernetes_events_when_enabled(self, app_settings: AppSettings) -> None:
        engine = create_engine(app_settings)

        assert isinstance(engine.reconciler._recorder, KubernetesEventRecorder)

    def test_uses_log_only_events_when_disabled(self, app_settings: AppSettings) -> None:
        engine = create_engine(app_settings.model_copy(update={"record_events": False}))

        assert isinstance(engine.reconciler._recorder, LoggingEventRecorder)

    def test_missing_system_bundle_fails_cycle_not_wiring(self, app_settings: AppSettings) -> None:
        """
        GIVEN a system bundle path that does not exist
        WHEN the engine's reconciler runs once
        THEN the cycle fails with the OS message; no request is sent to the API.
        """
        engine = create_engine(app_settings)

        result = engine.reconciler.reconcile()

        assert result.is_failure()
        assert "No such file or directory" in result.error().message


class TestEngineLifecycle:
    def test_start_and_stop_without_watches(self, app_settings: AppSettings) -> None:
        settings = app_settings.model_copy(update={"watch_enabled": False})
        engine = create_engine(settings)

        start_engine(engine, settings)
        try:
            assert engine.loop.is_running()
            assert engine.watcher.alive() is False
        finally:
            stop_engine(engine)

        assert engine.loop.is_running() is False


class TestMain:
    def test_configuration_error_exits_with_status_1(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """
        GIVEN an invalid cron expression in the environment
        WHEN main() is called
        THEN it exits with status 1 before wiring anything.
        """
        monkeypatch.setenv("SCHEDULER__CRON", "not a cron")

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1

    @patch("ca_bundle_sync.main.create_scheduler")
    @patch("ca_bundle_sync.main.start_engine")
    @patch("ca_bundle_sync.main.create_engine")
    def test_blocks_in_scheduler(
        self,
        mock_create_engine: MagicMock,
        mock_start_engine: MagicMock,
        mock_create_scheduler: MagicMock,
    ) -> None:
        main()

        mock_start_engine.assert_called_once()
        mock_create_scheduler.return_value.start.assert_called_once()
        assert mock_create_scheduler.call_args.kwargs["trigger_fn"] is mock_create_engine.return_value.loop.enqueue
