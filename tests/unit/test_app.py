import logging

import pytest

from src.app import WebhookApplication, create_app
from src.config import DeliverySettings


pytestmark = pytest.mark.unit


class TestWiring:
    def test_components_share_one_store(self):
        app = WebhookApplication()
        assert app.registry.store is app.store
        assert app.executor.store is app.store
        assert app.scheduler.store is app.store
        assert app.replay.store is app.store

    def test_settings_flow_into_components(self):
        app = WebhookApplication(DeliverySettings(
            max_attempts=3, request_timeout_seconds=2, retry_batch_size=7, retry_poll_interval_seconds=1,
        ))
        assert app.policy.max_attempts == 3
        assert app.executor.timeout_seconds == 2
        assert app.scheduler.batch_size == 7
        assert app.scheduler.interval_seconds == 1

    def test_invalid_settings_rejected(self):
        with pytest.raises(ValueError):
            WebhookApplication(DeliverySettings(max_attempts=0))

    def test_context_manager_starts_and_stops(self):
        with WebhookApplication() as app:
            assert app.engine.is_running
            assert app.scheduler.is_running
        assert not app.engine.is_running
        assert not app.scheduler.is_running

    def test_create_app_reads_environment(self, monkeypatch):
        monkeypatch.setenv("WEBHOOK_MAX_ATTEMPTS", "2")
        app = create_app()
        assert app.policy.max_attempts == 2
        assert app.settings.data_dir is None

    def test_stop_logs_recent_delivery_summary(self, caplog):
        app = WebhookApplication()
        app.metrics.record_success("deal_created")
        app.metrics.record_failure("deal_created")

        with caplog.at_level(logging.INFO, logger="src.app"):
            app.stop()

        assert "2 attempts, 1 failed (50.0%)" in caplog.text
