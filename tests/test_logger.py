"""
Tests for logger functionality.
"""

import pytest
from dealscout.logger import StructuredLogger, get_logger, reset_logger


@pytest.fixture
def quiet_logger(tmp_path):
    return StructuredLogger(name="test", log_dir=tmp_path, enable_console=False)


class TestStructuredLogger:
    """Test structured logging functionality."""

    def test_logger_creation(self, quiet_logger):
        assert quiet_logger.logger.name == "test"
        assert quiet_logger.metrics["feedback_recorded"] == 0

    def test_log_methods(self, quiet_logger):
        """All log level methods should work."""
        quiet_logger.debug("Debug message")
        quiet_logger.info("Info message")
        quiet_logger.warning("Warning message")
        quiet_logger.error("Error message")
        quiet_logger.critical("Critical message")

    def test_context_is_serialized(self, tmp_path, quiet_logger):
        quiet_logger.info("Feedback recorded", scope="early", entity_id="per_001")

        content = next(tmp_path.glob("*.log")).read_text(encoding="utf-8")
        assert 'Context: {"scope": "early", "entity_id": "per_001"}' in content

    def test_feedback_metrics(self, quiet_logger):
        quiet_logger.record_feedback()
        quiet_logger.record_feedback(replaced=True)
        quiet_logger.record_pair()

        metrics = quiet_logger.get_metrics()
        assert metrics["feedback_recorded"] == 2
        assert metrics["feedback_replaced"] == 1
        assert metrics["pairs_recorded"] == 1

    def test_sync_metrics(self, quiet_logger):
        quiet_logger.record_sync_attempt("person")
        quiet_logger.record_sync_success("person")

        quiet_logger.record_sync_attempt("company")
        quiet_logger.record_sync_failure("company", "SyncDispatchError")

        metrics = quiet_logger.get_metrics()

        assert metrics["sync_attempts"] == 2
        assert metrics["sync_successes"] == 1
        assert metrics["sync_failures"] == 1
        assert metrics["errors_by_type"]["SyncDispatchError"] == 1

        person = metrics["entity_type_success_rate"]["person"]
        assert person["attempts"] == 1
        assert person["successes"] == 1
        assert person["success_rate"] == 1.0

    def test_success_rate_calculation(self, quiet_logger):
        """3 attempts, 2 successes = 66.7% success rate"""
        for _ in range(3):
            quiet_logger.record_sync_attempt("company")
        quiet_logger.record_sync_success("company")
        quiet_logger.record_sync_success("company")

        rate = quiet_logger.get_metrics()["entity_type_success_rate"]["company"]["success_rate"]
        assert rate == pytest.approx(0.667, rel=0.01)

    def test_metrics_summary(self, tmp_path, quiet_logger):
        quiet_logger.record_feedback()
        quiet_logger.record_sync_attempt("person")
        quiet_logger.log_metrics_summary()

        content = next(tmp_path.glob("*.log")).read_text(encoding="utf-8")
        assert "Session Metrics" in content
        assert "Sync: 0/1 (0.0% success)" in content

    def test_log_file_creation(self, tmp_path, quiet_logger):
        quiet_logger.info("Test message")

        log_files = list(tmp_path.glob("dealscout_*.log"))
        assert len(log_files) == 1
        assert "Test message" in log_files[0].read_text(encoding="utf-8")


class TestGlobalLogger:
    """Test global logger singleton."""

    def test_get_logger_singleton(self, tmp_path):
        reset_logger()

        logger1 = get_logger(log_dir=tmp_path, enable_console=False)
        logger2 = get_logger()

        assert logger1 is logger2

    def test_reset_logger(self, tmp_path):
        reset_logger()

        logger1 = get_logger(log_dir=tmp_path, enable_console=False)
        logger1.record_feedback()

        reset_logger()

        logger2 = get_logger(log_dir=tmp_path, enable_console=False)
        assert logger2 is not logger1
        assert logger2.metrics["feedback_recorded"] == 0

    def test_env_defaults(self, tmp_path, monkeypatch):
        reset_logger()
        monkeypatch.setenv("DEALSCOUT_LOG_LEVEL", "WARNING")
        monkeypatch.setenv("DEALSCOUT_LOG_DIR", str(tmp_path / "env-logs"))

        logger = get_logger(enable_console=False)

        assert logger.logger.level == 30
        assert (tmp_path / "env-logs").is_dir()
        reset_logger()
