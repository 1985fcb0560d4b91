"""Tests for logging setup and timing helpers."""
import logging

import pytest

from bigip_onboard.utils.logging_config import (
    get_log_level,
    perf_logger,
    setup_logging,
    timed,
    timed_section,
)


class TestTimedSection:
    """Tests for phase timing."""

    @pytest.mark.asyncio
    async def test_logs_ok(self, caplog):
        with caplog.at_level(logging.INFO, logger=perf_logger.name):
            async with timed_section("system.dns", device_id="task-1"):
                pass
        assert "system.dns" in caplog.text
        assert "task-1" in caplog.text
        assert "| OK" in caplog.text

    @pytest.mark.asyncio
    async def test_logs_failure_and_reraises(self, caplog):
        with caplog.at_level(logging.INFO, logger=perf_logger.name):
            with pytest.raises(ValueError):
                async with timed_section("system.disk", device_id="task-1"):
                    raise ValueError("too small")
        assert "FAIL: too small" in caplog.text


class TestTimed:
    """Tests for the timing decorator."""

    @pytest.mark.asyncio
    async def test_device_id_from_self(self, caplog):
        class Gateway:
            device_id = "bigip1"

            @timed("connect")
            async def connect(self):
                return True

        with caplog.at_level(logging.INFO, logger=perf_logger.name):
            assert await Gateway().connect() is True
        assert "bigip1" in caplog.text

    def test_rejects_sync_functions(self):
        with pytest.raises(TypeError):
            @timed("save")
            def save():
                pass


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture
    def restore_handlers(self):
        loggers = [logging.getLogger(n) for n in ("onboard", "bigip_onboard", perf_logger.name)]
        saved = [(lg, list(lg.handlers), lg.level) for lg in loggers]
        yield
        for lg, handlers, level in saved:
            for handler in lg.handlers:
                if handler not in handlers:
                    handler.close()
            lg.handlers = handlers
            lg.setLevel(level)

    def test_log_level_from_env(self, monkeypatch):
        monkeypatch.setenv("ONBOARD_LOG_LEVEL", "debug")
        assert get_log_level() == logging.DEBUG
        monkeypatch.setenv("ONBOARD_LOG_LEVEL", "nonsense")
        assert get_log_level() == logging.INFO

    def test_writes_log_files(self, tmp_path, monkeypatch, restore_handlers):
        log_file = tmp_path / "logs" / "onboard.log"
        monkeypatch.setenv("ONBOARD_LOG_FILE", str(log_file))
        setup_logging()
        logging.getLogger("bigip_onboard.test").info("hello from test")
        for handler in logging.getLogger("bigip_onboard").handlers:
            handler.flush()
        assert "hello from test" in log_file.read_text()
        assert (tmp_path / "logs" / "onboard-perf.log").exists()
