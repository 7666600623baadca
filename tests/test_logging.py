"""Tests for the structlog helpers."""

from portal.core.logging import bind_context, clear_context, get_logger


class TestGetLogger:
    def test_module_logger_logs_key_values(self, capsys):
        logger = get_logger("portal.services.sync_service")
        logger.info("grades_synced", year=2024, count=3)

        output = capsys.readouterr().out
        assert "grades_synced" in output
        assert "count" in output

    def test_bound_context_included(self, capsys):
        bind_context(request_id="req-1")
        try:
            get_logger("portal.main").info("request_handled")
        finally:
            clear_context()

        assert "request_id" in capsys.readouterr().out
