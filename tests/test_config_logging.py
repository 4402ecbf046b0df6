"""
Test suite for configuration and structured logging
"""

import json
import logging

from peer_lending.config import PeerLendingConfig, reload_config, get_config
from peer_lending.logging_config import JSONFormatter, setup_logging, log_action


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestConfig:
    """Test environment-driven configuration"""

    def test_defaults(self):
        config = PeerLendingConfig()
        assert config.api_port == 8090
        assert config.history_limit == 24
        assert config.top_borrowers_limit == 5
        assert config.log_format == "json"

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("PEER_LENDING_DATABASE_URL", "memory://")
        monkeypatch.setenv("PEER_LENDING_HISTORY_LIMIT", "6")

        config = PeerLendingConfig()

        assert config.database_url == "memory://"
        assert config.history_limit == 6

    def test_reload_config(self, monkeypatch):
        monkeypatch.setenv("PEER_LENDING_API_PORT", "9191")

        reloaded = reload_config()

        assert reloaded.api_port == 9191
        assert get_config() is reloaded

        monkeypatch.delenv("PEER_LENDING_API_PORT")
        reload_config()


class TestLogging:
    """Test JSON log output"""

    def test_json_formatter(self):
        record = logging.LogRecord("peer_lending.loans", logging.INFO, __file__, 1,
                                   "Created loan %s", ("loan-1",), None)
        record.action = "create_loan"

        entry = json.loads(JSONFormatter().format(record))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "peer_lending.loans"
        assert entry["message"] == "Created loan loan-1"
        assert entry["action"] == "create_loan"
        assert "resource" not in entry

    def test_log_action_attaches_fields(self):
        logger = logging.getLogger("peer_lending_tests.actions")
        logger.setLevel(logging.INFO)
        handler = ListHandler()
        logger.addHandler(handler)
        try:
            log_action(logger, "info", "Interest collected", action="collect_interest",
                       resource="loan:loan-1", extra={"month_year": "2024-02"})
            log_action(logger, "debug", "Not emitted")
        finally:
            logger.removeHandler(handler)

        assert len(handler.records) == 1
        record = handler.records[0]
        assert record.action == "collect_interest"
        assert record.resource == "loan:loan-1"
        assert record.extra == {"month_year": "2024-02"}

    def test_setup_logging_replaces_handlers(self):
        logger = setup_logging("DEBUG", "text", logger_name="peer_lending_tests.setup")
        logger = setup_logging("WARNING", "json", logger_name="peer_lending_tests.setup")

        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
        assert logger.level == logging.WARNING
        assert logger.propagate is False
