"""Tests for configuration and logging setup."""

import io
import json
import logging

from metascope.config import MetascopeConfig
from metascope.logging_config import default_log_file, setup_logging


class TestMetascopeConfig:
    """Tests for MetascopeConfig."""

    def test_defaults(self) -> None:
        """Test default configuration values."""
        config = MetascopeConfig()
        assert config.environments == []
        assert config.current_environment is None
        assert config.key_mode == "arrows"
        assert config.export_format == "csv"
        assert config.business_unit_policy == "own"
        assert not config.vim_mode

    def test_save_and_load(self, tmp_path) -> None:
        """Test a saved config loads back."""
        path = tmp_path / "config.json"
        config = MetascopeConfig(key_mode="vim", fuzzy_search=True)
        config.add_environment("https://contoso.crm.dynamics.com/")
        config.save(path)

        loaded = MetascopeConfig.load(path)
        assert loaded.vim_mode
        assert loaded.fuzzy_search
        assert loaded.environments == ["https://contoso.crm.dynamics.com"]
        assert loaded.current_environment == "https://contoso.crm.dynamics.com"

    def test_default_path_under_home(self, isolated_home) -> None:
        """Test the config lives in ~/.metascope."""
        assert MetascopeConfig.get_config_path() == isolated_home / ".metascope" / "config.json"
        MetascopeConfig(theme="nord").save()
        assert MetascopeConfig.load().theme == "nord"

    def test_load_missing(self, tmp_path) -> None:
        """Test a missing file gives defaults."""
        assert MetascopeConfig.load(tmp_path / "nope.json") == MetascopeConfig()

    def test_load_invalid(self, tmp_path) -> None:
        """Test invalid JSON gives defaults."""
        path = tmp_path / "config.json"
        path.write_text("{not json")
        assert MetascopeConfig.load(path) == MetascopeConfig()

    def test_load_ignores_unknown_fields(self, tmp_path) -> None:
        """Test fields from other versions are ignored."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"theme": "dracula", "obsolete": 1}))
        assert MetascopeConfig.load(path).theme == "dracula"

    def test_add_environment_once(self) -> None:
        """Test environments are remembered once and become current."""
        config = MetascopeConfig()
        config.add_environment("https://a.crm.dynamics.com")
        config.add_environment("https://b.crm.dynamics.com")
        config.add_environment("https://a.crm.dynamics.com/")
        assert config.environments == ["https://a.crm.dynamics.com", "https://b.crm.dynamics.com"]
        assert config.current_environment == "https://a.crm.dynamics.com"

    def test_remove_environment(self) -> None:
        """Test removing the current environment picks another one."""
        config = MetascopeConfig()
        config.add_environment("https://a.crm.dynamics.com")
        config.add_environment("https://b.crm.dynamics.com")
        assert config.remove_environment("https://b.crm.dynamics.com")
        assert config.current_environment == "https://a.crm.dynamics.com"
        assert not config.remove_environment("https://missing.crm.dynamics.com")

    def test_reset(self) -> None:
        """Test reset restores every default."""
        config = MetascopeConfig(theme="nord", key_mode="vim")
        config.add_environment("https://a.crm.dynamics.com")
        config.reset()
        assert config == MetascopeConfig()


class TestSetupLogging:
    """Tests for the package logger."""

    def test_file_handler(self, tmp_path) -> None:
        """Test records are written to the log file."""
        log_file = tmp_path / "logs" / "metascope.log"
        logger = setup_logging(logging.DEBUG, log_file)
        logging.getLogger("metascope.client").info("hello")
        for handler in logger.handlers:
            handler.flush()
        assert " - metascope.client - INFO - hello" in log_file.read_text(encoding="utf-8")

    def test_no_duplicate_handlers(self, tmp_path) -> None:
        """Test calling setup twice keeps one handler per target."""
        setup_logging(log_file=tmp_path / "a.log")
        logger = setup_logging(log_file=tmp_path / "a.log")
        assert len(logger.handlers) == 1
        assert not logger.propagate

    def test_stream_handler(self, tmp_path) -> None:
        """Test an optional console stream receives records."""
        stream = io.StringIO()
        setup_logging(logging.WARNING, tmp_path / "a.log", stream=stream)
        logging.getLogger("metascope").info("quiet")
        logging.getLogger("metascope").warning("loud")
        assert "loud" in stream.getvalue()
        assert "quiet" not in stream.getvalue()

    def test_default_log_file(self, isolated_home) -> None:
        """Test the default log file lives in ~/.metascope."""
        assert default_log_file() == isolated_home / ".metascope" / "metascope.log"
