"""
Tests for environment loading, logging setup and CLI argument parsing.
"""

import logging

import pytest

from marketdash import env_loader
from marketdash.logging_config import get_logger, set_level, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestEnvLoader:
    def test_loads_secrets_file(self, tmp_path, monkeypatch):
        # Registered first so teardown removes whatever load_dotenv sets
        monkeypatch.setenv("FRED_API_KEY", "placeholder")
        monkeypatch.delenv("FRED_API_KEY")
        secrets = tmp_path / "secrets.env"
        secrets.write_text("FRED_API_KEY=abc123\n")

        assert env_loader.load_environment_variables(secrets) is True
        assert env_loader.get_api_key("FRED_API_KEY") == "abc123"

    def test_existing_variables_win(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FRED_API_KEY", "from-shell")
        secrets = tmp_path / "secrets.env"
        secrets.write_text("FRED_API_KEY=from-file\n")

        env_loader.load_environment_variables(secrets)
        assert env_loader.get_api_key("FRED_API_KEY") == "from-shell"

    def test_env_file_override(self, tmp_path, monkeypatch):
        """MARKETDASH_ENV_FILE points the loader at another file."""
        monkeypatch.setenv("FRED_API_KEY", "placeholder")
        monkeypatch.delenv("FRED_API_KEY")
        secrets = tmp_path / "other.env"
        secrets.write_text("FRED_API_KEY=from-override\n")
        monkeypatch.setenv(env_loader.ENV_FILE_VAR, str(secrets))

        assert env_loader.load_environment_variables() is True
        assert env_loader.get_api_key("FRED_API_KEY") == "from-override"

    def test_missing_file(self, tmp_path):
        assert env_loader.load_environment_variables(tmp_path / "nope.env") is False

    def test_required_key_missing(self, monkeypatch):
        monkeypatch.delenv("FRED_API_KEY", raising=False)
        assert env_loader.get_api_key("FRED_API_KEY") is None
        with pytest.raises(ValueError):
            env_loader.get_api_key("FRED_API_KEY", required=True)


class TestLogging:
    def test_file_logging(self, tmp_path, restore_root_logger):
        setup_logging(level="DEBUG", log_file="test.log", log_dir=str(tmp_path), console_output=False)
        get_logger("marketdash.test").debug("cache miss: %s", "yield_curve_1m")
        for handler in restore_root_logger.handlers:
            handler.flush()

        content = (tmp_path / "test.log").read_text()
        assert "cache miss: yield_curve_1m" in content
        assert "marketdash.test" in content

    def test_level_from_environment(self, monkeypatch, restore_root_logger):
        monkeypatch.setenv("MARKETDASH_LOG_LEVEL", "WARNING")
        setup_logging(console_output=False)
        assert restore_root_logger.level == logging.WARNING

    def test_set_level(self):
        set_level("ERROR", "marketdash.some.module")
        assert logging.getLogger("marketdash.some.module").level == logging.ERROR
        set_level("NOTSET", "marketdash.some.module")


class TestCli:
    def test_parse_yield_curve(self):
        from main import parse_args

        _, args = parse_args(["--stats", "yield-curve", "--timeframe", "1y", "--refresh"])
        assert args.module == "yield-curve"
        assert args.timeframe == "1y"
        assert args.refresh
        assert args.stats

    def test_parse_quote(self):
        from main import parse_args

        _, args = parse_args(["quote", "^GSPC", "GC=F"])
        assert args.symbols == ["^GSPC", "GC=F"]
        assert not args.refresh

    def test_rejects_unknown_timeframe(self):
        from main import parse_args

        with pytest.raises(SystemExit):
            parse_args(["yield-curve", "--timeframe", "3d"])
