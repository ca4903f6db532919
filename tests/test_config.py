"""
Tests for YAML configuration and environment overrides.
"""

import pydantic
import pytest
from sheetflow.cli import main
from sheetflow.config import (
    RetrySettings,
    SheetflowConfig,
    SyncSettings,
    apply_env,
    config_from_dict,
    load_config,
)
from sheetflow.errors import ConfigError

CONFIG_YAML = """\
sheets:
  rules: https://docs.example.com/rules.csv
  questions: https://docs.example.com/questions.csv
local_dir: csv
timeout: 2.5
retry:
  max_attempts: 5
  base_delay: 0
sync:
"""


class TestLoadConfig:

    def test_defaults(self):
        config = load_config(environ={})
        assert config.urls == {}
        assert config.timeout == 5.0
        assert config.retry == RetrySettings()
        assert config.sync == SyncSettings()
        assert config.url_for("rules") is None

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "sheetflow.yaml"
        path.write_text(CONFIG_YAML, encoding="utf-8")
        config = load_config(str(path), environ={})
        assert config.url_for("rules") == "https://docs.example.com/rules.csv"
        assert config.url_for("phrases") is None
        assert config.local_dir == "csv"
        assert config.cache_dir is None
        assert config.timeout == 2.5
        assert config.retry.max_attempts == 5
        assert config.retry.base_delay == 0
        assert config.retry.max_delay == 10.0
        assert config.sync.interval == 600.0

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(str(tmp_path / "nope.yaml"), environ={})

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("sheets: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(str(path), environ={})

    def test_config_is_frozen(self):
        config = load_config(environ={})
        with pytest.raises(pydantic.ValidationError):
            config.timeout = 1.0


class TestConfigFromDict:

    def test_unknown_sheet(self):
        with pytest.raises(ConfigError, match="Unknown sheet"):
            config_from_dict({"sheets": {"answers": "https://x"}})

    def test_blank_urls_dropped(self):
        config = config_from_dict({"sheets": {"rules": "", "phrases": None}})
        assert config.urls == {}

    def test_root_must_be_mapping(self):
        with pytest.raises(ConfigError):
            config_from_dict(["not", "a", "mapping"])

    @pytest.mark.parametrize(
        "data",
        [
            {"timeout": "soon"},
            {"timeout": -1},
            {"timeout": 0},
            {"retry": 5},
            {"retry": {"max_attempts": "many"}},
            {"retry": {"max_attempts": 0}},
            {"retry": {"base_delay": -1}},
            {"retry": {"max_delay": -2}},
            {"sheets": ["rules"]},
            {"sheets": {"rules": 42}},
            {"sync": {"interval": 0}},
            {"sync": "often"},
        ],
    )
    def test_bad_values(self, data):
        """Should report every malformed setting as ConfigError."""
        with pytest.raises(ConfigError):
            config_from_dict(data)


class TestApplyEnv:

    def test_env_overrides_file(self):
        config = config_from_dict({"sheets": {"rules": "https://file/rules.csv"}})
        config = apply_env(
            config,
            {
                "LOGIC_URL": "https://env/rules.csv",
                "PHRASES_URL": "https://env/phrases.csv",
                "SHEETFLOW_CACHE_DIR": "/tmp/cache",
                "SHEETFLOW_TIMEOUT": "1",
                "SHEETFLOW_MAX_ATTEMPTS": "7",
                "SHEETFLOW_SYNC_INTERVAL": "30",
            },
        )
        assert config.url_for("rules") == "https://env/rules.csv"
        assert config.url_for("phrases") == "https://env/phrases.csv"
        assert config.cache_dir == "/tmp/cache"
        assert config.timeout == 1.0
        assert config.retry.max_attempts == 7
        assert config.sync.interval == 30.0

    def test_original_untouched(self):
        config = SheetflowConfig()
        apply_env(config, {"LOGIC_URL": "https://env/rules.csv"})
        assert config.url_for("rules") is None

    def test_empty_values_ignored(self):
        config = apply_env(SheetflowConfig(), {"LOGIC_URL": "", "SHEETFLOW_TIMEOUT": ""})
        assert config.url_for("rules") is None
        assert config.timeout == 5.0

    def test_bad_env_value(self):
        with pytest.raises(ConfigError, match="SHEETFLOW_MAX_ATTEMPTS"):
            apply_env(SheetflowConfig(), {"SHEETFLOW_MAX_ATTEMPTS": "lots"})

    def test_negative_timeout_from_env(self):
        with pytest.raises(ConfigError, match="SHEETFLOW_TIMEOUT"):
            apply_env(SheetflowConfig(), {"SHEETFLOW_TIMEOUT": "-3"})


def test_cli_reports_bad_section(tmp_path, capsys):
    """A malformed section must exit 2 with a message, not a traceback."""
    path = tmp_path / "sheetflow.yaml"
    path.write_text("retry: 5\n", encoding="utf-8")
    assert main(["fetch", "--config", str(path)]) == 2
    assert "Invalid configuration" in capsys.readouterr().err
