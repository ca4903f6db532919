"""
Loader configuration.

Read from a YAML file, then overridden by environment variables:

    QUESTIONS_URL, PHRASES_URL, LOGIC_URL
    SHEETFLOW_CACHE_DIR, SHEETFLOW_LOCAL_DIR
    SHEETFLOW_TIMEOUT, SHEETFLOW_MAX_ATTEMPTS, SHEETFLOW_SYNC_INTERVAL

Example file:

    sheets:
      rules: https://docs.example.com/rules.csv
      questions: https://docs.example.com/questions.csv
      phrases: https://docs.example.com/phrases.csv
    local_dir: csv
    cache_dir: .sheetflow-cache
    timeout: 5
    retry:
      max_attempts: 3
      base_delay: 0.5
      max_delay: 10
    sync:
      interval: 600
      backoff_base: 10
      backoff_max: 1800

All settings are validated and frozen after construction; any invalid
value surfaces as ConfigError.
"""

import os
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from sheetflow.errors import ConfigError

SHEET_NAMES = ("rules", "questions", "phrases")

_URL_ENV = {
    "rules": "LOGIC_URL",
    "questions": "QUESTIONS_URL",
    "phrases": "PHRASES_URL",
}


class RetrySettings(BaseModel):
    """
    Backoff for remote sheet fetches.

    max_attempts is the TOTAL number of tries, so 3 means try, retry, retry.
    """

    model_config = {"frozen": True}

    max_attempts: int = Field(default=3, gt=0, description="Total fetch attempts")
    base_delay: float = Field(default=0.5, ge=0, description="Initial backoff delay (seconds)")
    max_delay: float = Field(default=10.0, ge=0, description="Maximum backoff delay (seconds)")


class SyncSettings(BaseModel):
    """Polling and per-sheet failure backoff of `sheetflow sync`."""

    model_config = {"frozen": True}

    interval: float = Field(default=600.0, gt=0, description="Seconds between sync rounds")
    backoff_base: float = Field(default=10.0, ge=0, description="First failure backoff (seconds)")
    backoff_max: float = Field(default=1800.0, ge=0, description="Backoff ceiling (seconds)")


def _section(value: Any) -> Any:
    # an empty YAML section (`retry:`) loads as None
    return {} if value is None else value


class SheetflowConfig(BaseModel):
    """
    Where sheets come from and how hard to try.

    Properties:
        urls: Sheet name (rules, questions, phrases) -> remote CSV URL
        local_dir: Directory holding `<name>.csv` fallbacks (written by sync)
        cache_dir: Directory for the file cache (None keeps the cache in memory)
        timeout: Per-request timeout in seconds
        retry: RetrySettings
        sync: SyncSettings
    """

    model_config = {"frozen": True}

    urls: Dict[str, str] = Field(default_factory=dict)
    local_dir: Optional[str] = None
    cache_dir: Optional[str] = None
    timeout: float = Field(default=5.0, gt=0)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)

    @field_validator("urls", mode="before")
    @classmethod
    def drop_blank_urls(cls, v: Any) -> Any:
        v = _section(v)
        if isinstance(v, Mapping):
            return {k: v2 for k, v2 in v.items() if v2}
        return v

    @field_validator("urls")
    @classmethod
    def validate_sheet_names(cls, v: Dict[str, str]) -> Dict[str, str]:
        unknown = set(v) - set(SHEET_NAMES)
        if unknown:
            raise ValueError(f"Unknown sheet names: {sorted(unknown)}")
        return v

    @field_validator("retry", "sync", mode="before")
    @classmethod
    def empty_section(cls, v: Any) -> Any:
        return _section(v)

    def url_for(self, name: str) -> Optional[str]:
        return self.urls.get(name) or None


def _validate(payload: Mapping[str, Any], source: str) -> SheetflowConfig:
    try:
        return SheetflowConfig.model_validate(payload)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration ({source}): {e}")


def config_from_dict(data: Optional[Mapping[str, Any]]) -> SheetflowConfig:
    """Build a config from the parsed YAML document (`sheets` holds the URLs)."""
    data = data or {}
    if not isinstance(data, Mapping):
        raise ConfigError("Config root must be a mapping")
    payload = dict(data)
    if "sheets" in payload:
        payload["urls"] = payload.pop("sheets")
    return _validate(payload, "config file")


def apply_env(config: SheetflowConfig, environ: Optional[Mapping[str, str]] = None) -> SheetflowConfig:
    """Return a copy of `config` with environment overrides applied."""
    env = os.environ if environ is None else environ
    payload = config.model_dump()
    used = []

    for name, var in _URL_ENV.items():
        if env.get(var):
            payload["urls"][name] = env[var]
            used.append(var)
    for key, var in (
        ("cache_dir", "SHEETFLOW_CACHE_DIR"),
        ("local_dir", "SHEETFLOW_LOCAL_DIR"),
        ("timeout", "SHEETFLOW_TIMEOUT"),
    ):
        if env.get(var):
            payload[key] = env[var]
            used.append(var)
    if env.get("SHEETFLOW_MAX_ATTEMPTS"):
        payload["retry"]["max_attempts"] = env["SHEETFLOW_MAX_ATTEMPTS"]
        used.append("SHEETFLOW_MAX_ATTEMPTS")
    if env.get("SHEETFLOW_SYNC_INTERVAL"):
        payload["sync"]["interval"] = env["SHEETFLOW_SYNC_INTERVAL"]
        used.append("SHEETFLOW_SYNC_INTERVAL")

    if not used:
        return config
    return _validate(payload, "environment: " + ", ".join(used))


def load_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SheetflowConfig:
    """
    Load configuration.

    Args:
        path: YAML file; None starts from defaults
        environ: Environment to read overrides from (os.environ when None)

    Raises:
        ConfigError: If the file is missing, not YAML, or has invalid values
    """
    data = None
    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigError(f"Config file not found: {path}")
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}")
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")
    return apply_env(config_from_dict(data), environ)


__all__ = [
    "SheetflowConfig",
    "RetrySettings",
    "SyncSettings",
    "load_config",
    "config_from_dict",
    "apply_env",
    "SHEET_NAMES",
]
