import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv

from impact_ledger.errors import ConfigurationError
from impact_ledger.logger import get_logger

logger = get_logger(__name__)


CONFIG_FILENAME = "config.yaml"

CONFIG_KEYS = (
    "LOG_LEVEL",
    "LOG_DIR",
    "DATA_DIR",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "CLASSIFIER_TIMEOUT",
    "VENDOR_CACHE_VALIDITY_DAYS",
    "HOST",
    "PORT",
)

DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_CLASSIFIER_TIMEOUT = 170.0
DEFAULT_VENDOR_CACHE_VALIDITY_DAYS = 90

_config_path: str | None = None
_config_values: dict[str, str] = {}


def _resolve_dotenv_path() -> str | None:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        candidate = Path(config_dir) / ".env"
        if candidate.exists():
            return str(candidate)
    return find_dotenv(usecwd=True) or None


def _resolve_config_path() -> str:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        return str(Path(config_dir) / CONFIG_FILENAME)
    nested = Path.cwd() / "config" / CONFIG_FILENAME
    if nested.exists():
        return str(nested)
    return str(Path.cwd() / CONFIG_FILENAME)


def read_config_file(path: str | None) -> dict[str, str]:
    """
    Read a flat ``KEY: value`` YAML file. Empty values are skipped so they
    never shadow defaults.

    Raises:
        ConfigurationError: If the file is not valid YAML or not a mapping
    """
    if not path or not os.path.exists(path):
        return {}

    try:
        with open(path, encoding="utf-8") as handle:
            data: Any = yaml.safe_load(handle)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping of settings")

    return {
        str(key): str(value)
        for key, value in data.items()
        if value is not None and str(value).strip()
    }


def load_environment() -> None:
    """
    Populate os.environ from .env and config.yaml. The process environment
    always wins, then .env, then config.yaml.
    """
    global _config_path
    global _config_values

    dotenv_path = _resolve_dotenv_path()
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)

    _config_path = _resolve_config_path()
    _config_values = read_config_file(_config_path)

    for key in CONFIG_KEYS:
        if key not in os.environ and key in _config_values:
            os.environ[key] = _config_values[key]


def get_config_path() -> str | None:
    return _config_path


def ensure_dirs(*paths: str | None) -> None:
    for path in paths:
        if path and path not in {".", "./"}:
            os.makedirs(path, exist_ok=True)


def get_env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("[ENV] %s=%s below minimum %s, using default %s.", name, value, min_value, default)
        return default
    return value


def get_env_float(name: str, default: float, min_value: float | None = None) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("[ENV] %s=%s below minimum %s, using default %s.", name, value, min_value, default)
        return default
    return value


_SENSITIVE_MARKERS = ("KEY", "TOKEN", "SECRET", "PASSWORD")


def mask_value(name: str, value: str) -> str:
    if not any(marker in name.upper() for marker in _SENSITIVE_MARKERS) \
            and not value.startswith(("sk-", "Bearer ")):
        return value
    if len(value) <= 4:
        return "****"
    return f"{value[:2]}...{value[-2:]}"


def log_environment() -> None:
    logger.info("[ENV] Configuration file: %s", _config_path or "<none>")
    for key in CONFIG_KEYS:
        raw_value = os.getenv(key)
        value = "<unset>" if raw_value is None else mask_value(key, raw_value)
        logger.info("[ENV] %s=%s", key, value)


def openai_model() -> str:
    return os.getenv("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL


def classifier_timeout() -> float:
    return get_env_float("CLASSIFIER_TIMEOUT", DEFAULT_CLASSIFIER_TIMEOUT, min_value=1.0)


def vendor_cache_validity_days() -> int:
    return get_env_int(
        "VENDOR_CACHE_VALIDITY_DAYS",
        DEFAULT_VENDOR_CACHE_VALIDITY_DAYS,
        min_value=1,
    )


load_environment()

DATA_DIR = os.getenv("DATA_DIR", ".")
LOG_DIR = os.getenv("LOG_DIR")
CONFIG_DIR = os.getenv("CONFIG_DIR")

ensure_dirs(DATA_DIR, LOG_DIR, CONFIG_DIR)
