"""
Configuration management for the session SDK.

Provides validated, immutable configuration with:
- Defaults for every recognized option
- Key-wise merge of nested option tables over the defaults
- JSON file loading
- Environment variable overrides
- Dot-notation access

Configuration is validated once at init() and never mutated afterwards.
Only the user id and attributes change at runtime, through the session.
"""

import copy
import json
import os
import sys
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigurationError
from .privacy import Selector


DEFAULT_MASK_INPUT_OPTIONS = {
    "password": True,
    "email": False,
    "tel": False,
    "text": False,
    "number": False,
    "search": False,
    "url": False,
    "textarea": False,
    "select": False,
}

DEFAULT_RECORDING_OPTIONS = {
    "mousemove": True,
    "mouseInteraction": True,
    "scroll": True,
    "input": True,
    "viewportResize": True,
    "canvas": False,
    "console": True,
    "network": True,
    "mousemoveSampling": 1.0,
    "blockClass": "rr-block",
    "blockSelector": None,
    "maskAllInputs": False,
    "maskInputOptions": DEFAULT_MASK_INPUT_OPTIONS,
    "redactSecrets": True,
}

DEFAULTS = {
    "apiKey": None,
    "endpoint": "http://localhost:8000/ingest",
    "apiKeyHeader": "X-API-Key",
    "uploadInterval": 30000,
    "headers": {},
    "maxRetries": 3,
    "retryDelay": 1000,
    "requestTimeout": 10000,
    "maxBufferSize": None,
    "overflowPolicy": "drop_oldest",
    "failedBatchLog": None,
    "debug": False,
    "recordingOptions": DEFAULT_RECORDING_OPTIONS,
}

OVERFLOW_POLICIES = ("drop_oldest", "drop_newest")

_BOOLEAN_RECORDING_OPTIONS = (
    "mousemove", "mouseInteraction", "scroll", "input", "viewportResize",
    "canvas", "console", "network", "maskAllInputs", "redactSecrets",
)


def _merge_options(target: Dict, source: Mapping):
    """
    Merge source options into target, recursing into nested tables.

    Args:
        target: Dictionary built from the defaults (modified in place)
        source: User-supplied options
    """
    for key, value in source.items():
        if key in target and isinstance(target[key], dict) and isinstance(value, Mapping):
            _merge_options(target[key], value)
        else:
            target[key] = value


def _freeze(value: Any) -> Any:
    """Return a read-only view of nested dictionaries."""
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    return value


def _thaw(value: Any) -> Any:
    """Return a plain, independent copy of a frozen value."""
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    return copy.deepcopy(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _env_flag(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


class SDKConfig:
    """
    Immutable, validated SDK configuration.

    Usage:
        config = SDKConfig({"apiKey": "pk_live_123", "uploadInterval": 10000})

        config.upload_interval            # 10000
        config.get("recordingOptions.maskInputOptions.password")  # True
    """

    def __init__(self, options: Optional[Mapping[str, Any]] = None):
        """
        Merge options over the defaults and validate the result.

        Args:
            options: User-supplied options (camelCase keys)

        Raises:
            ConfigurationError: If apiKey is missing or an option is invalid
        """
        if options is None:
            options = {}
        if not isinstance(options, Mapping):
            raise ConfigurationError("Configuration must be a mapping of options")

        merged = copy.deepcopy(DEFAULTS)
        for key in options:
            if key not in DEFAULTS:
                print(f"Warning: Ignoring unknown configuration option '{key}'",
                      file=sys.stderr)
        _merge_options(merged, {k: v for k, v in options.items() if k in DEFAULTS})

        self._validate(merged)
        self._config = _freeze(merged)

    @classmethod
    def from_file(
        cls,
        config_path: Path,
        overrides: Optional[Mapping[str, Any]] = None
    ) -> "SDKConfig":
        """
        Load configuration from a JSON file.

        Environment variables are applied on top of the file, and explicit
        overrides on top of both.

        Args:
            config_path: Path to a JSON object of options
            overrides: Options that take precedence over file and environment

        Returns:
            Validated SDKConfig

        Raises:
            ConfigurationError: If the file is unreadable or invalid
        """
        config_path = Path(config_path)
        try:
            with open(config_path) as f:
                options = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to load config from {config_path}: {e}") from e

        if not isinstance(options, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a JSON object")

        cls._apply_env_overrides(options)
        if overrides:
            _merge_options(options, overrides)
        return cls(options)

    @classmethod
    def from_env(cls, options: Optional[Mapping[str, Any]] = None) -> "SDKConfig":
        """
        Build configuration from options plus environment overrides.

        Args:
            options: Base options (optional)

        Returns:
            Validated SDKConfig
        """
        merged = copy.deepcopy(dict(options or {}))
        cls._apply_env_overrides(merged)
        return cls(merged)

    @staticmethod
    def _apply_env_overrides(options: Dict[str, Any]):
        """Apply SESSION_SDK_* environment variables to raw options."""
        if "SESSION_SDK_API_KEY" in os.environ:
            options["apiKey"] = os.environ["SESSION_SDK_API_KEY"]

        if "SESSION_SDK_ENDPOINT" in os.environ:
            options["endpoint"] = os.environ["SESSION_SDK_ENDPOINT"]

        # SESSION_SDK_DEBUG=true
        if "SESSION_SDK_DEBUG" in os.environ:
            options["debug"] = _env_flag(os.environ["SESSION_SDK_DEBUG"])

    def _validate(self, config: Dict[str, Any]):
        """
        Check required options, types and ranges.

        Args:
            config: Merged configuration dictionary

        Raises:
            ConfigurationError: On the first invalid option
        """
        api_key = config["apiKey"]
        if not isinstance(api_key, str) or not api_key.strip():
            raise ConfigurationError("apiKey is required")

        if not isinstance(config["endpoint"], str) or not config["endpoint"]:
            raise ConfigurationError("endpoint must be a non-empty string")
        if not isinstance(config["apiKeyHeader"], str) or not config["apiKeyHeader"]:
            raise ConfigurationError("apiKeyHeader must be a non-empty string")

        if not _is_number(config["uploadInterval"]) or config["uploadInterval"] <= 0:
            raise ConfigurationError("uploadInterval must be a positive number of milliseconds")
        if not _is_int(config["maxRetries"]) or config["maxRetries"] < 0:
            raise ConfigurationError("maxRetries must be a non-negative integer")
        if not _is_number(config["retryDelay"]) or config["retryDelay"] < 0:
            raise ConfigurationError("retryDelay must be a non-negative number of milliseconds")
        if not _is_number(config["requestTimeout"]) or config["requestTimeout"] <= 0:
            raise ConfigurationError("requestTimeout must be a positive number of milliseconds")

        headers = config["headers"]
        if not isinstance(headers, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in headers.items()
        ):
            raise ConfigurationError("headers must map strings to strings")

        cap = config["maxBufferSize"]
        if cap is not None and (not _is_int(cap) or cap <= 0):
            raise ConfigurationError("maxBufferSize must be a positive integer or None")
        if config["overflowPolicy"] not in OVERFLOW_POLICIES:
            raise ConfigurationError(
                f"overflowPolicy must be one of {', '.join(OVERFLOW_POLICIES)}"
            )

        log_path = config["failedBatchLog"]
        if log_path is not None and not isinstance(log_path, (str, Path)):
            raise ConfigurationError("failedBatchLog must be a path or None")

        if not isinstance(config["debug"], bool):
            raise ConfigurationError("debug must be a boolean")

        self._validate_recording_options(config["recordingOptions"])

    def _validate_recording_options(self, options: Any):
        """Validate the recordingOptions table."""
        if not isinstance(options, dict):
            raise ConfigurationError("recordingOptions must be a mapping")

        for name in _BOOLEAN_RECORDING_OPTIONS:
            if not isinstance(options.get(name), bool):
                raise ConfigurationError(f"recordingOptions.{name} must be a boolean")

        sampling = options["mousemoveSampling"]
        if not _is_number(sampling) or not 0 <= sampling <= 1:
            raise ConfigurationError("recordingOptions.mousemoveSampling must be between 0 and 1")

        block_class = options["blockClass"]
        if block_class is not None and not isinstance(block_class, str):
            raise ConfigurationError("recordingOptions.blockClass must be a string or None")
        block_selector = options["blockSelector"]
        if block_selector is not None and not isinstance(block_selector, str):
            raise ConfigurationError("recordingOptions.blockSelector must be a string or None")
        if block_selector:
            try:
                Selector(block_selector)
            except ValueError as e:
                raise ConfigurationError(f"recordingOptions.blockSelector: {e}") from e

        mask_options = options["maskInputOptions"]
        if not isinstance(mask_options, dict) or not all(
            isinstance(k, str) and isinstance(v, bool) for k, v in mask_options.items()
        ):
            raise ConfigurationError(
                "recordingOptions.maskInputOptions must map input types to booleans"
            )

    @property
    def api_key(self) -> str:
        return self._config["apiKey"]

    @property
    def endpoint(self) -> str:
        return self._config["endpoint"]

    @property
    def api_key_header(self) -> str:
        return self._config["apiKeyHeader"]

    @property
    def upload_interval(self) -> float:
        """Milliseconds between upload ticks."""
        return self._config["uploadInterval"]

    @property
    def headers(self) -> Mapping[str, str]:
        return self._config["headers"]

    @property
    def max_retries(self) -> int:
        return self._config["maxRetries"]

    @property
    def retry_delay(self) -> float:
        """Fixed delay in milliseconds between delivery attempts."""
        return self._config["retryDelay"]

    @property
    def request_timeout(self) -> float:
        return self._config["requestTimeout"]

    @property
    def max_buffer_size(self) -> Optional[int]:
        return self._config["maxBufferSize"]

    @property
    def overflow_policy(self) -> str:
        return self._config["overflowPolicy"]

    @property
    def failed_batch_log(self) -> Optional[Path]:
        path = self._config["failedBatchLog"]
        return Path(path) if path is not None else None

    @property
    def debug(self) -> bool:
        return self._config["debug"]

    @property
    def recording_options(self) -> Mapping[str, Any]:
        return self._config["recordingOptions"]

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value with dot notation.

        Args:
            key: Configuration key (e.g., "recordingOptions.blockClass")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self._config
        for k in key.split('.'):
            if isinstance(value, Mapping):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    def get_all(self) -> Dict[str, Any]:
        """
        Get the entire configuration as a plain dictionary.

        Returns:
            Independent copy of the configuration
        """
        return _thaw(self._config)

    def __repr__(self) -> str:
        masked = self.api_key[:4] + "***"
        return f"SDKConfig(apiKey={masked!r}, endpoint={self.endpoint!r})"
