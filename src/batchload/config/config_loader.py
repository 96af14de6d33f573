"""
Configuration loader for batch runs.

Tunables are resolved as: environment variable > config file > built-in default.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from ..core.errors import ValidationError
from .options import Credentials, RunnerConfig, RunOptions


logger = logging.getLogger(__name__)


# Environment variable -> (section, key, type)
ENV_OVERRIDES = {
    "BATCHLOAD_MAX_CONCURRENT": ("runner", "max_concurrent", int),
    "BATCHLOAD_MIN_TIME_MS": ("runner", "min_time_ms", int),
    "BATCHLOAD_MAX_QUEUE_SIZE": ("runner", "max_queue_size", int),
    "BATCHLOAD_JOB_EXPIRATION_MS": ("runner", "job_expiration_ms", int),
    "BATCHLOAD_PROGRESS_INTERVAL_MS": ("runner", "progress_interval_ms", int),
    "BATCHLOAD_STORE_WORKERS": ("runner", "store_workers", int),
    "BATCHLOAD_RESULT_LOG_ITEMS": ("runner", "result_log_items", str),
    "BATCHLOAD_LOGIN_PATH": ("auth", "login_path", str),
    "BATCHLOAD_STORE": ("store", "type", str),
    "BATCHLOAD_DB_PATH": ("store", "db_path", str),
}


class BatchConfig:
    """
    Configuration for the batchload engine.

    Loads a YAML configuration file, merges it over built-in defaults and
    applies environment overrides.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """
        Initialize configuration.

        Args:
            config_path: Path to YAML config file (optional)
            environ: Environment mapping (defaults to os.environ)
        """
        self.config_path = Path(config_path) if config_path else None
        self.environ = os.environ if environ is None else environ
        self.config = self._default_config()
        if self.config_path:
            self._merge(self.config, self._load_config())
        self._apply_env_overrides()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        logger.info(f"Loading config from: {self.config_path}")

        with open(self.config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)

        if config is not None and not isinstance(config, dict):
            raise ValidationError(f"Config file must contain a mapping: {self.config_path}")
        return config or {}

    def _default_config(self) -> Dict[str, Any]:
        """Return default configuration."""
        return {
            "runner": {
                "max_concurrent": 80,
                "min_time_ms": 20,
                "max_queue_size": 50000,
                "job_expiration_ms": 25000,
                "progress_interval_ms": 10000,
                "store_workers": 4,
                "result_log_items": "",
                "success_status_codes": None,
            },
            "request": {
                "base_url": None,
                "endpoint": None,
                "method": None,
                "headers": None,
            },
            "auth": {
                "username": None,
                "password": None,
                "tenant_id": None,
                "access_token": None,
                "login_path": "/api/users/login",
            },
            "store": {
                "type": "sqlite",
                "db_path": "local/state/batchload.db",
                "base_url": None,
            },
            "transport": {
                "timeout": 10,
                "max_attempts": 1,
                "user_agent": None,
            },
            "parser": None,
        }

    def _merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> None:
        """Recursively merge override into base."""
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                self._merge(base[key], value)
            else:
                base[key] = value

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        for env_name, (section, key, cast) in ENV_OVERRIDES.items():
            raw = self.environ.get(env_name)
            if raw is None or raw.strip() == "":
                continue
            try:
                value = cast(raw.strip())
            except ValueError:
                raise ValidationError(f"{env_name} must be of type {cast.__name__}, got '{raw}'")
            self.config.setdefault(section, {})[key] = value
            logger.debug(f"Config override from {env_name}: {section}.{key}")

    def get_runner_config(self) -> RunnerConfig:
        """Build validated runner tunables."""
        runner = self.config.get("runner", {})
        try:
            config = RunnerConfig(
                max_concurrent=int(runner.get("max_concurrent", 80)),
                min_time_ms=int(runner.get("min_time_ms", 20)),
                max_queue_size=int(runner.get("max_queue_size", 50000)),
                job_expiration_ms=int(runner.get("job_expiration_ms", 25000)),
                progress_interval_ms=int(runner.get("progress_interval_ms", 10000)),
                store_workers=int(runner.get("store_workers", 4)),
                result_log_items=parse_result_log_items(runner.get("result_log_items")),
                success_status_codes=(
                    frozenset(int(c) for c in runner["success_status_codes"])
                    if runner.get("success_status_codes") else None
                ),
            )
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid runner configuration: {e}") from e
        config.validate()
        return config

    def get_run_options(self) -> RunOptions:
        """Build run-level request options."""
        request = self.config.get("request", {})
        auth = self.config.get("auth", {})
        headers = request.get("headers")
        if headers is not None and not isinstance(headers, dict):
            raise ValidationError("request.headers must be a mapping")
        return RunOptions(
            base_url=request.get("base_url"),
            endpoint=request.get("endpoint"),
            method=request.get("method"),
            headers=headers,
            credentials=Credentials(
                username=auth.get("username"),
                password=auth.get("password"),
                tenant_id=auth.get("tenant_id"),
                access_token=auth.get("access_token"),
            ),
            login_path=auth.get("login_path") or "/api/users/login",
        )

    def get_store_config(self) -> Dict[str, Any]:
        """Get run store configuration."""
        return self.config.get("store", {})

    def get_transport_config(self) -> Dict[str, Any]:
        """Get transport configuration."""
        return self.config.get("transport", {})

    def get_parser_config(self) -> Optional[Dict[str, Any]]:
        """Get parser configuration."""
        return self.config.get("parser")

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default


def parse_result_log_items(value: Any) -> frozenset:
    """Accept a comma separated string or a list of redaction allow-list items."""
    if not value:
        return frozenset()
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    return frozenset(item.strip() for item in items if item and item.strip())


def parse_headers_env(raw: Optional[str]) -> Optional[Dict[str, str]]:
    """
    Parse headers given in the environment as a JSON object.

    Raises:
        ValidationError: If the value is not a JSON object
    """
    if not raw:
        return None
    try:
        headers = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"BATCHLOAD_HEADERS is not valid JSON: {e}") from e
    if not isinstance(headers, dict):
        raise ValidationError("BATCHLOAD_HEADERS must be a JSON object")
    return {str(k): str(v) for k, v in headers.items()}
