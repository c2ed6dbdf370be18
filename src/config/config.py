"""Webhook job configuration from YAML file.

Loads from config/config.yaml with all settings in one place:
- Retry backoff policies (default and per failure kind)
- Worker pool sizing and polling
- Dead-letter and queue persistence paths
- Logging settings

Environment variables ARE supported using ${VAR_NAME} and ${VAR_NAME:-default}
syntax in YAML files.
"""

import json
import logging
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from core.resilience.retry import DEFAULT_BACKOFF, BackoffPolicy, RetryClassifier
from core.types import FailureKind

# Configure module logger
logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
BACKOFF_KEYS = ["base_delay", "multiplier", "max_delay", "max_attempts"]


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


# Default config file: config.yaml shipped beside this module
DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"


@dataclass
class WebhookJobsConfig:
    """Webhook job configuration.

    Configuration structure:
        webhook_jobs:
          retry:
            default: {base_delay, multiplier, max_delay, max_attempts}
            policies:
              <failure_kind>: {...}     # Partial overrides of default
          worker: {concurrency, poll_interval_seconds}
          dead_letter: {path}
          queue: {persistence_file}
          logging: {level, json_format, log_dir}

    All timing values in seconds.
    """

    # =========================================================================
    # RETRY SETTINGS
    # =========================================================================
    retry_default: Dict[str, Any] = field(default_factory=dict)
    retry_policies: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    # =========================================================================
    # WORKER SETTINGS
    # =========================================================================
    worker_concurrency: int = 4
    poll_interval_seconds: float = 1.0

    # =========================================================================
    # STORAGE SETTINGS
    # =========================================================================
    dead_letter_path: str = "dead_letters.jsonl"
    queue_persistence_file: str = ""  # Empty disables delay queue persistence

    # =========================================================================
    # LOGGING SETTINGS
    # =========================================================================
    log_level: str = "INFO"
    json_format: bool = True
    log_dir: str = "logs"

    def get_default_policy(self) -> BackoffPolicy:
        if not self.retry_default:
            return DEFAULT_BACKOFF
        return BackoffPolicy.from_dict(self.retry_default)

    def get_policy(self, kind: FailureKind) -> BackoffPolicy:
        """Get the policy for a failure kind.

        Per-kind settings are merged over the default policy, so a kind may
        override only the keys it cares about.
        """
        override = self.retry_policies.get(kind.value)
        if not override:
            return self.get_default_policy()

        merged = {**self._default_policy_dict(), **override}
        return BackoffPolicy.from_dict(merged)

    def build_classifier(self) -> RetryClassifier:
        """Build a RetryClassifier from the retry section."""
        policies = {
            FailureKind(kind_value): self.get_policy(FailureKind(kind_value))
            for kind_value in self.retry_policies
        }
        return RetryClassifier(default_policy=self.get_default_policy(), policies=policies)

    def _default_policy_dict(self) -> Dict[str, Any]:
        policy = self.get_default_policy()
        return {key: getattr(policy, key) for key in BACKOFF_KEYS}

    def validate(self) -> None:
        """Validate configuration for correctness and constraints."""
        self._validate_backoff_settings(self.retry_default, "retry.default")

        valid_kinds = [kind.value for kind in FailureKind]
        for kind_value, settings in self.retry_policies.items():
            if kind_value not in valid_kinds:
                raise ValueError(
                    f"retry.policies: unknown failure kind '{kind_value}'. "
                    f"Valid kinds: {valid_kinds}"
                )
            context = f"retry.policies.{kind_value}"
            self._validate_backoff_settings(settings, context)
            try:
                self.get_policy(FailureKind(kind_value))
            except ValueError as e:
                raise ValueError(f"{context}: {e}") from e

        if self.retry_default:
            try:
                self.get_default_policy()
            except ValueError as e:
                raise ValueError(f"retry.default: {e}") from e

        worker = {
            "concurrency": self.worker_concurrency,
            "poll_interval_seconds": self.poll_interval_seconds,
        }
        self._validate_range(worker, "concurrency", 1, 100, "worker")
        self._validate_min(worker, "poll_interval_seconds", 0, inclusive=False, context="worker")

        if not self.dead_letter_path:
            raise ValueError("dead_letter: path is required")

        self._validate_enum(
            {"level": self.log_level.upper()}, "level", VALID_LOG_LEVELS, "logging"
        )

    def _validate_backoff_settings(self, settings: Dict[str, Any], context: str) -> None:
        unknown = sorted(set(settings) - set(BACKOFF_KEYS))
        if unknown:
            raise ValueError(f"{context}: unknown keys {unknown}. Valid keys: {BACKOFF_KEYS}")

        self._validate_min(settings, "base_delay", 0, inclusive=False, context=context)
        self._validate_min(settings, "multiplier", 1, inclusive=False, context=context)
        self._validate_min(settings, "max_delay", 0, inclusive=False, context=context)
        self._validate_min(settings, "max_attempts", 0, inclusive=True, context=context)

    @staticmethod
    def _validate_enum(
        settings: Dict[str, Any],
        key: str,
        valid_values: List[Any],
        context: str
    ) -> None:
        """Validate that a setting's value is in a list of valid values."""
        if key in settings and settings[key] not in valid_values:
            raise ValueError(
                f"{context}: {key} must be one of {valid_values}, "
                f"got '{settings[key]}'"
            )

    @staticmethod
    def _validate_min(
        settings: Dict[str, Any],
        key: str,
        min_value: float,
        inclusive: bool,
        context: str
    ) -> None:
        """Validate that a setting's value meets a minimum threshold."""
        if key in settings:
            value = float(settings[key])
            if inclusive and value < min_value:
                raise ValueError(
                    f"{context}: {key} must be >= {min_value}, got {settings[key]}"
                )
            elif not inclusive and value <= min_value:
                raise ValueError(
                    f"{context}: {key} must be > {min_value}, got {settings[key]}"
                )

    @staticmethod
    def _validate_range(
        settings: Dict[str, Any],
        key: str,
        min_value: float,
        max_value: float,
        context: str
    ) -> None:
        """Validate that a setting's value is within a range (inclusive)."""
        if key in settings:
            value = settings[key]
            if not (min_value <= value <= max_value):
                raise ValueError(
                    f"{context}: {key} must be between {min_value} and {max_value}, got {value}"
                )


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _as_bool(value: Any) -> bool:
    # Env expansion leaves booleans as strings
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> WebhookJobsConfig:
    """Load webhook job configuration from config.yaml file.

    Environment variables ARE supported using ${VAR_NAME} syntax in YAML files.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n" f"Expected file: config/config.yaml"
        )

    logger.info("Loading configuration from file: %s", config_path)
    yaml_data = load_yaml(config_path)
    yaml_data = _expand_env_vars(yaml_data)

    if "webhook_jobs" not in yaml_data:
        raise ValueError("Invalid config file: missing 'webhook_jobs:' section")

    jobs_config = yaml_data["webhook_jobs"] or {}

    if overrides:
        logger.debug("Applying overrides: %s", list(overrides.keys()))
        jobs_config = _deep_merge(jobs_config, overrides)

    retry = jobs_config.get("retry", {}) or {}
    worker = jobs_config.get("worker", {}) or {}
    dead_letter = jobs_config.get("dead_letter", {}) or {}
    queue = jobs_config.get("queue", {}) or {}
    logging_settings = jobs_config.get("logging", {}) or {}

    config = WebhookJobsConfig(
        retry_default=dict(retry.get("default", {}) or {}),
        retry_policies={
            str(kind): dict(settings or {})
            for kind, settings in (retry.get("policies", {}) or {}).items()
        },
        worker_concurrency=int(worker.get("concurrency", 4)),
        poll_interval_seconds=float(worker.get("poll_interval_seconds", 1.0)),
        dead_letter_path=str(dead_letter.get("path", "dead_letters.jsonl")),
        queue_persistence_file=str(queue.get("persistence_file", "") or ""),
        log_level=str(logging_settings.get("level", "INFO")),
        json_format=_as_bool(logging_settings.get("json_format", True)),
        log_dir=str(logging_settings.get("log_dir", "logs")),
    )

    logger.debug(
        "Configuration loaded: concurrency=%s, policies=%s",
        config.worker_concurrency,
        sorted(config.retry_policies),
    )

    config.validate()
    logger.debug("Configuration validation passed")

    return config


_jobs_config: Optional[WebhookJobsConfig] = None


def get_config() -> WebhookJobsConfig:
    """Get or load the singleton config instance."""
    global _jobs_config
    if _jobs_config is None:
        _jobs_config = load_config()
    return _jobs_config


def set_config(config: WebhookJobsConfig) -> None:
    """Set the singleton config instance (useful for testing)."""
    global _jobs_config
    _jobs_config = config


def reset_config() -> None:
    """Reset the singleton config instance (forces reload on next get_config() call)."""
    global _jobs_config
    _jobs_config = None


def _cli_main() -> int:
    """CLI entry point for config validation and debugging."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Webhook Jobs Configuration Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Validate configuration
  python -m config.config --validate

  # Show retry schedule per failure kind
  python -m config.config --show-schedule

  # JSON output for automation
  python -m config.config --validate --json
        """,
    )

    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate configuration structure and values",
    )
    parser.add_argument(
        "--show-schedule",
        action="store_true",
        help="Display the retry delay schedule for every failure kind",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.yaml file (default: src/config/config.yaml)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format instead of human-readable",
    )

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    if not args.validate and not args.show_schedule:
        parser.print_help()
        return 0

    try:
        config = load_config(config_path=args.config)
    except FileNotFoundError as e:
        if args.json:
            print(json.dumps({"error": str(e)}))
        else:
            print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        if args.json:
            print(json.dumps({"error": str(e)}))
        else:
            print(f"Validation error: {e}", file=sys.stderr)
        return 1

    output: Dict[str, Any] = {}
    if args.validate:
        # Validation happens during load_config(), if we got here it passed
        if args.json:
            output["validation"] = {"passed": True, "errors": []}
        else:
            print("Configuration validation passed")

    if args.show_schedule:
        classifier = config.build_classifier()
        schedule = {kind.value: classifier.schedule(kind) for kind in FailureKind}
        if args.json:
            output["schedule"] = schedule
        else:
            for kind_value, delays in schedule.items():
                print(f"{kind_value}: {delays}")

    if args.json:
        print(json.dumps(output, indent=2))

    return 0


if __name__ == "__main__":
    sys.exit(_cli_main())
