"""Configuration loading for webhook jobs.

Configuration is loaded from config/config.yaml.

Main Functions
--------------

    - load_config(): Load configuration from YAML
    - get_config(): Get or load singleton config instance
    - set_config(): Replace the singleton (tests)
    - reset_config(): Reset singleton config instance

Usage Examples
--------------

    >>> from config import get_config
    >>>
    >>> config = get_config()
    >>> classifier = config.build_classifier()
    >>> classifier.schedule(FailureKind.ENTITY_NOT_FOUND_YET)
    [2.0, 4.0, 8.0, 16.0, 32.0]

Configuration Priority
---------------------

1. Environment variables referenced from YAML (${VAR:-default})
2. YAML configuration file
3. Dataclass defaults
"""

from config.config import (
    WebhookJobsConfig,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    "load_config",
    "get_config",
    "set_config",
    "reset_config",
    "WebhookJobsConfig",
]
