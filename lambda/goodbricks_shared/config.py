"""
Configuration loading for Lambda handlers.

Configuration is read once at cold start and validated on boot. Keys in the
returned dictionary are the lower-cased environment variable names.
"""

import os
from typing import Dict, Iterable, Optional


OPTIONAL_DEFAULTS = {
    'DEFAULT_FROM_EMAIL': 'noreply@goodbricks.org',
    'SEND_BATCH_DELAY_MS': '100',
    'SEND_CONCURRENCY': '10',
    'METRICS_NAMESPACE': 'GoodBricksEmail',
}


def load_config(
    required_vars: Iterable[str] = ('MAIN_TABLE_NAME',),
    optional_vars: Optional[Dict[str, str]] = None
) -> Dict[str, str]:
    """
    Load and validate environment variables.

    Args:
        required_vars: Variables that must be set and non-empty
        optional_vars: Variables with their default values (default: OPTIONAL_DEFAULTS)

    Returns:
        Configuration dictionary keyed by lower-cased variable name

    Raises:
        ValueError: If any required environment variable is missing
    """
    config: Dict[str, str] = {}
    missing_vars = []

    for var in required_vars:
        value = os.environ.get(var)
        if not value:
            missing_vars.append(var)
        else:
            config[var.lower()] = value

    if missing_vars:
        raise ValueError(
            f"Missing required environment variables: {', '.join(missing_vars)}"
        )

    defaults = OPTIONAL_DEFAULTS if optional_vars is None else optional_vars
    for var, default in defaults.items():
        config[var.lower()] = os.environ.get(var) or default

    return config


def get_int(config: Dict[str, str], key: str, default: int) -> int:
    """
    Read an integer setting, falling back to ``default`` when unset.

    Raises:
        ValueError: If the setting is present but not an integer
    """
    value = config.get(key)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Configuration value '{key}' must be an integer, got {value!r}")
