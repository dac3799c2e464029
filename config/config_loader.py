"""
config_loader.py
-----------------
Singleton config loader. Reads config.yaml once and caches it.
All modules access configuration through this — never hardcoded values.
"""

import os
import yaml
from typing import Any, Dict


_CONFIG_CACHE: Dict[str, Any] = {}


def load_config(config_path: str | None = None) -> Dict[str, Any]:
    """
    Load and cache the YAML configuration file.

    Args:
        config_path: Path to config.yaml. Defaults to config/ relative to this file.

    Returns:
        Full config dictionary.
    """
    global _CONFIG_CACHE

    if _CONFIG_CACHE:
        return _CONFIG_CACHE

    if config_path is None:
        config_path = os.path.join(os.path.dirname(__file__), "config.yaml")

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        _CONFIG_CACHE = yaml.safe_load(f)

    return _CONFIG_CACHE


def get_section(name: str) -> Dict[str, Any]:
    """
    Returns a top-level config section.

    Raises:
        KeyError: If the section is not in the config.
    """
    config = load_config()
    if name not in config:
        raise KeyError(
            f"No config section '{name}'. "
            f"Available: {list(config.keys())}"
        )
    return config[name]


def get_subscription_detection_config() -> Dict[str, Any]:
    """Returns the subscription_detection block."""
    return get_section("subscription_detection")


def get_forecast_config() -> Dict[str, Any]:
    """Returns the forecast block."""
    return get_section("forecast")


def get_csv_import_config() -> Dict[str, Any]:
    """Returns the csv_import block."""
    return get_section("csv_import")


def get_normalization_config() -> Dict[str, Any]:
    """Returns the normalization block (date formats, currency symbols)."""
    return get_section("normalization")


def get_category_config() -> Dict[str, Any]:
    """Returns the categories block: label sets, keyword tables, groups."""
    return get_section("categories")


def get_spending_insights_config() -> Dict[str, Any]:
    return get_section("spending_insights")


def reset_config() -> None:
    """Clears cached config. Useful for testing."""
    global _CONFIG_CACHE
    _CONFIG_CACHE = {}
