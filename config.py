# config.py
import copy
import json
import logging
import os
from decimal import Decimal, InvalidOperation

from errors import ConfigError

logger = logging.getLogger("cashier.config")

DEFAULT_CONFIG = {
    "database": {"name": "pos.db"},
    "sales": {
        # Both 8% and 10% have been used for this register; set per store
        "tax_rate": "0.08",
        "revalidate_stock": False,
    },
    "receipt": {
        "receipt_dir": "receipts",
        "format": "txt",
        "store_name": "POS System",
        "store_lines": ["123 Main Street", "City, State 12345", "Tel: (555) 123-4567"],
    },
    "export": {"default_dir": "exports"},
    "logging": {
        "level": "INFO",
        "file": "logs/pos.log",
        "max_size": 1048576,  # 1MB
        "backup_count": 3,
    },
    "theme": "default",
    "currency": "$",
}


def merge_config(base: dict, override: dict) -> dict:
    """Recursively overlay override on a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def _upgrade(user_config: dict) -> dict:
    """Older config files stored "database" as a bare file name."""
    database = user_config.get("database")
    if database is None or isinstance(database, dict):
        return user_config
    upgraded = dict(user_config)
    if isinstance(database, str) and database.strip():
        upgraded["database"] = {"name": database.strip()}
    else:
        logger.warning("Ignoring invalid database setting %r", database)
        del upgraded["database"]
    return upgraded


def load_config(config_path="config.json"):
    """Load configuration from JSON file or create default if not exists"""
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                user_config = json.load(f)
            if not isinstance(user_config, dict):
                raise ValueError("top level must be an object")
            logger.info("Configuration loaded from %s", config_path)
            return merge_config(DEFAULT_CONFIG, _upgrade(user_config))
        except (OSError, ValueError) as e:
            logger.error("Error loading config %s: %s, using defaults", config_path, e)
            return copy.deepcopy(DEFAULT_CONFIG)

    with open(config_path, 'w', encoding='utf-8') as f:
        json.dump(DEFAULT_CONFIG, f, indent=4)
    logger.info("Created default configuration at %s", config_path)
    return copy.deepcopy(DEFAULT_CONFIG)


def get_tax_rate(config) -> Decimal:
    raw = config.get("sales", {}).get("tax_rate", DEFAULT_CONFIG["sales"]["tax_rate"])
    if isinstance(raw, bool):
        raise ConfigError(f"Invalid tax rate {raw!r}")
    try:
        rate = Decimal(str(raw))
    except InvalidOperation:
        raise ConfigError(f"Invalid tax rate {raw!r}") from None
    if not rate.is_finite() or not (0 <= rate < 1):
        raise ConfigError(f"Tax rate must be between 0 and 1, got {raw!r}")
    return rate
