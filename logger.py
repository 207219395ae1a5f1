# logger.py
import os
import logging
from logging.handlers import RotatingFileHandler

from config import DEFAULT_CONFIG

LOGGER_NAME = "cashier"

FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _level(name) -> int:
    name = str(name).upper()
    return getattr(logging, name) if name in LEVELS else logging.INFO


def _file_handler(log_config, formatter):
    path = log_config["file"]
    log_dir = os.path.dirname(path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=log_config["max_size"],
                                  backupCount=log_config["backup_count"], encoding="utf-8")
    handler.setFormatter(formatter)
    return handler


def setup_logger(config=None):
    """
    Attach a console handler and a rotating file handler to the "cashier"
    logger. Module loggers ("cashier.checkout", ...) propagate to it.
    """
    settings = {**DEFAULT_CONFIG["logging"], **(config or {}).get("logging", {})}

    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(_level(settings["level"]))
    formatter = logging.Formatter(FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    try:
        root.addHandler(_file_handler(settings, formatter))
    except OSError as e:
        root.error("Failed to set up file logging: %s", e)

    return root


def configure_logger(config):
    """Drop existing handlers and rebuild from config."""
    root = logging.getLogger(LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    return setup_logger(config)
