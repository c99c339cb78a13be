"""
Central logging configuration for familycal.

Keeps familycal's own loggers at the requested verbosity while quieting
chatty third-party libraries.
"""

import logging
import os
from typing import Optional

FAMILYCAL_MODULES = [
    "familycal",
    "familycal.domain.recurrence",
    "familycal.domain.synchronizer",
    "familycal.domain.notification_scheduler",
    "familycal.domain.notification_flags",
    "familycal.storage",
    "familycal.transport",
]

THIRD_PARTY_LEVELS: dict[str, int] = {
    "httpx": logging.WARNING,  # HTTP client request logs
    "httpcore": logging.WARNING,  # Connection pool logs
    "asyncio": logging.WARNING,  # Event loop debug logs
}


def configure_family_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for familycal.

    Args:
        debug_mode: Whether to enable debug logging for familycal modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        FAMILYCAL_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        FAMILYCAL_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("FAMILYCAL_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("FAMILYCAL_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] %(levelname)s - %(name)s - %(message)s")
        )
        root_logger.addHandler(handler)

    for logger_name, level in THIRD_PARTY_LEVELS.items():
        logging.getLogger(logger_name).setLevel(level)

    family_level = logging.DEBUG if final_debug else logging.INFO
    for module in FAMILYCAL_MODULES:
        logging.getLogger(module).setLevel(family_level)

    logging.getLogger("familycal").debug(
        "familycal logging configured: debug=%s root=%s",
        final_debug,
        logging.getLevelName(root_level),
    )


def get_logging_status() -> dict[str, str]:
    """Return the effective level name of every familycal and third-party logger."""
    names = [*FAMILYCAL_MODULES, *THIRD_PARTY_LEVELS]
    return {name: logging.getLevelName(logging.getLogger(name).getEffectiveLevel()) for name in names}
