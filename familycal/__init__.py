"""familycal - recurrence, multi-person event and reminder engine for a family calendar.

Imports are kept light at package level; the engines live in
``familycal.domain`` and the collaborators in ``familycal.storage`` and
``familycal.transport``.
"""

__version__ = "0.1.0"

from typing import Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Honors the FAMILYCAL_DEBUG environment variable (truthy values: "1",
    "true", "yes", "on"), which forces DEBUG verbosity.
    """
    import logging
    import os
    import sys

    debug_env = os.environ.get("FAMILYCAL_DEBUG", "")
    if isinstance(debug_env, str) and debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none is present to avoid duplicate output.
    if not root.handlers:
        from colorlog import ColoredFormatter

        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        formatter = ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors)

        handler.setFormatter(formatter)
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )


def run_scheduler(config_path: Optional[str] = None, once: bool = False) -> int:
    """Load configuration and run the notification scheduler.

    Args:
        config_path: Optional YAML/JSON config file
        once: Run a single tick instead of the periodic loop

    Returns:
        Number of notifications sent (always 0 for the periodic loop)
    """
    import asyncio

    from .config_loader import load_config
    from .config_manager import ConfigManager
    from .family_logging import configure_family_logging
    from .runner import run_forever, run_once

    config = load_config(config_path, overrides=ConfigManager().load_overrides())
    _init_logging(config.log_level)
    configure_family_logging(debug_mode=config.log_level == "DEBUG")

    if once:
        return asyncio.run(run_once(config))
    asyncio.run(run_forever(config))
    return 0
