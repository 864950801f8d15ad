"""Logging setup shared by the API and the command line entry points."""

import logging

from intake.shared.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings.

    Args:
        settings: Application settings (uses log_level)
    """
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    logging.getLogger("intake").setLevel(settings.log_level)
    # httpx logs one INFO line per request
    logging.getLogger("httpx").setLevel(logging.WARNING)
