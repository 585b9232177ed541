"""Process-wide logging setup for entry points (CLI, job worker)."""
import logging
import sys
from typing import Optional

from prospector.core.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    # aiohttp access noise
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
