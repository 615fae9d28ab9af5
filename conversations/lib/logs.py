import logging

from . import config

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str | int | None = None) -> None:
    """Configure root logging for the CLI and server processes.

    Library code only ever calls logging.getLogger(__name__); handlers are installed here.
    """
    if level is None:
        level = config.get("log_level", "WARNING")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
