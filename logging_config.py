import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that flood DEBUG output during ICE gathering
NOISY_LOGGERS = ("aioice", "aiortc", "aiohttp.access")

_configured_level: Optional[int] = None


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Configure the root logger with a console handler and an optional file handler.

    Safe to call more than once: handlers are installed on the first call only,
    later calls just adjust the level.
    """
    global _configured_level

    level = getattr(logging, str(log_level).upper(), logging.INFO)
    root = logging.getLogger()

    if _configured_level is not None:
        if level != _configured_level:
            root.setLevel(level)
            _configured_level = level
        return

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _configured_level = level


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
