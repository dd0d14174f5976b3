import logging
import sys

from zipshare.config.config import settings


class ColorFormatter(logging.Formatter):
    """Custom formatter that colors records by level."""
    COLORS = {
        logging.DEBUG: "\033[36m",   # Cyan
        logging.INFO: "\033[32m",    # Green
        logging.WARNING: "\033[33m", # Yellow
        logging.ERROR: "\033[31m",   # Red
        logging.CRITICAL: "\033[41m" # Red background
    }

    RESET = "\033[0m"

    def __init__(self, fmt=None, datefmt=None, use_color: bool = True):
        super().__init__(fmt, datefmt)
        self.use_color = use_color

    def format(self, record):
        message = super().format(record)
        if not self.use_color:
            return message
        color = self.COLORS.get(record.levelno, self.RESET)
        return f"{color}{message}{self.RESET}"


def setup_logging(log_level: str | None = None) -> logging.Logger:
    """Attach a single stderr handler to the ``zipshare`` logger.

    Stdout is left alone so the tool surface can share a process with a
    stdio transport. Calling this more than once only updates the level.
    """
    level_name = (log_level or settings.LOG_LEVEL).upper()
    level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger("zipshare")
    logger.setLevel(level)
    logger.propagate = False

    if not any(getattr(h, "_zipshare_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler._zipshare_handler = True
        handler.setFormatter(
            ColorFormatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                use_color=sys.stderr.isatty(),
            )
        )
        logger.addHandler(handler)

    for handler in logger.handlers:
        handler.setLevel(level)

    return logger
