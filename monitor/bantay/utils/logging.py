import logging
import sys
import os
from pathlib import Path
from rich.logging import RichHandler

def setup_logging(log_level: str = "INFO", log_file: Path = None):
    """
    Route the bantay.* loggers to a Rich console, or to plain stderr when
    NO_RICH_LOGGING is set, and optionally to a log file as well.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    if os.environ.get("NO_RICH_LOGGING"):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        handlers = [handler]
    else:
        handlers = [RichHandler(rich_tracebacks=True, markup=False)]

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        datefmt="%H:%M:%S",
        handlers=handlers,
        force=True,
    )

    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

def get_logger(name: str):
    return logging.getLogger(f"bantay.{name}")
