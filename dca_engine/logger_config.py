# logger_config.py

import logging
from colorlog import ColoredFormatter
from logging.handlers import RotatingFileHandler
import os
from rich.console import Console
from rich.table import Table

LOGGER_NAME = "dca_engine"
LOG_FILE_NAME = "dca_engine.log"
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


class RichColoredFormatter(ColoredFormatter):
    """Colour console formatter that also prints rich renderables such as schedule tables."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.console = Console(record=True, width=140)

    def format(self, record):
        if isinstance(record.msg, Table) or hasattr(record.msg, "export_text"):
            self.console.begin_capture()
            self.console.print(record.msg)
            record.msg = "\n" + self.console.end_capture()
            record.args = None
        return super().format(record)


def _log_folder() -> str:
    """DCA_ENGINE_LOG_DIR, else ``logs/`` next to the package."""
    folder = os.environ.get("DCA_ENGINE_LOG_DIR") or os.path.join(os.path.dirname(__file__), "logs")
    os.makedirs(folder, exist_ok=True)
    return folder


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(os.environ.get("DCA_ENGINE_LOG_LEVEL", "INFO").upper())
    handler.setFormatter(RichColoredFormatter("%(log_color)s%(message)s", log_colors=LOG_COLORS))
    return handler


def _file_handler() -> logging.Handler:
    handler = RotatingFileHandler(
        os.path.join(_log_folder(), LOG_FILE_NAME),
        maxBytes=1_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    return handler


logger = logging.getLogger(LOGGER_NAME)
logger.setLevel(logging.DEBUG)
logger.propagate = False

# Re-imports must not stack duplicate handlers
if not logger.handlers:
    logger.addHandler(_console_handler())
    logger.addHandler(_file_handler())
