"""
Process-wide logging for the importer.

Every module logs through `logger` (or `get_logger`) with a bracketed
component tag such as `[Executor]`. Handlers are installed once:

    development  -> readable console lines on stdout
    file logging -> JSON records under <LOG_DIR>/<date>/<HH_MM>/{info,error}_log.log,
                    keeping the newest LOG_FILES_HORIZON runs of the day
"""
import logging
import sys
import threading
from dataclasses import dataclass
from datetime import datetime
from dotenv import load_dotenv
from os import getenv, makedirs, path
from typing import List, Optional
from pythonjsonlogger import jsonlogger

from ..utils.files import clear_latest_items

LOG_FILES_HORIZON = 5
JSON_FIELDS = ("asctime", "levelname", "name", "module", "funcName", "processName", "taskName", "message")
CONSOLE_FORMAT = "%(asctime)s %(levelname)s:%(name)s:%(message)s"

load_dotenv()


@dataclass(frozen=True)
class LogSettings:
    environment: str = "development"
    level: str = "INFO"
    to_file: bool = True
    directory: str = "logs"

    @classmethod
    def from_env(cls) -> "LogSettings":
        environment = getenv("ENVIRONMENT", "development").lower()
        # Test runs never write log files
        to_file = environment != "testing" and getenv("LOG_TO_FILE", "true").lower() == "true"
        return cls(
            environment=environment,
            level=getenv("LOG_LEVEL", "INFO").upper(),
            to_file=to_file,
            directory=getenv("LOG_DIR", "logs"),
        )


def run_log_directory(root: str, now: Optional[datetime] = None) -> str:
    """Create the directory of this run, pruning older runs of the same day."""
    now = now or datetime.now()
    day_path = path.join(root, now.strftime("%Y-%m-%d"))
    if path.exists(day_path):
        clear_latest_items(day_path, LOG_FILES_HORIZON)
    run_path = path.join(day_path, now.strftime("%H_%M"))
    makedirs(run_path, exist_ok=True)
    return run_path


def build_handlers(settings: LogSettings) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []

    if settings.environment == "development":
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        console.setLevel(logging.INFO)
        handlers.append(console)

    if settings.to_file:
        run_path = run_log_directory(settings.directory)
        formatter = jsonlogger.JsonFormatter(" ".join(f"%({name})s" for name in JSON_FIELDS))
        for filename, level in (("error_log.log", logging.ERROR), ("info_log.log", logging.INFO)):
            handler = logging.FileHandler(path.join(run_path, filename), mode="a")
            handler.setFormatter(formatter)
            handler.setLevel(level)
            handlers.append(handler)

    return handlers


_lock = threading.Lock()
_configured = False


def configure_logging(settings: Optional[LogSettings] = None, force: bool = False) -> None:
    """Install the root handlers once; `force` replaces them."""
    global _configured
    with _lock:
        if _configured and not force:
            return
        settings = settings or LogSettings.from_env()
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
        root.setLevel(settings.level)
        for handler in build_handlers(settings):
            root.addHandler(handler)
        _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


configure_logging()

logger = get_logger("contact_loader")
