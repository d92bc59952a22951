# logging_config.py
"""
Logging for the debate bridge.

Everything logs under the ``agora`` logger tree. setup_logging() configures
that tree once (rotating file + console). Per-agent output goes through
agent_logger(), which tags every line with the agent's name, and page
console messages from each chat tab are forwarded to ``agora.console``.
"""
import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, Optional

ROOT_LOGGER = "agora"

# Third-party loggers that are chatty at INFO.
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")

FILE_FORMAT = "%(asctime)s | %(name)s | %(levelname)8s | %(filename)s:%(lineno)d | %(message)s"
CONSOLE_FORMAT = "%(asctime)s | %(levelname)8s | %(message)s"


def setup_logging(
    log_level: Optional[str] = None,
    log_dir: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the ``agora`` logger tree for a debate run.

    Args:
        log_level: Console level; defaults to $LOG_LEVEL or INFO
        log_dir: Directory for the rotating log file, defaults to $LOG_DIR or ./logs
        max_bytes: Size of one log file before rotation
        backup_count: Rotated files to keep

    Returns:
        The ``agora`` logger
    """
    level_name = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_path = Path(log_dir or os.getenv("LOG_DIR", "logs"))
    log_path.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()

    log_file = log_path / f"{ROOT_LOGGER}_{datetime.now().strftime('%Y%m%d')}.log"
    file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)  # File gets everything, console chatter included
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, level_name, logging.INFO))
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    logger.addHandler(console_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("=" * 80)
    logger.info(f"Logging initialized (console {level_name}, file {log_file})")
    logger.info("=" * 80)
    return logger


class AgentLogAdapter(logging.LoggerAdapter):
    """Prefixes each message with ``[<agent>]`` so both tabs can share one log."""

    def process(self, msg, kwargs):
        return f"[{self.extra['agent']}] {msg}", kwargs


def agent_logger(component: str, agent: str) -> AgentLogAdapter:
    """Logger for one agent inside a component, e.g. agent_logger("bridge", "Claude")."""
    return AgentLogAdapter(logging.getLogger(f"{ROOT_LOGGER}.{component}"), {"agent": agent or "?"})


def console_forwarder(agent: str) -> Callable[[str], None]:
    """Callback that records a tab's console output at DEBUG."""
    log = agent_logger("console", agent)

    def forward(text: str) -> None:
        log.debug(f"console: {text}")

    return forward


def log_exception(logger, exc: Exception, context: str = "") -> None:
    """Error line with the exception type; the traceback goes to DEBUG (file only)."""
    where = f" in {context}" if context else ""
    logger.error(f"❌ Exception{where}: {type(exc).__name__}: {exc}")
    logger.debug("Full traceback:", exc_info=exc)


def log_api_call(logger, method: str, url: str, status_code: Optional[int] = None,
                 duration: Optional[float] = None) -> None:
    """One line per HTTP call (the CDP endpoint probe); failures at WARNING."""
    msg = f"{method} {url}"
    if status_code is not None:
        msg += f" -> {status_code}"
    if duration is not None:
        msg += f" ({duration:.2f}s)"

    if status_code and status_code >= 400:
        logger.warning(f"API call failed: {msg}")
    else:
        logger.debug(f"API call: {msg}")
