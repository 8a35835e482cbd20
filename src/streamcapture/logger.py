"""
Logging for Stream Capture.

Console lines carry the channel and the component that logged them; the
rotating log file additionally carries the session id, so the lines of one
broadcast can be grepped out of a long-running capture.
"""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

ROOT_LOGGER = 'stream_capture'


class Colors:
    RESET = "\033[0m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    GRAY = "\033[90m"


def component_of(record: logging.LogRecord) -> str:
    """'stream_capture.poller' -> 'poller'; the root logger maps to ''."""
    if record.name == ROOT_LOGGER:
        return ''
    return record.name[len(ROOT_LOGGER) + 1:] if record.name.startswith(ROOT_LOGGER + '.') else record.name


class ColoredFormatter(logging.Formatter):
    """Console formatter: 20:15:03 INFO     [someone/poller] message"""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.GRAY,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.MAGENTA,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.RESET)
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')

        tag = '/'.join(part for part in (getattr(record, 'channel', None), component_of(record)) if part)
        tag_str = f"{Colors.CYAN}[{tag}]{Colors.RESET} " if tag else ""

        line = (
            f"{Colors.GRAY}{timestamp}{Colors.RESET} "
            f"{color}{record.levelname:8}{Colors.RESET} {tag_str}{record.getMessage()}"
        )
        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


class FileFormatter(logging.Formatter):
    """Pipe-separated: time | level | channel | session | component | message"""

    def format(self, record: logging.LogRecord) -> str:
        fields = [
            datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S'),
            f"{record.levelname:8}",
            f"{getattr(record, 'channel', None) or '-':20}",
            getattr(record, 'session', None) or '-',
            component_of(record) or '-',
            record.getMessage(),
        ]
        line = ' | '.join(fields)
        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


class ChannelLoggerAdapter(logging.LoggerAdapter):
    """Stamps records with the channel and, once one is running, the session id."""

    def __init__(self, logger: logging.Logger, channel: str, session: Optional[str] = None):
        super().__init__(logger, {'channel': channel, 'session': session})

    def process(self, msg, kwargs):
        extra = kwargs.setdefault('extra', {})
        extra.update(self.extra)
        return msg, kwargs

    def for_session(self, session_id: str) -> 'ChannelLoggerAdapter':
        return ChannelLoggerAdapter(self.logger, self.extra['channel'], session_id)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_size_mb: int = 10,
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure the application logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Rotating log file path; console only when empty.
        max_size_mb: Size at which the log file rotates.
        backup_count: Rotated files to keep.

    Returns:
        The configured root application logger.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredFormatter())
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(FileFormatter())
        logger.addHandler(file_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if name:
        return logging.getLogger(f'{ROOT_LOGGER}.{name}')
    return logging.getLogger(ROOT_LOGGER)


def get_channel_logger(
    channel: str,
    name: Optional[str] = None,
    session: Optional[str] = None
) -> ChannelLoggerAdapter:
    """
    Logger adapter carrying channel (and optionally session) context.

    Args:
        channel: Channel being captured.
        name: Component logger name (e.g. 'poller').
        session: Session id, for components that live inside one session.
    """
    return ChannelLoggerAdapter(get_logger(name), channel, session)
