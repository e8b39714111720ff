import collections
import logging
import os
import sys

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

from ..signals import signals

LOG_LEVEL = logging.DEBUG
LOG_LEVEL_ENV_KEY = 'EXPENSECLIENT_LOG_LEVEL'
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

TANK_MAX_RECORDS = 5000

LEVELS = (
    logging.DEBUG,
    logging.INFO,
    logging.WARNING,
    logging.ERROR,
    logging.CRITICAL,
)


def set_logging_level(level):
    """
    Sets the logging level for the root logger and its handlers.

    Args:
        level (int): One of the standard logging levels.

    Raises:
        ValueError: If the level is not an integer or not a standard level.
    """
    if not isinstance(level, int) or isinstance(level, bool):
        raise ValueError('Logging level must be an integer.')
    if level not in LEVELS:
        raise ValueError('Invalid logging level. Use one of the standard logging levels, e.g., logging.DEBUG.')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)


def level_from_env(default=LOG_LEVEL):
    """
    Reads the log level from the EXPENSECLIENT_LOG_LEVEL environment variable.

    Accepts a level name (``"INFO"``) or number (``"20"``). Unknown values fall back to ``default``.
    """
    value = os.environ.get(LOG_LEVEL_ENV_KEY, '').strip()
    if not value:
        return default
    if value.isdigit():
        level = int(value)
    else:
        level = logging.getLevelName(value.upper())
    return level if level in LEVELS else default


def qt_message_handler(mode, context, message):
    """
    Converts Qt messages to standard Python logging.
    """
    logger = logging.getLogger('Qt')
    message = message.strip()

    if mode == QtMsgType.QtDebugMsg:
        logger.debug(message)
    elif mode == QtMsgType.QtInfoMsg:
        logger.info(message)
    elif mode == QtMsgType.QtWarningMsg:
        logger.warning(message)
    elif mode == QtMsgType.QtCriticalMsg:
        logger.error(message)
    elif mode == QtMsgType.QtFatalMsg:
        logger.critical(message)
        sys.exit(1)


def setup_logging(enable_stream_handler=True, enable_qt_handler=True, log_level=None):
    """
    Configures the root logger and optionally installs the Qt message handler.

    Args:
        enable_stream_handler (bool): Also log to stdout.
        enable_qt_handler (bool): Route Qt messages through Python logging.
        log_level (int, optional): Level for the root logger and its handlers.
            Defaults to the EXPENSECLIENT_LOG_LEVEL environment variable, or DEBUG.
    """
    if log_level is None:
        log_level = level_from_env()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear all handlers to avoid formatting conflicts
    root_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    if enable_stream_handler:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(log_level)
        root_logger.addHandler(stream_handler)

    tank_handler = TankHandler()
    tank_handler.setFormatter(formatter)
    tank_handler.setLevel(log_level)
    root_logger.addHandler(tank_handler)

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)


def get_tank():
    """
    Returns the TankHandler attached to the root logger, if any.

    Returns:
        TankHandler or None
    """
    return next((h for h in logging.getLogger().handlers if isinstance(h, TankHandler)), None)


class TankHandler(logging.Handler):
    """
    Logging handler that keeps the most recent formatted records in memory.

    Sync activity happens in the background, so the tank keeps a browsable history of
    probes, queued mutations and replays that a status view can show on demand.

    Attributes:
        tank (collections.deque[tuple[int, str, str]]): Level, module name and formatted
            message of each stored record, oldest first.
    """

    def __init__(self, max_records=TANK_MAX_RECORDS):
        super().__init__()
        self.tank = collections.deque(maxlen=max_records)

    def emit(self, record):
        """
        Formats a record and stores it in the tank. Errors raise the showLogs signal.

        Args:
            record (logging.LogRecord): The log record to be processed.
        """
        try:
            message = self.format(record)
            self.tank.append((record.levelno, record.module, message))
            if record.levelno >= logging.ERROR:
                signals.showLogs.emit()
        except (Exception, KeyboardInterrupt):
            self.handleError(record)

    def get_logs(self, level=logging.NOTSET, module=None):
        """
        Returns stored messages at or above ``level``.

        Args:
            level (int, optional): The minimum logging level. Defaults to logging.NOTSET.
            module (str, optional): Only return records logged from this module, e.g. ``"sync"``.

        Returns:
            list[str]: Formatted log messages, oldest first.
        """
        return [
            msg for lvl, mod, msg in self.tank
            if lvl >= level and (module is None or mod == module)
        ]

    def clear_logs(self):
        self.tank.clear()
