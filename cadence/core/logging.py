# cadence/core/logging.py
import logging
import sys
from datetime import datetime

# Level applied to loggers created after set_default_level() is called.
_default_level: int = logging.INFO

_RESET = '\033[0m'
_TIME = '\033[94m'
_TEXT = '\033[97m'


class ColoredFormatter(logging.Formatter):
    """One aligned, colored line per record: time, component, level, message."""

    LEVEL_COLORS = {
        'DEBUG': '\033[90m',
        'INFO': '\033[92m',
        'WARNING': '\033[93m',
        'ERROR': '\033[91m',
        'CRITICAL': '\033[1;91m',
    }
    # Wide enough for the longest component, [execution_log].
    COMPONENT_WIDTH = 17
    LEVEL_WIDTH = 10

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        component = record.name.rsplit('.', 1)[-1]
        level_color = self.LEVEL_COLORS.get(record.levelname, _TEXT)

        parts = [
            f'{_TIME}[{stamp}]{_RESET} ',
            f'{_TEXT}{f"[{component}]".ljust(self.COMPONENT_WIDTH)}{_RESET}',
            f'{level_color}{f"[{record.levelname}]".ljust(self.LEVEL_WIDTH)}{_RESET}',
            f'{_TEXT}{record.getMessage()}{_RESET}',
        ]
        line = ''.join(parts)
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def set_default_level(level: int) -> None:
    """Set the default log level for new loggers."""
    global _default_level
    _default_level = level


def apply_level(level: int) -> None:
    """Set the default level and push it to every existing cadence logger."""
    set_default_level(level)

    logging.getLogger('cadence').setLevel(level)
    for name in list(logging.Logger.manager.loggerDict):
        if not (isinstance(name, str) and name.startswith('cadence.')):
            continue
        lgr = logging.getLogger(name)
        lgr.setLevel(level)
        for handler in lgr.handlers:
            handler.setLevel(level)


def get_logger(component_name: str) -> logging.Logger:
    """Logger named cadence.<component>, writing to stdout through ColoredFormatter."""
    logger = logging.getLogger(f'cadence.{component_name}')

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ColoredFormatter())
        handler.setLevel(_default_level)
        logger.addHandler(handler)
        logger.setLevel(_default_level)
        # Records would otherwise print twice if the root logger is configured.
        logger.propagate = False

    return logger
