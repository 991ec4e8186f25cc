import copy
import logging
import sys
from pathlib import Path

from .colors import Colors
from .structured_logging import JSONFormatter

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class ColoredFormatter(logging.Formatter):
    """
    Console formatter that colours level names and highlights verdict lines.
    File handlers use a plain formatter so no ANSI codes end up on disk.
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.GREY,
        logging.INFO: Colors.BLUE,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED
    }

    def format(self, record):
        # Copy so other handlers see the uncoloured record
        record = copy.copy(record)

        color = self.LEVEL_COLORS.get(record.levelno, Colors.RESET)
        record.levelname = f"{color}{record.levelname}{Colors.RESET}"

        if isinstance(record.msg, str):
            if "Analysis complete" in record.msg:
                record.msg = f"{Colors.GREEN}{record.msg}{Colors.RESET}"
            elif "Cache hit" in record.msg:
                record.msg = f"{Colors.GREY}{record.msg}{Colors.RESET}"

        return super().format(record)


def setup_logging(system_config) -> logging.Logger:
    """
    Configure the root logger from a SystemConfig.

    Console output is coloured; the log file gets either the same line
    format without colour or one JSON object per line
    (``log_format="json"``). Calling this again replaces the handlers.

    Args:
        system_config: SystemConfig object

    Returns:
        The root logger
    """
    level_name = str(system_config.log_level).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(ColoredFormatter(LOG_FORMAT))
    root.addHandler(console)

    if system_config.log_file:
        log_path = Path(system_config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        if system_config.log_format == "json":
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    if not isinstance(logging.getLevelName(level_name), int):
        logging.getLogger("EmailIntel").warning(
            "Invalid log level '%s'; defaulting to INFO", system_config.log_level
        )

    return root
