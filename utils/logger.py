import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from utils.constants import LOGS_DIR


def _parse_rotation(value) -> int:
    """Parse a rotation size such as "5MB" or "512KB" into bytes."""
    rot_str = str(value).upper().strip()
    max_bytes = 5 * 1024 * 1024  # Default
    try:
        if rot_str.endswith('MB'):
            max_bytes = int(rot_str[:-2]) * 1024 * 1024
        elif rot_str.endswith('KB'):
            max_bytes = int(rot_str[:-2]) * 1024
        elif rot_str.isdigit():
            max_bytes = int(rot_str)
    except ValueError:
        pass
    return max_bytes


class Logger:
    """Thin logger facade with console and rotating file output."""

    _configured = False

    @classmethod
    def setup(cls, settings: dict, default_file: str = "framelink.log"):
        """
        Global configuration for all Logger instances.

        Args:
            settings: Dictionary containing 'level', 'rotation', 'backup_count',
                      'file', 'directory' and 'file_enabled'
            default_file: Log file name used when settings do not name one
        """
        if cls._configured:
            return

        level_name = str(settings.get('level', 'INFO')).upper()
        level = getattr(logging, level_name, logging.INFO)

        # Configure root logger to affect all modules
        root = logging.getLogger()
        root.setLevel(level)

        if not root.handlers:
            formatter = logging.Formatter(
                '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )

            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            root.addHandler(console_handler)

            if settings.get('file_enabled', True):
                try:
                    log_dir = Path(settings.get('directory') or LOGS_DIR)
                    log_dir.mkdir(parents=True, exist_ok=True)
                    log_file = log_dir / settings.get('file', default_file)

                    file_handler = RotatingFileHandler(
                        log_file,
                        maxBytes=_parse_rotation(settings.get('rotation', '5MB')),
                        backupCount=int(settings.get('backup_count', 5))
                    )
                    file_handler.setFormatter(formatter)
                    root.addHandler(file_handler)
                except OSError as e:
                    root.warning(f"Failed to initialize file logger: {e}")

        cls._configured = True

    def __init__(self, name: str = "FrameLink"):
        self.logger = logging.getLogger(name)

    def info(self, message: str):
        self.logger.info(message)

    def warning(self, message: str):
        self.logger.warning(message)

    def error(self, message: str):
        self.logger.error(message)

    def debug(self, message: str):
        self.logger.debug(message)

    def critical(self, message: str):
        self.logger.critical(message)
