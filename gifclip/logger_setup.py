"""
Logging Setup for gifclip
Initializes logging configuration from YAML file
"""

import copy
import glob
import os
import logging
import logging.config
import yaml
from colorama import init, Fore, Style
from typing import Optional

# Initialize colorama for Windows compatibility
init(autoreset=True)

DEFAULT_LOGGING_CONFIG = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'detailed': {
            'format': '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        },
        'console': {
            'format': '%(asctime)s | %(levelname)-8s | %(message)s',
            'datefmt': '%H:%M:%S'
        }
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'level': 'WARNING',
            'formatter': 'console',
            'stream': 'ext://sys.stderr'
        },
        'file': {
            'class': 'logging.FileHandler',
            'level': 'DEBUG',
            'formatter': 'detailed',
            'filename': 'logs/gifclip.log',
            'mode': 'a'
        },
        'error_file': {
            'class': 'logging.FileHandler',
            'level': 'ERROR',
            'formatter': 'detailed',
            'filename': 'logs/errors.log',
            'mode': 'a'
        }
    },
    'root': {
        'level': 'DEBUG',
        'handlers': ['console', 'file', 'error_file']
    }
}


class ColoredFormatter(logging.Formatter):
    """Custom formatter to add colors to console output"""

    COLORS = {
        'DEBUG': Fore.CYAN,
        'INFO': Fore.GREEN,
        'WARNING': Fore.YELLOW,
        'ERROR': Fore.RED,
        'CRITICAL': Fore.MAGENTA + Style.BRIGHT,
    }

    def format(self, record):
        # Color a copy so file handlers sharing the record keep plain level names
        record = copy.copy(record)
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{Style.RESET_ALL}"
        return super().format(record)


def _cleanup_old_logs(logs_dir: str = "logs", keep_count: int = 5):
    """
    Remove rotated log files, keeping only the most recent N

    Args:
        logs_dir: Directory containing log files
        keep_count: Number of most recent log files to keep
    """
    rotated = glob.glob(os.path.join(logs_dir, "gifclip_*.log"))
    if len(rotated) <= keep_count:
        return

    rotated.sort(key=os.path.getmtime, reverse=True)
    for old_log in rotated[keep_count:]:
        try:
            os.remove(old_log)
        except OSError as e:
            logging.getLogger(__name__).debug(f"Could not remove old log {old_log}: {e}")


def _rotate_previous_log(log_path: str):
    """Move the previous run's log aside with its modification timestamp."""
    if not os.path.exists(log_path) or os.path.getsize(log_path) == 0:
        return
    from datetime import datetime
    stamp = datetime.fromtimestamp(os.path.getmtime(log_path)).strftime('%Y%m%d_%H%M%S')
    base, ext = os.path.splitext(log_path)
    try:
        os.replace(log_path, f"{base}_{stamp}{ext}")
    except OSError:
        pass


def setup_logging(config_path: Optional[str] = None, log_level: Optional[str] = None,
                  logs_dir: str = "logs") -> logging.Logger:
    """
    Setup logging configuration from YAML file

    Args:
        config_path: Path to logging configuration file
        log_level: Override console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logs_dir: Directory receiving the file handlers' output
    """
    os.makedirs(logs_dir, exist_ok=True)

    try:
        logging_config = None
        if config_path and os.path.exists(config_path):
            with open(config_path, 'r', encoding='utf-8') as file:
                config_data = yaml.safe_load(file) or {}
            logging_config = config_data.get('logging')
        if not logging_config:
            logging_config = copy.deepcopy(DEFAULT_LOGGING_CONFIG)

        # Point file handlers at logs_dir
        for handler in logging_config.get('handlers', {}).values():
            filename = handler.get('filename')
            if filename:
                handler['filename'] = os.path.join(logs_dir, os.path.basename(filename))

        main_log = logging_config.get('handlers', {}).get('file', {}).get('filename')
        if main_log:
            _rotate_previous_log(main_log)
            _cleanup_old_logs(logs_dir, keep_count=5)

        if log_level:
            log_level = log_level.upper()
            console_handler = logging_config.get('handlers', {}).get('console')
            if console_handler:
                console_handler['level'] = log_level

        try:
            logging.config.dictConfig(logging_config)
        except (ValueError, TypeError, AttributeError, ImportError) as config_error:
            logging.basicConfig(
                level=logging.INFO,
                format='%(asctime)s | %(levelname)-8s | %(message)s',
                datefmt='%H:%M:%S'
            )
            logger = logging.getLogger('gifclip')
            logger.error(f"Failed to apply logging configuration: {config_error}")
            logger.info("Using basic logging configuration as fallback")
            return logger

        for handler in logging.getLogger().handlers:
            if type(handler) is logging.StreamHandler:
                handler.setFormatter(ColoredFormatter(
                    fmt='%(asctime)s | %(levelname)-8s | %(message)s',
                    datefmt='%H:%M:%S'
                ))

        logger = logging.getLogger('gifclip')
        logger.debug("Logging initialized")
        return logger

    except (OSError, yaml.YAMLError) as e:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s | %(levelname)-8s | %(message)s',
            datefmt='%H:%M:%S'
        )
        logger = logging.getLogger('gifclip')
        logger.error(f"Failed to load logging configuration: {e}")
        logger.info("Using basic logging configuration")
        return logger
