"""
Centralized Logging Management for postindex.

Configures the ``postindex`` logger once per process, from the plugin
configuration, so that every module logger obtained through
``postindex.config.get_logger`` shares the same handlers.

Key Features:
- Structured Logging: optional JSON output for CI log collectors.
- Centralized Configuration: level, format and log file come from the
  plugin configuration.
- Details: anything passed as ``extra={'details': ...}`` is kept in the
  JSON record.
"""

import logging
import sys
import json
from typing import Optional

ROOT_LOGGER_NAME = "postindex"

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

class JsonFormatter(logging.Formatter):
    """
    Custom formatter to output logs in JSON format.
    """
    def format(self, record):
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record['exc_info'] = self.formatException(record.exc_info)
        if hasattr(record, 'details'):
            log_record['details'] = record.details
        return json.dumps(log_record, ensure_ascii=False)

class LoggingManager:
    """
    Manages the logging configuration for the whole package.
    """
    _instance = None

    def __new__(cls, *args, **kwargs):
        if not cls._instance:
            cls._instance = super(LoggingManager, cls).__new__(cls)
        return cls._instance

    def __init__(self, log_level: str = "INFO", log_file: Optional[str] = None, log_format: str = "text"):
        if hasattr(self, '_initialized') and self._initialized:
            return

        self.log_level = log_level.upper()
        self.log_file = log_file
        self.log_format = log_format
        self.logger = logging.getLogger(ROOT_LOGGER_NAME)
        self.logger.setLevel(self.log_level)
        self.logger.propagate = False  # Prevent duplicate logs in parent handlers

        # Remove existing handlers to avoid duplication
        if self.logger.hasHandlers():
            self.logger.handlers.clear()

        formatter = JsonFormatter() if log_format == "json" else logging.Formatter(TEXT_FORMAT)

        # Add console handler
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        # Add file handler if a log file is specified
        if self.log_file:
            file_handler = logging.FileHandler(self.log_file)
            file_handler.setLevel(self.log_level)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop the handlers and forget the instance so the next call reconfigures logging."""
        logger = logging.getLogger(ROOT_LOGGER_NAME)
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.propagate = True
        cls._instance = None
