"""
Referenda Tester Logging System
===============================

A unified, thread-safe logging utility for the referenda tester. This module
integrates with the standard Python `logging` library and the `rich` library to
provide structured, safe, and visually distinct logging outputs.

Usage:
    >>> from reftester.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Fork ready")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_LEVEL,
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_MAX_FILE_SIZE,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_FILE_OUTPUT,
    LOG_FILE,
)


PACKAGE_LOGGER_NAME = "reftester"

# Third-party loggers that would otherwise drown the simulation output
NOISY_LOGGERS = ("httpx", "httpcore", "websocket", "substrateinterface", "scalecodec", "asyncio")


class LogManager:
    """
    Manages logging configuration via the Singleton pattern.

    This class ensures that the logging subsystem is initialized exactly once.
    It handles the setup of the 'Rich' console handler and the optional rotating
    file handler.

    Attributes:
        _instance (LogManager): The singleton instance.
        _lock (threading.Lock): Thread lock for atomic initialization.
    """

    _instance: Optional["LogManager"] = None
    _lock: threading.Lock = threading.Lock()


    def __new__(cls) -> "LogManager":
        """Creates or returns the existing singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance


    def __init__(self) -> None:
        if self._initialized:
            return
        self._configured = False
        self._handlers = []
        self._initialized = True


    @staticmethod
    def validate_log_format(log_format: str) -> str:
        """
        Validates the syntax of a logging format string.

        Args:
            log_format (str): The logging format string (e.g., "%(asctime)s - %(message)s").

        Returns:
            str: The validated format string, or the default `LOG_FORMAT` if validation fails.
        """
        try:
            if not log_format:
                return str(LOG_FORMAT.default())

            log_format = str(log_format)

            format_specifier_pattern = r"\([a-zA-Z_][a-zA-Z0-9_]*\)[a-zA-Z]"
            paren_pattern = re.compile(format_specifier_pattern)

            for match in paren_pattern.finditer(log_format):
                start_pos = match.start()
                if start_pos == 0 or log_format[start_pos - 1] != "%":
                    raise ValueError("Malformed format specifier.")

            formatter = logging.Formatter(fmt=log_format)
            record = logging.LogRecord(
                name="test", level=logging.INFO, pathname="", lineno=0,
                msg="test", args=(), exc_info=None,
            )
            formatted_output = formatter.format(record)

            if re.search(format_specifier_pattern, formatted_output):
                raise ValueError("Format specifiers not properly processed.")

            return log_format
        except ValueError as e:
            print(
                f"{time.strftime(str(LOG_DATE_FORMAT.default()))} - reftester.logger - "
                f"Validation Error: {e}. Using default.",
                file=sys.stderr,
            )
            return str(LOG_FORMAT.default())


    @staticmethod
    def validate_date_format(date_format: str) -> str:
        """
        Validates a date format string against standard strftime directives.

        Returns the default date format when validation fails.
        """
        if not date_format:
            return str(LOG_DATE_FORMAT.default())

        date_format = str(date_format)

        date_format_pattern = re.compile(
            rf"^(?=.*%(?!%)(?:[EO])?(?:[-_0^#])*(?:[A-DF-HIM-NPR-VW-Za-hj-lm-npr-uw-z]))"
            rf"(?:%%|%(?:[EO])?(?:[-_0^#])*(?:[A-DF-HIM-NPR-VW-Za-hj-lm-npr-uw-z])|[0-9 \t:\-\/\.,TZ+])+$"
        )

        if not date_format_pattern.match(date_format):
            print(
                f"{time.strftime(str(LOG_DATE_FORMAT.default()))} - reftester.logger - "
                f"Invalid date format. Using default.",
                file=sys.stderr,
            )
            return str(LOG_DATE_FORMAT.default())

        return date_format


    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Configures the package logger with console and file handlers.

        Args:
            log_level (Optional[str]): Logging level (DEBUG, INFO, etc.). Defaults to env var.
            log_file (Optional[Path]): Path to the log file. Defaults to `LOG_FILE`.
            console_output (bool): Enable console logging on stderr. Defaults to True.
            file_output (Optional[bool]): Enable rotating file logging. Defaults to `LOG_FILE_OUTPUT`.
        """
        with self._lock:
            if self._configured:
                return

            numeric_level = self._numeric_level(log_level or LOG_LEVEL)

            package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
            package_logger.setLevel(numeric_level)
            package_logger.propagate = False
            package_logger.handlers.clear()

            for lib in NOISY_LOGGERS:
                logging.getLogger(lib).setLevel(logging.WARNING)

            log_format = self.validate_log_format(LOG_FORMAT)
            date_format = self.validate_date_format(LOG_DATE_FORMAT)

            # UTC keeps timestamps comparable with block explorers
            formatter = TerminalSafeFormatter(fmt=log_format, datefmt=date_format + " UTC")
            formatter.converter = time.gmtime

            if console_output:
                if LOG_CONSOLE_HIGHLIGHTING:
                    theme = Theme(
                        {
                            "reftester.arrow":          "bold yellow",
                            "reftester.block":          "bold cyan",
                            "reftester.hex":            "dim cyan",
                            "reftester.level_critical": "bold red reverse",
                            "reftester.level_debug":    "bold dim",
                            "reftester.level_error":    "bold red",
                            "reftester.level_info":     "bold green",
                            "reftester.level_warning":  "bold yellow",
                            "reftester.logger_name":    "magenta",
                            "reftester.outcome_fail":   "bold red",
                            "reftester.outcome_ok":     "bold green",
                            "reftester.referendum":     "bold white",
                            "reftester.tag":            "bold magenta",
                            "reftester.timestamp":      "bold cyan",
                            "reftester.url":            "cyan",
                        }
                    )

                    console = Console(theme=theme, highlight=False, stderr=True)

                    handler = RichHandler(
                        console=console,
                        highlighter=ReferendaLogHighlighter(),
                        keywords=[],
                        rich_tracebacks=True,
                        omit_repeated_times=False,
                        show_path=False,
                        show_time=False,
                        show_level=False,
                        markup=False,
                    )
                else:
                    handler = logging.StreamHandler(sys.stderr)
                handler.setLevel(numeric_level)
                handler.setFormatter(formatter)
                package_logger.addHandler(handler)
                self._handlers.append(handler)

            if file_output is None:
                file_output = bool(LOG_FILE_OUTPUT)
            if file_output:
                log_file_path = Path(log_file or str(LOG_FILE))
                log_file_path.parent.mkdir(parents=True, exist_ok=True)

                file_handler = logging.handlers.RotatingFileHandler(
                    filename=str(log_file_path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                )
                file_handler.setLevel(numeric_level)
                file_handler.setFormatter(formatter)
                package_logger.addHandler(file_handler)
                self._handlers.append(file_handler)

            self._configured = True


    def set_level(self, log_level: Union[str, int]) -> None:
        """Switches the package logger and its handlers to a new level."""
        numeric_level = self._numeric_level(log_level)
        logging.getLogger(PACKAGE_LOGGER_NAME).setLevel(numeric_level)
        for handler in self._handlers:
            handler.setLevel(numeric_level)


    @staticmethod
    def _numeric_level(log_level: Union[str, int]) -> int:
        if isinstance(log_level, int):
            return log_level
        return getattr(logging, str(log_level).upper(), logging.INFO)


    def get_logger(self, name: str) -> logging.Logger:
        """
        Retrieves a configured logger instance for a specific module.

        Args:
            name (str): The name of the logger (typically `__name__`).

        Returns:
            logging.Logger: A configured standard Python logger.
        """
        if not self._configured:
            self.configure()
        return logging.getLogger(name)


    @property
    def is_configured(self) -> bool:
        """Returns True if the logging system has been configured."""
        return self._configured


class TerminalSafeFormatter(logging.Formatter):
    """
    A formatter that strips ANSI escape sequences and non-printable control
    characters, so values read from chain state cannot manipulate the terminal.
    """

    _ansi_escape_re = re.compile(
        r"\x1b\[[0-?]*[ -/]*[@-~]"
        r"|\x1b[@-Z\\-_]"
    )
    # Control chars (0x00-0x1F) excluding Tab and Newline
    _control_chars_re = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
    _carriage_return_re = re.compile(r"\r")


    @classmethod
    def sanitize(cls, text: str) -> str:
        if not text:
            return text
        text = cls._ansi_escape_re.sub("", text)
        text = cls._carriage_return_re.sub("", text)
        text = cls._control_chars_re.sub("", text)
        return text


    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class ReferendaLogHighlighter(RegexHighlighter):
    """
    Rich highlighter for simulation logs: block numbers, referendum ids, hex
    payloads, outcomes, endpoints and logger names.
    """

    base_style = "reftester."
    highlights = [
        r"(?P<arrow>(\-\->)|(<--)|(→))",
        r"(?P<block>\bblock #?\d+\b)",
        r"(?P<hex>\b0x[0-9a-fA-F]{8,}\b)",
        r"(?P<level_critical>\bCRITICAL\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"\-\s+\w+\s+-\s+(?P<logger_name>[\w.]+)(?=\s-\s)",
        r"(?P<outcome_fail>\b(FAILED|ExtrinsicFailed)\b)",
        r"(?P<outcome_ok>\b(SUCCEEDED|Dispatched)\b)",
        r"(?P<referendum>(?<!\w)#\d+\b)",
        r"(?P<tag>\[.*?\])",
        r"(?P<timestamp>^(.*?)UTC)",
        r"(?P<url>(wss?|https?)://\S+)",
    ]


_manager = LogManager()

def get_logger(name: str) -> logging.Logger:
    """
    Public accessor of the logging system.
    Delegates to the Singleton LogManager, ensuring configuration is applied.
    """
    return _manager.get_logger(name)


def set_log_level(log_level: Union[str, int]) -> None:
    """Changes the level of every reftester logger at runtime."""
    _manager.set_level(log_level)

# Auto-configure on import to ensure immediate availability
_manager.configure()
