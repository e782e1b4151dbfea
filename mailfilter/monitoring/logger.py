# ============================================================================
# mailfilter -- Structured Logger (mailfilter/monitoring/logger.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Sets up the logging system for the whole tool. Every interesting event
#   (message saved, Content-Type that could not be parsed, run finished)
#   is recorded as a structured JSON line.
#
# WHY "STRUCTURED" LOGGING?
#   Normal logging: "Saved mail to 20200605T232235_Hello.txt"
#   Structured logging: {"event": "mail_saved", "path": "20200605T232235_Hello.txt"}
#
#   JSON lines can be filtered with jq or grep, which matters when one
#   archive produces thousands of decode warnings.
#
# LOG FILE TYPES:
#   - app_YYYY-MM-DD.log:   run events (messages saved, run summary)
#   - error_YYYY-MM-DD.log: recovered decode errors
#   Files are only written when logging.log_to_file is enabled; otherwise
#   everything goes to stderr.
#
# HOW TO USE (from other code):
#   from mailfilter.monitoring.logger import get_logger
#   logger = get_logger("mailfilter.decoder")
#   logger.warning("content_type_unparsed", value="text")
#
# DEPENDENCIES:
#   - structlog: A structured logging library that outputs JSON
#   - Python's built-in logging module (structlog builds on top of it)
# ============================================================================

import os
import sys
import logging
from pathlib import Path
from typing import Optional, Dict, Any
import structlog
from datetime import datetime


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

class LoggerSetup:
    """Initialize and configure structlog for mailfilter"""

    def __init__(
        self,
        log_dir: str = "logs",
        level: str = "WARNING",
        log_to_file: bool = False,
    ):
        self.log_dir = Path(log_dir)
        self.level = logging.getLevelName(level.upper())
        if not isinstance(self.level, int):
            self.level = logging.WARNING
        self.log_to_file = log_to_file
        self._configured = False

    def setup(self) -> None:
        """Configure structlog to render JSON lines through stdlib logging"""
        if self._configured:
            return

        # Diagnostics go to stderr; stdout is reserved for command output
        logging.basicConfig(
            format="%(message)s",
            stream=sys.stderr,
            level=self.level,
            force=True,
        )
        logging.getLogger("mailfilter").setLevel(self.level)

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.processors.JSONRenderer(),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        if self.log_to_file:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        self._configured = True

    def get_logger(self, name: str) -> structlog.BoundLogger:
        """Get a named console logger"""
        self.setup()
        return structlog.get_logger(name)

    def get_file_logger(self, name: str, log_type: str = "app") -> structlog.BoundLogger:
        """
        Get a logger that also writes to a dated log file.
        log_type: "app", "error"
        """
        self.setup()
        logger = structlog.get_logger(name)
        if not self.log_to_file:
            return logger

        log_file = self.log_dir / f"{log_type}_{self._get_date_str()}.log"
        py_logger = logging.getLogger(name)
        # Re-requesting the same logger must not stack duplicate handlers
        for existing in py_logger.handlers:
            if getattr(existing, "baseFilename", None) == os.path.abspath(log_file):
                return logger

        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(message)s"))
        py_logger.addHandler(handler)
        py_logger.setLevel(logging.DEBUG)

        return logger

    @staticmethod
    def _get_date_str() -> str:
        """Get current date as YYYY-MM-DD string"""
        return datetime.now().strftime("%Y-%m-%d")


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

_logger_setup: Optional[LoggerSetup] = None


def initialize_logging(
    log_dir: str = "logs",
    level: str = "WARNING",
    log_to_file: bool = False,
    force: bool = False,
) -> LoggerSetup:
    """
    Initialize logging (call once at app startup).

    Modules grab their loggers at import time, which auto-initializes
    with defaults. The CLI passes force=True to apply the configured
    level and log directory afterwards; stdlib levels and handlers are
    looked up on every call, so already-created loggers follow along.
    """
    global _logger_setup
    if _logger_setup is None or force:
        _logger_setup = LoggerSetup(log_dir, level, log_to_file)
        _logger_setup.setup()
    return _logger_setup


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger (auto-initializes if needed)"""
    if _logger_setup is None:
        initialize_logging()
    return _logger_setup.get_logger(name)


def get_app_logger(name: str = "mailfilter.app") -> structlog.BoundLogger:
    """Get app logger (writes to app_YYYY-MM-DD.log when enabled)"""
    if _logger_setup is None:
        initialize_logging()
    return _logger_setup.get_file_logger(name, "app")


def get_error_logger(name: str = "mailfilter.error") -> structlog.BoundLogger:
    """Get error logger (writes to error_YYYY-MM-DD.log when enabled)"""
    if _logger_setup is None:
        initialize_logging()
    return _logger_setup.get_file_logger(name, "error")


# ============================================================================
# LOG ENTRY BUILDERS (for consistent structured data)
# ============================================================================

class ExtractLogEntry:
    """Builder for one saved message"""

    @staticmethod
    def build(path: str, subject: str, date: str, size: int) -> Dict[str, Any]:
        """Build a structured entry for a message written to disk"""
        return {
            "path": path,
            "subject": subject,
            "date": date,
            "bytes": size,
            "timestamp": datetime.now().isoformat(),
        }


class RunSummaryEntry:
    """Builder for the end-of-run summary"""

    @staticmethod
    def build(
        archive: str,
        command: str,
        seen: int,
        matched: int,
        elapsed_ms: float,
        query: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Build a structured run summary entry"""
        return {
            "archive": archive,
            "command": command,
            "query": query,
            "seen": seen,
            "matched": matched,
            "elapsed_ms": round(elapsed_ms, 2),
            "error": error,
            "timestamp": datetime.now().isoformat(),
        }
