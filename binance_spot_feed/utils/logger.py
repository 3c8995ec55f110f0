"""
Logging Configuration Module
===========================

Controls loguru levels and output formatting for the connector.
A streaming process usually runs in production mode; development mode adds
per-frame debug output (unclassified frames, dropped payloads).
"""

import sys
from enum import Enum
from loguru import logger


class LogLevel(Enum):
    """Logging levels for different run modes"""
    SILENT = "SILENT"           # Only critical errors
    QUIET = "QUIET"             # Errors and warnings only
    NORMAL = "NORMAL"           # Lifecycle info, warnings, and errors
    VERBOSE = "VERBOSE"         # Per-frame debug output as well


LEVEL_MAPPING = {
    LogLevel.SILENT: "CRITICAL",
    LogLevel.QUIET: "WARNING",
    LogLevel.NORMAL: "INFO",
    LogLevel.VERBOSE: "DEBUG",
}


class LogConfig:
    """Logging configuration manager"""

    def __init__(self):
        self.current_level = LogLevel.NORMAL
        self._initialized = False
        self._console_handler = None

    def setup_logging(self,
                     level: LogLevel = LogLevel.NORMAL,
                     show_backtrace: bool = False,
                     show_diagnose: bool = False) -> None:
        """
        Configure console logging

        Args:
            level: Logging level to use
            show_backtrace: Show full backtraces on errors
            show_diagnose: Show variable values in tracebacks
        """
        if self._console_handler is None:
            # Drop loguru's default stderr sink
            logger.remove()
        else:
            logger.remove(self._console_handler)

        if level in (LogLevel.SILENT, LogLevel.QUIET):
            format_str = "<level>{level}</level> | {message}"
        elif level == LogLevel.NORMAL:
            format_str = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[name]}</cyan> | {message}"
        else:
            format_str = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | {message}"

        logger.configure(extra={"name": "connector"})
        self._console_handler = logger.add(
            sys.stderr,
            format=format_str,
            level=LEVEL_MAPPING[level],
            backtrace=show_backtrace,
            diagnose=show_diagnose,
            colorize=True
        )

        self.current_level = level

        if level != LogLevel.SILENT and not self._initialized:
            logger.info(f"Logging configured: level={level.value}")

        self._initialized = True

    def set_development_mode(self) -> None:
        """Full per-frame output"""
        self.setup_logging(level=LogLevel.VERBOSE, show_backtrace=True, show_diagnose=True)

    def set_production_mode(self) -> None:
        """Lifecycle events, warnings and errors"""
        self.setup_logging(level=LogLevel.NORMAL)

    def set_silent_mode(self) -> None:
        self.setup_logging(level=LogLevel.SILENT)

    def add_file_logging(self,
                        filepath: str,
                        level: LogLevel = LogLevel.VERBOSE,
                        rotation: str = "10 MB",
                        retention: str = "7 days") -> int:
        """
        Add file logging in addition to console

        Args:
            filepath: Path to log file
            level: Logging level for file
            rotation: File rotation policy
            retention: Log retention policy

        Returns:
            The loguru handler id, usable with ``logger.remove``
        """
        file_format = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[name]}:{function}:{line} | {message}"

        handler_id = logger.add(
            filepath,
            format=file_format,
            level=LEVEL_MAPPING[level],
            rotation=rotation,
            retention=retention,
            backtrace=True,
            diagnose=True
        )

        if self.current_level != LogLevel.SILENT:
            logger.info(f"File logging enabled: {filepath}")

        return handler_id

    def suppress_module_logging(self, modules: list[str]) -> None:
        """Silence noisy modules, e.g. the per-frame codec output"""
        for module in modules:
            logger.disable(module)

    def enable_module_logging(self, modules: list[str]) -> None:
        for module in modules:
            logger.enable(module)


# Global log configuration instance
log_config = LogConfig()


def setup_development_logging():
    """Quick setup for development - full logging"""
    log_config.set_development_mode()


def setup_production_logging():
    """Quick setup for production - balanced logging"""
    log_config.set_production_mode()


def setup_silent_logging():
    """Quick setup for silent operation"""
    log_config.set_silent_mode()


def get_logger(name: str):
    """
    Get a logger instance for a module

    Args:
        name: Short component name shown in every record

    Returns:
        Logger instance bound to ``name``
    """
    if not log_config._initialized:
        log_config.setup_logging()

    return logger.bind(name=name)


# Initialize default logging on import
if not log_config._initialized:
    log_config.setup_logging(LogLevel.NORMAL)
