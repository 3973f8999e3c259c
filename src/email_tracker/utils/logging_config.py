"""
Centralized logging configuration for the Email Tracker.
Provides component-specific loggers with separate log files.
"""

import logging
import logging.handlers
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any

from ..config import get_config

DETAILED_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - "
    "[%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s"
)
SIMPLE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


class ComponentLogger:
    """Manages component-specific logging with separate files."""

    _loggers: Dict[str, logging.Logger] = {}
    _initialized = False
    _log_dir: Optional[Path] = None
    _unified_handler: Optional[logging.Handler] = None

    # Component definitions with their log levels
    COMPONENTS = {
        "api": {"level": logging.INFO, "file": "api.log"},
        "store": {"level": logging.INFO, "file": "store.log"},
        "recorder": {"level": logging.INFO, "file": "recorder.log"},
        "sync": {"level": logging.INFO, "file": "sync.log"},
        "notifications": {"level": logging.INFO, "file": "notifications.log"},
        "client": {"level": logging.INFO, "file": "client.log"},
        "main": {"level": logging.INFO, "file": "main.log"},
        "error": {"level": logging.ERROR, "file": "errors.log"},  # Centralized error log
    }

    @classmethod
    def initialize(cls, log_dir: Optional[str] = None, debug: bool = False) -> None:
        """
        Initialize the logging system with component-specific loggers.

        Args:
            log_dir: Directory for log files. Defaults to config.app.log_dir
            debug: Enable debug logging for all components
        """
        if cls._initialized:
            return

        config = get_config()
        debug = debug or config.app.log_level.upper() == "DEBUG"
        log_to_file = config.app.log_to_file

        detailed_formatter = logging.Formatter(DETAILED_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        simple_formatter = logging.Formatter(SIMPLE_FORMAT, datefmt="%H:%M:%S")

        if log_to_file:
            cls._log_dir = Path(log_dir or config.app.log_dir)
            # One subdirectory per process start
            cls._log_dir = cls._log_dir / datetime.now().strftime("%Y%m%d_%H%M%S")
            cls._log_dir.mkdir(parents=True, exist_ok=True)

            cls._unified_handler = logging.handlers.RotatingFileHandler(
                cls._log_dir / "unified.log",
                maxBytes=20 * 1024 * 1024,  # 20MB
                backupCount=3,
                encoding="utf-8",
            )
            cls._unified_handler.setLevel(logging.DEBUG if debug else logging.INFO)
            cls._unified_handler.setFormatter(detailed_formatter)

        for component_name, component_config in cls.COMPONENTS.items():
            logger = logging.getLogger(f"email_tracker.{component_name}")
            logger.handlers.clear()
            logger.propagate = False

            level = logging.DEBUG if debug else component_config["level"]
            logger.setLevel(level)

            if log_to_file:
                file_handler = logging.handlers.RotatingFileHandler(
                    cls._log_dir / component_config["file"],
                    maxBytes=10 * 1024 * 1024,  # 10MB
                    backupCount=5,
                    encoding="utf-8",
                )
                file_handler.setLevel(level)
                file_handler.setFormatter(detailed_formatter)
                logger.addHandler(file_handler)
                logger.addHandler(cls._unified_handler)

            # Errors always reach the console
            if component_name in ("error", "main") or not log_to_file:
                console_handler = logging.StreamHandler(sys.stderr)
                console_handler.setLevel(logging.ERROR if log_to_file else level)
                console_handler.setFormatter(simple_formatter)
                logger.addHandler(console_handler)

            cls._loggers[component_name] = logger

        cls._initialized = True

        main_logger = cls._loggers["main"]
        main_logger.info("=" * 80)
        main_logger.info("Email Tracker logging initialized")
        main_logger.info(f"Log directory: {cls._log_dir}")
        main_logger.info(f"Debug mode: {debug}")
        main_logger.info("=" * 80)

    @classmethod
    def get_logger(cls, component: str) -> logging.Logger:
        """
        Get a logger for a specific component.

        Args:
            component: Component name (api, store, recorder, sync, ...)

        Returns:
            Logger instance for the component
        """
        if not cls._initialized:
            cls.initialize()

        if component not in cls._loggers:
            cls._create_component_logger(component)
        return cls._loggers[component]

    @classmethod
    def _create_component_logger(cls, component: str) -> None:
        """Create a component logger on-demand."""
        logger = logging.getLogger(f"email_tracker.{component}")
        logger.handlers.clear()
        logger.propagate = False

        config = get_config()
        level = logging.DEBUG if config.app.log_level.upper() == "DEBUG" else logging.INFO
        logger.setLevel(level)

        if cls._log_dir is not None:
            file_handler = logging.handlers.RotatingFileHandler(
                cls._log_dir / f"{component}.log",
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(
                logging.Formatter(DETAILED_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
            )
            logger.addHandler(file_handler)
            if cls._unified_handler is not None:
                logger.addHandler(cls._unified_handler)
        else:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(logging.Formatter(SIMPLE_FORMAT, datefmt="%H:%M:%S"))
            logger.addHandler(console_handler)

        cls._loggers[component] = logger

    @classmethod
    def log_exception(
        cls, component: str, exc: Exception, context: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log an exception with context to both component and error logs.

        Args:
            component: Component where the exception occurred
            exc: The exception to log
            context: Additional context information
        """
        component_logger = cls.get_logger(component)
        error_logger = cls.get_logger("error")

        context_str = ""
        if context:
            context_str = " | Context: " + ", ".join(f"{k}={v}" for k, v in context.items())

        exc_info = (type(exc), exc, exc.__traceback__)
        component_logger.error(
            f"Exception in {component}: {type(exc).__name__}: {exc}{context_str}",
            exc_info=exc_info,
        )
        error_logger.error(
            f"[{component}] {type(exc).__name__}: {exc}{context_str}", exc_info=exc_info
        )

    @classmethod
    def reset(cls) -> None:
        """Close handlers and forget all loggers so that ``initialize`` can run again."""
        for logger in cls._loggers.values():
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
        cls._loggers = {}
        cls._unified_handler = None
        cls._log_dir = None
        cls._initialized = False


def get_logger(component: str) -> logging.Logger:
    """Get a logger for a specific component."""
    return ComponentLogger.get_logger(component)


def initialize_logging(log_dir: Optional[str] = None, debug: bool = False) -> None:
    """Initialize the logging system, replacing any handlers set up at import."""
    ComponentLogger.reset()
    ComponentLogger.initialize(log_dir=log_dir, debug=debug)


def log_exception(
    component: str, exc: Exception, context: Optional[Dict[str, Any]] = None
) -> None:
    """Log an exception with context."""
    ComponentLogger.log_exception(component, exc, context)
