"""
Logging configuration for the node router.

This module provides centralized logging configuration with support for
structured logging, different log levels, and text or JSON output.
"""

import logging
import logging.config
import sys
from typing import Dict, Any, Optional


def get_logging_config(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    enable_access_log: bool = True
) -> Dict[str, Any]:
    """
    Get logging configuration dictionary.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'text')
        log_file: Optional log file path
        enable_access_log: Whether to enable HTTP access logging

    Returns:
        Logging configuration dictionary
    """
    formatters = {
        "default": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S"
        },
        "detailed": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S"
        },
        "json": {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "format": "%(asctime)s %(name)s %(levelname)s %(module)s %(lineno)d %(message)s"
        }
    }

    formatter_name = "json" if log_format == "json" else "detailed"

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": formatter_name,
            "stream": sys.stdout
        }
    }

    if log_file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": formatter_name,
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
            "encoding": "utf8"
        }

    handler_names = list(handlers.keys())
    loggers = {
        "": {
            "level": log_level,
            "handlers": handler_names,
            "propagate": False
        },
        "uvicorn": {
            "level": log_level,
            "handlers": handler_names,
            "propagate": False
        },
        "uvicorn.error": {
            "level": log_level,
            "handlers": handler_names,
            "propagate": False
        },
        # httpx logs every probe request at INFO
        "httpx": {
            "level": "WARNING",
            "handlers": handler_names,
            "propagate": False
        },
        "noderouter": {
            "level": log_level,
            "handlers": handler_names,
            "propagate": False
        }
    }

    if enable_access_log:
        loggers["uvicorn.access"] = {
            "level": "INFO",
            "handlers": handler_names,
            "propagate": False
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": handlers,
        "loggers": loggers
    }


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "text",
    log_file: Optional[str] = None,
    enable_access_log: bool = True
) -> None:
    """
    Setup logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'text')
        log_file: Optional log file path
        enable_access_log: Whether to enable HTTP access logging
    """
    config = get_logging_config(
        log_level=log_level,
        log_format=log_format,
        log_file=log_file,
        enable_access_log=enable_access_log
    )

    logging.config.dictConfig(config)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


class StructuredLogger:
    """
    Structured logger for consistent event formatting.

    Each helper emits one event with stable field names so that JSON output
    can be filtered by ``event``.
    """

    def __init__(self, name: str):
        """Initialize structured logger.

        Args:
            name: Logger name
        """
        self.logger = get_logger(name)

    def log_health_check(
        self,
        node_id: str,
        url: str,
        health: str,
        latency_ms: Optional[float] = None,
        error: Optional[str] = None,
        **kwargs
    ):
        """Log the outcome of a single node probe.

        Args:
            node_id: Probed node ID
            url: Probe URL
            health: Resulting health value
            latency_ms: Measured round trip in milliseconds
            error: Error message if the probe failed
            **kwargs: Additional fields to log
        """
        log_data = {
            "event": "health_check",
            "node_id": node_id,
            "url": url,
            "health": health,
        }

        if latency_ms is not None:
            log_data["latency_ms"] = round(latency_ms, 2)
        if error:
            log_data["error"] = error

        log_data.update(kwargs)

        if error:
            self.logger.warning("Health check failed", extra=log_data)
        else:
            self.logger.debug("Health check passed", extra=log_data)

    def log_refresh(
        self,
        succeeded: list,
        failed: list,
        received: int,
        duration_ms: float,
        **kwargs
    ):
        """Log a completed remote node list refresh.

        Args:
            succeeded: Names of sources that returned a usable payload
            failed: Names of sources that were skipped
            received: Number of nodes received from successful sources
            duration_ms: Cycle duration in milliseconds
            **kwargs: Additional fields to log
        """
        log_data = {
            "event": "node_refresh",
            "succeeded_sources": succeeded,
            "failed_sources": failed,
            "nodes_received": received,
            "duration_ms": round(duration_ms, 2),
        }
        log_data.update(kwargs)

        if failed:
            self.logger.warning("Node list refresh finished with failures", extra=log_data)
        else:
            self.logger.info("Node list refresh finished", extra=log_data)

    def log_resolution(
        self,
        original_url: str,
        final_url: str,
        service: Optional[str],
        node_id: Optional[str],
        reason: str,
        **kwargs
    ):
        """Log a routing decision.

        Args:
            original_url: URL before rewriting
            final_url: URL handed back to the caller
            service: Classified service, if any
            node_id: Selected node, if any
            reason: Why this outcome was chosen
            **kwargs: Additional fields to log
        """
        log_data = {
            "event": "resolve",
            "original_url": original_url,
            "final_url": final_url,
            "service": service,
            "node_id": node_id,
            "reason": reason,
        }
        log_data.update(kwargs)
        self.logger.debug("Request resolved", extra=log_data)

