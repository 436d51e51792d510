"""
Structured logging for store writes, queries and kernel loading.
"""

import logging
from typing import Any, Dict, Optional

from ..core.config import debug_enabled


class StructuredLogger:
    """Structured logger for record store and query operations."""

    def __init__(self, name: str = "entitydb"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if debug_enabled() else logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status == "failed":
            self.logger.error(message)
        else:
            self.logger.info(message)

    def log_store_operation(self, operation: str, key: Any = None, status: str = "success",
                            details: Optional[Dict[str, Any]] = None):
        """Log a record store operation against one key or a batch."""
        log_details: Dict[str, Any] = {}
        if key is not None:
            log_details["key"] = key
        if details:
            log_details.update(details)

        self.log_operation(f"store.{operation}", status, log_details)

    def log_query(self, mode: str, limit: int, scanned: int, returned: int,
                  accelerated: bool = False, skipped: int = 0):
        """Log a completed full-scan query."""
        log_details = {
            "mode": mode,
            "limit": limit,
            "scanned": scanned,
            "returned": returned,
            "accelerated": accelerated,
        }
        if skipped:
            log_details["skipped"] = skipped

        self.log_operation(f"query.{mode}", "success", log_details)

    def log_kernel_event(self, module: str, status: str, details: Optional[Dict[str, Any]] = None):
        """Log accelerated kernel loading and validation."""
        log_details = {"module": module}
        if details:
            log_details.update(details)

        self.log_operation("kernel.load", status, log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)

    def is_debug(self) -> bool:
        return self.logger.isEnabledFor(logging.DEBUG)


# Global logger instance
logger = StructuredLogger()
