"""Error collection for batch runs."""

from typing import Any, Dict, List, Optional

from .protocols import LoggerProtocol
from .observability import LogContext


class BatchOperationContextManager:
    """
    Context manager for batch operations to collect and summarize per-item errors.
    """

    def __init__(
        self,
        logger: LoggerProtocol,
        operation_name: str = "Batch Operation",
        context: Optional[LogContext] = None,
    ):
        self.operation_name = operation_name
        self.errors: List[Dict[str, str]] = []
        self.logger = logger
        self.context = context

    def __enter__(self) -> "BatchOperationContextManager":
        self.logger.info(f"Starting {self.operation_name}.", self.context)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        if exc_type:
            self.logger.error(
                f"{self.operation_name} failed due to an unhandled exception: {exc_val}",
                self.context,
            )
        elif self.errors:
            self.logger.warning(
                f"{self.operation_name} completed with {len(self.errors)} error(s).",
                self.context,
            )
            for i, error_detail in enumerate(self.errors):
                self.logger.error(
                    f"  Error {i + 1}/{len(self.errors)} for item "
                    f"'{error_detail['item']}': {error_detail['error']}",
                    self.context,
                )
        else:
            self.logger.info(f"{self.operation_name} completed successfully.", self.context)

        return False

    def add_error(self, error_message: str, item_identifier: str = "Unknown item") -> None:
        """
        Report an error for a specific item inside the ``with`` block.

        Args:
            error_message: The error message or exception string.
            item_identifier: The product code or filename that failed.
        """
        self.errors.append({"item": item_identifier, "error": str(error_message)})
        self.logger.debug(
            f"Error added for item '{item_identifier}' in {self.operation_name}: {error_message}",
            self.context,
        )
