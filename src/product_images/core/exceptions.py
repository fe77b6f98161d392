"""Custom exceptions and error handling utilities for product image operations."""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Type, TypeVar

from .logging_config import get_logger


class ProductImagesError(Exception):
    """Base exception for all product image errors."""


class InputError(ProductImagesError):
    """Raised when a request is rejected before any batch is created."""


class ArchiveFormatError(InputError):
    """Raised when uploaded bytes are not a readable archive."""


class ConfigurationError(ProductImagesError):
    """Error raised for invalid configuration options."""


class RemoteApiError(ProductImagesError):
    """Error raised when the remote product API fails or rejects a call."""


class UploadTransferError(RemoteApiError):
    """Error raised when reserving, transferring or registering an asset fails."""


class ProductLookupError(ProductImagesError):
    """Raised when a product code does not resolve to a product."""


class ResolutionError(ProductImagesError):
    """Raised when no image bytes are available for a product code."""


class DeletionError(RemoteApiError):
    """Raised when a superseded asset could not be removed."""


class BatchStateError(ProductImagesError):
    """Raised when a batch update would violate its progress invariants."""


class BatchNotFoundError(ProductImagesError):
    """Raised when a batch or operation handle is unknown."""


F = TypeVar("F", bound=Callable[..., Any])


def with_error_handling(
    error_type: Type[ProductImagesError] = RemoteApiError,
) -> Callable[[F], F]:
    """Wrap an async function so unexpected errors surface as ``error_type``."""

    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            logger = get_logger("product-images.errors")
            try:
                return await func(*args, **kwargs)
            except ProductImagesError:
                logger.debug(f"Domain error in {func.__name__}", exc_info=True)
                raise
            except Exception as exc:  # noqa: BLE001
                logger.error(f"Unhandled error in {func.__name__}: {exc}", exc_info=True)
                raise error_type(f"{func.__name__} failed: {exc}") from exc

        return wrapper  # type: ignore[return-value]

    return decorator
