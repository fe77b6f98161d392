"""Protocol definitions for dependency injection and testability."""

from typing import Any, List, Optional, Protocol

from .models import (
    BatchOperation,
    ProductOperation,
    ProductVariant,
    RemoteAsset,
    StagedTarget,
)


class ProductApiProtocol(Protocol):
    """Operations consumed from the remote product/image service."""

    async def test_connection(self) -> str:
        """Return the shop name if the credentials work."""
        ...

    async def search_product_by_code(self, code: str) -> Optional[ProductVariant]:
        """Find the variant carrying ``code``."""
        ...

    async def get_product_from_url(self, url: str) -> Optional[ProductVariant]:
        """Find a variant from a storefront product URL."""
        ...

    async def reserve_upload(
        self, filename: str, mime_type: str, size: int
    ) -> StagedTarget:
        """Reserve a staged upload slot."""
        ...

    async def transfer(
        self, target: StagedTarget, filename: str, mime_type: str, content: bytes
    ) -> None:
        """Send bytes to a reserved slot."""
        ...

    async def register_asset(
        self, resource_url: str, alt_text: Optional[str] = None
    ) -> RemoteAsset:
        """Create a file-library asset from a staged resource."""
        ...

    async def attach_asset_to_product(
        self, product_id: str, resource_url: str, alt_text: Optional[str] = None
    ) -> RemoteAsset:
        """Create product media from a staged resource."""
        ...

    async def list_product_media(self, product_id: str) -> List[RemoteAsset]:
        """List the product's current media."""
        ...

    async def delete_asset(self, product_id: str, asset_id: str) -> bool:
        """Delete product media."""
        ...

    async def bind_asset_to_variant(
        self, product_id: str, variant_id: str, asset_id: str
    ) -> bool:
        """Associate product media with one variant."""
        ...

    async def preview_link(self, product_id: str) -> Optional[str]:
        """Preview URL for draft products."""
        ...

    async def update_alt_text(
        self, product_id: str, asset_id: str, alt_text: str
    ) -> bool:
        """Change the alt text of product media."""
        ...

    def live_url(self, handle: str) -> str:
        """Public storefront URL for a product handle."""
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log debug message."""
        ...

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log info message."""
        ...

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log warning message."""
        ...

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log error message."""
        ...


class RecordStoreProtocol(Protocol):
    """Batch progress and per-product records written by the orchestrator."""

    def get_batch(self, handle: str) -> BatchOperation:
        ...

    def update_batch(self, handle: str, **partial: Any) -> BatchOperation:
        ...

    def create_product_operation(self, **fields: Any) -> ProductOperation:
        ...

    def finalize_product_operation(
        self, operation_id: str, **fields: Any
    ) -> ProductOperation:
        ...
