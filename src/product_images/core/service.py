"""Public entry point: store setup, product search, batch submission and polling."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Iterable, List, Optional, Sequence

from .archive import preview_archive as classify_archive, split_filename
from .exceptions import (
    ConfigurationError,
    InputError,
    ProductImagesError,
    RemoteApiError,
    with_error_handling,
)
from .models import (
    ArchivePreview,
    BatchOperation,
    BatchRequest,
    CodeSearchResult,
    ImageSource,
    ProductOperation,
    ProductVariant,
    RemoteAsset,
    StoreConfig,
    StoreCredentials,
)
from .observability import LogContext
from .orchestrator import ApiFactory, BatchOrchestrator
from .protocols import LoggerProtocol, ProductApiProtocol
from .resolution import resolve_images
from .settings import ServiceSettings
from .store import InMemoryRecordStore
from .upload import RemoteUploadClient

_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}


class ProductImageService:
    """Coordinates the record store, the remote API and batch execution.

    Batches run as asyncio tasks on the caller's event loop, so
    ``submit_batch`` must be awaited from inside a running loop.
    """

    def __init__(
        self,
        store: InMemoryRecordStore,
        orchestrator: BatchOrchestrator,
        api_factory: ApiFactory,
        settings: ServiceSettings,
        logger: LoggerProtocol,
    ):
        self._store = store
        self._orchestrator = orchestrator
        self._api_factory = api_factory
        self._settings = settings
        self._logger = logger
        self._tasks: Dict[str, "asyncio.Task[BatchOperation]"] = {}

    # Stores

    async def add_store(self, name: str, store_url: str, access_token: str) -> StoreConfig:
        """Save a store after checking that its credentials work.

        The first store added becomes the active one.
        """
        credentials = StoreCredentials(store_url=store_url, access_token=access_token, name=name)
        api = self._api_factory(credentials)
        try:
            shop_name = await api.test_connection()
        except ProductImagesError as exc:
            raise ConfigurationError(f"Connection to {store_url} failed: {exc}") from exc
        finally:
            await api.aclose()

        store = self._store.create_store(name=name, store_url=store_url, access_token=access_token)
        self._logger.info(f"Connected to {shop_name or store_url}", store_id=store.id)
        if self._store.get_active_store() is None:
            store = self._store.set_active_store(store.id)
        return store

    def list_stores(self) -> List[StoreConfig]:
        return self._store.list_stores()

    def activate_store(self, store_id: str) -> StoreConfig:
        return self._store.set_active_store(store_id)

    def active_credentials(self) -> StoreCredentials:
        """Credentials of the active store, falling back to the environment."""
        active = self._store.get_active_store()
        if active is not None:
            return active.to_credentials()
        from_env = self._settings.credentials()
        if from_env is None:
            raise InputError("No active store configured")
        return from_env

    # Search

    @with_error_handling(RemoteApiError)
    async def search_product(
        self,
        query: str,
        query_type: str = "sku",
        credentials: Optional[StoreCredentials] = None,
    ) -> Optional[ProductVariant]:
        """Look a product up by SKU or by storefront URL."""
        if query_type not in ("sku", "url"):
            raise InputError(f"Unknown query type: {query_type}")
        if not query.strip():
            raise InputError("A search query is required")

        api = self._api_factory(credentials or self.active_credentials())
        try:
            if query_type == "url":
                return await api.get_product_from_url(query.strip())
            return await api.search_product_by_code(query.strip())
        finally:
            await api.aclose()

    @with_error_handling(RemoteApiError)
    async def batch_search(
        self, codes: Sequence[str], credentials: Optional[StoreCredentials] = None
    ) -> List[CodeSearchResult]:
        """Look up many codes concurrently; one result per code, in input order."""
        if not codes:
            raise InputError("At least one product code is required")

        api = self._api_factory(credentials or self.active_credentials())

        async def search_one(code: str) -> CodeSearchResult:
            try:
                variant = await api.search_product_by_code(code)
            except Exception as exc:  # noqa: BLE001
                self._logger.warning(f"Search failed for {code}: {exc}")
                return CodeSearchResult(code=code, status="error", error=str(exc))
            if variant is None:
                return CodeSearchResult(code=code, status="not_found")
            return CodeSearchResult(code=code, status="found", product=variant)

        try:
            return list(await asyncio.gather(*(search_one(code) for code in codes)))
        finally:
            await api.aclose()

    # Batches

    async def submit_batch(
        self,
        request: BatchRequest,
        source: ImageSource,
        credentials: Optional[StoreCredentials] = None,
    ) -> BatchOperation:
        """Create a pending batch and start processing it in the background.

        Returns the batch snapshot immediately. Input problems raise
        InputError before any batch record exists.
        """
        credentials = credentials or self.active_credentials()
        images = resolve_images(request, source, self._settings.max_archive_bytes)

        label = "Replace" if request.operation_type.value == "replace" else "Add"
        batch = self._store.create_batch(
            total_items=len(request.codes),
            operation_type=request.operation_type,
            store_id=credentials.store_id,
            name=f"{label} Images - {datetime.now(timezone.utc):%Y-%m-%d %H:%M:%S}",
            metadata={
                "codes": list(request.codes),
                "resolution_mode": request.resolution_mode.value,
                "alt_text": request.alt_text,
                "target_format": request.target_format.value,
                "dimensions": request.dimensions.model_dump() if request.dimensions else None,
                "images_resolved": len(images),
            },
        )
        self._logger.info(
            "Batch submitted",
            LogContext(correlation_id=batch.id, operation="submit_batch", component="service"),
            total=batch.total_items,
        )

        task = asyncio.create_task(
            self._orchestrator.run(batch.id, request, images, credentials),
            name=f"batch-{batch.id}",
        )
        self._tasks[batch.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(batch.id, None))
        return batch

    def poll_batch(self, handle: str) -> BatchOperation:
        return self._store.get_batch(handle)

    async def wait_for_batch(
        self,
        handle: str,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> BatchOperation:
        """Poll until the batch reaches a terminal status.

        Raises:
            asyncio.TimeoutError: If ``timeout`` seconds pass first
        """
        interval = interval if interval is not None else self._settings.poll_interval_seconds

        async def poll() -> BatchOperation:
            while True:
                batch = self.poll_batch(handle)
                if batch.is_terminal:
                    return batch
                await asyncio.sleep(interval)

        return await asyncio.wait_for(poll(), timeout=timeout)

    def list_batches(self, store_id: Optional[str] = None) -> List[BatchOperation]:
        return self._store.list_batches(store_id)

    def preview_archive(self, archive: bytes, codes: Sequence[str]) -> ArchivePreview:
        return classify_archive(archive, codes, max_bytes=self._settings.max_archive_bytes)

    async def process_single(
        self,
        query: str,
        request: BatchRequest,
        content: bytes,
        query_type: str = "sku",
        credentials: Optional[StoreCredentials] = None,
    ) -> ProductOperation:
        """Replace or add the image of one product found by SKU or URL."""
        if not content:
            raise InputError("An image file is required")
        return await self._orchestrator.process_single(
            credentials or self.active_credentials(), query, query_type, request, content
        )

    # Images

    @asynccontextmanager
    async def _api(self, credentials: Optional[StoreCredentials]) -> AsyncIterator[ProductApiProtocol]:
        api = self._api_factory(credentials or self.active_credentials())
        try:
            yield api
        finally:
            await api.aclose()

    @with_error_handling(RemoteApiError)
    async def list_product_images(
        self, product_id: str, credentials: Optional[StoreCredentials] = None
    ) -> List[RemoteAsset]:
        async with self._api(credentials) as api:
            return await api.list_product_media(product_id)

    @with_error_handling(RemoteApiError)
    async def update_alt_text(
        self,
        product_id: str,
        media_id: str,
        alt_text: str,
        credentials: Optional[StoreCredentials] = None,
    ) -> bool:
        async with self._api(credentials) as api:
            updated = await api.update_alt_text(product_id, media_id, alt_text)
        self._logger.info("Alt text updated", media_id=media_id, updated=updated)
        return updated

    @with_error_handling(RemoteApiError)
    async def delete_image(
        self, product_id: str, media_id: str, credentials: Optional[StoreCredentials] = None
    ) -> bool:
        """Remove one media entry from a product; False if nothing was deleted."""
        async with self._api(credentials) as api:
            deleted = await api.delete_asset(product_id, media_id)
        self._logger.info("Image delete requested", media_id=media_id, deleted=deleted)
        return deleted

    @with_error_handling(RemoteApiError)
    async def upload_file(
        self,
        filename: str,
        content: bytes,
        alt_text: Optional[str] = None,
        credentials: Optional[StoreCredentials] = None,
    ) -> RemoteAsset:
        """Upload an image to the file library without attaching it to a product."""
        extension = split_filename(filename)[1]
        if extension not in _MIME_TYPES:
            raise InputError(f"Unsupported image type: {filename}")
        if not content:
            raise InputError("An image file is required")

        async with self._api(credentials) as api:
            asset = await RemoteUploadClient(api, self._logger).upload_file(
                filename, _MIME_TYPES[extension], content, alt_text
            )
        self._logger.info("File uploaded", asset_id=asset.id, filename=filename)
        return asset

    # Operation history

    def list_operations(
        self, batch_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[ProductOperation]:
        """A batch's operations in order, or the 20 most recent overall."""
        if batch_id is None and limit is None:
            return self._store.recent_product_operations()
        return self._store.list_product_operations(batch_id=batch_id, limit=limit)

    def delete_operation(self, operation_id: str) -> bool:
        return self._store.delete_product_operation(operation_id)

    def delete_operations(self, operation_ids: Iterable[str]) -> int:
        return self._store.delete_product_operations(operation_ids)

    def clear_operations(self) -> int:
        return self._store.clear_product_operations()
