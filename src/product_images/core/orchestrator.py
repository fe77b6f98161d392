"""Sequential per-batch runner for bulk image operations."""

import asyncio
import time
from typing import Any, Callable, Dict, Optional, Tuple

from .error_handling import BatchOperationContextManager
from .exceptions import (
    ProductImagesError,
    ProductLookupError,
    ResolutionError,
)
from .models import (
    BatchOperation,
    BatchRequest,
    BatchStatus,
    OperationStatus,
    ProductOperation,
    ProductVariant,
    StoreCredentials,
)
from .observability import LogContext, MetricsCollector
from .protocols import LoggerProtocol, ProductApiProtocol, RecordStoreProtocol
from .settings import ServiceSettings
from .transcoder import ImageTranscoder, build_upload_filename
from .upload import RemoteUploadClient

ApiFactory = Callable[[StoreCredentials], ProductApiProtocol]


class BatchOrchestrator:
    """Runs one batch at a time, one product code at a time.

    Every per-code failure is turned into an error ProductOperation; only a
    failure before the loop starts marks the batch as errored with nothing
    processed.
    """

    def __init__(
        self,
        store: RecordStoreProtocol,
        api_factory: ApiFactory,
        transcoder: ImageTranscoder,
        logger: LoggerProtocol,
        settings: Optional[ServiceSettings] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self._store = store
        self._api_factory = api_factory
        self._transcoder = transcoder
        self._logger = logger
        self._settings = settings or ServiceSettings()
        self._metrics = metrics_collector

    async def run(
        self,
        handle: str,
        request: BatchRequest,
        images: Dict[str, bytes],
        credentials: StoreCredentials,
    ) -> BatchOperation:
        """Process every code in ``request`` and return the final batch snapshot."""
        context = LogContext(
            correlation_id=handle, operation="run_batch", component="batch_orchestrator"
        ).with_metadata(
            operation_type=request.operation_type.value, total=len(request.codes)
        )

        try:
            self._store.update_batch(handle, status=BatchStatus.PROCESSING)
            api = self._api_factory(credentials)
        except Exception as exc:  # noqa: BLE001
            self._logger.error(f"Batch could not start: {exc}", context)
            return self._store.update_batch(
                handle, status=BatchStatus.ERROR, error_message=str(exc)
            )

        uploader = RemoteUploadClient(api, self._logger, self._settings.legacy_media_fallback)
        succeeded = 0
        failed = 0
        try:
            try:
                with BatchOperationContextManager(
                    self._logger, f"Batch {handle}", context
                ) as tracker:
                    for code in request.codes:
                        ok, error = await self._process_code(
                            api, uploader, handle, code, request, images.get(code), credentials, context
                        )
                        if ok:
                            succeeded += 1
                        else:
                            failed += 1
                            tracker.add_error(error or "unknown error", code)
                        self._store.update_batch(
                            handle, completed_items=succeeded + failed, failed_items=failed
                        )
            except Exception as exc:  # noqa: BLE001
                self._logger.error(f"Batch loop aborted: {exc}", context)
                return self._store.update_batch(
                    handle, status=BatchStatus.ERROR, error_message=f"Batch aborted: {exc}"
                )

            final_status = BatchStatus.COMPLETED if succeeded > 0 else BatchStatus.ERROR
            self._logger.info(
                "Batch finished", context, succeeded=succeeded, failed=failed, status=final_status.value
            )
            return self._store.update_batch(handle, status=final_status)
        finally:
            await self._close(api, context)

    async def _close(self, api: ProductApiProtocol, context: LogContext) -> None:
        try:
            await api.aclose()
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(f"Failed to close API client: {exc}", context)

    async def _process_code(
        self,
        api: ProductApiProtocol,
        uploader: RemoteUploadClient,
        handle: str,
        code: str,
        request: BatchRequest,
        content: Optional[bytes],
        credentials: StoreCredentials,
        context: LogContext,
    ) -> Tuple[bool, Optional[str]]:
        start_time = time.time()
        code_context = context.with_operation("process_code").with_metadata(code=code)
        details: Dict[str, Any] = {}
        error_message: Optional[str] = None

        try:
            operation = self._store.create_product_operation(
                batch_id=handle,
                store_id=credentials.store_id,
                product_code=code,
                operation_type=request.operation_type,
                alt_text=request.alt_text,
            )
        except Exception as exc:  # noqa: BLE001
            self._logger.error(f"Could not record operation: {exc}", code_context)
            return False, f"Unexpected error: {exc}"

        try:
            variant = await api.search_product_by_code(code)
            if variant is None:
                raise ProductLookupError("Product not found")
            details.update(product_id=variant.product.id, variant_id=variant.id)
            if content is None:
                raise ResolutionError("No image provided for this code")
            details.update(
                await self.upload_for_variant(
                    api, uploader, variant, code, content, request, code_context
                )
            )
        except ProductImagesError as exc:
            error_message = str(exc)
        except Exception as exc:  # noqa: BLE001
            error_message = f"Unexpected error: {exc}"
            self._logger.error(f"Unexpected failure: {exc}", code_context)

        ok = error_message is None
        try:
            if ok:
                self._store.finalize_product_operation(
                    operation.id, status=OperationStatus.SUCCESS, **details
                )
                self._logger.info("Image updated", code_context, url=details.get("image_url"))
            else:
                self._store.finalize_product_operation(
                    operation.id,
                    status=OperationStatus.ERROR,
                    error_message=error_message,
                    **details,
                )
                self._logger.warning(f"Code failed: {error_message}", code_context)
            self._record_metric(start_time, ok, code, error_message)
        except Exception as exc:  # noqa: BLE001
            self._logger.error(f"Could not record outcome: {exc}", code_context)
        return ok, error_message

    async def upload_for_variant(
        self,
        api: ProductApiProtocol,
        uploader: RemoteUploadClient,
        variant: ProductVariant,
        code: str,
        content: bytes,
        request: BatchRequest,
        context: LogContext,
    ) -> Dict[str, Any]:
        """Transcode, upload and resolve links; returns ProductOperation fields."""
        alt_text = request.alt_text
        if request.copy_existing_alt and variant.image and variant.image.alt_text:
            alt_text = variant.image.alt_text

        payload = await asyncio.to_thread(
            self._transcoder.transcode, content, request.target_format, request.dimensions
        )
        filename = build_upload_filename(
            code, variant.product.title, request.dimensions, request.target_format
        )
        outcome = await uploader.apply(
            request.operation_type,
            variant,
            filename,
            request.target_format.mime_type,
            payload,
            alt_text,
            context,
        )
        preview_url, live_url = await self._resolve_links(api, variant, context)

        return {
            "alt_text": alt_text,
            "image_url": outcome.asset.url,
            "preview_url": preview_url,
            "live_url": live_url,
            "metadata": {
                "filename": filename,
                "asset_id": outcome.asset.id,
                "deleted_asset_id": outcome.deleted_asset_id,
                "variant_bound": outcome.variant_bound,
                "notes": outcome.notes,
                "target_format": request.target_format.value,
            },
        }

    async def _resolve_links(
        self, api: ProductApiProtocol, variant: ProductVariant, context: LogContext
    ) -> Tuple[Optional[str], Optional[str]]:
        if variant.product.status.upper() == "DRAFT":
            try:
                return await api.preview_link(variant.product.id), None
            except Exception as exc:  # noqa: BLE001
                self._logger.warning(f"Failed to generate preview link: {exc}", context)
                return None, None
        return None, api.live_url(variant.product.handle)

    async def process_single(
        self,
        credentials: StoreCredentials,
        query: str,
        query_type: str,
        request: BatchRequest,
        content: bytes,
    ) -> ProductOperation:
        """Apply one image to the product found by SKU or URL, outside any batch.

        Raises ProductLookupError if nothing matches ``query``; any failure
        after the lookup is recorded on the returned operation's record and
        re-raised.
        """
        context = LogContext(
            operation="process_single", component="batch_orchestrator"
        ).with_metadata(query=query, query_type=query_type)

        api = self._api_factory(credentials)
        try:
            if query_type == "url":
                variant = await api.get_product_from_url(query)
            else:
                variant = await api.search_product_by_code(query)
            if variant is None:
                raise ProductLookupError(f"Product not found: {query}")

            code = variant.sku or query
            operation = self._store.create_product_operation(
                store_id=credentials.store_id,
                product_id=variant.product.id,
                variant_id=variant.id,
                product_code=code,
                operation_type=request.operation_type,
                alt_text=request.alt_text,
            )
            uploader = RemoteUploadClient(
                api, self._logger, self._settings.legacy_media_fallback
            )
            try:
                details = await self.upload_for_variant(
                    api, uploader, variant, code, content, request, context
                )
            except Exception as exc:
                self._store.finalize_product_operation(
                    operation.id, status=OperationStatus.ERROR, error_message=str(exc)
                )
                self._logger.error(f"Image operation failed: {exc}", context)
                raise
        finally:
            await self._close(api, context)

        self._logger.info("Image updated", context, url=details.get("image_url"))
        return self._store.finalize_product_operation(
            operation.id, status=OperationStatus.SUCCESS, **details
        )

    def _record_metric(
        self, start_time: float, success: bool, code: str, error: Optional[str] = None
    ) -> None:
        if self._metrics is not None:
            self._metrics.record("process_code", start_time, success, error, code=code)
