"""Staged upload protocol and the replace/add image flows built on it."""

from dataclasses import dataclass, field
from typing import List, Optional

from .exceptions import DeletionError, ProductImagesError, UploadTransferError
from .models import OperationType, ProductVariant, RemoteAsset, StagedTarget
from .observability import LogContext
from .protocols import LoggerProtocol, ProductApiProtocol

LEGACY_IMAGE_PREFIX = "gid://shopify/ProductImage/"


def is_legacy_asset_id(asset_id: str) -> bool:
    """Product image ids predate media ids and cannot be deleted directly."""
    return asset_id.startswith(LEGACY_IMAGE_PREFIX)


@dataclass
class UploadOutcome:
    """Result of a replace or add flow for one product."""

    asset: RemoteAsset
    deleted_asset_id: Optional[str] = None
    variant_bound: bool = False
    notes: List[str] = field(default_factory=list)


class RemoteUploadClient:
    """Reserve -> transfer -> register, plus cleanup of superseded media."""

    def __init__(
        self,
        api: ProductApiProtocol,
        logger: LoggerProtocol,
        legacy_media_fallback: bool = True,
    ):
        self._api = api
        self._logger = logger
        self._legacy_media_fallback = legacy_media_fallback

    async def stage(self, filename: str, mime_type: str, content: bytes) -> StagedTarget:
        """Reserve an upload slot and transfer ``content`` into it."""
        target = await self._api.reserve_upload(filename, mime_type, len(content))
        await self._api.transfer(target, filename, mime_type, content)
        return target

    async def upload_file(
        self,
        filename: str,
        mime_type: str,
        content: bytes,
        alt_text: Optional[str] = None,
    ) -> RemoteAsset:
        """Stage ``content`` and register it in the file library."""
        target = await self.stage(filename, mime_type, content)
        return await self._api.register_asset(target.resource_url, alt_text)

    async def apply(
        self,
        operation_type: OperationType,
        variant: ProductVariant,
        filename: str,
        mime_type: str,
        content: bytes,
        alt_text: Optional[str] = None,
        context: Optional[LogContext] = None,
    ) -> UploadOutcome:
        if operation_type is OperationType.REPLACE:
            return await self.replace_image(
                variant, filename, mime_type, content, alt_text, context
            )
        return await self.add_image(variant, filename, mime_type, content, alt_text, context)

    async def add_image(
        self,
        variant: ProductVariant,
        filename: str,
        mime_type: str,
        content: bytes,
        alt_text: Optional[str] = None,
        context: Optional[LogContext] = None,
    ) -> UploadOutcome:
        """Attach a new image to the product; existing media is untouched."""
        outcome = UploadOutcome(
            asset=await self._stage_and_attach(variant, filename, mime_type, content, alt_text)
        )
        await self._bind_variant(variant, outcome, context)
        return outcome

    async def replace_image(
        self,
        variant: ProductVariant,
        filename: str,
        mime_type: str,
        content: bytes,
        alt_text: Optional[str] = None,
        context: Optional[LogContext] = None,
    ) -> UploadOutcome:
        """Delete the variant's current image, then attach the new one.

        Deletion is best-effort: a failure is logged and noted on the
        outcome, and the new image is attached regardless.
        """
        deleted_id: Optional[str] = None
        notes: List[str] = []
        if variant.image is not None:
            try:
                deleted_id = await self._delete_prior(
                    variant.product.id, variant.image.id, notes, context
                )
            except Exception as exc:  # noqa: BLE001
                self._logger.warning(
                    f"Could not remove previous image: {exc}",
                    context,
                    image_id=variant.image.id,
                )
                notes.append(f"previous image not removed: {exc}")
        else:
            self._logger.info("Variant has no current image; nothing to remove", context)

        outcome = UploadOutcome(
            asset=await self._stage_and_attach(variant, filename, mime_type, content, alt_text),
            deleted_asset_id=deleted_id,
            notes=notes,
        )
        await self._bind_variant(variant, outcome, context)
        return outcome

    async def _stage_and_attach(
        self,
        variant: ProductVariant,
        filename: str,
        mime_type: str,
        content: bytes,
        alt_text: Optional[str],
    ) -> RemoteAsset:
        try:
            target = await self.stage(filename, mime_type, content)
            return await self._api.attach_asset_to_product(
                variant.product.id, target.resource_url, alt_text
            )
        except UploadTransferError:
            raise
        except ProductImagesError as exc:
            raise UploadTransferError(str(exc)) from exc

    async def _delete_prior(
        self,
        product_id: str,
        asset_id: str,
        notes: List[str],
        context: Optional[LogContext],
    ) -> Optional[str]:
        if is_legacy_asset_id(asset_id):
            if not self._legacy_media_fallback:
                notes.append(f"legacy image id {asset_id} left in place")
                self._logger.warning(
                    "Legacy image id cannot be deleted directly; skipping removal", context
                )
                return None
            media = await self._api.list_product_media(product_id)
            if not media:
                notes.append("product has no media to remove")
                return None
            asset_id = media[0].id
            notes.append(
                f"legacy image id resolved to first product media {asset_id}; "
                "verify on products with several images"
            )
            self._logger.warning(
                "Legacy image id resolved to the first product media entry",
                context,
                resolved_media_id=asset_id,
                media_count=len(media),
            )

        try:
            deleted = await self._api.delete_asset(product_id, asset_id)
        except ProductImagesError as exc:
            raise DeletionError(f"delete of {asset_id} failed: {exc}") from exc
        if not deleted:
            raise DeletionError(f"remote service did not delete {asset_id}")

        self._logger.info("Removed previous image", context, media_id=asset_id)
        return asset_id

    async def _bind_variant(
        self, variant: ProductVariant, outcome: UploadOutcome, context: Optional[LogContext]
    ) -> None:
        try:
            outcome.variant_bound = await self._api.bind_asset_to_variant(
                variant.product.id, variant.id, outcome.asset.id
            )
        except Exception as exc:  # noqa: BLE001
            outcome.notes.append(f"variant binding skipped: {exc}")
            self._logger.warning(
                f"Variant binding failed; image kept at product level: {exc}",
                context,
                variant_id=variant.id,
            )
