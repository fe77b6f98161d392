"""Fake implementations for testing purposes."""

import io
import itertools
import re
import time
import zipfile
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Type

from PIL import Image

from ..core.exceptions import RemoteApiError, UploadTransferError
from ..core.models import (
    ProductSummary,
    ProductVariant,
    RemoteAsset,
    StagedParameter,
    StagedTarget,
    VariantImage,
)


@dataclass
class FakeVariant:
    """Fake product variant for testing."""

    id: str
    sku: str
    title: str = "Default Title"
    image_id: Optional[str] = None


@dataclass
class FakeProduct:
    """Fake product with its media list, for testing."""

    id: str
    title: str
    handle: str
    status: str = "ACTIVE"
    variants: List[FakeVariant] = field(default_factory=list)
    media: List[RemoteAsset] = field(default_factory=list)

    def find_media(self, media_id: str) -> Optional[RemoteAsset]:
        """Get media entry by id."""
        return next((m for m in self.media if m.id == media_id), None)


@dataclass
class _Failure:
    message: str
    error_type: Type[Exception]
    match: Optional[str]


class FakeProductApi:
    """In-memory stand-in for the remote product API."""

    def __init__(self, store_url: str = "test-shop.myshopify.com"):
        self.store_url = store_url
        self.shop_name = "Test Shop"
        self.products: Dict[str, FakeProduct] = {}
        self.uploads: Dict[str, Tuple[str, str, bytes]] = {}
        self.files: List[RemoteAsset] = []
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.close_count = 0
        self.reject_deletes = False
        self._failures: Dict[str, _Failure] = {}
        self._reserved: Dict[str, StagedTarget] = {}
        self._ids = itertools.count(1001)

    # Catalog setup

    def add_product(
        self,
        sku: str,
        title: str = "Test Product",
        status: str = "ACTIVE",
        handle: Optional[str] = None,
        with_image: bool = True,
        image_alt: Optional[str] = None,
        extra_media: int = 0,
        legacy_image_id: bool = False,
    ) -> FakeProduct:
        """Add a single-variant product to the catalog."""
        product_id = f"gid://shopify/Product/{next(self._ids)}"
        product = FakeProduct(
            id=product_id,
            title=title,
            handle=handle or re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-"),
            status=status,
        )
        variant = FakeVariant(id=f"gid://shopify/ProductVariant/{next(self._ids)}", sku=sku)
        product.variants.append(variant)

        if with_image:
            media = self._new_media(f"{sku}-original.jpg", image_alt)
            product.media.append(media)
            if legacy_image_id:
                variant.image_id = f"gid://shopify/ProductImage/{next(self._ids)}"
            else:
                variant.image_id = media.id
        for index in range(extra_media):
            product.media.append(self._new_media(f"{sku}-extra-{index}.jpg", None))

        self.products[product_id] = product
        return product

    def product_for_sku(self, sku: str) -> Optional[FakeProduct]:
        """Get the product owning ``sku``."""
        for product in self.products.values():
            if any(v.sku == sku for v in product.variants):
                return product
        return None

    def set_failure_mode(
        self,
        method: str,
        should_fail: bool = True,
        message: str = "Simulated API failure",
        error_type: Type[Exception] = RemoteApiError,
        match: Optional[str] = None,
    ) -> None:
        """Configure failure mode for one API method.

        When ``match`` is given, only calls whose string arguments contain it
        fail.
        """
        if should_fail:
            self._failures[method] = _Failure(message, error_type, match)
        else:
            self._failures.pop(method, None)

    def call_names(self) -> List[str]:
        """Names of the API methods called, in order."""
        return [name for name, _ in self.calls]

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        failure = self._failures.get(method)
        if failure is None:
            return
        if failure.match is None or any(
            isinstance(arg, str) and failure.match in arg for arg in args
        ):
            raise failure.error_type(failure.message)

    def _new_media(self, filename: str, alt_text: Optional[str]) -> RemoteAsset:
        return RemoteAsset(
            id=f"gid://shopify/MediaImage/{next(self._ids)}",
            url=f"https://cdn.example.test/files/{filename}",
            status="READY",
            alt_text=alt_text,
        )

    def _to_variant(self, product: FakeProduct, variant: FakeVariant) -> ProductVariant:
        image = None
        if variant.image_id:
            media = product.find_media(variant.image_id)
            image = VariantImage(
                id=variant.image_id,
                url=media.url if media else f"https://cdn.example.test/legacy/{variant.sku}.jpg",
                alt_text=media.alt_text if media else (product.media[0].alt_text if product.media else None),
            )
        return ProductVariant(
            id=variant.id,
            sku=variant.sku,
            title=variant.title,
            image=image,
            product=ProductSummary(
                id=product.id, title=product.title, handle=product.handle, status=product.status
            ),
        )

    def _require_product(self, product_id: str) -> FakeProduct:
        product = self.products.get(product_id)
        if product is None:
            raise RemoteApiError(f"Product {product_id} not found")
        return product

    # ProductApiProtocol

    async def test_connection(self) -> str:
        self._record("test_connection")
        return self.shop_name

    async def search_product_by_code(self, code: str) -> Optional[ProductVariant]:
        self._record("search_product_by_code", code)
        for product in self.products.values():
            for variant in product.variants:
                if variant.sku == code:
                    return self._to_variant(product, variant)
        return None

    async def get_product_from_url(self, url: str) -> Optional[ProductVariant]:
        self._record("get_product_from_url", url)
        handle_match = re.search(r"/products/([^/?#]+)", url)
        if not handle_match:
            raise RemoteApiError("Could not extract product handle from URL")
        variant_match = re.search(r"[?&]variant=(\d+)", url)
        for product in self.products.values():
            if product.handle != handle_match.group(1) or not product.variants:
                continue
            if variant_match:
                wanted = f"gid://shopify/ProductVariant/{variant_match.group(1)}"
                for variant in product.variants:
                    if variant.id == wanted:
                        return self._to_variant(product, variant)
            return self._to_variant(product, product.variants[0])
        return None

    async def reserve_upload(self, filename: str, mime_type: str, size: int) -> StagedTarget:
        self._record("reserve_upload", filename, mime_type)
        slot = next(self._ids)
        target = StagedTarget(
            url=f"https://uploads.example.test/slots/{slot}",
            resource_url=f"https://uploads.example.test/resources/{slot}/{filename}",
            parameters=[
                StagedParameter(name="key", value=f"tmp/{slot}/{filename}"),
                StagedParameter(name="Content-Type", value=mime_type),
            ],
        )
        self._reserved[target.resource_url] = target
        return target

    async def transfer(
        self, target: StagedTarget, filename: str, mime_type: str, content: bytes
    ) -> None:
        self._record("transfer", filename, mime_type)
        if target.resource_url not in self._reserved:
            raise UploadTransferError(f"Upload slot for {filename} was never reserved")
        self.uploads[target.resource_url] = (filename, mime_type, content)

    async def register_asset(self, resource_url: str, alt_text: Optional[str] = None) -> RemoteAsset:
        self._record("register_asset", resource_url)
        if resource_url not in self.uploads:
            raise UploadTransferError(f"Nothing was uploaded to {resource_url}")
        asset = self._new_media(self.uploads[resource_url][0], alt_text)
        self.files.append(asset)
        return asset

    async def attach_asset_to_product(
        self, product_id: str, resource_url: str, alt_text: Optional[str] = None
    ) -> RemoteAsset:
        self._record("attach_asset_to_product", product_id, resource_url)
        if resource_url not in self.uploads:
            raise UploadTransferError(f"Nothing was uploaded to {resource_url}")
        product = self._require_product(product_id)
        asset = self._new_media(self.uploads[resource_url][0], alt_text)
        product.media.append(asset)
        return asset

    async def list_product_media(self, product_id: str) -> List[RemoteAsset]:
        self._record("list_product_media", product_id)
        return list(self._require_product(product_id).media)

    async def delete_asset(self, product_id: str, asset_id: str) -> bool:
        self._record("delete_asset", product_id, asset_id)
        if self.reject_deletes:
            return False
        product = self._require_product(product_id)
        media = product.find_media(asset_id)
        if media is None:
            return False
        product.media.remove(media)
        for variant in product.variants:
            if variant.image_id == asset_id:
                variant.image_id = None
        return True

    async def bind_asset_to_variant(self, product_id: str, variant_id: str, asset_id: str) -> bool:
        self._record("bind_asset_to_variant", product_id, variant_id, asset_id)
        product = self._require_product(product_id)
        if product.find_media(asset_id) is None:
            raise RemoteApiError(f"Media {asset_id} does not belong to {product_id}")
        for variant in product.variants:
            if variant.id == variant_id:
                variant.image_id = asset_id
                return True
        raise RemoteApiError(f"Variant {variant_id} not found")

    async def preview_link(self, product_id: str) -> Optional[str]:
        self._record("preview_link", product_id)
        product = self._require_product(product_id)
        return f"https://{self.store_url}/products/{product.handle}?preview_key=fake"

    async def update_alt_text(self, product_id: str, asset_id: str, alt_text: str) -> bool:
        self._record("update_alt_text", product_id, asset_id, alt_text)
        product = self._require_product(product_id)
        media = product.find_media(asset_id)
        if media is None:
            raise RemoteApiError(f"Media {asset_id} not found")
        product.media[product.media.index(media)] = media.model_copy(update={"alt_text": alt_text})
        return True

    def live_url(self, handle: str) -> str:
        return f"https://{self.store_url.replace('.myshopify.com', '.com')}/products/{handle}"

    async def aclose(self) -> None:
        self.close_count += 1
        failure = self._failures.get("aclose")
        if failure is not None:
            raise failure.error_type(failure.message)


class FakeLogger:
    """Fake logger for testing with support for LogContext."""

    def __init__(self, name: str = "test_logger"):
        self.name = name
        self.logs: List[Dict[str, Any]] = []
        self.should_fail = False

    def _log(
        self, level: str, message: str, context: Any = None, **kwargs: Any
    ) -> None:
        """Internal logging method with context support."""
        if self.should_fail:
            raise Exception("Simulated logging failure")

        log_entry = {
            "level": level,
            "message": message,
            "timestamp": time.time(),
            **kwargs,
        }

        if context is not None:
            if hasattr(context, "correlation_id"):
                log_entry["correlation_id"] = context.correlation_id
            if hasattr(context, "operation"):
                log_entry["operation"] = context.operation
            if hasattr(context, "component"):
                log_entry["component"] = context.component
            if hasattr(context, "metadata"):
                log_entry.update(context.metadata)

        self.logs.append(log_entry)

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log debug message."""
        self._log("DEBUG", message, context, **kwargs)

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log info message."""
        self._log("INFO", message, context, **kwargs)

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log warning message."""
        self._log("WARNING", message, context, **kwargs)

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log error message."""
        self._log("ERROR", message, context, **kwargs)

    def get_logs(self, level: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get logged messages, optionally filtered by level."""
        if level:
            return [log for log in self.logs if log["level"] == level]
        return self.logs.copy()

    def clear_logs(self) -> None:
        """Clear all logged messages."""
        self.logs.clear()


def create_test_image(
    width: int = 100,
    height: int = 100,
    fmt: str = "JPEG",
    mode: str = "RGB",
    color: Any = "red",
) -> bytes:
    """Create a test image in memory."""
    image = Image.new(mode, (width, height), color=color)

    img_bytes = io.BytesIO()
    image.save(img_bytes, format=fmt)
    return img_bytes.getvalue()


def create_test_archive(files: Dict[str, bytes]) -> bytes:
    """Build a ZIP archive in memory from ``{path: content}``."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def setup_test_catalog() -> FakeProductApi:
    """Set up a fake store with a handful of representative products."""
    api = FakeProductApi()
    api.add_product("FL-001", title="Blue Cotton Shirt Long Sleeve", image_alt="Blue shirt")
    api.add_product("FL-002", title="Red Wool Scarf", status="DRAFT")
    api.add_product("FL-003", title="Green Canvas Tote", with_image=False)
    api.add_product("LEG-001", title="Legacy Leather Belt", legacy_image_id=True, extra_media=1)
    return api
