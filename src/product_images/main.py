"""Main module for the product images CLI."""

import sys
import asyncio
import argparse
from pathlib import Path
from typing import List, Optional

from . import __version__
from .core.exceptions import InputError, ProductImagesError
from .core.factories import ServiceFactory
from .core.logging_config import set_debug_logging
from .core.matching import parse_code_list
from .core.models import (
    BatchOperation,
    BatchRequest,
    Dimensions,
    ImageResolutionMode,
    ImageSource,
    OperationType,
    StoreCredentials,
    TargetFormat,
    UploadedFile,
)
from .core.resolution import build_batch_request
from .core.service import ProductImageService
from .core.settings import ServiceSettings


def _add_credential_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--store-url", help="Store domain, e.g. my-shop.myshopify.com")
    parser.add_argument("--access-token", help="Admin API access token")


def _add_code_args(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--codes", help="Product codes separated by commas or newlines")
    group.add_argument("--codes-file", type=Path, help="Text file with one product code per line")


def build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="product-images",
        description="Product Images - bulk image replacement for storefront products",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check which archive files match which codes (no network access)
  product-images preview --archive images.zip --codes "FL-001,FL-002"

  # Replace images for up to 30 products from a ZIP archive
  product-images batch --codes "FL-001,FL-002" --archive images.zip --format WEBP

  # Show version
  product-images version
        """,
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers: argparse._SubParsersAction = parser.add_subparsers(
        dest="command", help="Available commands"
    )

    search_parser = subparsers.add_parser("search", help="Look up a product by SKU or URL")
    _add_credential_args(search_parser)
    query = search_parser.add_mutually_exclusive_group(required=True)
    query.add_argument("--sku", help="Product SKU")
    query.add_argument("--url", help="Storefront product URL")

    preview_parser = subparsers.add_parser(
        "preview", help="Show how archive files map to product codes"
    )
    preview_parser.add_argument("--archive", type=Path, required=True, help="ZIP archive")
    _add_code_args(preview_parser)

    batch_parser = subparsers.add_parser("batch", help="Replace or add images for many products")
    _add_credential_args(batch_parser)
    _add_code_args(batch_parser)
    batch_parser.add_argument(
        "--operation",
        choices=[o.value for o in OperationType],
        default=OperationType.REPLACE.value,
        help="replace the current image or add another one (default: replace)",
    )
    source = batch_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--single", type=Path, help="One image used for every code")
    source.add_argument("--archive", type=Path, help="ZIP archive of images named by code")
    source.add_argument(
        "--file",
        action="append",
        metavar="CODE=FILE",
        help="Image for one code; repeat for each code",
    )
    batch_parser.add_argument("--alt-text", help="Alt text for the new images")
    batch_parser.add_argument(
        "--copy-existing-alt",
        action="store_true",
        help="Reuse each product's current alt text",
    )
    batch_parser.add_argument("--width", type=int, help="Target width in pixels")
    batch_parser.add_argument("--height", type=int, help="Target height in pixels")
    batch_parser.add_argument(
        "--format",
        choices=[f.value for f in TargetFormat],
        default=None,
        help="Output image format (default: JPEG)",
    )

    subparsers.add_parser("version", help="Show version information")
    return parser


def _read_codes(args: argparse.Namespace) -> List[str]:
    text = args.codes_file.read_text() if args.codes_file else args.codes
    return parse_code_list(text)


def _credentials(args: argparse.Namespace, settings: ServiceSettings) -> StoreCredentials:
    store_url = args.store_url or settings.store_url
    access_token = args.access_token or settings.access_token
    if not store_url or not access_token:
        raise InputError(
            "Store credentials required: pass --store-url/--access-token or set "
            "PRODUCT_IMAGES_STORE_URL and PRODUCT_IMAGES_ACCESS_TOKEN"
        )
    return StoreCredentials(store_url=store_url, access_token=access_token)


def _dimensions(args: argparse.Namespace) -> Optional[Dimensions]:
    if args.width is None and args.height is None:
        return None
    if args.width is None or args.height is None:
        raise InputError("--width and --height must be given together")
    if args.width <= 0 or args.height <= 0:
        raise InputError("--width and --height must be positive")
    return Dimensions(width=args.width, height=args.height)


def _image_source(args: argparse.Namespace) -> ImageSource:
    if args.single:
        return ImageSource(
            single_file=UploadedFile(filename=args.single.name, content=args.single.read_bytes())
        )
    if args.archive:
        return ImageSource(archive=args.archive.read_bytes())

    files = []
    for entry in args.file:
        code, sep, path = entry.partition("=")
        if not sep or not code.strip() or not path:
            raise InputError(f"Expected CODE=FILE, got {entry!r}")
        image_path = Path(path)
        files.append(
            UploadedFile(filename=image_path.name, content=image_path.read_bytes(), code=code.strip())
        )
    return ImageSource(per_code_files=files)


def _build_request(args: argparse.Namespace, settings: ServiceSettings) -> BatchRequest:
    if args.single:
        mode = ImageResolutionMode.SINGLE
    elif args.archive:
        mode = ImageResolutionMode.ARCHIVE
    else:
        mode = ImageResolutionMode.PER_CODE
    return build_batch_request(
        _read_codes(args),
        operation_type=OperationType(args.operation),
        resolution_mode=mode,
        alt_text=args.alt_text,
        copy_existing_alt=args.copy_existing_alt,
        dimensions=_dimensions(args),
        target_format=TargetFormat(args.format) if args.format else settings.default_target_format,
    )


async def run_batch(
    service: ProductImageService,
    request: BatchRequest,
    source: ImageSource,
    credentials: StoreCredentials,
    interval: float,
) -> BatchOperation:
    """Submit a batch and print progress until it finishes."""
    batch = await service.submit_batch(request, source, credentials)
    print(f"Batch {batch.id} submitted ({batch.total_items} products)")

    reported = -1
    while True:
        snapshot = service.poll_batch(batch.id)
        if snapshot.completed_items != reported:
            reported = snapshot.completed_items
            print(
                f"  {snapshot.completed_items}/{snapshot.total_items} processed "
                f"({snapshot.failed_items} failed)"
            )
        if snapshot.is_terminal:
            break
        await asyncio.sleep(interval)

    for operation in service.list_operations(batch_id=batch.id):
        if operation.status.value == "success":
            print(f"  OK    {operation.product_code}: {operation.resulting_url or operation.image_url}")
        else:
            print(f"  ERROR {operation.product_code}: {operation.error_message}")
    print(f"Batch {snapshot.status.value}")
    return snapshot


def _search(args: argparse.Namespace, settings: ServiceSettings) -> int:
    service = ServiceFactory.create_service(settings=settings)
    query_type = "url" if args.url else "sku"
    variant = asyncio.run(
        service.search_product(args.url or args.sku, query_type, _credentials(args, settings))
    )
    if variant is None:
        print("Product not found")
        return 1
    print(f"{variant.product.title} ({variant.product.status})")
    print(f"  product: {variant.product.id}")
    print(f"  variant: {variant.id} sku={variant.sku or '-'}")
    print(f"  image:   {variant.image.url if variant.image else 'none'}")
    return 0


def _preview(args: argparse.Namespace, settings: ServiceSettings) -> int:
    service = ServiceFactory.create_service(settings=settings)
    preview = service.preview_archive(args.archive.read_bytes(), _read_codes(args))
    for entry in preview.entries:
        target = entry.code if entry.matched else "(no match)"
        print(f"  {entry.filename} -> {target}")
    print(
        f"{preview.matched_count}/{preview.total_files} files matched, "
        f"{preview.unmatched_count} unmatched"
    )
    if preview.codes_without_image:
        print(f"Codes without an image: {', '.join(preview.codes_without_image)}")
    return 0


def _batch(args: argparse.Namespace, settings: ServiceSettings) -> int:
    credentials = _credentials(args, settings)
    request = _build_request(args, settings)
    source = _image_source(args)
    service = ServiceFactory.create_service(settings=settings)
    result = asyncio.run(
        run_batch(service, request, source, credentials, settings.poll_interval_seconds)
    )
    return 1 if result.status.value == "error" else 0


def main() -> None:
    """Entry point for the ``product-images`` command-line interface."""
    parser = build_parser()
    args: argparse.Namespace = parser.parse_args()

    if args.debug:
        set_debug_logging()

    if args.command == "version":
        print("Product Images CLI")
        print(f"Version {__version__}")
        print("Bulk product image replacement via the storefront admin API")
        sys.exit(0)
        return

    commands = {"search": _search, "preview": _preview, "batch": _batch}
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(1)
        return

    try:
        exit_code = command(args, ServiceSettings())
    except (ProductImagesError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
