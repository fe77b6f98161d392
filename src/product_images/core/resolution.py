"""Turn a batch request and its uploaded inputs into a code -> bytes mapping."""

from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from .archive import extract_archive, split_filename
from .exceptions import InputError
from .logging_config import get_logger
from .matching import build_code_map, validate_codes
from .models import BatchRequest, ImageResolutionMode, ImageSource, UploadedFile


def _resolve_single(request: BatchRequest, single: Optional[UploadedFile]) -> Dict[str, bytes]:
    if single is None or not single.content:
        raise InputError("Single-file mode requires an image file")
    return {code: single.content for code in request.codes}


def _resolve_archive(
    request: BatchRequest, archive: Optional[bytes], max_archive_bytes: Optional[int]
) -> Dict[str, bytes]:
    if not archive:
        raise InputError("Archive mode requires a ZIP archive")
    entries = extract_archive(archive, max_bytes=max_archive_bytes)
    return build_code_map(request.codes, ((e.basename, e.content) for e in entries))


def _resolve_per_code(request: BatchRequest, files: List[UploadedFile]) -> Dict[str, bytes]:
    if not files:
        raise InputError("Per-code mode requires at least one image file")

    images: Dict[str, bytes] = {}
    unbound = []
    for uploaded in files:
        if uploaded.code is None:
            unbound.append(uploaded)
            continue
        if uploaded.code not in request.codes:
            raise InputError(f"File {uploaded.filename} is bound to unknown code {uploaded.code}")
        images.setdefault(uploaded.code, uploaded.content)

    remaining = [code for code in request.codes if code not in images]
    images.update(
        build_code_map(
            remaining,
            ((split_filename(f.filename)[0], f.content) for f in unbound),
        )
    )
    return images


def resolve_images(
    request: BatchRequest,
    source: ImageSource,
    max_archive_bytes: Optional[int] = None,
) -> Dict[str, bytes]:
    """
    Build the ResolvedImageSet for a batch.

    Every key is drawn from ``request.codes``. Codes without an image are
    simply absent; the orchestrator records them as failures.

    Raises:
        InputError: If the chosen mode has no usable input
        ArchiveFormatError: If the archive cannot be read
    """
    logger = get_logger("product-images.resolution")

    mode = request.resolution_mode
    if mode is ImageResolutionMode.SINGLE:
        images = _resolve_single(request, source.single_file)
    elif mode is ImageResolutionMode.ARCHIVE:
        images = _resolve_archive(request, source.archive, max_archive_bytes)
    elif mode is ImageResolutionMode.PER_CODE:
        images = _resolve_per_code(request, source.per_code_files)
    else:
        raise InputError(f"Unsupported image resolution mode: {mode}")

    missing = [code for code in request.codes if code not in images]
    logger.info(
        f"Resolved images for {len(images)}/{len(request.codes)} codes ({mode.value})"
    )
    if missing:
        logger.debug(f"No image resolved for: {', '.join(missing)}")
    return images


def build_batch_request(codes: Sequence[str], **options: Any) -> BatchRequest:
    """Validate a raw code list and build an immutable BatchRequest from it.

    The 30-code cap is checked on the raw list before duplicates are dropped.

    Raises:
        InputError: If the codes or options are invalid
    """
    unique_codes = validate_codes(codes)
    try:
        return BatchRequest(codes=unique_codes, **options)
    except ValidationError as exc:
        raise InputError(f"Invalid batch request: {exc}") from exc
