"""Archive extraction and dry-run preview."""

import io
import posixpath
import zipfile
from typing import List, Optional, Sequence, Tuple

from .exceptions import ArchiveFormatError, InputError
from .logging_config import get_logger
from .matching import assign_files
from .models import ArchiveEntry, ArchivePreview, ArchivePreviewEntry

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "webp"})


def split_filename(filename: str) -> Tuple[str, str]:
    """Return ``(basename_without_extension, lowercase_extension)``."""
    name = posixpath.basename(filename.replace("\\", "/"))
    stem, dot, ext = name.rpartition(".")
    if not dot:
        return name, ""
    return stem, ext.lower()


def is_image_filename(filename: str) -> bool:
    return split_filename(filename)[1] in IMAGE_EXTENSIONS


def _is_resource_fork(filename: str) -> bool:
    name = filename.replace("\\", "/")
    return name.startswith("__MACOSX/") or posixpath.basename(name).startswith("._")


def extract_archive(data: bytes, max_bytes: Optional[int] = None) -> List[ArchiveEntry]:
    """
    Unpack a ZIP archive held in memory.

    Only ``jpg``, ``jpeg``, ``png`` and ``webp`` entries are returned;
    directories, resource forks and other files are skipped.

    Args:
        data: Raw archive bytes
        max_bytes: Optional upper bound on the archive size

    Returns:
        Entries in archive order

    Raises:
        InputError: If the archive exceeds ``max_bytes``
        ArchiveFormatError: If ``data`` is not a readable archive
    """
    logger = get_logger("product-images.archive")

    if max_bytes is not None and len(data) > max_bytes:
        raise InputError(
            f"Archive is {len(data)} bytes, larger than the {max_bytes} byte limit"
        )

    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as exc:
        raise ArchiveFormatError(f"Not a valid ZIP archive: {exc}") from exc

    entries: List[ArchiveEntry] = []
    with archive:
        for info in archive.infolist():
            if info.is_dir() or _is_resource_fork(info.filename):
                continue
            basename, extension = split_filename(info.filename)
            if extension not in IMAGE_EXTENSIONS or not basename:
                logger.debug(f"Skipping non-image archive entry {info.filename}")
                continue
            try:
                content = archive.read(info)
            except (zipfile.BadZipFile, RuntimeError, OSError) as exc:
                raise ArchiveFormatError(
                    f"Cannot read archive entry {info.filename}: {exc}"
                ) from exc
            entries.append(
                ArchiveEntry(
                    filename=info.filename,
                    basename=basename,
                    extension=extension,
                    content=content,
                )
            )

    logger.info(f"Extracted {len(entries)} image entries from archive")
    return entries


def preview_archive(
    data: bytes, codes: Sequence[str], max_bytes: Optional[int] = None
) -> ArchivePreview:
    """Classify archive entries against ``codes`` without touching the remote API."""
    entries = extract_archive(data, max_bytes=max_bytes)
    assignments = assign_files(codes, ((e.basename, e) for e in entries))

    preview_entries = [
        ArchivePreviewEntry(filename=entry.filename, matched=code is not None, code=code)
        for _, code, entry in assignments
    ]
    matched_codes = {entry.code for entry in preview_entries if entry.code}
    matched_count = sum(1 for entry in preview_entries if entry.matched)

    return ArchivePreview(
        entries=preview_entries,
        total_files=len(preview_entries),
        matched_count=matched_count,
        unmatched_count=len(preview_entries) - matched_count,
        codes_without_image=[code for code in codes if code not in matched_codes],
    )
