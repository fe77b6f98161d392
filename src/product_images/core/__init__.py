"""Core components for bulk product image operations."""

from .archive import extract_archive, preview_archive
from .exceptions import (
    ArchiveFormatError,
    BatchNotFoundError,
    BatchStateError,
    ConfigurationError,
    DeletionError,
    InputError,
    ProductImagesError,
    ProductLookupError,
    RemoteApiError,
    ResolutionError,
    UploadTransferError,
    with_error_handling,
)
from .logging_config import get_logger, set_debug_logging, setup_logger
from .matching import find_matching_code, matches, parse_code_list, validate_codes
from .models import (
    MAX_BATCH_CODES,
    BatchOperation,
    BatchRequest,
    BatchStatus,
    Dimensions,
    ImageResolutionMode,
    ImageSource,
    OperationStatus,
    OperationType,
    ProductOperation,
    StoreCredentials,
    TargetFormat,
    UploadedFile,
)
from .resolution import build_batch_request, resolve_images
from .settings import ServiceSettings

__all__ = [
    "MAX_BATCH_CODES",
    "BatchOperation",
    "BatchRequest",
    "BatchStatus",
    "Dimensions",
    "ImageResolutionMode",
    "ImageSource",
    "OperationStatus",
    "OperationType",
    "ProductOperation",
    "StoreCredentials",
    "TargetFormat",
    "UploadedFile",
    "ServiceSettings",
    "extract_archive",
    "preview_archive",
    "matches",
    "find_matching_code",
    "parse_code_list",
    "validate_codes",
    "build_batch_request",
    "resolve_images",
    "setup_logger",
    "get_logger",
    "set_debug_logging",
    "ProductImagesError",
    "InputError",
    "ArchiveFormatError",
    "ConfigurationError",
    "RemoteApiError",
    "UploadTransferError",
    "DeletionError",
    "ProductLookupError",
    "ResolutionError",
    "BatchStateError",
    "BatchNotFoundError",
    "with_error_handling",
]
