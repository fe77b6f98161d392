"""Shared data models for product image operations."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_BATCH_CODES = 30


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class OperationType(str, Enum):
    REPLACE = "replace"
    ADD = "add"


class ImageResolutionMode(str, Enum):
    SINGLE = "single"
    ARCHIVE = "archive"
    PER_CODE = "per_code"


class TargetFormat(str, Enum):
    PNG = "PNG"
    JPEG = "JPEG"
    WEBP = "WEBP"

    @property
    def mime_type(self) -> str:
        return f"image/{self.value.lower()}"

    @property
    def extension(self) -> str:
        return "jpg" if self is TargetFormat.JPEG else self.value.lower()


class BatchStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.COMPLETED, BatchStatus.ERROR)


class OperationStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class Dimensions(BaseModel):
    """Target width and height in pixels."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(gt=0)
    height: int = Field(gt=0)


class StoreCredentials(BaseModel):
    """Resolved credentials for one storefront, fixed for the lifetime of a batch."""

    model_config = ConfigDict(frozen=True)

    store_url: str
    access_token: str = Field(repr=False)
    store_id: Optional[str] = None
    name: str = ""


class StoreConfig(BaseModel):
    """Persisted storefront configuration."""

    id: str = Field(default_factory=_new_id)
    name: str
    store_url: str
    access_token: str = Field(repr=False)
    is_active: bool = False
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    def to_credentials(self) -> StoreCredentials:
        return StoreCredentials(
            store_url=self.store_url,
            access_token=self.access_token,
            store_id=self.id,
            name=self.name,
        )


class VariantImage(BaseModel):
    id: str
    url: str = ""
    alt_text: Optional[str] = None


class ProductSummary(BaseModel):
    id: str
    title: str = ""
    handle: str = ""
    status: str = "ACTIVE"


class ProductVariant(BaseModel):
    """A purchasable variant together with its parent product."""

    id: str
    sku: str = ""
    title: str = ""
    image: Optional[VariantImage] = None
    product: ProductSummary


class StagedParameter(BaseModel):
    name: str
    value: str


class StagedTarget(BaseModel):
    """Upload slot returned by the reserve step."""

    url: str
    resource_url: str
    parameters: List[StagedParameter] = Field(default_factory=list)


class RemoteAsset(BaseModel):
    """An image registered with the remote service."""

    id: str
    url: str = ""
    status: str = ""
    alt_text: Optional[str] = None


class BatchRequest(BaseModel):
    """A validated bulk image request; immutable once submitted."""

    model_config = ConfigDict(frozen=True)

    codes: List[str] = Field(min_length=1, max_length=MAX_BATCH_CODES)
    operation_type: OperationType = OperationType.REPLACE
    resolution_mode: ImageResolutionMode = ImageResolutionMode.ARCHIVE
    alt_text: Optional[str] = None
    copy_existing_alt: bool = False
    dimensions: Optional[Dimensions] = None
    target_format: TargetFormat = TargetFormat.JPEG

    @field_validator("codes")
    @classmethod
    def _unique_codes(cls, value: List[str]) -> List[str]:
        if len(set(value)) != len(value):
            raise ValueError("codes must be unique")
        if any(not code.strip() for code in value):
            raise ValueError("codes must not be blank")
        return value


class UploadedFile(BaseModel):
    """An uploaded image, optionally bound to a product code by the caller."""

    filename: str
    content: bytes = Field(repr=False)
    code: Optional[str] = None


class ImageSource(BaseModel):
    """The raw image inputs accompanying a batch request."""

    single_file: Optional[UploadedFile] = None
    archive: Optional[bytes] = Field(default=None, repr=False)
    per_code_files: List[UploadedFile] = Field(default_factory=list)


class ArchiveEntry(BaseModel):
    filename: str
    basename: str
    extension: str
    content: bytes = Field(repr=False)


class ArchivePreviewEntry(BaseModel):
    filename: str
    matched: bool
    code: Optional[str] = None


class ArchivePreview(BaseModel):
    """Dry-run classification of archive entries against a code list."""

    entries: List[ArchivePreviewEntry] = Field(default_factory=list)
    total_files: int = 0
    matched_count: int = 0
    unmatched_count: int = 0
    codes_without_image: List[str] = Field(default_factory=list)


class BatchOperation(BaseModel):
    """Aggregate progress of one batch; polled by clients."""

    id: str = Field(default_factory=_new_id)
    store_id: Optional[str] = None
    name: str = ""
    operation_type: OperationType
    total_items: int = Field(ge=0)
    completed_items: int = 0
    failed_items: int = 0
    status: BatchStatus = BatchStatus.PENDING
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @property
    def succeeded_items(self) -> int:
        return self.completed_items - self.failed_items

    @property
    def progress_pct(self) -> float:
        if self.total_items <= 0:
            return 0.0
        return round(self.completed_items / self.total_items * 100, 2)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class ProductOperation(BaseModel):
    """Outcome of one product-code operation."""

    id: str = Field(default_factory=_new_id)
    batch_id: Optional[str] = None
    store_id: Optional[str] = None
    product_id: Optional[str] = None
    variant_id: Optional[str] = None
    product_code: str
    operation_type: OperationType
    image_url: Optional[str] = None
    alt_text: Optional[str] = None
    preview_url: Optional[str] = None
    live_url: Optional[str] = None
    status: OperationStatus = OperationStatus.PENDING
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utc_now)

    @property
    def resulting_url(self) -> Optional[str]:
        return self.preview_url or self.live_url


class CodeSearchResult(BaseModel):
    code: str
    status: str
    product: Optional[ProductVariant] = None
    error: Optional[str] = None
