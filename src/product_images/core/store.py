"""In-memory record store for stores, batches and product operations.

Batch records have exactly one writer (the batch's orchestrator task) and any
number of pollers. Updates are checked so that status only moves forward and
counters never decrease.
"""

import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .exceptions import BatchNotFoundError, BatchStateError, InputError
from .logging_config import get_logger
from .models import (
    BatchOperation,
    BatchStatus,
    OperationStatus,
    OperationType,
    ProductOperation,
    StoreConfig,
)

_STATUS_ORDER = {
    BatchStatus.PENDING: 0,
    BatchStatus.PROCESSING: 1,
    BatchStatus.COMPLETED: 2,
    BatchStatus.ERROR: 2,
}

_BATCH_FIELDS = {"status", "completed_items", "failed_items", "error_message", "metadata"}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def check_transition(current: BatchStatus, new: BatchStatus) -> None:
    """Allow Pending -> Processing -> {Completed, Error}, and Pending -> Error."""
    if current == new:
        return
    if current.is_terminal:
        raise BatchStateError(f"Batch is already {current.value}; cannot move to {new.value}")
    if _STATUS_ORDER[new] <= _STATUS_ORDER[current]:
        raise BatchStateError(f"Invalid batch transition {current.value} -> {new.value}")
    if new is BatchStatus.COMPLETED and current is not BatchStatus.PROCESSING:
        raise BatchStateError("A batch can only complete after processing started")


class InMemoryRecordStore:
    """Thread-safe in-memory store. Reads return copies."""

    def __init__(self) -> None:
        self._stores: Dict[str, StoreConfig] = {}
        self._batches: Dict[str, BatchOperation] = {}
        self._operations: Dict[str, ProductOperation] = {}
        self._lock = threading.Lock()
        self._logger = get_logger("product-images.store")

    # Store configuration

    def create_store(self, name: str, store_url: str, access_token: str) -> StoreConfig:
        with self._lock:
            if any(s.store_url == store_url for s in self._stores.values()):
                raise InputError(f"Store {store_url} is already configured")
            store = StoreConfig(name=name, store_url=store_url, access_token=access_token)
            self._stores[store.id] = store
            return store.model_copy()

    def update_store(self, store_id: str, **fields: Any) -> StoreConfig:
        with self._lock:
            store = self._require_store(store_id)
            updated = store.model_copy(update={**fields, "updated_at": _utc_now()})
            self._stores[store_id] = updated
            return updated.model_copy()

    def get_store(self, store_id: str) -> Optional[StoreConfig]:
        with self._lock:
            store = self._stores.get(store_id)
            return store.model_copy() if store else None

    def get_store_by_url(self, store_url: str) -> Optional[StoreConfig]:
        with self._lock:
            for store in self._stores.values():
                if store.store_url == store_url:
                    return store.model_copy()
            return None

    def list_stores(self) -> List[StoreConfig]:
        with self._lock:
            stores = sorted(self._stores.values(), key=lambda s: s.updated_at, reverse=True)
            return [s.model_copy() for s in stores]

    def set_active_store(self, store_id: str) -> StoreConfig:
        with self._lock:
            self._require_store(store_id)
            for sid, store in self._stores.items():
                self._stores[sid] = store.model_copy(update={"is_active": sid == store_id})
            return self._stores[store_id].model_copy()

    def get_active_store(self) -> Optional[StoreConfig]:
        with self._lock:
            for store in self._stores.values():
                if store.is_active:
                    return store.model_copy()
            return None

    def _require_store(self, store_id: str) -> StoreConfig:
        store = self._stores.get(store_id)
        if store is None:
            raise BatchNotFoundError(f"Store {store_id} not found")
        return store

    # Batch progress

    def create_batch(
        self,
        total_items: int,
        operation_type: OperationType = OperationType.REPLACE,
        store_id: Optional[str] = None,
        name: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> BatchOperation:
        batch = BatchOperation(
            total_items=total_items,
            operation_type=operation_type,
            store_id=store_id,
            name=name,
            metadata=metadata or {},
        )
        with self._lock:
            self._batches[batch.id] = batch
        self._logger.debug(f"Created batch {batch.id} (total={total_items})")
        return batch.model_copy(deep=True)

    def get_batch(self, handle: str) -> BatchOperation:
        with self._lock:
            return self._require_batch(handle).model_copy(deep=True)

    def update_batch(self, handle: str, **partial: Any) -> BatchOperation:
        unknown = set(partial) - _BATCH_FIELDS
        if unknown:
            raise BatchStateError(f"Cannot update batch fields: {', '.join(sorted(unknown))}")

        with self._lock:
            batch = self._require_batch(handle)

            status = BatchStatus(partial.get("status", batch.status))
            check_transition(batch.status, status)

            completed = partial.get("completed_items", batch.completed_items)
            failed = partial.get("failed_items", batch.failed_items)
            if completed < batch.completed_items or failed < batch.failed_items:
                raise BatchStateError("Batch progress counters cannot decrease")
            if not (0 <= failed <= completed <= batch.total_items):
                raise BatchStateError(
                    f"Invalid counters completed={completed} failed={failed} "
                    f"total={batch.total_items}"
                )

            updated = batch.model_copy(
                update={**partial, "status": status, "updated_at": _utc_now()}
            )
            self._batches[handle] = updated
            return updated.model_copy(deep=True)

    def list_batches(self, store_id: Optional[str] = None) -> List[BatchOperation]:
        with self._lock:
            batches = [
                b for b in self._batches.values() if store_id is None or b.store_id == store_id
            ]
        batches.sort(key=lambda b: b.created_at, reverse=True)
        return [b.model_copy(deep=True) for b in batches]

    def _require_batch(self, handle: str) -> BatchOperation:
        batch = self._batches.get(handle)
        if batch is None:
            raise BatchNotFoundError(f"Batch operation {handle} not found")
        return batch

    # Product operations

    def create_product_operation(self, **fields: Any) -> ProductOperation:
        operation = ProductOperation(**fields)
        with self._lock:
            self._operations[operation.id] = operation
        return operation.model_copy(deep=True)

    def finalize_product_operation(self, operation_id: str, **fields: Any) -> ProductOperation:
        """Move a pending operation to success or error, exactly once."""
        status = OperationStatus(fields.get("status", OperationStatus.PENDING))
        if status is OperationStatus.PENDING:
            raise BatchStateError("Operations must be finalized as success or error")

        with self._lock:
            operation = self._operations.get(operation_id)
            if operation is None:
                raise BatchNotFoundError(f"Operation {operation_id} not found")
            if operation.status is not OperationStatus.PENDING:
                raise BatchStateError(
                    f"Operation {operation_id} is already {operation.status.value}"
                )
            updated = operation.model_copy(update={**fields, "status": status})
            self._operations[operation_id] = updated
            return updated.model_copy(deep=True)

    def get_product_operation(self, operation_id: str) -> Optional[ProductOperation]:
        with self._lock:
            operation = self._operations.get(operation_id)
            return operation.model_copy(deep=True) if operation else None

    def list_product_operations(
        self,
        batch_id: Optional[str] = None,
        store_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[ProductOperation]:
        """Operations in creation order for a batch, newest first otherwise."""
        with self._lock:
            operations = [
                op
                for op in self._operations.values()
                if (batch_id is None or op.batch_id == batch_id)
                and (store_id is None or op.store_id == store_id)
            ]
        if batch_id is None:
            operations.reverse()
        if limit is not None:
            operations = operations[:limit]
        return [op.model_copy(deep=True) for op in operations]

    def recent_product_operations(self, limit: int = 20) -> List[ProductOperation]:
        return self.list_product_operations(limit=limit)

    def delete_product_operation(self, operation_id: str) -> bool:
        with self._lock:
            return self._operations.pop(operation_id, None) is not None

    def delete_product_operations(self, operation_ids: Iterable[str]) -> int:
        return sum(1 for op_id in operation_ids if self.delete_product_operation(op_id))

    def clear_product_operations(self) -> int:
        with self._lock:
            count = len(self._operations)
            self._operations.clear()
            return count
