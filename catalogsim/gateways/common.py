"""Shared pieces of all catalog gateways: the gateway contract and the bulk writer."""

import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from ..errors import StoreError, TransientStoreError
from ..logger import get_logger
from ..retry import RetryError, exponential_backoff

INSERT = "insert"
UPDATE = "update"


@dataclass(frozen=True)
class WriteOp:
    """One buffered catalog write."""

    action: str
    relation: str
    doc_type: str
    doc: Dict[str, Any]
    doc_id: Optional[str] = None

    def __post_init__(self):
        if self.action not in (INSERT, UPDATE):
            raise ValueError(f"Unknown write action: {self.action}")
        if self.action == UPDATE and self.doc_id is None:
            raise ValueError("An update needs the id of the document it changes")


@dataclass
class WriterStats:
    ops_added: int = 0
    ops_acknowledged: int = 0
    batches_flushed: int = 0
    batches_failed: int = 0
    failures: List[str] = field(default_factory=list)


class BulkWriter:
    """
    Buffered, asynchronous, thread-safe catalog writer.

    Operations accumulate until batch_size is reached; the full batch is then
    handed to a background executor. At most concurrent_requests batches are
    in flight: add() blocks until a slot frees up, so a slow catalog throttles
    the producer instead of queueing the whole result set in memory.
    flush() blocks until every handed-off batch has been acknowledged or has
    failed. A failed batch is logged and counted, and never stops later
    batches.
    """

    def __init__(
        self,
        send: Callable[[List[WriteOp]], Any],
        batch_size: int = 1000,
        concurrent_requests: int = 1,
        max_retries: int = 3,
        base_delay: float = 0.5,
        logger=None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        if concurrent_requests < 1:
            raise ValueError("concurrent_requests must be positive")
        self.batch_size = batch_size
        self.logger = logger or get_logger()
        self.stats = WriterStats()
        self._buffer: List[WriteOp] = []
        self._lock = threading.Lock()
        # Signalled whenever a batch finishes
        self._idle = threading.Condition(self._lock)
        self._slots = threading.BoundedSemaphore(concurrent_requests)
        # Batches taken from the buffer and not yet finished
        self._outstanding = 0
        self._error: Optional[BaseException] = None
        self._closed = False
        self._executor = ThreadPoolExecutor(
            max_workers=concurrent_requests, thread_name_prefix="bulk-flush"
        )
        self._send = exponential_backoff(
            max_retries=max_retries,
            base_delay=base_delay,
            max_delay=30.0,
            exceptions=(TransientStoreError,),
            on_retry=self._on_retry,
        )(send)

    def add(self, op: WriteOp) -> None:
        with self._lock:
            if self._closed:
                raise StoreError("Bulk writer is closed")
            self._buffer.append(op)
            self.stats.ops_added += 1
            if len(self._buffer) < self.batch_size:
                return
            batch = self._take_locked()
        self._submit(batch)

    def add_all(self, ops: Iterable[WriteOp]) -> None:
        for op in ops:
            self.add(op)

    def flush(self) -> WriterStats:
        """Send whatever is buffered and wait for every outstanding batch."""
        with self._lock:
            batch = self._take_locked() if self._buffer else None
        if batch:
            self._submit(batch)
        with self._idle:
            while self._outstanding:
                self._idle.wait()
            error, self._error = self._error, None
        if error is not None:
            raise error
        return self.stats

    @property
    def in_flight(self) -> int:
        """Batches handed off and not yet acknowledged or failed."""
        with self._lock:
            return self._outstanding

    def close(self) -> WriterStats:
        if self._closed:
            return self.stats
        stats = self.flush()
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=True)
        return stats

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _take_locked(self) -> List[WriteOp]:
        batch, self._buffer = self._buffer, []
        self._outstanding += 1
        return batch

    def _submit(self, batch: List[WriteOp]) -> None:
        # Called without the lock held: waiting for a slot must not stop
        # finishing batches from updating stats
        self._slots.acquire()
        try:
            future = self._executor.submit(self._send_batch, batch)
        except BaseException:
            self._slots.release()
            self._finish(None)
            raise
        future.add_done_callback(self._batch_done)

    def _batch_done(self, future: Future) -> None:
        self._slots.release()
        self._finish(future.exception())

    def _finish(self, error: Optional[BaseException]) -> None:
        with self._idle:
            if error is not None and self._error is None:
                self._error = error
            self._outstanding -= 1
            self._idle.notify_all()

    def _send_batch(self, batch: List[WriteOp]) -> None:
        try:
            self._send(batch)
        except (StoreError, RetryError) as e:
            cause = e.__cause__ if isinstance(e, RetryError) and e.__cause__ else e
            with self._lock:
                self.stats.batches_failed += 1
                self.stats.failures.append(str(e))
            self.logger.record_batch_failed(type(cause).__name__)
            self.logger.error("Bulk batch failed", size=len(batch), error=str(e))
            return
        with self._lock:
            self.stats.batches_flushed += 1
            self.stats.ops_acknowledged += len(batch)
        self.logger.record_batch_flushed()
        self.logger.debug("Bulk batch acknowledged", size=len(batch))

    def _on_retry(self, attempt: int, exception: Exception, delay: float) -> None:
        self.logger.warning(
            "Retrying bulk batch", attempt=attempt, delay=delay, error=str(exception)
        )


class CatalogGateway(ABC):
    """
    Contract between the similarity pipeline and a metadata catalog.

    Reads are cursor-paginated and lazily consumed. Writes go through a
    BulkWriter built on write_batch(). make_visible() is the barrier after
    which reads observe every acknowledged write.
    """

    @abstractmethod
    def read_all(self, relation: str, record_type: str, page_size: int = 100) -> Iterator[Dict[str, Any]]:
        """Yield every raw record of a type, one page at a time."""

    @abstractmethod
    def read_pairs(
        self,
        relation: str,
        doc_type: str,
        page_size: int = 100,
        concept_a: Optional[str] = None,
    ) -> Iterator[Tuple[str, Dict[str, Any]]]:
        """Yield (document id, document) for stored similarity pairs."""

    @abstractmethod
    def declare_schema(self, relation: str, doc_type: str, field_specs: Mapping[str, str]) -> None:
        """Declare the output fields. Idempotent."""

    @abstractmethod
    def delete_relation(self, relation: str, doc_type: str) -> None:
        """Remove every document of doc_type from the relation."""

    @abstractmethod
    def make_visible(self, relation: str) -> None:
        """Barrier: later reads observe all acknowledged writes."""

    @abstractmethod
    def write_batch(self, ops: List[WriteOp]) -> None:
        """Apply a batch synchronously. Raises StoreError / TransientStoreError."""

    def bulk_writer(self, batch_size: int = 1000, concurrent_requests: int = 1, **kwargs) -> BulkWriter:
        return BulkWriter(
            self.write_batch,
            batch_size=batch_size,
            concurrent_requests=concurrent_requests,
            **kwargs,
        )

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
