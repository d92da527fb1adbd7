"""Background prefetching of batches through a bounded queue."""

from __future__ import annotations

import queue
import threading
from collections.abc import Iterable, Iterator
from typing import Generic, TypeVar

from loguru import logger

T = TypeVar("T")

# How often a blocked producer re-checks whether the consumer went away.
_POLL_INTERVAL_S = 0.1
_JOIN_TIMEOUT_S = 5.0


class _EndOfStream:
    pass


class _ProducerFailure:
    def __init__(self, error: BaseException) -> None:
        self.error = error


_END = _EndOfStream()


class Prefetcher(Generic[T]):
    """Run an upstream iterator on one producer thread ahead of the consumer.

    The consumer sees exactly the upstream sequence, in the same order.
    Prefetching only changes timing. The producer blocks while the queue
    holds ``depth`` items; the consumer blocks while it is empty. A blocked
    producer also holds the next finished item, so at most ``depth + 1``
    items exist ahead of the consumer. If the upstream raises, the consumer
    gets the same exception after every item produced before it.

    A Prefetcher is a one-shot stream: iterating it a second time raises
    ``RuntimeError``. Request a new one per epoch.

    Args:
        source: Upstream iterable, typically ``BatchAssembler.assemble(...)``.
        depth: Queue capacity between producer and consumer.
        name: Thread name, useful in logs and stack dumps.
    """

    def __init__(self, source: Iterable[T], depth: int = 2, name: str = "prefetch") -> None:
        if depth < 1:
            raise ValueError(f"prefetch depth must be >= 1, got {depth}")
        self._source = source
        self.depth = depth
        self.name = name
        self._queue: queue.Queue[T | _EndOfStream | _ProducerFailure] = queue.Queue(
            maxsize=depth
        )
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._consumed = False

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def _put(self, item: T | _EndOfStream | _ProducerFailure) -> bool:
        """Blocking put that gives up once the stream is closed."""
        while not self._stop.is_set():
            try:
                self._queue.put(item, timeout=_POLL_INTERVAL_S)
                return True
            except queue.Full:
                continue
        return False

    def _produce(self) -> None:
        try:
            for item in self._source:
                if not self._put(item):
                    return
        except BaseException as e:  # noqa: BLE001 - handed to the consumer
            self._put(_ProducerFailure(e))
            return
        self._put(_END)

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def __iter__(self) -> Iterator[T]:
        if self._consumed:
            raise RuntimeError(
                f"Prefetcher '{self.name}' has already been consumed; "
                "request a new stream"
            )
        self._consumed = True
        self._thread = threading.Thread(target=self._produce, name=self.name, daemon=True)
        self._thread.start()
        return self._consume()

    def _consume(self) -> Iterator[T]:
        try:
            while True:
                item = self._queue.get()
                if isinstance(item, _EndOfStream):
                    return
                if isinstance(item, _ProducerFailure):
                    raise item.error
                yield item
        finally:
            self.close()

    def close(self) -> None:
        """Stop the producer and wait for its thread to exit."""
        self._stop.set()
        # Unblock a producer waiting on a full queue.
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=_JOIN_TIMEOUT_S)
            if self._thread.is_alive():
                logger.warning(
                    f"Prefetch thread '{self.name}' did not stop within "
                    f"{_JOIN_TIMEOUT_S}s; abandoning it"
                )

    def __enter__(self) -> Prefetcher[T]:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
