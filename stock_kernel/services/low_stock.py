"""
LowStockDispatcher -- fire-and-forget "check low stock" signals.

Responsibility:
    After a committed mutation leaves an item at or below its minimum
    level, tell every registered listener without waiting for it.  The
    signal carries no payload: listeners re-query low-stock items
    themselves.

Invariants enforced:
    - notify() never blocks on a listener and never raises.  Listener
      failures are logged and discarded.
    - Signals are only sent after the unit of work has committed.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable

from stock_kernel.logging_config import get_logger

logger = get_logger("services.low_stock")

LowStockListener = Callable[[], None]


class LowStockDispatcher:
    """Runs low-stock listeners on a background executor."""

    def __init__(
        self,
        listeners: Iterable[LowStockListener] = (),
        *,
        enabled: bool = True,
        max_workers: int = 1,
    ):
        self._listeners = tuple(listeners)
        self._enabled = enabled and bool(self._listeners)
        self._executor = (
            ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="low-stock")
            if self._enabled
            else None
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def listeners(self) -> tuple[LowStockListener, ...]:
        return self._listeners

    def notify(self, item_id: int | None = None) -> list[Future]:
        """Submit every listener; returns the futures for callers that care."""
        if self._executor is None:
            return []

        futures = []
        for listener in self._listeners:
            name = getattr(listener, "__name__", repr(listener))
            try:
                future = self._executor.submit(listener)
            except RuntimeError:
                logger.warning(
                    "low_stock_listener_failed",
                    extra={"listener": name, "stage": "submit"},
                    exc_info=True,
                )
                continue
            future.add_done_callback(_log_failure(name))
            futures.append(future)

        logger.debug(
            "low_stock_signal_sent",
            extra={"trigger_item_id": item_id, "listeners": len(futures)},
        )
        return futures

    def close(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


def _log_failure(name: str) -> Callable[[Future], None]:
    def callback(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning(
                "low_stock_listener_failed",
                extra={"listener": name, "stage": "run"},
                exc_info=exc,
            )

    return callback
