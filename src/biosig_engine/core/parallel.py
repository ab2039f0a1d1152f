"""
Parallel Fan-Out with Cooperative Cancellation

Per-channel filtering, per-pair connectivity, per-channel detection and
per-segment spectral work are independent units. ``fan_out`` submits them
to a thread pool (numpy/scipy release the GIL inside their kernels), waits
at a single join barrier, and returns the owned per-unit results in input
order, so output ordering never depends on worker scheduling.

Cancellation is cooperative: a ``CancellationToken`` is checked before each
unit starts and after each unit finishes. When it fires, pending units are
cancelled, the partial results are dropped, and ``CancelledError`` is raised.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Callable, Iterable, Sequence, TypeVar

from .exceptions import CancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class CancellationToken:
    """
    Thread-safe cancellation flag shared between a caller and a running stage.

    Examples
    --------
    >>> token = CancellationToken()
    >>> token.cancel()
    >>> token.is_cancelled
    True
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError("operation cancelled")


def check_cancelled(cancel: CancellationToken | None) -> None:
    """Raise CancelledError if ``cancel`` has fired (no-op for None)."""
    if cancel is not None:
        cancel.raise_if_cancelled()


def fan_out(
    func: Callable[[T], R],
    items: Iterable[T],
    max_workers: int | None = None,
    cancel: CancellationToken | None = None,
) -> list[R]:
    """
    Apply ``func`` to every item in parallel and join.

    Parameters
    ----------
    func : callable
        Unit of work. Must not mutate shared state; it returns an owned result.
    items : iterable
        Work items. Results are returned in the same order.
    max_workers : int, optional
        Pool size. ``1`` runs serially in the calling thread. None lets
        ThreadPoolExecutor pick its default.
    cancel : CancellationToken, optional
        Checked between units.

    Returns
    -------
    list
        ``[func(item) for item in items]``.

    Raises
    ------
    CancelledError
        If the token fires before all units complete.
    """
    work: Sequence[T] = list(items)
    check_cancelled(cancel)

    if max_workers == 1 or len(work) <= 1:
        results = []
        for item in work:
            check_cancelled(cancel)
            results.append(func(item))
        check_cancelled(cancel)
        return results

    def guarded(item: T) -> R:
        check_cancelled(cancel)
        result = func(item)
        check_cancelled(cancel)
        return result

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [executor.submit(guarded, item) for item in work]
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)
        if pending:
            for fut in pending:
                fut.cancel()
            logger.debug("fan_out: %d unit(s) cancelled after failure", len(pending))
        # Re-raise the first failure in submission order
        for fut in futures:
            if fut.done() and not fut.cancelled() and fut.exception() is not None:
                raise fut.exception()

    check_cancelled(cancel)
    return [fut.result() for fut in futures]
