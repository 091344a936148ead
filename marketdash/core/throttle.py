"""
Throttled request queue for rate-limited upstream APIs.

Requests are dispatched in FIFO order with a minimum spacing between
dispatches and a ceiling on how many run at once. Each request retries with
exponential backoff; a request that exhausts its attempts on rate limits
widens the spacing for every later request until a cooldown elapses.

Example:
    queue = ThrottledRequestQueue(QueueConfig(min_interval_seconds=2.0))

    async def fetch():
        return await asyncio.to_thread(session.get, url)

    response = await queue.run(fetch, label="DGS10")
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Generator, Generic, List, Optional, Set, TypeVar

from marketdash.config import QueueConfig
from marketdash.core.errors import (
    QueueError,
    RateLimitExceededError,
    RequestFailedError,
    RequestTimeoutError,
)
from marketdash.core.retry import RetryOutcome, RetryState, is_rate_limit_error, is_timeout_error
from marketdash.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Action = Callable[[], Awaitable[T]]


class RequestState(Enum):
    """Lifecycle of a queued request."""

    PENDING = "pending"
    RUNNING = "running"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestState.RESOLVED, RequestState.REJECTED, RequestState.CANCELLED)


@dataclass
class QueueStats:
    """Snapshot of queue counters."""

    submitted: int = 0
    completed: int = 0
    failed: int = 0
    rate_limited: int = 0
    retries: int = 0
    cancelled: int = 0
    timeouts: int = 0
    escalations: int = 0
    pending: int = 0
    running: int = 0
    current_min_interval: float = 0.0


class QueuedRequest(Generic[T]):
    """
    Handle for a submitted action.

    Await it (or its ``result()``) for the action's value or error, and call
    ``cancel()`` to withdraw it.
    """

    def __init__(
        self,
        action: Action,
        *,
        request_id: int,
        future: "asyncio.Future[T]",
        submitted_at: float,
        on_cancel: Callable[["QueuedRequest[T]"], None],
        label: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.action = action
        self.id = request_id
        self.label = label or f"request #{request_id}"
        self.timeout = timeout
        self.state = RequestState.PENDING
        self.attempts = 0
        self.submitted_at = submitted_at
        self.dispatched_at: Optional[float] = None
        self.finished_at: Optional[float] = None
        self._future = future
        self._on_cancel = on_cancel
        self._task: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"<QueuedRequest {self.label} {self.state.value}>"

    @property
    def done(self) -> bool:
        return self._future.done()

    def cancel(self) -> bool:
        """
        Withdraw the request.

        Pending requests are dropped without running; running requests have
        their current attempt cancelled.

        Returns:
            False if the request had already finished
        """
        if self.state is RequestState.PENDING:
            self.state = RequestState.CANCELLED
            self._future.cancel()
            self._on_cancel(self)
            return True
        if self.state is RequestState.RUNNING and self._task is not None:
            return self._task.cancel()
        return False

    async def result(self) -> T:
        # Shielded so that cancelling one awaiting caller leaves the request alone
        return await asyncio.shield(self._future)

    def __await__(self) -> Generator[Any, None, T]:
        return self.result().__await__()


class ThrottledRequestQueue:
    """
    FIFO request queue with dispatch spacing, a concurrency ceiling,
    per-request retries and global rate-limit backoff.

    All state lives on the instance, so independent queues (one per
    upstream API) never interfere. Single event loop only: the queue is not
    thread-safe.
    """

    def __init__(
        self,
        config: Optional[QueueConfig] = None,
        *,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the queue.

        Args:
            config: Queue settings (defaults from constants.py)
            name: Label used in log messages
            clock: Returns the current time in seconds
            sleep: Coroutine function used for every wait
        """
        self.config = config or QueueConfig()
        self.name = name
        self._clock = clock
        self._sleep = sleep

        self._pending: Deque[QueuedRequest] = deque()
        self._running: Set[QueuedRequest] = set()
        self._processing = False
        self._processor: Optional[asyncio.Task] = None
        self._last_dispatch_time: Optional[float] = None
        self._escalated_until: Optional[float] = None
        self._slot_waiter: Optional[asyncio.Future] = None
        self._idle_waiters: List[asyncio.Future] = []
        self._ids = itertools.count(1)
        self._stats = QueueStats()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def current_min_interval(self) -> float:
        """Dispatch spacing in effect right now."""
        if self._escalated_until is not None:
            if self._clock() < self._escalated_until:
                return self.config.rate_limit_interval_seconds
            self._escalated_until = None
            logger.info(
                "[%s] Rate-limit cooldown over, request spacing back to %.1fs",
                self.name,
                self.config.min_interval_seconds,
            )
        return self.config.min_interval_seconds

    @property
    def is_escalated(self) -> bool:
        return self.current_min_interval > self.config.min_interval_seconds

    def submit(
        self,
        action: Action,
        *,
        timeout: Optional[float] = None,
        label: Optional[str] = None,
    ) -> QueuedRequest:
        """
        Enqueue an action and return its handle.

        Must be called from a running event loop.

        Args:
            action: Zero-argument coroutine function; must be safe to retry
            timeout: Per-attempt timeout overriding the queue default
            label: Name used in logs and error messages
        """
        loop = asyncio.get_running_loop()
        request: QueuedRequest = QueuedRequest(
            action,
            request_id=next(self._ids),
            future=loop.create_future(),
            submitted_at=self._clock(),
            on_cancel=self._discard_pending,
            label=label,
            timeout=timeout,
        )
        self._pending.append(request)
        self._stats.submitted += 1
        logger.debug("[%s] Queued %s (%d pending)", self.name, request.label, len(self._pending))

        if not self._processing:
            self._processing = True
            self._processor = loop.create_task(self._process())
            self._processor.add_done_callback(self._on_processor_done)
        return request

    async def run(
        self,
        action: Action,
        *,
        timeout: Optional[float] = None,
        label: Optional[str] = None,
    ) -> Any:
        """Submit an action and wait for its result."""
        request = self.submit(action, timeout=timeout, label=label)
        try:
            return await request.result()
        except asyncio.CancelledError:
            request.cancel()
            raise

    async def join(self) -> None:
        """Wait until nothing is pending or running."""
        loop = asyncio.get_running_loop()
        while self._pending or self._running:
            waiter = loop.create_future()
            self._idle_waiters.append(waiter)
            await waiter

    def get_stats(self) -> QueueStats:
        stats = replace(self._stats)
        stats.pending = len(self._pending)
        stats.running = len(self._running)
        stats.current_min_interval = self.current_min_interval
        return stats

    # ------------------------------------------------------------------
    # Processor
    # ------------------------------------------------------------------

    def _time_until_next_dispatch(self) -> float:
        if self._last_dispatch_time is None:
            return 0.0
        elapsed = self._clock() - self._last_dispatch_time
        return max(self.current_min_interval - elapsed, 0.0)

    async def _process(self) -> None:
        try:
            while self._pending:
                if len(self._running) >= self.config.max_parallel_requests:
                    await self._wait_for_slot()
                    continue

                wait = self._time_until_next_dispatch()
                if wait > 0:
                    logger.debug("[%s] Throttling: waiting %.2fs before next dispatch", self.name, wait)
                    await self._sleep(wait)
                    # Interval may have changed while sleeping
                    continue

                request = self._pending.popleft()
                if request.state is RequestState.PENDING:
                    self._dispatch(request)
        finally:
            self._processing = False
            self._notify_if_idle()

    def _on_processor_done(self, task: asyncio.Task) -> None:
        """Settle requests left pending when the processor stops abnormally."""
        if self._processor is task:
            self._processor = None
        if task.cancelled():
            for request in self._drain_pending():
                request.state = RequestState.CANCELLED
                request._future.cancel()
                self._stats.cancelled += 1
        elif task.exception() is not None:
            error = task.exception()
            logger.error(
                "[%s] Request processor crashed; rejecting %d pending requests",
                self.name,
                len(self._pending),
                exc_info=error,
            )
            for request in self._drain_pending():
                failure = QueueError(f"{request.label} dropped: request processor stopped ({error})")
                failure.__cause__ = error
                request.state = RequestState.REJECTED
                self._stats.failed += 1
                request._future.set_exception(failure)
        self._notify_if_idle()

    def _drain_pending(self) -> List[QueuedRequest]:
        drained = [request for request in self._pending if not request._future.done()]
        self._pending.clear()
        now = self._clock()
        for request in drained:
            request.finished_at = now
        return drained

    async def _wait_for_slot(self) -> None:
        self._slot_waiter = asyncio.get_running_loop().create_future()
        try:
            await self._slot_waiter
        finally:
            self._slot_waiter = None

    def _release_slot(self, request: QueuedRequest) -> None:
        self._running.discard(request)
        if self._slot_waiter is not None and not self._slot_waiter.done():
            self._slot_waiter.set_result(None)
        self._notify_if_idle()

    def _notify_if_idle(self) -> None:
        if self._pending or self._running:
            return
        waiters, self._idle_waiters = self._idle_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    def _discard_pending(self, request: QueuedRequest) -> None:
        try:
            self._pending.remove(request)
        except ValueError:
            pass
        self._stats.cancelled += 1
        request.finished_at = self._clock()
        logger.debug("[%s] Cancelled %s before dispatch", self.name, request.label)
        self._notify_if_idle()

    def _dispatch(self, request: QueuedRequest) -> None:
        now = self._clock()
        self._last_dispatch_time = now
        request.dispatched_at = now
        request.state = RequestState.RUNNING
        self._running.add(request)
        task = asyncio.get_running_loop().create_task(self._execute(request))
        task.add_done_callback(lambda finished: self._on_finished(request, finished))
        request._task = task
        logger.debug(
            "[%s] Dispatched %s (waited %.2fs)", self.name, request.label, now - request.submitted_at
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _attempt(self, request: QueuedRequest, timeout: Optional[float]) -> Any:
        if timeout is None:
            return await request.action()
        return await asyncio.wait_for(request.action(), timeout=timeout)

    async def _execute(self, request: QueuedRequest) -> None:
        state = RetryState(
            max_attempts=self.config.max_retries,
            base_delay=self.config.retry_base_delay_seconds,
            max_delay=self.config.max_retry_delay_seconds,
        )
        timeout = request.timeout if request.timeout is not None else self.config.request_timeout_seconds

        while True:
            request.attempts = state.begin_attempt()
            try:
                value = await self._attempt(request, timeout)
            except Exception as error:
                self._count_failure(error)
                delay = state.record_failure(error)
                if delay is None:
                    self._reject(request, self._terminal_error(request, state))
                    return

                self._stats.retries += 1
                logger.warning(
                    "[%s] %s attempt %d/%d failed (%s); retrying in %.1fs",
                    self.name,
                    request.label,
                    state.attempt,
                    state.max_attempts,
                    "rate limited" if is_rate_limit_error(error) else error,
                    delay,
                )
                await self._sleep(delay)
                continue

            state.record_success()
            self._resolve(request, value)
            return

    def _on_finished(self, request: QueuedRequest, task: asyncio.Task) -> None:
        """Bookkeeping once the execution task ends, however it ends."""
        if task.cancelled():
            # Also covers tasks cancelled before their first step
            if not request._future.done():
                request.state = RequestState.CANCELLED
                request._future.cancel()
                self._stats.cancelled += 1
                logger.debug("[%s] Cancelled %s while running", self.name, request.label)
        elif task.exception() is not None and not request._future.done():
            request.state = RequestState.REJECTED
            self._stats.failed += 1
            request._future.set_exception(task.exception())
        request.finished_at = self._clock()
        self._release_slot(request)

    def _count_failure(self, error: BaseException) -> None:
        if is_rate_limit_error(error):
            self._stats.rate_limited += 1
        elif is_timeout_error(error):
            self._stats.timeouts += 1

    def _resolve(self, request: QueuedRequest, value: Any) -> None:
        request.state = RequestState.RESOLVED
        self._stats.completed += 1
        if not request._future.done():
            request._future.set_result(value)
        if request.attempts > 1:
            logger.info("[%s] %s succeeded after %d attempts", self.name, request.label, request.attempts)

    def _reject(self, request: QueuedRequest, error: QueueError) -> None:
        request.state = RequestState.REJECTED
        self._stats.failed += 1
        if not request._future.done():
            request._future.set_exception(error)
        logger.error("[%s] %s", self.name, error)

    def _terminal_error(self, request: QueuedRequest, state: RetryState) -> QueueError:
        last = state.last_error
        error: QueueError
        if state.outcome is RetryOutcome.RATE_LIMITED:
            self._escalate()
            error = RateLimitExceededError(
                f"{request.label} still rate limited after {state.attempt} attempts",
                attempts=state.attempt,
                retry_after=getattr(last, "retry_after", None),
            )
        elif last is not None and is_timeout_error(last):
            error = RequestTimeoutError(
                f"{request.label} timed out after {state.attempt} attempts",
                attempts=state.attempt,
            )
        else:
            error = RequestFailedError(
                f"{request.label} failed after {state.attempt} attempts: {last}",
                attempts=state.attempt,
            )
        error.__cause__ = last
        return error

    def _escalate(self) -> None:
        """Widen the dispatch spacing for every request until the cooldown ends."""
        self._escalated_until = self._clock() + self.config.rate_limit_cooldown_seconds
        self._stats.escalations += 1
        logger.warning(
            "[%s] Rate limit persisted; spacing requests %.0fs apart for the next %.0fs",
            self.name,
            self.config.rate_limit_interval_seconds,
            self.config.rate_limit_cooldown_seconds,
        )
