"""A thread-safe pool of reusable resources with bounded size."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Any, Callable, List, Optional

from .context import Context, background

Constructor = Callable[[Context], Any]
Destructor = Callable[[Any], None]

_POLL_INTERVAL = 0.05


class ClosedPoolError(Exception):
    """The pool was closed before or while acquiring."""

    def __init__(self, message: str = "closed pool") -> None:
        super().__init__(message)


class NotAvailableError(Exception):
    """The pool is at capacity and has no idle resource."""

    def __init__(self, message: str = "resource not available") -> None:
        super().__init__(message)


class _Status(IntEnum):
    CONSTRUCTING = 0
    IDLE = 1
    ACQUIRED = 2
    HIJACKED = 3


def _nanotime() -> int:
    return time.time_ns()


class Resource:
    """A handle on a pooled value, returned by acquiring from a pool."""

    def __init__(self, pool: "Pool", status: _Status, value: Any = None) -> None:
        self._pool = pool
        self._value = value
        self._creation_time = datetime.now()
        self._last_used_nano = _nanotime()
        self._status = status

    def _check_accessible(self) -> None:
        if self._status not in (_Status.ACQUIRED, _Status.HIJACKED):
            raise RuntimeError("tried to access resource that is not acquired or hijacked")

    def _check_acquired(self, action: str) -> None:
        if self._status is not _Status.ACQUIRED:
            raise RuntimeError(f"tried to {action} resource that is not acquired")

    def value(self) -> Any:
        self._check_accessible()
        return self._value

    def release(self) -> None:
        """Return the resource to the pool; it must not be used afterwards."""
        self._check_acquired("release")
        self._pool._release_acquired(self, _nanotime())

    def release_unused(self) -> None:
        """Return the resource without updating its last-used time."""
        self._check_acquired("release")
        self._pool._release_acquired(self, self._last_used_nano)

    def destroy(self) -> None:
        """Hand the resource back for destruction in the background."""
        self._check_acquired("destroy")
        threading.Thread(target=self._pool._destroy_acquired, args=(self,), daemon=True).start()

    def hijack(self) -> None:
        """Take ownership of the value away from the pool."""
        self._check_acquired("hijack")
        self._pool._hijack_acquired(self)

    def creation_time(self) -> datetime:
        self._check_accessible()
        return self._creation_time

    def last_used_nanotime(self) -> int:
        self._check_accessible()
        return self._last_used_nano

    def idle_duration(self) -> float:
        """Seconds since the resource was last released."""
        self._check_accessible()
        return (_nanotime() - self._last_used_nano) / 1_000_000_000


@dataclass(frozen=True)
class Stat:
    """A snapshot of pool statistics; acquire_duration is in seconds."""

    constructing_resources: int
    acquired_resources: int
    idle_resources: int
    max_resources: int
    acquire_count: int
    acquire_duration: float
    empty_acquire_count: int
    canceled_acquire_count: int

    def total_resources(self) -> int:
        return self.constructing_resources + self.acquired_resources + self.idle_resources


class Pool:
    """A concurrency-safe resource pool."""

    def __init__(self, constructor: Constructor, destructor: Destructor, max_size: int) -> None:
        if max_size < 1:
            raise ValueError("maxSize is less than 1")
        self._constructor = constructor
        self._destructor = destructor
        self._max_size = max_size
        self._cond = threading.Condition(threading.Lock())
        self._all: List[Resource] = []
        self._idle: List[Resource] = []
        self._outstanding = 0
        self._acquire_count = 0
        self._acquire_duration_ns = 0
        self._empty_acquire_count = 0
        self._canceled_acquire_count = 0
        self._closed = False

    def __enter__(self) -> "Pool":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _remove(self, res: Resource) -> None:
        for index, item in enumerate(self._all):
            if item is res:
                del self._all[index]
                return
        raise RuntimeError("BUG: could not find resource in pool")

    def _spawn_destruct(self, value: Any) -> None:
        threading.Thread(target=self._destruct, args=(value,), daemon=True).start()

    def _destruct(self, value: Any) -> None:
        try:
            self._destructor(value)
        finally:
            with self._cond:
                self._outstanding -= 1
                self._cond.notify_all()

    def close(self) -> None:
        """Destroy all resources and reject further acquires.

        Blocks until every resource has been returned and destroyed.
        """
        with self._cond:
            if self._closed:
                return
            self._closed = True
            for res in self._idle:
                self._remove(res)
                self._spawn_destruct(res._value)
            self._idle = []
            self._cond.notify_all()
            while self._outstanding > 0:
                self._cond.wait()

    def stat(self) -> Stat:
        with self._cond:
            counts = {status: 0 for status in _Status}
            for res in self._all:
                counts[res._status] += 1
            return Stat(
                constructing_resources=counts[_Status.CONSTRUCTING],
                acquired_resources=counts[_Status.ACQUIRED],
                idle_resources=counts[_Status.IDLE],
                max_resources=self._max_size,
                acquire_count=self._acquire_count,
                acquire_duration=self._acquire_duration_ns / 1_000_000_000,
                empty_acquire_count=self._empty_acquire_count,
                canceled_acquire_count=self._canceled_acquire_count,
            )

    def acquire(self, ctx: Optional[Context] = None) -> Resource:
        """Get a resource, creating one if there is room, else wait for one."""
        return self._do_acquire(ctx or background(), block=True)

    def try_acquire(self, ctx: Optional[Context] = None) -> Resource:
        """Like acquire, but raise NotAvailableError instead of waiting."""
        return self._do_acquire(ctx or background(), block=False)

    def _record_acquire(self, start: int) -> None:
        self._acquire_count += 1
        self._acquire_duration_ns += _nanotime() - start

    def _do_acquire(self, ctx: Context, block: bool) -> Resource:
        start = _nanotime()
        if ctx.is_done():
            with self._cond:
                self._canceled_acquire_count += 1
            raise ctx.err()

        empty_acquire = False
        with self._cond:
            while True:
                if self._closed:
                    raise ClosedPoolError()

                if self._idle:
                    res = self._idle.pop()
                    res._status = _Status.ACQUIRED
                    if empty_acquire:
                        self._empty_acquire_count += 1
                    self._record_acquire(start)
                    return res

                empty_acquire = True

                if len(self._all) < self._max_size:
                    res = Resource(self, _Status.CONSTRUCTING)
                    self._all.append(res)
                    self._outstanding += 1
                    self._cond.release()
                    try:
                        value = self._constructor(ctx)
                    except BaseException as exc:
                        self._cond.acquire()
                        self._remove(res)
                        self._outstanding -= 1
                        if ctx.is_done() and exc is ctx.err():
                            self._canceled_acquire_count += 1
                        self._cond.notify_all()
                        raise
                    self._cond.acquire()
                    res._value = value
                    res._status = _Status.ACQUIRED
                    self._empty_acquire_count += 1
                    self._record_acquire(start)
                    return res

                if not block:
                    raise NotAvailableError()

                self._cond.wait(_POLL_INTERVAL)
                if ctx.is_done():
                    self._canceled_acquire_count += 1
                    self._cond.notify_all()
                    raise ctx.err()

    def acquire_all_idle(self) -> List[Resource]:
        """Acquire every idle resource at once, without touching statistics."""
        with self._cond:
            if self._closed:
                return []
            resources, self._idle = self._idle, []
            for res in resources:
                res._status = _Status.ACQUIRED
            return resources

    def create_resource(self, ctx: Optional[Context] = None) -> None:
        """Construct a new idle resource, ignoring the size limit."""
        ctx = ctx or background()
        with self._cond:
            if self._closed:
                raise ClosedPoolError()

        value = self._constructor(ctx)
        res = Resource(self, _Status.IDLE, value)

        with self._cond:
            self._outstanding += 1
            if self._closed:
                self._spawn_destruct(value)
                raise ClosedPoolError()
            self._all.append(res)
            self._idle.append(res)
            self._cond.notify_all()

    def _release_acquired(self, res: Resource, last_used_nano: int) -> None:
        with self._cond:
            if not self._closed:
                res._last_used_nano = last_used_nano
                res._status = _Status.IDLE
                self._idle.append(res)
            else:
                self._remove(res)
                self._spawn_destruct(res._value)
            self._cond.notify_all()

    def _destroy_acquired(self, res: Resource) -> None:
        try:
            self._destructor(res._value)
        finally:
            with self._cond:
                self._remove(res)
                self._outstanding -= 1
                self._cond.notify_all()

    def _hijack_acquired(self, res: Resource) -> None:
        with self._cond:
            self._remove(res)
            res._status = _Status.HIJACKED
            self._outstanding -= 1
            self._cond.notify_all()