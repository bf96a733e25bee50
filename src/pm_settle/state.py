"""Keyed append-only stores and the execution discipline around them.

Every public mutating operation is

* serialized through ``EXECUTION_LOCK`` (one operation at a time, process-wide),
* all-or-nothing via ``atomic``: participants are snapshotted on entry and
  restored if anything raises,
* and, when it moves collateral or tokens, wrapped in a ``ReentrancyGuard``.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Generic, Iterator, Protocol, TypeVar

import structlog

from pm_settle.errors import ReentrantCall

log = structlog.get_logger(__name__)

K = TypeVar("K")
V = TypeVar("V")
F = TypeVar("F", bound=Callable[..., Any])

EXECUTION_LOCK = threading.RLock()


class Snapshottable(Protocol):
    def snapshot(self) -> Any: ...

    def restore(self, snap: Any) -> None: ...


class KeyedStore(Generic[K, V]):
    """Map whose entries are created once, replaced in place and never deleted."""

    def __init__(self, name: str):
        self.name = name
        self._items: dict[K, V] = {}

    def create(self, key: K, value: V) -> V:
        if key in self._items:
            raise ValueError(f"{self.name}: key already present: {key!r}")
        self._items[key] = value
        return value

    def replace(self, key: K, value: V) -> V:
        if key not in self._items:
            raise KeyError(key)
        self._items[key] = value
        return value

    def get(self, key: K) -> V | None:
        return self._items.get(key)

    def __getitem__(self, key: K) -> V:
        return self._items[key]

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[K]:
        return iter(self._items)

    def items(self):
        return self._items.items()

    def values(self):
        return self._items.values()

    # values are immutable models or ints, so a shallow copy is a full snapshot
    def snapshot(self) -> dict[K, V]:
        return dict(self._items)

    def restore(self, snap: dict[K, V]) -> None:
        self._items = dict(snap)


@contextmanager
def atomic(*participants: Snapshottable) -> Iterator[None]:
    """Run a block as one unit: on any exception every participant is rolled back."""
    snaps = [p.snapshot() for p in participants]
    for p in participants:
        begin = getattr(p, "begin", None)
        if begin is not None:
            begin()
    try:
        yield
    except BaseException as e:
        for p, snap in reversed(list(zip(participants, snaps))):
            p.restore(snap)
        log.debug("atomic_rollback", error=type(e).__name__, participants=len(participants))
        raise
    for p in participants:
        commit = getattr(p, "commit", None)
        if commit is not None:
            commit()


def serialized(func: F) -> F:
    """Decorator running the wrapped operation under the process-wide execution lock."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        with EXECUTION_LOCK:
            return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


class ReentrancyGuard:
    """Per-component mutual exclusion held for the whole of a guarded operation."""

    def __init__(self) -> None:
        self._active: str | None = None

    @property
    def locked(self) -> bool:
        return self._active is not None

    @contextmanager
    def hold(self, operation: str) -> Iterator[None]:
        if self._active is not None:
            raise ReentrantCall(operation=operation, active=self._active)
        self._active = operation
        try:
            yield
        finally:
            self._active = None
