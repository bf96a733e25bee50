"""Ambient clock read by every operation. Time only moves forward."""
from __future__ import annotations

import time
from abc import ABC, abstractmethod

from pm_settle.errors import InvalidArgument


class Clock(ABC):
    @abstractmethod
    def now(self) -> int:
        """Current unix time in whole seconds."""
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> int:
        return int(time.time())


class ManualClock(Clock):
    """Clock driven by the caller, used by tests and replays."""

    def __init__(self, start: int = 0):
        self._now = start

    def now(self) -> int:
        return self._now

    def increase_to(self, ts: int) -> None:
        if ts < self._now:
            raise InvalidArgument("clock cannot move backwards", now=self._now, requested=ts)
        self._now = ts

    def advance(self, seconds: int) -> None:
        self.increase_to(self._now + seconds)
