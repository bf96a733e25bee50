"""Price observation sources: pools exposing cumulative tick integrals."""
from __future__ import annotations

from abc import ABC, abstractmethod
from bisect import bisect_right
from pathlib import Path
from typing import Sequence

import pandas as pd
import structlog

from pm_settle.clock import Clock
from pm_settle.errors import InvalidArgument, InvalidPool, InvalidTokenPair, ObservationTooOld
from pm_settle.ids import normalize_address
from pm_settle.oracles.tick_math import sorts_before, wrap_signed

log = structlog.get_logger(__name__)


class ObservationSource(ABC):
    """A two-token pool. ``token0`` sorts before ``token1``."""

    address: str
    token0: str
    token1: str

    @abstractmethod
    def observe(self, seconds_agos: Sequence[int]) -> list[int]:
        """Tick cumulative (sum of tick * seconds) as of each ``now - seconds_ago``."""
        raise NotImplementedError

    def has_pair(self, token_a: str, token_b: str) -> bool:
        pair = {normalize_address(token_a), normalize_address(token_b)}
        return len(pair) == 2 and pair == {self.token0, self.token1}


def _ordered(token_a: str, token_b: str) -> tuple[str, str]:
    token_a, token_b = normalize_address(token_a), normalize_address(token_b)
    if token_a == token_b:
        raise InvalidTokenPair(token=token_a)
    return (token_a, token_b) if sorts_before(token_a, token_b) else (token_b, token_a)


class ConstantTickPool(ObservationSource):
    """Pool whose price has sat at one tick since time zero."""

    def __init__(self, address: str, token_a: str, token_b: str, tick: int, clock: Clock):
        self.address = normalize_address(address)
        self.token0, self.token1 = _ordered(token_a, token_b)
        self.tick = tick
        self.clock = clock

    def observe(self, seconds_agos: Sequence[int]) -> list[int]:
        now = self.clock.now()
        out = []
        for ago in seconds_agos:
            if ago > now:
                raise ObservationTooOld(seconds_ago=ago, now=now)
            out.append(wrap_signed(self.tick * (now - ago), 56))
        return out


class RecordedPool(ObservationSource):
    """Pool backed by an ordered series of ``(timestamp, tick_cumulative)`` observations.

    Targets between two observations are interpolated with truncating integer
    division; targets after the last observation are extrapolated with the
    current tick; targets before the first one are rejected.
    """

    def __init__(self, address: str, token_a: str, token_b: str, clock: Clock):
        self.address = normalize_address(address)
        self.token0, self.token1 = _ordered(token_a, token_b)
        self.clock = clock
        self._timestamps: list[int] = []
        self._cumulatives: list[int] = []
        self.current_tick = 0

    def write(self, timestamp: int, tick: int) -> None:
        """Record that the pool price moved to ``tick`` at ``timestamp``."""
        if self._timestamps:
            last_ts = self._timestamps[-1]
            if timestamp < last_ts:
                raise InvalidArgument("observations must be written in time order", timestamp=timestamp, last=last_ts)
            cumulative = wrap_signed(self._cumulatives[-1] + self.current_tick * (timestamp - last_ts), 56)
            if timestamp == last_ts:
                self._cumulatives[-1] = cumulative
            else:
                self._timestamps.append(timestamp)
                self._cumulatives.append(cumulative)
        else:
            self._timestamps.append(timestamp)
            self._cumulatives.append(0)
        self.current_tick = tick

    def load(self, timestamps: Sequence[int], cumulatives: Sequence[int], current_tick: int) -> None:
        if len(timestamps) != len(cumulatives):
            raise InvalidArgument("timestamps and cumulatives differ in length")
        if any(b <= a for a, b in zip(timestamps, timestamps[1:])):
            raise InvalidArgument("timestamps must be strictly increasing")
        self._timestamps = [int(t) for t in timestamps]
        self._cumulatives = [int(c) for c in cumulatives]
        self.current_tick = current_tick

    @classmethod
    def from_csv(cls, path: str | Path, address: str, token_a: str, token_b: str, clock: Clock) -> RecordedPool:
        """Load observations from a CSV with columns ``timestamp, tick_cumulative`` and optional ``tick``."""
        df = pd.read_csv(path).sort_values("timestamp")
        pool = cls(address, token_a, token_b, clock)
        if df.empty:
            return pool
        current_tick = int(df["tick"].iloc[-1]) if "tick" in df.columns else 0
        pool.load(df["timestamp"].astype("int64").tolist(), [int(c) for c in df["tick_cumulative"]], current_tick)
        log.info("pool_observations_loaded", pool=pool.address, n=len(df), path=str(path))
        return pool

    def _cumulative_at(self, target: int) -> int:
        if not self._timestamps or target < self._timestamps[0]:
            raise ObservationTooOld(target=target)
        i = bisect_right(self._timestamps, target) - 1
        ts, cum = self._timestamps[i], self._cumulatives[i]
        if ts == target:
            return cum
        if i == len(self._timestamps) - 1:
            return wrap_signed(cum + self.current_tick * (target - ts), 56)
        next_ts, next_cum = self._timestamps[i + 1], self._cumulatives[i + 1]
        delta = next_cum - cum
        step = abs(delta) // (next_ts - ts)
        if delta < 0:
            step = -step
        return wrap_signed(cum + step * (target - ts), 56)

    def observe(self, seconds_agos: Sequence[int]) -> list[int]:
        now = self.clock.now()
        return [self._cumulative_at(now - ago) for ago in seconds_agos]


class PoolDirectory:
    def __init__(self, *pools: ObservationSource):
        self._pools: dict[str, ObservationSource] = {}
        for pool in pools:
            self.add(pool)

    def add(self, pool: ObservationSource) -> None:
        self._pools[normalize_address(pool.address)] = pool

    def get(self, address: str) -> ObservationSource:
        pool = self._pools.get(normalize_address(address))
        if pool is None:
            raise InvalidPool("unknown pool", pool=address)
        return pool
