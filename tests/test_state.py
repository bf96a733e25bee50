import pytest

from pm_settle.clock import ManualClock
from pm_settle.errors import (
    ErrorKind,
    InvalidArgument,
    MarketNotFound,
    ReentrantCall,
    ResolutionTooEarly,
    SettlementError,
)
from pm_settle.events import CollateralDeposited, EventLog
from pm_settle.state import KeyedStore, ReentrancyGuard, atomic


def _deposit(ts: int) -> CollateralDeposited:
    return CollateralDeposited(timestamp=ts, market_id=1, sender="0x" + "a1" * 20, amount=5)


def test_keyed_store_never_overwrites_on_create():
    store: KeyedStore[int, str] = KeyedStore("things")
    store.create(1, "a")
    with pytest.raises(ValueError):
        store.create(1, "b")
    with pytest.raises(KeyError):
        store.replace(2, "b")
    store.replace(1, "c")
    assert store[1] == "c" and store.get(2) is None and len(store) == 1


def test_atomic_restores_every_participant():
    a: KeyedStore[int, int] = KeyedStore("a")
    b: KeyedStore[int, int] = KeyedStore("b")
    a.create(1, 10)
    events = EventLog()

    with pytest.raises(RuntimeError):
        with atomic(a, b, events):
            a.replace(1, 20)
            b.create(2, 30)
            events.emit(_deposit(1))
            raise RuntimeError("boom")

    assert a[1] == 10 and 2 not in b
    assert len(events) == 0


def test_events_publish_when_outermost_block_commits():
    events = EventLog()
    seen = []
    events.subscribe(seen.append)

    with atomic(events):
        events.emit(_deposit(1))
        with atomic(events):
            events.emit(_deposit(2))
        assert seen == []
    assert [e.timestamp for e in seen] == [1, 2]

    # an inner failure drops only the inner block's events
    with atomic(events):
        events.emit(_deposit(3))
        with pytest.raises(RuntimeError):
            with atomic(events):
                events.emit(_deposit(4))
                raise RuntimeError
    assert [e.timestamp for e in events.entries] == [1, 2, 3]


def test_reentrancy_guard():
    guard = ReentrancyGuard()
    with guard.hold("outer"):
        assert guard.locked
        with pytest.raises(ReentrantCall) as exc:
            with guard.hold("inner"):
                pass
        assert exc.value.context == {"operation": "inner", "active": "outer"}
    assert not guard.locked


def test_manual_clock_only_moves_forward():
    clock = ManualClock(100)
    clock.advance(5)
    assert clock.now() == 105
    with pytest.raises(InvalidArgument):
        clock.increase_to(104)


def test_error_taxonomy():
    err = MarketNotFound(market_id="0x01")
    assert isinstance(err, SettlementError)
    assert err.kind is ErrorKind.NOT_FOUND and not err.kind.retryable
    assert err.code == "MarketNotFound"
    assert str(err) == "MarketNotFound: market is not registered (market_id=0x01)"
    assert ResolutionTooEarly.kind.retryable


def test_subscriber_errors_are_isolated():
    events = EventLog()
    seen = []

    def broken(event):
        raise RuntimeError("consumer down")

    events.subscribe(broken)
    events.subscribe(seen.append)
    with atomic(events):
        events.emit(_deposit(1))

    assert [e.timestamp for e in seen] == [1]
    assert len(events) == 1
