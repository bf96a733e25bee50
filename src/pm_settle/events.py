"""Observable notifications: the durable audit trail of every state change."""
from __future__ import annotations

from typing import Callable, ClassVar

import structlog
from pydantic import BaseModel, ConfigDict

log = structlog.get_logger(__name__)


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: ClassVar[str] = "notification"
    timestamp: int

    def payload(self) -> dict:
        return self.model_dump()


class MarketCreated(Notification):
    name: ClassVar[str] = "MarketCreated"
    market_id: int
    collateral_token: str
    market_deadline: int
    config_flags: int
    num_outcomes: int
    oracle: str
    question_id: int
    metadata_uri: str
    creator: str


class ResolutionRequested(Notification):
    name: ClassVar[str] = "ResolutionRequested"
    market_id: int
    oracle: str
    question_id: int
    requester: str


class MarketFinalized(Notification):
    name: ClassVar[str] = "MarketFinalized"
    market_id: int
    winning_outcome_index: int
    is_invalid: bool


class CollateralDeposited(Notification):
    name: ClassVar[str] = "CollateralDeposited"
    market_id: int
    sender: str
    amount: int


class Redeemed(Notification):
    name: ClassVar[str] = "Redeemed"
    market_id: int
    redeemer: str
    outcome_index: int
    amount: int
    payout: int


class PositionsSplit(Notification):
    name: ClassVar[str] = "PositionsSplit"
    market_id: int
    sender: str
    amount: int


class PositionsMerged(Notification):
    name: ClassVar[str] = "PositionsMerged"
    market_id: int
    sender: str
    amount: int


class QuestionRegistered(Notification):
    name: ClassVar[str] = "QuestionRegistered"
    question_id: int
    pool: str
    base_token: str
    quote_token: str
    threshold: int
    twap_window: int
    eval_time: int
    greater_than: bool


class QuestionResolved(Notification):
    name: ClassVar[str] = "QuestionResolved"
    question_id: int
    twap_price: int
    mean_tick: int
    winning_index: int


class ManualOutcomeReported(Notification):
    name: ClassVar[str] = "ManualOutcomeReported"
    question_id: int
    winning_index: int
    is_invalid: bool
    reporter: str


Subscriber = Callable[[Notification], None]


class EventLog:
    """Append-only notification log.

    Events emitted inside an ``atomic`` block are held as pending and only
    published once the outermost block commits; a rollback drops them.
    """

    def __init__(self) -> None:
        self._entries: list[Notification] = []
        self._pending: list[Notification] = []
        self._depth = 0
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def emit(self, event: Notification) -> None:
        if self._depth == 0:
            self._publish([event])
        else:
            self._pending.append(event)

    @property
    def entries(self) -> list[Notification]:
        return list(self._entries)

    def of_type(self, kind: type[Notification]) -> list[Notification]:
        return [e for e in self._entries if isinstance(e, kind)]

    def __len__(self) -> int:
        return len(self._entries)

    def begin(self) -> None:
        self._depth += 1

    def commit(self) -> None:
        self._depth -= 1
        if self._depth == 0 and self._pending:
            pending, self._pending = self._pending, []
            self._publish(pending)

    def snapshot(self) -> int:
        return len(self._pending)

    def restore(self, snap: int) -> None:
        del self._pending[snap:]
        self._depth -= 1

    def _publish(self, events: list[Notification]) -> None:
        for event in events:
            self._entries.append(event)
            fields = event.payload()
            block_time = fields.pop("timestamp")
            log.info("notification", notification=event.name, block_time=block_time, **fields)
            self._notify(event)

    def _notify(self, event: Notification) -> None:
        # runs after the emitting operation committed
        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception:
                log.exception(
                    "subscriber_failed",
                    notification=event.name,
                    subscriber=getattr(subscriber, "__name__", repr(subscriber)),
                )
