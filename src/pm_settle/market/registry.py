"""Market registry: immutable parameters plus the Open -> Resolvable -> Resolved lifecycle.

The registry owns every market record and every per-market collateral
balance. Records are created once and never deleted; only the lifecycle
fields move, and only forward.
"""
from __future__ import annotations

import structlog

from pm_settle.clock import Clock
from pm_settle.errors import (
    AlreadyExists,
    InsufficientCollateral,
    InvalidCollateral,
    InvalidNumOutcomes,
    InvalidOracle,
    MarketNotFound,
    ZeroAmount,
)
from pm_settle.events import EventLog, MarketCreated
from pm_settle.ids import compute_market_id, format_id, is_null_address, normalize_address
from pm_settle.schemas import MarketParams, MarketRecord, MarketState, MarketStatus
from pm_settle.state import KeyedStore, atomic, serialized

log = structlog.get_logger(__name__)

MIN_OUTCOMES = 2
MAX_OUTCOMES = 8


class MarketRegistry:
    def __init__(self, clock: Clock, events: EventLog | None = None):
        self.clock = clock
        self.events = events if events is not None else EventLog()
        self.markets: KeyedStore[int, MarketRecord] = KeyedStore("markets")
        self.balances: KeyedStore[int, int] = KeyedStore("collateral_balances")

    def participants(self) -> list:
        return [self.markets, self.balances, self.events]

    @staticmethod
    def predict_market_id(params: MarketParams) -> int:
        return compute_market_id(params)

    @serialized
    def create_market(self, params: MarketParams, metadata_uri: str, creator: str) -> int:
        if is_null_address(params.collateral_token):
            raise InvalidCollateral()
        if is_null_address(params.oracle):
            raise InvalidOracle()
        if not MIN_OUTCOMES <= params.num_outcomes <= MAX_OUTCOMES:
            raise InvalidNumOutcomes(
                num_outcomes=params.num_outcomes, min=MIN_OUTCOMES, max=MAX_OUTCOMES
            )

        market_id = compute_market_id(params)
        if market_id in self.markets:
            raise AlreadyExists(market_id=format_id(market_id))

        creator = normalize_address(creator)
        now = self.clock.now()
        with atomic(*self.participants()):
            self.markets.create(
                market_id,
                MarketRecord(
                    market_id=market_id,
                    params=params,
                    metadata_uri=metadata_uri,
                    creator=creator,
                    created_at=now,
                ),
            )
            self.balances.create(market_id, 0)
            self.events.emit(
                MarketCreated(
                    timestamp=now,
                    market_id=market_id,
                    collateral_token=params.collateral_token,
                    market_deadline=params.market_deadline,
                    config_flags=params.config_flags,
                    num_outcomes=params.num_outcomes,
                    oracle=params.oracle,
                    question_id=params.question_id,
                    metadata_uri=metadata_uri,
                    creator=creator,
                )
            )
        log.info(
            "market_created",
            market_id=format_id(market_id),
            num_outcomes=params.num_outcomes,
            deadline=params.market_deadline,
            creator=creator,
        )
        return market_id

    # -- lifecycle transitions (driven by the resolution coordinator) -----

    def require(self, market_id: int) -> MarketRecord:
        record = self.markets.get(market_id)
        if record is None:
            raise MarketNotFound(market_id=format_id(market_id))
        return record

    def mark_resolvable(self, market_id: int) -> MarketRecord:
        record = self.require(market_id)
        if record.status != MarketStatus.OPEN:
            return record
        log.info("market_resolvable", market_id=format_id(market_id))
        return self.markets.replace(market_id, record.model_copy(update={"status": MarketStatus.RESOLVABLE}))

    def mark_resolved(self, market_id: int, winning_outcome_index: int, is_invalid: bool) -> MarketRecord:
        record = self.require(market_id)
        if record.status == MarketStatus.RESOLVED:
            raise ValueError(f"market {format_id(market_id)} is already resolved")
        return self.markets.replace(
            market_id,
            record.model_copy(
                update={
                    "status": MarketStatus.RESOLVED,
                    "winning_outcome_index": winning_outcome_index,
                    "is_invalid": is_invalid,
                    "resolved_at": self.clock.now(),
                }
            ),
        )

    # -- collateral bookkeeping (driven by the vault) ----------------------

    def credit(self, market_id: int, amount: int) -> int:
        if amount <= 0:
            raise ZeroAmount()
        return self.balances.replace(market_id, self.balances[market_id] + amount)

    def debit(self, market_id: int, amount: int) -> int:
        if amount <= 0:
            raise ZeroAmount()
        balance = self.balances[market_id]
        if amount > balance:
            raise InsufficientCollateral(market_id=format_id(market_id), balance=balance, amount=amount)
        return self.balances.replace(market_id, balance - amount)

    # -- views -------------------------------------------------------------

    def market_exists(self, market_id: int) -> bool:
        return market_id in self.markets

    def get_market(self, market_id: int) -> MarketRecord:
        return self.require(market_id)

    def get_market_params(self, market_id: int) -> MarketParams:
        return self.require(market_id).params

    def get_market_state(self, market_id: int) -> MarketState:
        record = self.require(market_id)
        return MarketState(record.status, record.winning_outcome_index, record.is_invalid)

    def get_market_metadata_uri(self, market_id: int) -> str:
        return self.require(market_id).metadata_uri

    def is_market_open(self, market_id: int) -> bool:
        record = self.markets.get(market_id)
        if record is None:
            return False
        return record.status == MarketStatus.OPEN and self.clock.now() < record.params.market_deadline

    def get_collateral_token(self, market_id: int) -> str:
        return self.require(market_id).params.collateral_token

    def get_num_outcomes(self, market_id: int) -> int:
        return self.require(market_id).params.num_outcomes

    def get_config_flags(self, market_id: int) -> int:
        return self.require(market_id).params.config_flags

    def get_collateral_balance(self, market_id: int) -> int:
        self.require(market_id)
        return self.balances[market_id]

    def total_balance_for(self, collateral_token: str) -> int:
        token = normalize_address(collateral_token)
        return sum(
            self.balances[market_id]
            for market_id, record in self.markets.items()
            if record.params.collateral_token == token
        )
