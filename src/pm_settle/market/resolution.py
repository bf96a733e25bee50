"""Two-phase resolution handshake between the registry and a market's oracle.

``request_resolution`` moves a market to Resolvable and asks its oracle for an
answer; ``finalize_market`` copies the oracle's committed answer into the
record and freezes it. A market cannot be finalized before its oracle has
answered, and never twice.
"""
from __future__ import annotations

import structlog

from pm_settle.errors import AlreadyResolved, DeadlineNotPassed, InvalidOutcomeIndex, OracleNotResolved
from pm_settle.events import EventLog, MarketFinalized, ResolutionRequested
from pm_settle.ids import ZERO_ADDRESS, format_id, normalize_address
from pm_settle.market.registry import MarketRegistry
from pm_settle.oracles.base import OracleAdapter, OracleDirectory
from pm_settle.schemas import MarketRecord, MarketStatus
from pm_settle.state import atomic, serialized

log = structlog.get_logger(__name__)


class ResolutionCoordinator:
    def __init__(self, registry: MarketRegistry, oracles: OracleDirectory, events: EventLog | None = None):
        self.registry = registry
        self.oracles = oracles
        self.events = events if events is not None else registry.events

    def _unresolved(self, market_id: int) -> MarketRecord:
        record = self.registry.require(market_id)
        if record.status == MarketStatus.RESOLVED:
            raise AlreadyResolved(market_id=format_id(market_id))
        return record

    def _participants(self, oracle: OracleAdapter) -> list:
        out = self.registry.participants()
        if self.events is not self.registry.events:
            out.append(self.events)
        out.extend(p for p in oracle.participants() if p not in out)
        return out

    @serialized
    def request_resolution(self, market_id: int, requester: str = ZERO_ADDRESS) -> None:
        record = self._unresolved(market_id)
        params = record.params

        now = self.registry.clock.now()
        deadline_passed = now >= params.market_deadline
        if not deadline_passed and not params.allows_early_resolution:
            raise DeadlineNotPassed(market_id=format_id(market_id), now=now, deadline=params.market_deadline)

        oracle = self.oracles.get(params.oracle)
        with atomic(*self._participants(oracle)):
            self.registry.mark_resolvable(market_id)
            # an oracle that already committed is not asked again
            if not oracle.get_outcome(params.question_id).resolved:
                oracle.request_resolution(params.question_id)
            self.events.emit(
                ResolutionRequested(
                    timestamp=now,
                    market_id=market_id,
                    oracle=params.oracle,
                    question_id=params.question_id,
                    requester=normalize_address(requester),
                )
            )
        log.info(
            "resolution_requested",
            market_id=format_id(market_id),
            early=not deadline_passed,
            oracle=params.oracle,
        )

    @serialized
    def finalize_market(self, market_id: int) -> None:
        record = self._unresolved(market_id)
        params = record.params

        oracle = self.oracles.get(params.oracle)
        outcome = oracle.get_outcome(params.question_id)
        if not outcome.resolved:
            raise OracleNotResolved(market_id=format_id(market_id), question_id=format_id(params.question_id))
        if not outcome.is_invalid and outcome.winning_index >= params.num_outcomes:
            raise InvalidOutcomeIndex(
                "oracle reported an outcome the market does not have",
                winning_index=outcome.winning_index,
                num_outcomes=params.num_outcomes,
            )

        with atomic(*self._participants(oracle)):
            self.registry.mark_resolved(market_id, outcome.winning_index, outcome.is_invalid)
            self.events.emit(
                MarketFinalized(
                    timestamp=self.registry.clock.now(),
                    market_id=market_id,
                    winning_outcome_index=outcome.winning_index,
                    is_invalid=outcome.is_invalid,
                )
            )
        log.info(
            "market_finalized",
            market_id=format_id(market_id),
            winning_outcome_index=outcome.winning_index,
            is_invalid=outcome.is_invalid,
        )
