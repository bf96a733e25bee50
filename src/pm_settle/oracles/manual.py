"""Oracle answered by a single designated reporter account."""
from __future__ import annotations

import structlog

from pm_settle.clock import Clock
from pm_settle.errors import QuestionAlreadyResolved, Unauthorized, ValueOutOfRange
from pm_settle.events import EventLog, ManualOutcomeReported
from pm_settle.ids import normalize_address
from pm_settle.oracles.base import OracleAdapter
from pm_settle.schemas import OracleOutcome
from pm_settle.state import KeyedStore, atomic, serialized

log = structlog.get_logger(__name__)

_UNRESOLVED = OracleOutcome(winning_index=0, is_invalid=False, resolved=False, resolution_time=0)


class ManualOracle(OracleAdapter):
    def __init__(self, address: str, reporter: str, clock: Clock, events: EventLog | None = None):
        self.address = normalize_address(address)
        self.reporter = normalize_address(reporter)
        self.clock = clock
        self.events = events if events is not None else EventLog()
        self.outcomes: KeyedStore[int, OracleOutcome] = KeyedStore("manual_outcomes")
        self.requests: KeyedStore[int, int] = KeyedStore("manual_requests")

    def participants(self) -> list:
        return [self.outcomes, self.requests, self.events]

    @serialized
    def request_resolution(self, question_id: int) -> None:
        if question_id not in self.requests:
            self.requests.create(question_id, self.clock.now())
            log.info("manual_resolution_requested", question_id=hex(question_id))

    @serialized
    def set_outcome(self, question_id: int, winning_index: int, is_invalid: bool, sender: str) -> None:
        if normalize_address(sender) != self.reporter:
            raise Unauthorized("only the reporter may set outcomes", sender=sender)
        if question_id in self.outcomes:
            raise QuestionAlreadyResolved(question_id=hex(question_id))
        if winning_index < 0 or winning_index >= 256:
            raise ValueOutOfRange("winning index must fit in uint8", winning_index=winning_index)
        with atomic(self.outcomes, self.events):
            now = self.clock.now()
            self.outcomes.create(
                question_id,
                OracleOutcome(winning_index=winning_index, is_invalid=is_invalid, resolved=True, resolution_time=now),
            )
            self.events.emit(
                ManualOutcomeReported(
                    timestamp=now,
                    question_id=question_id,
                    winning_index=winning_index,
                    is_invalid=is_invalid,
                    reporter=self.reporter,
                )
            )

    def get_outcome(self, question_id: int) -> OracleOutcome:
        return self.outcomes.get(question_id) or _UNRESOLVED

    def was_requested(self, question_id: int) -> bool:
        return question_id in self.requests
