import pytest

from pm_settle.errors import (
    AlreadyResolved,
    DeadlineNotPassed,
    ErrorKind,
    InvalidOutcomeIndex,
    OracleNotFound,
    OracleNotResolved,
    QuestionAlreadyResolved,
    Unauthorized,
)
from pm_settle.events import MarketFinalized, ResolutionRequested
from pm_settle.schemas import ConfigFlags, MarketStatus

from conftest import ALICE, DAY, REPORTER, T0


def test_request_before_deadline_fails(core, make_params):
    market_id = core.create_market(make_params())
    with pytest.raises(DeadlineNotPassed) as exc:
        core.request_resolution(market_id)
    assert exc.value.kind is ErrorKind.TIMING
    assert exc.value.kind.retryable
    assert core.get_market_state(market_id).status == MarketStatus.OPEN


def test_early_resolution_flag(core, make_params, oracle):
    market_id = core.create_market(make_params(config_flags=ConfigFlags.ALLOW_EARLY_RESOLUTION))
    core.request_resolution(market_id)
    assert core.get_market_state(market_id).status == MarketStatus.RESOLVABLE
    assert oracle.was_requested(core.get_market_params(market_id).question_id)


def test_request_after_deadline(core, make_params, clock, oracle):
    market_id = core.create_market(make_params())
    clock.increase_to(T0 + DAY + 1)
    core.request_resolution(market_id, requester=ALICE)

    events = core.events.of_type(ResolutionRequested)
    assert len(events) == 1
    assert events[0].requester == ALICE
    assert core.get_market_state(market_id).status == MarketStatus.RESOLVABLE
    assert not core.is_market_open(market_id)

    # repeat requests are harmless
    core.request_resolution(market_id)
    assert core.get_market_state(market_id).status == MarketStatus.RESOLVABLE
    assert len(core.events.of_type(ResolutionRequested)) == 2


def test_finalize_requires_oracle_answer(core, make_params, clock):
    market_id = core.create_market(make_params())
    clock.increase_to(T0 + DAY)
    core.request_resolution(market_id)
    with pytest.raises(OracleNotResolved) as exc:
        core.finalize_market(market_id)
    assert exc.value.kind is ErrorKind.STATE_CONFLICT
    assert core.get_market_state(market_id).status == MarketStatus.RESOLVABLE


def test_full_lifecycle_is_monotonic(core, make_params, clock, oracle):
    market_id = core.create_market(make_params())
    question_id = core.get_market_params(market_id).question_id
    seen = [core.get_market_state(market_id).status]

    clock.increase_to(T0 + DAY + 1)
    core.request_resolution(market_id)
    seen.append(core.get_market_state(market_id).status)

    oracle.set_outcome(question_id, 1, False, sender=REPORTER)
    core.finalize_market(market_id)
    seen.append(core.get_market_state(market_id).status)

    assert seen == [MarketStatus.OPEN, MarketStatus.RESOLVABLE, MarketStatus.RESOLVED]
    assert core.get_market_state(market_id) == (MarketStatus.RESOLVED, 1, False)
    finalized = core.events.of_type(MarketFinalized)
    assert [(e.winning_outcome_index, e.is_invalid) for e in finalized] == [(1, False)]

    with pytest.raises(AlreadyResolved):
        core.finalize_market(market_id)
    with pytest.raises(AlreadyResolved):
        core.request_resolution(market_id)
    assert core.get_market_state(market_id) == (MarketStatus.RESOLVED, 1, False)


def test_finalize_straight_from_open(core, make_params, oracle):
    market_id = core.create_market(make_params())
    oracle.set_outcome(core.get_market_params(market_id).question_id, 0, False, sender=REPORTER)
    core.finalize_market(market_id)
    assert core.get_market_state(market_id) == (MarketStatus.RESOLVED, 0, False)


def test_invalid_outcome_is_copied(core, make_params, oracle):
    market_id = core.create_market(make_params())
    oracle.set_outcome(core.get_market_params(market_id).question_id, 0, True, sender=REPORTER)
    core.finalize_market(market_id)
    assert core.get_market_state(market_id) == (MarketStatus.RESOLVED, 0, True)


def test_oracle_answer_outside_outcome_set(core, make_params, oracle):
    market_id = core.create_market(make_params(num_outcomes=2))
    oracle.set_outcome(core.get_market_params(market_id).question_id, 5, False, sender=REPORTER)
    with pytest.raises(InvalidOutcomeIndex):
        core.finalize_market(market_id)
    assert core.get_market_state(market_id).status == MarketStatus.OPEN


def test_unknown_oracle(core, make_params, clock):
    market_id = core.create_market(make_params(oracle="0x" + "99" * 20))
    clock.increase_to(T0 + DAY)
    with pytest.raises(OracleNotFound):
        core.request_resolution(market_id)
    assert core.get_market_state(market_id).status == MarketStatus.OPEN


def test_manual_oracle_reporting_rules(oracle):
    with pytest.raises(Unauthorized):
        oracle.set_outcome(7, 1, False, sender=ALICE)
    oracle.set_outcome(7, 1, False, sender=REPORTER)
    with pytest.raises(QuestionAlreadyResolved):
        oracle.set_outcome(7, 0, False, sender=REPORTER)
    outcome = oracle.get_outcome(7)
    assert outcome.resolved and outcome.winning_index == 1 and outcome.resolution_time == T0
    assert not oracle.get_outcome(8).resolved
