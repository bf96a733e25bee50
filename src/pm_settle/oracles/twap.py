"""Binary threshold questions answered by a pool's time-weighted average price.

A question asks "is the TWAP of base in quote, over ``twap_window`` seconds,
at or above (``greater_than``) / at or below ``threshold``?". It can be
resolved once ``eval_time + twap_window`` has passed; resolution samples the
pool's cumulative ticks ``twap_window`` seconds ago and now, converts the
mean tick to a price with integer fixed-point math and freezes the answer
(1 = Yes, 0 = No). This oracle never reports a question as invalid.

Prices and thresholds are whole quote tokens per whole base token, rounded
down: a WETH/USDC TWAP of 3050.4 is the price ``3050``.
"""
from __future__ import annotations

from typing import Mapping

import structlog

from pm_settle.clock import Clock
from pm_settle.config import settings
from pm_settle.errors import (
    InvalidEvalTime,
    InvalidPool,
    InvalidTokenPair,
    InvalidTwapWindow,
    QuestionAlreadyExists,
    QuestionAlreadyResolved,
    QuestionNotFound,
    ResolutionTooEarly,
)
from pm_settle.events import EventLog, QuestionRegistered, QuestionResolved
from pm_settle.ids import compute_question_id, format_id, is_null_address, normalize_address
from pm_settle.oracles.base import NO, YES, OracleAdapter
from pm_settle.oracles.pools import PoolDirectory
from pm_settle.oracles.tick_math import consult_mean_tick, get_price_at_tick
from pm_settle.schemas import OracleOutcome, ThresholdQuestion, ThresholdQuestionConfig
from pm_settle.state import KeyedStore, atomic, serialized

log = structlog.get_logger(__name__)


def decide_outcome(price: int, threshold: int, greater_than: bool) -> int:
    if greater_than:
        return YES if price >= threshold else NO
    return YES if price <= threshold else NO


class TwapThresholdOracle(OracleAdapter):
    def __init__(
        self,
        address: str,
        pools: PoolDirectory,
        token_decimals: Mapping[str, int],
        clock: Clock,
        events: EventLog | None = None,
        max_window_seconds: int | None = None,
    ):
        self.address = normalize_address(address)
        self.pools = pools
        self.token_decimals = {normalize_address(k): v for k, v in token_decimals.items()}
        self.clock = clock
        self.events = events if events is not None else EventLog()
        self.max_window_seconds = (
            max_window_seconds if max_window_seconds is not None else settings.twap_max_window_seconds
        )
        self.questions: KeyedStore[int, ThresholdQuestion] = KeyedStore("threshold_questions")

    def participants(self) -> list:
        return [self.questions, self.events]

    # -- identifiers -------------------------------------------------------

    @staticmethod
    def compute_question_id(
        pool: str,
        base_token: str,
        quote_token: str,
        threshold: int,
        twap_window: int,
        eval_time: int,
        greater_than: bool,
    ) -> int:
        return compute_question_id(
            ThresholdQuestionConfig(
                pool=pool,
                base_token=base_token,
                quote_token=quote_token,
                threshold=threshold,
                twap_window=twap_window,
                eval_time=eval_time,
                greater_than=greater_than,
            )
        )

    # -- registration ------------------------------------------------------

    @serialized
    def register_threshold_question(
        self,
        pool: str,
        base_token: str,
        quote_token: str,
        threshold: int,
        twap_window: int,
        eval_time: int,
        greater_than: bool,
    ) -> int:
        if is_null_address(pool):
            raise InvalidPool(pool=pool)
        now = self.clock.now()
        if eval_time <= now:
            raise InvalidEvalTime(eval_time=eval_time, now=now)
        if twap_window <= 0 or twap_window > self.max_window_seconds:
            raise InvalidTwapWindow(twap_window=twap_window, max_window=self.max_window_seconds)

        source = self.pools.get(pool)
        if not source.has_pair(base_token, quote_token):
            raise InvalidTokenPair(pool=pool, base_token=base_token, quote_token=quote_token)
        for token in (base_token, quote_token):
            if normalize_address(token) not in self.token_decimals:
                raise InvalidTokenPair("token decimals unknown", token=token)

        config = ThresholdQuestionConfig(
            pool=pool,
            base_token=base_token,
            quote_token=quote_token,
            threshold=threshold,
            twap_window=twap_window,
            eval_time=eval_time,
            greater_than=greater_than,
        )
        question_id = compute_question_id(config)
        if question_id in self.questions:
            raise QuestionAlreadyExists(question_id=format_id(question_id))

        with atomic(self.questions, self.events):
            self.questions.create(
                question_id, ThresholdQuestion(question_id=question_id, config=config, registered_at=now)
            )
            self.events.emit(
                QuestionRegistered(
                    timestamp=now,
                    question_id=question_id,
                    pool=config.pool,
                    base_token=config.base_token,
                    quote_token=config.quote_token,
                    threshold=config.threshold,
                    twap_window=config.twap_window,
                    eval_time=config.eval_time,
                    greater_than=config.greater_than,
                )
            )
        log.info("threshold_question_registered", question_id=format_id(question_id), pool=config.pool)
        return question_id

    # -- resolution --------------------------------------------------------

    def _get(self, question_id: int) -> ThresholdQuestion:
        question = self.questions.get(question_id)
        if question is None:
            raise QuestionNotFound(question_id=format_id(question_id))
        return question

    def quote_twap(self, pool: str, base_token: str, quote_token: str, twap_window: int) -> tuple[int, int]:
        """``(price, mean_tick)`` over the ``twap_window`` seconds ending now."""
        source = self.pools.get(pool)
        cumulatives = source.observe([twap_window, 0])
        mean_tick = consult_mean_tick(cumulatives, twap_window)
        price = get_price_at_tick(
            mean_tick,
            base_token,
            quote_token,
            self.token_decimals[normalize_address(base_token)],
            self.token_decimals[normalize_address(quote_token)],
        )
        return price, mean_tick

    @serialized
    def request_resolution(self, question_id: int) -> None:
        question = self._get(question_id)
        if question.resolved:
            raise QuestionAlreadyResolved(question_id=format_id(question_id))
        now = self.clock.now()
        if now < question.resolvable_at:
            raise ResolutionTooEarly(now=now, resolvable_at=question.resolvable_at)

        cfg = question.config
        with atomic(self.questions, self.events):
            price, mean_tick = self.quote_twap(cfg.pool, cfg.base_token, cfg.quote_token, cfg.twap_window)
            winning_index = decide_outcome(price, cfg.threshold, cfg.greater_than)
            self.questions.replace(
                question_id,
                question.model_copy(
                    update={
                        "resolved": True,
                        "winning_index": winning_index,
                        "resolution_time": now,
                        "resolved_price": price,
                    }
                ),
            )
            self.events.emit(
                QuestionResolved(
                    timestamp=now,
                    question_id=question_id,
                    twap_price=price,
                    mean_tick=mean_tick,
                    winning_index=winning_index,
                )
            )
        log.info(
            "threshold_question_resolved",
            question_id=format_id(question_id),
            twap_price=price,
            threshold=cfg.threshold,
            mean_tick=mean_tick,
            winning_index=winning_index,
        )

    # -- views -------------------------------------------------------------

    def get_outcome(self, question_id: int) -> OracleOutcome:
        question = self.questions.get(question_id)
        if question is None or not question.resolved:
            return OracleOutcome(winning_index=0, is_invalid=False, resolved=False, resolution_time=0)
        return OracleOutcome(
            winning_index=question.winning_index,
            is_invalid=False,
            resolved=True,
            resolution_time=question.resolution_time,
        )

    def get_question_config(self, question_id: int) -> ThresholdQuestion:
        return self._get(question_id)

    def can_resolve(self, question_id: int) -> bool:
        question = self.questions.get(question_id)
        if question is None or question.resolved:
            return False
        return self.clock.now() >= question.resolvable_at

    def time_until_resolution(self, question_id: int) -> int:
        question = self._get(question_id)
        return max(0, question.resolvable_at - self.clock.now())

    def get_current_twap_price(self, question_id: int) -> int:
        cfg = self._get(question_id).config
        price, _ = self.quote_twap(cfg.pool, cfg.base_token, cfg.quote_token, cfg.twap_window)
        return price
