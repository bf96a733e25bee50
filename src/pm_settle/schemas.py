from __future__ import annotations

from enum import IntEnum, IntFlag
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pm_settle.errors import ValueOutOfRange
from pm_settle.ids import normalize_address, parse_id


def _check_width(value: int, bits: int, name: str) -> int:
    if value < 0 or value >= 1 << bits:
        raise ValueOutOfRange(f"{name} must fit in uint{bits}", value=value)
    return value


class MarketStatus(IntEnum):
    OPEN = 0
    RESOLVABLE = 1
    RESOLVED = 2


class ConfigFlags(IntFlag):
    NONE = 0
    ALLOW_EARLY_RESOLUTION = 1
    ALLOW_INVALID_REFUND = 2


class MarketParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    collateral_token: str
    market_deadline: int
    config_flags: int = 0
    num_outcomes: int
    oracle: str
    question_id: int

    @field_validator("collateral_token", "oracle", mode="before")
    @classmethod
    def _address(cls, v):
        return normalize_address(v)

    @field_validator("question_id", mode="before")
    @classmethod
    def _question_id(cls, v):
        return parse_id(v)

    @field_validator("market_deadline")
    @classmethod
    def _deadline(cls, v: int) -> int:
        return _check_width(v, 64, "market_deadline")

    @field_validator("config_flags", "num_outcomes")
    @classmethod
    def _small(cls, v: int) -> int:
        return _check_width(int(v), 8, "uint8 field")

    @property
    def allows_early_resolution(self) -> bool:
        return bool(self.config_flags & ConfigFlags.ALLOW_EARLY_RESOLUTION)

    @property
    def allows_invalid_refund(self) -> bool:
        return bool(self.config_flags & ConfigFlags.ALLOW_INVALID_REFUND)


class MarketRecord(BaseModel):
    """Settlement ledger entry. Updated by replacement, never deleted."""

    model_config = ConfigDict(frozen=True)

    market_id: int
    params: MarketParams
    status: MarketStatus = MarketStatus.OPEN
    winning_outcome_index: int = 0
    is_invalid: bool = False
    metadata_uri: str = ""
    creator: str
    created_at: int
    resolved_at: int | None = None


class MarketState(NamedTuple):
    status: MarketStatus
    winning_outcome_index: int
    is_invalid: bool


class OracleOutcome(NamedTuple):
    winning_index: int
    is_invalid: bool
    resolved: bool
    resolution_time: int


class ThresholdQuestionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    pool: str
    base_token: str
    quote_token: str
    threshold: int
    twap_window: int
    eval_time: int
    greater_than: bool

    @field_validator("pool", "base_token", "quote_token", mode="before")
    @classmethod
    def _address(cls, v):
        return normalize_address(v)

    @field_validator("threshold")
    @classmethod
    def _threshold(cls, v: int) -> int:
        return _check_width(v, 256, "threshold")

    @field_validator("twap_window")
    @classmethod
    def _window(cls, v: int) -> int:
        return _check_width(v, 32, "twap_window")

    @field_validator("eval_time")
    @classmethod
    def _eval_time(cls, v: int) -> int:
        return _check_width(v, 64, "eval_time")


class ThresholdQuestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: int
    config: ThresholdQuestionConfig
    resolved: bool = False
    winning_index: int = 0
    resolution_time: int = 0
    resolved_price: int | None = None
    registered_at: int = Field(default=0, ge=0)

    @property
    def resolvable_at(self) -> int:
        return self.config.eval_time + self.config.twap_window
