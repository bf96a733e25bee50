"""Named failure conditions raised by the settlement engine.

Every failure aborts the whole operation. Callers branch on ``kind``:

- TIMING: try again later (deadline or TWAP window not reached yet)
- STATE_CONFLICT / POLICY: will never succeed for this market or question
- INVALID_ARGUMENT: caller mistake
- NOT_FOUND: unknown market / question / oracle
- ACCOUNTING: a collateral or token movement could not be honoured
"""
from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_ARGUMENT = "invalid_argument"
    STATE_CONFLICT = "state_conflict"
    TIMING = "timing"
    POLICY = "policy"
    ACCOUNTING = "accounting"

    @property
    def retryable(self) -> bool:
        return self is ErrorKind.TIMING


class SettlementError(Exception):
    kind: ErrorKind = ErrorKind.STATE_CONFLICT
    default_message: str = "settlement operation failed"

    def __init__(self, message: str | None = None, **context: Any):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        if not self.context:
            return f"{self.code}: {self.message}"
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.code}: {self.message} ({details})"


# -- not found ---------------------------------------------------------------

class NotFound(SettlementError):
    kind = ErrorKind.NOT_FOUND
    default_message = "unknown identifier"


class MarketNotFound(NotFound):
    default_message = "market is not registered"


class QuestionNotFound(NotFound):
    default_message = "question is not registered"


class OracleNotFound(NotFound):
    default_message = "no oracle adapter registered at this address"


# -- invalid argument --------------------------------------------------------

class InvalidArgument(SettlementError):
    kind = ErrorKind.INVALID_ARGUMENT
    default_message = "invalid argument"


class ZeroAmount(InvalidArgument):
    default_message = "amount must be greater than zero"


class InvalidNumOutcomes(InvalidArgument):
    default_message = "outcome count out of range"


class InvalidOutcomeIndex(InvalidArgument):
    default_message = "outcome index out of range"


class InvalidCollateral(InvalidArgument):
    default_message = "collateral token must not be the null address"


class InvalidOracle(InvalidArgument):
    default_message = "oracle must not be the null address"


class InvalidAddress(InvalidArgument):
    default_message = "malformed address"


class ValueOutOfRange(InvalidArgument):
    default_message = "value does not fit its declared width"


class InvalidPool(InvalidArgument):
    default_message = "pool must not be the null address"


class InvalidTokenPair(InvalidArgument):
    default_message = "base and quote tokens must be the two distinct tokens of the pool"


class InvalidTwapWindow(InvalidArgument):
    default_message = "TWAP window out of range"


class InvalidEvalTime(InvalidArgument):
    default_message = "evaluation time must be in the future"


class TickOutOfRange(InvalidArgument):
    default_message = "tick outside [MIN_TICK, MAX_TICK]"


# -- state conflict ----------------------------------------------------------

class AlreadyExists(SettlementError):
    default_message = "an entry with identical parameters already exists"


class QuestionAlreadyExists(AlreadyExists):
    default_message = "a question with identical configuration already exists"


class AlreadyResolved(SettlementError):
    default_message = "market is already resolved"


class QuestionAlreadyResolved(AlreadyResolved):
    default_message = "question is already resolved"


class MarketNotOpen(SettlementError):
    default_message = "market is not open"


class MarketNotResolved(SettlementError):
    default_message = "market is not resolved"


class OracleNotResolved(SettlementError):
    default_message = "oracle has not resolved the question yet"


class ObservationTooOld(SettlementError):
    default_message = "price source has no observation that old"


class ReentrantCall(SettlementError):
    default_message = "operation re-entered while a guarded operation is in progress"


# -- timing ------------------------------------------------------------------

class DeadlineNotPassed(SettlementError):
    kind = ErrorKind.TIMING
    default_message = "market deadline has not passed and early resolution is not allowed"


class ResolutionTooEarly(SettlementError):
    kind = ErrorKind.TIMING
    default_message = "TWAP window has not fully elapsed after the evaluation time"


# -- policy ------------------------------------------------------------------

class NotWinningOutcome(SettlementError):
    kind = ErrorKind.POLICY
    default_message = "outcome is not the winning outcome"


class InvalidAndNoRefund(SettlementError):
    kind = ErrorKind.POLICY
    default_message = "market resolved invalid and refunds are not enabled"


class Unauthorized(SettlementError):
    kind = ErrorKind.POLICY
    default_message = "caller is not allowed to perform this operation"


# -- accounting --------------------------------------------------------------

class AccountingError(SettlementError):
    kind = ErrorKind.ACCOUNTING
    default_message = "accounting failure"


class InsufficientCollateral(AccountingError):
    default_message = "redemption exceeds the market's collateral balance"


class InsolventVault(AccountingError):
    default_message = "vault holds less collateral than its recorded balances"


class InsufficientBalance(AccountingError):
    default_message = "insufficient balance"


class NotApproved(AccountingError):
    default_message = "operator is not approved to move these tokens"


class TransferFailed(AccountingError):
    default_message = "asset transfer failed"


class ArithmeticOverflow(AccountingError):
    default_message = "fixed-point result does not fit in 256 bits"
