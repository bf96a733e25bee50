"""Outcome claim tokens: one token id per (market, outcome index)."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

import structlog

from pm_settle.errors import InsufficientBalance, NotApproved, Unauthorized, ValueOutOfRange, ZeroAmount
from pm_settle.ids import normalize_address

log = structlog.get_logger(__name__)

OUTCOME_INDEX_BITS = 8


def compute_outcome_token_id(market_id: int, outcome_index: int) -> int:
    """Token id ``(market_id << 8) | outcome_index``; injective because the index fits in 8 bits."""
    if outcome_index < 0 or outcome_index >= 1 << OUTCOME_INDEX_BITS:
        raise ValueOutOfRange("outcome index must fit in uint8", outcome_index=outcome_index)
    if market_id < 0 or market_id >= 1 << 256:
        raise ValueOutOfRange("market id must fit in 32 bytes", market_id=market_id)
    return (market_id << OUTCOME_INDEX_BITS) | outcome_index


def decode_outcome_token_id(token_id: int) -> tuple[int, int]:
    return token_id >> OUTCOME_INDEX_BITS, token_id & ((1 << OUTCOME_INDEX_BITS) - 1)


class OutcomeTokenLedger(ABC):
    @abstractmethod
    def balance_of(self, owner: str, token_id: int) -> int:
        raise NotImplementedError

    @abstractmethod
    def mint(self, operator: str, to: str, token_id: int, amount: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def burn(self, operator: str, owner: str, token_id: int, amount: int) -> None:
        raise NotImplementedError


class InMemoryOutcomeTokenLedger(OutcomeTokenLedger):
    """Multi-token ledger. Only registered minters may mint or burn; burning
    someone else's tokens also needs that owner's operator approval."""

    def __init__(self, minters: Iterable[str] = ()):
        self._minters = {normalize_address(m) for m in minters}
        self._balances: dict[tuple[str, int], int] = {}
        self._approvals: set[tuple[str, str]] = set()

    def add_minter(self, minter: str) -> None:
        self._minters.add(normalize_address(minter))

    def is_minter(self, account: str) -> bool:
        return normalize_address(account) in self._minters

    def set_approval_for_all(self, owner: str, operator: str, approved: bool) -> None:
        key = (normalize_address(owner), normalize_address(operator))
        if approved:
            self._approvals.add(key)
        else:
            self._approvals.discard(key)

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return (normalize_address(owner), normalize_address(operator)) in self._approvals

    def balance_of(self, owner: str, token_id: int) -> int:
        return self._balances.get((normalize_address(owner), token_id), 0)

    def mint(self, operator: str, to: str, token_id: int, amount: int) -> None:
        if not self.is_minter(operator):
            raise Unauthorized("only minters may mint outcome tokens", operator=operator)
        if amount <= 0:
            raise ZeroAmount()
        key = (normalize_address(to), token_id)
        self._balances[key] = self._balances.get(key, 0) + amount
        log.debug("outcome_tokens_minted", to=key[0], token_id=hex(token_id), amount=amount)

    def burn(self, operator: str, owner: str, token_id: int, amount: int) -> None:
        operator, owner = normalize_address(operator), normalize_address(owner)
        if not self.is_minter(operator):
            raise Unauthorized("only minters may burn outcome tokens", operator=operator)
        if operator != owner and not self.is_approved_for_all(owner, operator):
            raise NotApproved(owner=owner, operator=operator)
        if amount <= 0:
            raise ZeroAmount()
        balance = self.balance_of(owner, token_id)
        if balance < amount:
            raise InsufficientBalance(owner=owner, token_id=hex(token_id), balance=balance, amount=amount)
        self._balances[(owner, token_id)] = balance - amount
        log.debug("outcome_tokens_burned", owner=owner, token_id=hex(token_id), amount=amount)

    def snapshot(self):
        return dict(self._balances)

    def restore(self, snap) -> None:
        self._balances = dict(snap)
