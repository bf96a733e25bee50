"""Collateral custody and payouts.

Balances are tracked per market so one market's depositors can never be
paid out of another market's collateral. Every operation that moves
collateral or outcome tokens holds the reentrancy guard end to end and runs
as a single atomic unit: a failed transfer or burn rolls back everything.
"""
from __future__ import annotations

import structlog

from pm_settle.errors import (
    InsolventVault,
    InvalidAndNoRefund,
    InvalidOutcomeIndex,
    MarketNotOpen,
    MarketNotResolved,
    NotWinningOutcome,
    ZeroAmount,
)
from pm_settle.events import CollateralDeposited, EventLog, PositionsMerged, PositionsSplit, Redeemed
from pm_settle.ids import format_id, normalize_address
from pm_settle.ledgers.collateral import AssetDirectory
from pm_settle.ledgers.outcome_tokens import OutcomeTokenLedger, compute_outcome_token_id
from pm_settle.market.registry import MarketRegistry
from pm_settle.schemas import MarketRecord, MarketStatus
from pm_settle.state import ReentrancyGuard, atomic, serialized

log = structlog.get_logger(__name__)


class CollateralVault:
    def __init__(
        self,
        address: str,
        registry: MarketRegistry,
        assets: AssetDirectory,
        outcome_tokens: OutcomeTokenLedger,
        events: EventLog | None = None,
        guard: ReentrancyGuard | None = None,
    ):
        self.address = normalize_address(address)
        self.registry = registry
        self.assets = assets
        self.outcome_tokens = outcome_tokens
        self.events = events if events is not None else registry.events
        self.guard = guard or ReentrancyGuard()

    def participants(self) -> list:
        out = self.registry.participants()
        if self.events is not self.registry.events:
            out.append(self.events)
        for collaborator in (*self.assets, self.outcome_tokens):
            if hasattr(collaborator, "snapshot") and hasattr(collaborator, "restore"):
                out.append(collaborator)
        return out

    def _open_market(self, market_id: int, amount: int) -> MarketRecord:
        record = self.registry.require(market_id)
        if amount <= 0:
            raise ZeroAmount(market_id=format_id(market_id))
        if record.status != MarketStatus.OPEN:
            raise MarketNotOpen(market_id=format_id(market_id), status=record.status.name)
        return record

    def _pull(self, record: MarketRecord, sender: str, amount: int) -> None:
        asset = self.assets.get(record.params.collateral_token)
        asset.transfer_from(self.address, sender, self.address, amount)
        self.registry.credit(record.market_id, amount)

    def _push(self, record: MarketRecord, recipient: str, amount: int) -> None:
        self.registry.debit(record.market_id, amount)
        asset = self.assets.get(record.params.collateral_token)
        asset.transfer(self.address, recipient, amount)

    def check_solvency(self, collateral_token: str) -> None:
        """On-hand collateral must cover the recorded balances of every market using it."""
        asset = self.assets.get(collateral_token)
        held = asset.balance_of(self.address)
        owed = self.registry.total_balance_for(collateral_token)
        if held < owed:
            raise InsolventVault(token=collateral_token, held=held, owed=owed)

    # -- deposits ----------------------------------------------------------

    @serialized
    def deposit_collateral(self, market_id: int, amount: int, sender: str) -> None:
        sender = normalize_address(sender)
        with self.guard.hold("deposit_collateral"), atomic(*self.participants()):
            record = self._open_market(market_id, amount)
            self._pull(record, sender, amount)
            self.check_solvency(record.params.collateral_token)
            self.events.emit(
                CollateralDeposited(timestamp=self.registry.clock.now(), market_id=market_id, sender=sender, amount=amount)
            )
        log.info("collateral_deposited", market_id=format_id(market_id), sender=sender, amount=amount)

    @serialized
    def split_collateral(self, market_id: int, amount: int, sender: str) -> None:
        """Deposit ``amount`` collateral and mint ``amount`` of every outcome token to ``sender``."""
        sender = normalize_address(sender)
        with self.guard.hold("split_collateral"), atomic(*self.participants()):
            record = self._open_market(market_id, amount)
            self._pull(record, sender, amount)
            for i in range(record.params.num_outcomes):
                self.outcome_tokens.mint(self.address, sender, compute_outcome_token_id(market_id, i), amount)
            self.check_solvency(record.params.collateral_token)
            self.events.emit(
                PositionsSplit(timestamp=self.registry.clock.now(), market_id=market_id, sender=sender, amount=amount)
            )
        log.info("positions_split", market_id=format_id(market_id), sender=sender, amount=amount)

    @serialized
    def merge_positions(self, market_id: int, amount: int, sender: str) -> None:
        """Burn ``amount`` of every outcome token from ``sender`` and return ``amount`` collateral."""
        sender = normalize_address(sender)
        with self.guard.hold("merge_positions"), atomic(*self.participants()):
            record = self._open_market(market_id, amount)
            for i in range(record.params.num_outcomes):
                self.outcome_tokens.burn(self.address, sender, compute_outcome_token_id(market_id, i), amount)
            self._push(record, sender, amount)
            self.check_solvency(record.params.collateral_token)
            self.events.emit(
                PositionsMerged(timestamp=self.registry.clock.now(), market_id=market_id, sender=sender, amount=amount)
            )
        log.info("positions_merged", market_id=format_id(market_id), sender=sender, amount=amount)

    # -- redemption --------------------------------------------------------

    @serialized
    def redeem_winnings(self, market_id: int, outcome_index: int, amount: int, sender: str) -> int:
        sender = normalize_address(sender)
        with self.guard.hold("redeem_winnings"), atomic(*self.participants()):
            if amount <= 0:
                raise ZeroAmount(market_id=format_id(market_id))
            record = self.registry.require(market_id)
            if record.status != MarketStatus.RESOLVED:
                raise MarketNotResolved(market_id=format_id(market_id), status=record.status.name)

            if record.is_invalid:
                if not record.params.allows_invalid_refund:
                    raise InvalidAndNoRefund(market_id=format_id(market_id))
            elif outcome_index != record.winning_outcome_index:
                raise NotWinningOutcome(
                    market_id=format_id(market_id),
                    outcome_index=outcome_index,
                    winning_outcome_index=record.winning_outcome_index,
                )
            if outcome_index < 0 or outcome_index >= record.params.num_outcomes:
                raise InvalidOutcomeIndex(outcome_index=outcome_index, num_outcomes=record.params.num_outcomes)

            token_id = compute_outcome_token_id(market_id, outcome_index)
            self.outcome_tokens.burn(self.address, sender, token_id, amount)
            payout = amount
            self._push(record, sender, payout)
            self.check_solvency(record.params.collateral_token)
            self.events.emit(
                Redeemed(
                    timestamp=self.registry.clock.now(),
                    market_id=market_id,
                    redeemer=sender,
                    outcome_index=outcome_index,
                    amount=amount,
                    payout=payout,
                )
            )
        log.info(
            "winnings_redeemed",
            market_id=format_id(market_id),
            redeemer=sender,
            outcome_index=outcome_index,
            payout=payout,
        )
        return payout

    def get_collateral_balance(self, market_id: int) -> int:
        return self.registry.get_collateral_balance(market_id)
