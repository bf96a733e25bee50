"""Collateral asset interface and an in-memory fungible asset."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

import structlog

from pm_settle.errors import InsufficientBalance, NotApproved, TransferFailed, ZeroAmount
from pm_settle.ids import is_null_address, normalize_address

log = structlog.get_logger(__name__)

MAX_UINT256 = (1 << 256) - 1

TransferHook = Callable[[str, str, int], None]


class CollateralAsset(ABC):
    address: str
    decimals: int

    @abstractmethod
    def balance_of(self, owner: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """Move ``amount`` from ``sender``'s own balance."""
        raise NotImplementedError

    @abstractmethod
    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None:
        """Move ``amount`` out of ``owner`` using ``spender``'s allowance."""
        raise NotImplementedError


class InMemoryCollateralAsset(CollateralAsset):
    def __init__(self, address: str, symbol: str = "mUSDC", decimals: int = 18):
        self.address = normalize_address(address)
        self.symbol = symbol
        self.decimals = decimals
        self._balances: dict[str, int] = {}
        self._allowances: dict[tuple[str, str], int] = {}
        self._hooks: list[TransferHook] = []

    def on_transfer(self, hook: TransferHook) -> None:
        """Register a callback run after every balance move (recipient-side hooks)."""
        self._hooks.append(hook)

    def mint(self, to: str, amount: int) -> None:
        to = normalize_address(to)
        self._balances[to] = self._balances.get(to, 0) + amount
        log.debug("asset_minted", token=self.symbol, to=to, amount=amount)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        self._allowances[(normalize_address(owner), normalize_address(spender))] = amount

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((normalize_address(owner), normalize_address(spender)), 0)

    def balance_of(self, owner: str) -> int:
        return self._balances.get(normalize_address(owner), 0)

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        self._move(normalize_address(sender), normalize_address(recipient), amount)

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None:
        spender, owner = normalize_address(spender), normalize_address(owner)
        if spender != owner:
            allowed = self.allowance(owner, spender)
            if allowed < amount:
                raise NotApproved(
                    "allowance too low", token=self.symbol, owner=owner, spender=spender, allowance=allowed
                )
            if allowed != MAX_UINT256:
                self._allowances[(owner, spender)] = allowed - amount
        self._move(owner, normalize_address(recipient), amount)

    def _move(self, sender: str, recipient: str, amount: int) -> None:
        if amount <= 0:
            raise ZeroAmount(token=self.symbol)
        if is_null_address(recipient):
            raise TransferFailed("transfer to the null address", token=self.symbol)
        balance = self._balances.get(sender, 0)
        if balance < amount:
            raise InsufficientBalance(token=self.symbol, owner=sender, balance=balance, amount=amount)
        self._balances[sender] = balance - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount
        for hook in self._hooks:
            hook(sender, recipient, amount)

    def snapshot(self):
        return dict(self._balances), dict(self._allowances)

    def restore(self, snap) -> None:
        balances, allowances = snap
        self._balances = dict(balances)
        self._allowances = dict(allowances)


class AssetDirectory:
    """Non-owning lookup from asset address to the asset implementation."""

    def __init__(self, *assets: CollateralAsset):
        self._assets: dict[str, CollateralAsset] = {}
        for asset in assets:
            self.add(asset)

    def add(self, asset: CollateralAsset) -> None:
        self._assets[normalize_address(asset.address)] = asset

    def get(self, address: str) -> CollateralAsset:
        asset = self._assets.get(normalize_address(address))
        if asset is None:
            raise TransferFailed("unknown collateral asset", address=address)
        return asset

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and normalize_address(address) in self._assets

    def __iter__(self):
        return iter(self._assets.values())
