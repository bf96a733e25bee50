from __future__ import annotations

from pm_settle.clock import Clock, SystemClock
from pm_settle.events import EventLog
from pm_settle.ids import ZERO_ADDRESS, normalize_address
from pm_settle.ledgers.collateral import AssetDirectory
from pm_settle.ledgers.outcome_tokens import OutcomeTokenLedger, compute_outcome_token_id
from pm_settle.market.registry import MarketRegistry
from pm_settle.market.resolution import ResolutionCoordinator
from pm_settle.market.vault import CollateralVault
from pm_settle.oracles.base import OracleDirectory
from pm_settle.schemas import MarketParams, MarketRecord, MarketState
from pm_settle.state import ReentrancyGuard


class MarketCore:
    """Public surface of the settlement engine.

    Wires one registry, vault and resolution coordinator over a shared event
    log and reentrancy guard. ``address`` is the engine's own account: it
    holds collateral in custody and is the minter/burner of outcome tokens.
    """

    def __init__(
        self,
        address: str,
        assets: AssetDirectory,
        outcome_tokens: OutcomeTokenLedger,
        oracles: OracleDirectory,
        clock: Clock | None = None,
        events: EventLog | None = None,
    ):
        self.address = normalize_address(address)
        self.clock = clock if clock is not None else SystemClock()
        self.events = events if events is not None else EventLog()
        self.guard = ReentrancyGuard()
        self.registry = MarketRegistry(self.clock, self.events)
        self.vault = CollateralVault(self.address, self.registry, assets, outcome_tokens, self.events, self.guard)
        self.resolution = ResolutionCoordinator(self.registry, oracles, self.events)

    # lifecycle
    def create_market(self, params: MarketParams, metadata_uri: str = "", creator: str = ZERO_ADDRESS) -> int:
        return self.registry.create_market(params, metadata_uri, creator)

    def request_resolution(self, market_id: int, requester: str = ZERO_ADDRESS) -> None:
        self.resolution.request_resolution(market_id, requester)

    def finalize_market(self, market_id: int) -> None:
        self.resolution.finalize_market(market_id)

    # collateral
    def deposit_collateral(self, market_id: int, amount: int, sender: str) -> None:
        self.vault.deposit_collateral(market_id, amount, sender)

    def redeem_winnings(self, market_id: int, outcome_index: int, amount: int, sender: str) -> int:
        return self.vault.redeem_winnings(market_id, outcome_index, amount, sender)

    def split_collateral(self, market_id: int, amount: int, sender: str) -> None:
        self.vault.split_collateral(market_id, amount, sender)

    def merge_positions(self, market_id: int, amount: int, sender: str) -> None:
        self.vault.merge_positions(market_id, amount, sender)

    # views
    def market_exists(self, market_id: int) -> bool:
        return self.registry.market_exists(market_id)

    def get_market(self, market_id: int) -> MarketRecord:
        return self.registry.get_market(market_id)

    def get_market_params(self, market_id: int) -> MarketParams:
        return self.registry.get_market_params(market_id)

    def get_market_state(self, market_id: int) -> MarketState:
        return self.registry.get_market_state(market_id)

    def get_market_metadata_uri(self, market_id: int) -> str:
        return self.registry.get_market_metadata_uri(market_id)

    def is_market_open(self, market_id: int) -> bool:
        return self.registry.is_market_open(market_id)

    def get_collateral_balance(self, market_id: int) -> int:
        return self.vault.get_collateral_balance(market_id)

    def get_collateral_token(self, market_id: int) -> str:
        return self.registry.get_collateral_token(market_id)

    def get_num_outcomes(self, market_id: int) -> int:
        return self.registry.get_num_outcomes(market_id)

    def get_config_flags(self, market_id: int) -> int:
        return self.registry.get_config_flags(market_id)

    @staticmethod
    def predict_market_id(params: MarketParams) -> int:
        return MarketRegistry.predict_market_id(params)

    @staticmethod
    def compute_outcome_token_id(market_id: int, outcome_index: int) -> int:
        return compute_outcome_token_id(market_id, outcome_index)
