import pytest

from pm_settle.errors import (
    InsufficientBalance,
    NotApproved,
    TransferFailed,
    Unauthorized,
    ValueOutOfRange,
    ZeroAmount,
)
from pm_settle.ids import ZERO_ADDRESS
from pm_settle.ledgers.collateral import AssetDirectory, InMemoryCollateralAsset
from pm_settle.ledgers.outcome_tokens import (
    InMemoryOutcomeTokenLedger,
    compute_outcome_token_id,
    decode_outcome_token_id,
)

from conftest import ALICE, BOB, COLLATERAL, E18, ENGINE


def test_outcome_token_ids_are_injective():
    market_id = int("ab" * 32, 16)
    ids = {compute_outcome_token_id(market_id, i) for i in range(256)}
    assert len(ids) == 256
    assert compute_outcome_token_id(market_id, 3) == (market_id << 8) | 3
    assert decode_outcome_token_id(compute_outcome_token_id(market_id, 7)) == (market_id, 7)
    assert compute_outcome_token_id(1, 0) != compute_outcome_token_id(0, 1)
    with pytest.raises(ValueOutOfRange):
        compute_outcome_token_id(market_id, 256)
    with pytest.raises(ValueOutOfRange):
        compute_outcome_token_id(1 << 256, 0)


def test_outcome_token_mint_and_burn_rules():
    ledger = InMemoryOutcomeTokenLedger(minters=[ENGINE])
    with pytest.raises(Unauthorized):
        ledger.mint(ALICE, ALICE, 1, E18)

    ledger.mint(ENGINE, ALICE, 1, E18)
    assert ledger.balance_of(ALICE, 1) == E18
    with pytest.raises(NotApproved):
        ledger.burn(ENGINE, ALICE, 1, E18)

    ledger.set_approval_for_all(ALICE, ENGINE, True)
    with pytest.raises(InsufficientBalance):
        ledger.burn(ENGINE, ALICE, 1, 2 * E18)
    with pytest.raises(ZeroAmount):
        ledger.burn(ENGINE, ALICE, 1, 0)
    ledger.burn(ENGINE, ALICE, 1, E18)
    assert ledger.balance_of(ALICE, 1) == 0


def test_collateral_transfer_from_spends_allowance():
    asset = InMemoryCollateralAsset(COLLATERAL)
    asset.mint(ALICE, 10 * E18)
    with pytest.raises(NotApproved):
        asset.transfer_from(ENGINE, ALICE, ENGINE, E18)

    asset.approve(ALICE, ENGINE, 3 * E18)
    asset.transfer_from(ENGINE, ALICE, ENGINE, 2 * E18)
    assert asset.allowance(ALICE, ENGINE) == E18
    assert asset.balance_of(ENGINE) == 2 * E18

    with pytest.raises(InsufficientBalance):
        asset.transfer(BOB, ALICE, 1)
    with pytest.raises(TransferFailed):
        asset.transfer(ALICE, ZERO_ADDRESS, 1)
    with pytest.raises(ZeroAmount):
        asset.transfer(ALICE, BOB, 0)


def test_asset_directory_lookup():
    asset = InMemoryCollateralAsset(COLLATERAL)
    assets = AssetDirectory(asset)
    assert assets.get(COLLATERAL.upper().replace("0X", "0x")) is asset
    assert COLLATERAL in assets
    with pytest.raises(TransferFailed):
        assets.get(BOB)
