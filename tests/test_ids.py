import pytest

from pm_settle.errors import InvalidAddress, ValueOutOfRange
from pm_settle.ids import (
    MARKET_ID_LAYOUT,
    abi_encode,
    compute_market_id,
    compute_question_id,
    format_id,
    normalize_address,
    parse_id,
    question_id_from_text,
)
from pm_settle.schemas import ThresholdQuestionConfig

from conftest import POOL, USDC, WETH


def test_market_id_is_deterministic(make_params):
    assert compute_market_id(make_params()) == compute_market_id(make_params())


@pytest.mark.parametrize(
    "override",
    [
        {"collateral_token": "0x" + "c1" * 20},
        {"market_deadline": 1_700_086_401},
        {"config_flags": 1},
        {"num_outcomes": 3},
        {"oracle": "0x" + "0b" * 20},
        {"question_id": "0x" + "12" * 32},
    ],
)
def test_any_single_field_changes_market_id(make_params, override):
    assert compute_market_id(make_params(**override)) != compute_market_id(make_params())


def test_address_case_does_not_change_id(make_params):
    upper = make_params(collateral_token="0x" + "C0" * 20)
    assert compute_market_id(upper) == compute_market_id(make_params())


def test_market_encoding_is_one_word_per_field(make_params):
    p = make_params()
    data = abi_encode(
        MARKET_ID_LAYOUT,
        (p.collateral_token, p.market_deadline, p.config_flags, p.num_outcomes, p.oracle, p.question_id),
    )
    assert len(data) == 6 * 32
    # addresses are left padded
    assert data[:12] == b"\x00" * 12


def test_question_id_covers_direction():
    base = dict(
        pool=POOL, base_token=WETH, quote_token=USDC, threshold=3000 * 10**6, twap_window=1800, eval_time=1_700_003_600
    )
    up = compute_question_id(ThresholdQuestionConfig(greater_than=True, **base))
    down = compute_question_id(ThresholdQuestionConfig(greater_than=False, **base))
    assert up != down
    assert up == compute_question_id(ThresholdQuestionConfig(greater_than=True, **base))


def test_question_id_from_text():
    a = question_id_from_text("Will ETH be above $5000?")
    assert a == question_id_from_text("Will ETH be above $5000?")
    assert a != question_id_from_text("Who will win the election?")
    assert 0 <= a < 2**256


def test_bad_inputs_are_rejected(make_params):
    with pytest.raises(InvalidAddress):
        normalize_address("0x1234")
    with pytest.raises(ValueOutOfRange):
        make_params(market_deadline=2**64)
    with pytest.raises(ValueOutOfRange):
        make_params(num_outcomes=256)
    with pytest.raises(ValueOutOfRange):
        parse_id(2**256)


def test_format_and_parse_roundtrip():
    assert parse_id(format_id(42)) == 42
    assert len(format_id(42)) == 66
