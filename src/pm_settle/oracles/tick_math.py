"""Integer fixed-point price math for tick-based price sources.

A tick ``t`` denotes the price ``1.0001 ** t``. Square-root prices are
Q64.96 numbers (``sqrt(price) * 2**96``) held in 160 bits. Every function
here works on plain Python ints but reproduces the 256-bit widths,
truncation points and rounding of the reference on-chain implementation, so
two independent evaluations of the same inputs agree bit for bit.
"""
from __future__ import annotations

from typing import Sequence

from pm_settle.errors import ArithmeticOverflow, InvalidTwapWindow, TickOutOfRange, ValueOutOfRange
from pm_settle.ids import normalize_address

MIN_TICK = -887272
MAX_TICK = -MIN_TICK

MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

MAX_UINT128 = (1 << 128) - 1
MAX_UINT256 = (1 << 256) - 1

Q64 = 1 << 64
Q96 = 1 << 96
Q128 = 1 << 128
Q192 = 1 << 192

# sqrt(1.0001 ** -(2 ** i)) in Q128.128 for bit i of |tick|
_BIT_RATIOS: tuple[tuple[int, int], ...] = (
    (0x1, 0xFFFCB933BD6FAD37AA2D162D1A594001),
    (0x2, 0xFFF97272373D413259A46990580E213A),
    (0x4, 0xFFF2E50F5F656932EF12357CF3C7FDCC),
    (0x8, 0xFFE5CACA7E10E4E61C3624EAA0941CD0),
    (0x10, 0xFFCB9843D60F6159C9DB58835C926644),
    (0x20, 0xFF973B41FA98C081472E6896DFB254C0),
    (0x40, 0xFF2EA16466C96A3843EC78B326B52861),
    (0x80, 0xFE5DEE046A99A2A811C461F1969C3053),
    (0x100, 0xFCBE86C7900A88AEDCFFC83B479AA3A4),
    (0x200, 0xF987A7253AC413176F2B074CF7815E54),
    (0x400, 0xF3392B0822B70005940C7A398E4B70F3),
    (0x800, 0xE7159475A2C29B7443B29C7FA6E889D9),
    (0x1000, 0xD097F3BDFD2022B8845AD8F792AA5825),
    (0x2000, 0xA9F746462D870FDF8A65DC1F90E061E5),
    (0x4000, 0x70D869A156D2A1B890BB3DF62BAF32F7),
    (0x8000, 0x31BE135F97D08FD981231505542FCFA6),
    (0x10000, 0x9AA508B5B7A84E1C677DE54F3E99BC9),
    (0x20000, 0x5D6AF8DEDB81196699C329225EE604),
    (0x40000, 0x2216E584F5FA1EA926041BEDFE98),
    (0x80000, 0x48A170391F7DC42444E8FA2),
)


def wrap_signed(value: int, bits: int) -> int:
    """Two's-complement truncation of ``value`` to a signed ``bits``-wide integer."""
    value &= (1 << bits) - 1
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def _require_uint256(*values: int) -> None:
    for v in values:
        if v < 0 or v > MAX_UINT256:
            raise ValueOutOfRange("operand must fit in uint256", value=v)


def mul_div(a: int, b: int, denominator: int) -> int:
    """floor(a * b / denominator) with a full-width intermediate; the result must fit in 256 bits."""
    _require_uint256(a, b, denominator)
    if denominator == 0:
        raise ArithmeticOverflow("division by zero")
    result = (a * b) // denominator
    if result > MAX_UINT256:
        raise ArithmeticOverflow(a=a, b=b, denominator=denominator)
    return result


def mul_div_rounding_up(a: int, b: int, denominator: int) -> int:
    result = mul_div(a, b, denominator)
    if (a * b) % denominator:
        if result == MAX_UINT256:
            raise ArithmeticOverflow(a=a, b=b, denominator=denominator)
        result += 1
    return result


def get_sqrt_ratio_at_tick(tick: int) -> int:
    """Q64.96 ``sqrt(1.0001 ** tick)``, rounded up to the next representable value."""
    abs_tick = -tick if tick < 0 else tick
    if abs_tick > MAX_TICK:
        raise TickOutOfRange(tick=tick)

    ratio = Q128
    for bit, multiplier in _BIT_RATIOS:
        if abs_tick & bit:
            if bit == 0x1:
                ratio = multiplier
            else:
                ratio = ((ratio * multiplier) & MAX_UINT256) >> 128

    # the loop computed the ratio for -|tick|; invert for positive ticks
    if tick > 0:
        ratio = MAX_UINT256 // ratio

    # Q128.128 -> Q64.96, rounding up so the result never understates the tick
    return (ratio >> 32) + (0 if ratio % (1 << 32) == 0 else 1)


def consult_mean_tick(tick_cumulatives: Sequence[int], seconds_ago: int) -> int:
    """Arithmetic mean tick over ``seconds_ago`` seconds.

    ``tick_cumulatives`` is ``[cumulative(seconds_ago), cumulative(now)]``.
    Rounds toward negative infinity: the quotient is truncated, then reduced
    by one when the delta is negative and leaves a remainder.
    """
    if seconds_ago <= 0:
        raise InvalidTwapWindow("window must be non-zero", twap_window=seconds_ago)
    if len(tick_cumulatives) != 2:
        raise ValueOutOfRange("expected exactly two cumulative observations", n=len(tick_cumulatives))

    delta = wrap_signed(tick_cumulatives[1] - tick_cumulatives[0], 56)

    quotient = abs(delta) // seconds_ago
    if delta < 0:
        quotient = -quotient
    mean_tick = wrap_signed(quotient, 24)

    if delta < 0 and abs(delta) % seconds_ago != 0:
        mean_tick -= 1
    return mean_tick


def sorts_before(token_a: str, token_b: str) -> bool:
    """Pools order their pair by numeric address; the lower one is token0."""
    return int(normalize_address(token_a), 16) < int(normalize_address(token_b), 16)


def get_raw_price_at_tick(tick: int) -> tuple[int, int]:
    """Raw pool price ``token1 / token0`` in base units as ``(numerator, denominator)``.

    The squared Q64.96 ratio is held over 2**192; when squaring would
    overflow 256 bits, 64 bits of precision are dropped and the ratio is held
    over 2**128 instead.
    """
    sqrt_ratio_x96 = get_sqrt_ratio_at_tick(tick)
    if sqrt_ratio_x96 <= MAX_UINT128:
        return sqrt_ratio_x96 * sqrt_ratio_x96, Q192
    return mul_div(sqrt_ratio_x96, sqrt_ratio_x96, Q64), Q128


def get_price_at_tick(tick: int, base_token: str, quote_token: str, base_decimals: int, quote_decimals: int) -> int:
    """Whole ``quote_token`` units per whole ``base_token`` unit at ``tick``, rounded down.

    The raw ratio is token1 base units per token0 base unit. Rescaling to
    whole units multiplies by ``10 ** (d0 - d1)`` when token0 carries more
    decimals and divides by ``10 ** (d1 - d0)`` otherwise. When the base token
    sorts second the rescaled ratio is inverted.
    """
    for decimals in (base_decimals, quote_decimals):
        if decimals < 0 or decimals >= 1 << 8:
            raise ValueOutOfRange("token decimals must fit in uint8", decimals=decimals)

    ratio, scale = get_raw_price_at_tick(tick)
    base_first = sorts_before(base_token, quote_token)
    token0_decimals, token1_decimals = (base_decimals, quote_decimals) if base_first else (quote_decimals, base_decimals)

    if token0_decimals >= token1_decimals:
        ratio *= 10 ** (token0_decimals - token1_decimals)
    else:
        scale *= 10 ** (token1_decimals - token0_decimals)

    if base_first:
        return ratio // scale
    return scale // ratio
