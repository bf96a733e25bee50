"""Deterministic identifiers for markets and oracle questions.

An identifier is the SHA3-256 digest of the entity's fields, each encoded as
one 32-byte big-endian word in a fixed order. Identical tuples always map to
the same ID; the helpers here have no side effects so IDs can be predicted
before anything is created.
"""
from __future__ import annotations

import hashlib
import re
from typing import TYPE_CHECKING, Any, Iterable

from pm_settle.errors import InvalidAddress, ValueOutOfRange

if TYPE_CHECKING:
    from pm_settle.schemas import MarketParams, ThresholdQuestionConfig

ZERO_ADDRESS = "0x" + "00" * 20

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

MARKET_ID_LAYOUT: tuple[str, ...] = ("address", "uint64", "uint8", "uint8", "address", "bytes32")
QUESTION_ID_LAYOUT: tuple[str, ...] = ("address", "address", "address", "uint256", "uint32", "uint64", "bool")


def normalize_address(value: str | None) -> str:
    """Return the lower-case form of a 0x-prefixed 20-byte address; ``None`` maps to the zero address."""
    if value is None:
        return ZERO_ADDRESS
    if not isinstance(value, str) or not _ADDRESS_RE.match(value):
        raise InvalidAddress(address=value)
    return value.lower()


def is_null_address(value: str | None) -> bool:
    return value is None or normalize_address(value) == ZERO_ADDRESS


def format_id(value: int) -> str:
    return f"0x{value:064x}"


def parse_id(value: int | str | bytes) -> int:
    if isinstance(value, int):
        out = value
    elif isinstance(value, bytes):
        out = int.from_bytes(value, "big")
    else:
        out = int(value, 16)
    if out < 0 or out >= 1 << 256:
        raise ValueOutOfRange("identifier must fit in 32 bytes", value=value)
    return out


def _encode_uint(value: int, bits: int) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0 or value >= 1 << bits:
        raise ValueOutOfRange(value=value, bits=bits)
    return value.to_bytes(32, "big")


def encode_word(kind: str, value: Any) -> bytes:
    if kind == "address":
        return bytes.fromhex(normalize_address(value)[2:]).rjust(32, b"\x00")
    if kind == "bool":
        return (1 if value else 0).to_bytes(32, "big")
    if kind == "bytes32":
        return _encode_uint(parse_id(value), 256)
    if kind.startswith("uint"):
        return _encode_uint(value, int(kind[4:]))
    raise ValueError(f"unsupported word type: {kind}")


def abi_encode(layout: Iterable[str], values: Iterable[Any]) -> bytes:
    layout = tuple(layout)
    values = tuple(values)
    if len(layout) != len(values):
        raise ValueError(f"expected {len(layout)} values, got {len(values)}")
    return b"".join(encode_word(k, v) for k, v in zip(layout, values))


def hash_words(data: bytes) -> int:
    return int.from_bytes(hashlib.sha3_256(data).digest(), "big")


def compute_market_id(params: MarketParams) -> int:
    return hash_words(
        abi_encode(
            MARKET_ID_LAYOUT,
            (
                params.collateral_token,
                params.market_deadline,
                params.config_flags,
                params.num_outcomes,
                params.oracle,
                params.question_id,
            ),
        )
    )


def compute_question_id(config: ThresholdQuestionConfig) -> int:
    return hash_words(
        abi_encode(
            QUESTION_ID_LAYOUT,
            (
                config.pool,
                config.base_token,
                config.quote_token,
                config.threshold,
                config.twap_window,
                config.eval_time,
                config.greater_than,
            ),
        )
    )


def question_id_from_text(question: str) -> int:
    return hash_words(question.encode("utf-8"))
