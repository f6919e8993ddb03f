"""
Field-tolerant ABI tuple decoding.

A standard decoder fails the whole response when one field is malformed.
Here each head slot is decoded on its own: static fields from their 32-byte
word, dynamic fields by following their offset. A field that fails is
returned as UNDECODABLE and the rest of the tuple survives.
"""

from __future__ import annotations

import re
from typing import Any, List, Sequence, Tuple

from eth_abi import decode
from eth_abi.exceptions import DecodingError

from reportchain.ledger import UNDECODABLE

WORD = 32

_DYNAMIC_RE = re.compile(r"^(string|bytes|.+\[\])$")


def is_dynamic(abi_type: str) -> bool:
    return bool(_DYNAMIC_RE.match(abi_type))


def _decode_one(abi_type: str, payload: bytes) -> Any:
    try:
        (value,) = decode([abi_type], payload)
    except (DecodingError, ValueError, OverflowError):
        return UNDECODABLE
    return value


def decode_fields(types: Sequence[str], data: bytes) -> Tuple[Any, ...]:
    """Decode every output field independently."""
    values: List[Any] = []
    for index, abi_type in enumerate(types):
        head = data[index * WORD:(index + 1) * WORD]
        if len(head) < WORD:
            values.append(UNDECODABLE)
            continue

        if not is_dynamic(abi_type):
            values.append(_decode_one(abi_type, head))
            continue

        offset = int.from_bytes(head, "big")
        if offset % WORD or offset + WORD > len(data):
            values.append(UNDECODABLE)
            continue
        # re-anchor the tail so the dynamic value sits right after one head word
        values.append(_decode_one(abi_type, WORD.to_bytes(WORD, "big") + data[offset:]))

    return tuple(values)


def decode_output(types: Sequence[str], data: bytes) -> Any:
    """Decode a call result; single outputs are returned bare."""
    if not types:
        return None
    fields = decode_fields(types, data)
    return fields[0] if len(types) == 1 else fields


def normalize_value(value: Any) -> Any:
    """Lower-case addresses and unwrap bytes so values compare predictably."""
    if isinstance(value, str) and value.startswith("0x") and len(value) == 42:
        return value.lower()
    if isinstance(value, (list, tuple)) and not isinstance(value, str):
        return type(value)(normalize_value(v) for v in value)
    return value
