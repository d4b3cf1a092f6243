# MIT License
# Copyright (c) 2025 Hashborn

import bech32 # type: ignore
from .hash import hash160
from typing import Tuple, Optional

ACCOUNT_PREFIX = "sld"

def address_from_pubkey(pub_bytes: bytes, prefix: str = ACCOUNT_PREFIX) -> str:
    """Creates Bech32 account address from a compressed public key."""
    h20 = hash160(pub_bytes)

    five_bit_r = bech32.convertbits(h20, 8, 5)
    if five_bit_r is None:
        raise ValueError("Error converting to bech32 words")

    return bech32.bech32_encode(prefix, five_bit_r)

def decode_address(addr: str) -> Tuple[str, bytes]:
    """Decodes Bech32 address to (prefix, h20_bytes)."""
    hrp, data = bech32.bech32_decode(addr)
    if hrp is None or data is None:
        raise ValueError(f"Invalid bech32 address: {addr}")

    decoded = bech32.convertbits(data, 5, 8, False)
    if decoded is None:
        raise ValueError("Error converting from bech32 words")

    return hrp, bytes(decoded)

def is_valid_address(addr: str, expected_prefix: Optional[str] = ACCOUNT_PREFIX) -> bool:
    try:
        hrp, payload = decode_address(addr)
    except ValueError:
        return False
    if expected_prefix and hrp != expected_prefix:
        return False
    return len(payload) == 20
