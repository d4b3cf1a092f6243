# MIT License
# Copyright (c) 2025 Hashborn

import hashlib
from typing import List

def sha256(data: bytes) -> bytes:
    """Returns SHA256 hash of bytes."""
    return hashlib.sha256(data).digest()

def sha256_hex(data: bytes) -> str:
    """Returns SHA256 hash of bytes as hex string."""
    return sha256(data).hex()

def hash160(data: bytes) -> bytes:
    """20-byte digest used for account addresses (BLAKE2b-160 over SHA256)."""
    return hashlib.blake2b(sha256(data), digest_size=20).digest()

def merkle_root(hashes: List[bytes]) -> bytes:
    """Merkle root over leaf hashes; odd levels duplicate the last leaf."""
    if not hashes:
        return b'\x00' * 32

    level = list(hashes)
    while len(level) > 1:
        if len(level) % 2 == 1:
            level.append(level[-1])
        level = [sha256(level[i] + level[i + 1]) for i in range(0, len(level), 2)]
    return level[0]
