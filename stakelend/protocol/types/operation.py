# MIT License
# Copyright (c) 2025 Hashborn

import json
from pydantic import BaseModel, Field
from typing import Dict, Any
from ..crypto.hash import sha256_hex
from .common import OpType
from ..crypto.keys import sign as crypto_sign

class Operation(BaseModel):
    op_type: OpType
    sender: str
    amount: int = 0      # in minimal units (10^-18 SLD)
    nonce: int
    timestamp: int = 0
    signature: str = ""  # hex ECDSA, default empty
    pub_key: str = ""    # hex public key of sender
    payload: Dict[str, Any] = Field(default_factory=dict) # start_id/end_id, uri

    def hash(self) -> str:
        payload_str = (
            self.op_type.value
            + self.sender
            + str(self.amount)
            + str(self.nonce)
            + str(self.timestamp)
            + json.dumps(self.payload, sort_keys=True)
            + self.pub_key  # Include pub_key in hash
        )
        return sha256_hex(payload_str.encode("utf-8"))

    @property
    def hash_hex(self) -> str:
        """Returns hash as hex string (for compatibility)."""
        return self.hash()

    def sign(self, priv_key_bytes: bytes):
        """Signs the operation hash."""
        msg_hash = bytes.fromhex(self.hash())
        self.signature = crypto_sign(msg_hash, priv_key_bytes).hex()
