# MIT License
# Copyright (c) 2025 Hashborn

"""
Operation receipt tracking.

Stores the outcome of submitted operations for querying.
"""
from dataclasses import dataclass, field
from typing import Optional, Dict, Any
import time
import logging
from threading import RLock

logger = logging.getLogger(__name__)


@dataclass
class OpReceipt:
    """
    Operation receipt.

    Attributes:
        op_hash: Operation hash
        op_type: Operation type name
        status: 'pending', 'confirmed' or 'failed'
        timestamp: When the receipt was last updated (unix timestamp)
        result: Operation result on success
        error: Error message on failure
        error_kind: Ledger error kind on failure (e.g. 'NothingToDo')
    """
    op_hash: str
    op_type: str
    status: str
    timestamp: int = 0
    result: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_kind: Optional[str] = None

    def __post_init__(self):
        if self.timestamp == 0:
            self.timestamp = int(time.time())

    def to_dict(self) -> dict:
        return {
            "op_hash": self.op_hash,
            "op_type": self.op_type,
            "status": self.status,
            "timestamp": self.timestamp,
            "result": self.result,
            "error": self.error,
            "error_kind": self.error_kind,
        }


class OpReceiptStore:
    """
    In-memory store for operation receipts.

    Thread-safe, bounded; the oldest 10% is dropped when full.
    """

    def __init__(self, max_receipts: int = 10000):
        self.receipts: Dict[str, OpReceipt] = {}
        self.max_receipts = max_receipts
        self.lock = RLock()

    def add_pending(self, op_hash: str, op_type: str) -> OpReceipt:
        with self.lock:
            existing = self.receipts.get(op_hash)
            if existing and existing.status == 'confirmed':
                return existing

            receipt = OpReceipt(op_hash=op_hash, op_type=op_type, status='pending')
            self.receipts[op_hash] = receipt

            if len(self.receipts) > self.max_receipts:
                self._cleanup_old_receipts()

            logger.debug(f"Added pending receipt: {op_hash[:16]}...")
            return receipt

    def mark_confirmed(self, op_hash: str, op_type: str, result: Optional[Dict[str, Any]] = None) -> OpReceipt:
        with self.lock:
            receipt = self.receipts.get(op_hash)
            if not receipt:
                receipt = OpReceipt(op_hash=op_hash, op_type=op_type, status='confirmed')
                self.receipts[op_hash] = receipt

            receipt.status = 'confirmed'
            receipt.result = result or {}
            receipt.error = None
            receipt.error_kind = None
            receipt.timestamp = int(time.time())

            logger.debug(f"Marked confirmed: {op_hash[:16]}...")
            return receipt

    def mark_failed(self, op_hash: str, op_type: str, error: str, error_kind: Optional[str] = None) -> OpReceipt:
        with self.lock:
            receipt = self.receipts.get(op_hash)
            if not receipt:
                receipt = OpReceipt(op_hash=op_hash, op_type=op_type, status='failed')
                self.receipts[op_hash] = receipt

            receipt.status = 'failed'
            receipt.error = error
            receipt.error_kind = error_kind
            receipt.timestamp = int(time.time())

            logger.debug(f"Marked failed: {op_hash[:16]}... - {error}")
            return receipt

    def get(self, op_hash: str) -> Optional[OpReceipt]:
        with self.lock:
            return self.receipts.get(op_hash)

    def count_by_status(self, status: str) -> int:
        with self.lock:
            return sum(1 for r in self.receipts.values() if r.status == status)

    def _cleanup_old_receipts(self) -> None:
        num_to_remove = len(self.receipts) // 10

        sorted_receipts = sorted(self.receipts.items(), key=lambda x: x[1].timestamp)
        for op_hash, _ in sorted_receipts[:num_to_remove]:
            del self.receipts[op_hash]

        logger.info(f"Cleaned up {num_to_remove} old receipts (total: {len(self.receipts)})")

