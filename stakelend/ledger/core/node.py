# MIT License
# Copyright (c) 2025 Hashborn

from typing import Optional, Dict, Any, Callable
import json
import logging
import os
import threading

from ...protocol.types.operation import Operation
from ...protocol.types.common import OpType, ValidationError, LedgerError, LoanDefaulted
from ...protocol.crypto.keys import verify
from ...protocol.crypto.addresses import address_from_pubkey
from ...protocol.config.params import LedgerConfig, CURRENT_NETWORK
from ..storage.db import StorageDB
from ..capabilities.memory import (
    InMemoryIdentityToken, InMemoryCreditRegistry, InMemoryRewardMint, InMemoryVault,
)
from ..observability import metrics
from .state import LedgerState
from .engine import LedgerEngine
from .events import EventBus, LOAN_TERMINATED, REWARDS_CLAIMED
from .receipts import OpReceipt, OpReceiptStore

logger = logging.getLogger(__name__)

class LedgerNode:
    """
    Authenticated front door to a LedgerEngine.

    Verifies signed operations (key/address binding, signature, nonce),
    dispatches them to the engine, then persists state, records a receipt
    and updates metrics. Runs the in-memory capabilities and keeps them in
    the same sqlite file as the ledger.
    """

    def __init__(self, db_path: Optional[str] = None, config: Optional[LedgerConfig] = None,
                 owner: Optional[str] = None, clock: Optional[Callable[[], int]] = None,
                 default_credit: int = 0):
        self.config = config or CURRENT_NETWORK
        self.db = StorageDB(db_path) if db_path else None
        self._lock = threading.RLock()

        self.identity = InMemoryIdentityToken(base_uri=self.config.base_uri)
        self.credit = InMemoryCreditRegistry(default_balance=default_credit)
        self.reward_mint = InMemoryRewardMint()
        self.vault = InMemoryVault()

        self.events = EventBus()
        self.receipts = OpReceiptStore()

        state = LedgerState(self.db)
        self.engine = LedgerEngine(
            identity=self.identity,
            credit=self.credit,
            reward_mint=self.reward_mint,
            vault=self.vault,
            config=self.config,
            state=state,
            clock=clock,
            event_bus=self.events,
            owner=owner,
        )

        self.events.subscribe(LOAN_TERMINATED, metrics.record_termination)
        self.events.subscribe(REWARDS_CLAIMED, metrics.record_rewards)

        self.genesis_path = os.path.join(os.path.dirname(db_path), "genesis.json") if db_path else None
        self._load_ledger_state()

    @property
    def capability_stores(self) -> Dict[str, Any]:
        return {
            "identity": self.identity,
            "credit": self.credit,
            "reward_mint": self.reward_mint,
            "vault": self.vault,
        }

    def _load_ledger_state(self):
        if self.db is None:
            return

        if self.db.get_state("treasury") is None:
            logger.info("Ledger initialized empty")
            self._apply_genesis()
            return

        self.engine.state.load()
        owner = self.db.get_state("meta:owner")
        if owner and self.engine.owner is None:
            self.engine.owner = owner
        for name, store in self.capability_stores.items():
            raw = self.db.get_state(f"cap:{name}")
            if raw:
                store.load_json(raw)
        logger.info(
            f"Ledger loaded: total_staked={self.engine.state.treasury.total_staked}, "
            f"total_loaned={self.engine.state.treasury.total_loaned}, owner={self.engine.owner}"
        )

    def _apply_genesis(self):
        """Loads wallet balances, credit grants and the owner from genesis.json if it exists."""
        if not self.genesis_path or not os.path.exists(self.genesis_path):
            logger.warning("No genesis.json found. Starting with empty wallets.")
            self.persist()
            return

        with open(self.genesis_path, "r") as f:
            data = json.load(f)

        for address, amount in data.get("alloc", {}).items():
            self.vault.credit(address, int(amount))
        for address, score in data.get("credit", {}).items():
            self.credit.set_credit(address, int(score))
        if data.get("owner") and self.engine.owner is None:
            self.engine.owner = data["owner"]

        self.persist()
        logger.info(f"Applied genesis: {len(data.get('alloc', {}))} wallets, owner={self.engine.owner}")

    def persist(self):
        if self.db is None:
            return
        self.engine.state.persist()
        if self.engine.owner:
            self.db.set_state("meta:owner", self.engine.owner)
        for name, store in self.capability_stores.items():
            self.db.set_state(f"cap:{name}", store.to_json())

    # --- Operation handling ---
    def verify_operation(self, op: Operation) -> None:
        """Stateless and nonce checks. Raises ValidationError."""
        if not op.signature or not op.pub_key:
            raise ValidationError("Missing signature or pub_key")

        try:
            prefix = op.sender.split("1")[0]
            derived_addr = address_from_pubkey(bytes.fromhex(op.pub_key), prefix=prefix)
        except ValueError as e:
            raise ValidationError(f"Invalid address format or key: {e}")
        if derived_addr != op.sender:
            raise ValidationError(f"pub_key mismatch: derived {derived_addr}, expected {op.sender}")

        try:
            sig_ok = verify(bytes.fromhex(op.hash()), bytes.fromhex(op.signature), bytes.fromhex(op.pub_key))
        except ValueError as e:
            raise ValidationError(f"Signature verification failed: {e}")
        if not sig_ok:
            raise ValidationError("Invalid signature")

        expected = self.engine.get_account(op.sender).nonce
        if op.nonce != expected:
            raise ValidationError(f"Invalid nonce: expected {expected}, got {op.nonce}")

    def _dispatch(self, op: Operation) -> Dict[str, Any]:
        engine = self.engine
        sender = op.sender

        if op.op_type == OpType.STAKE:
            return {"token_id": engine.stake(sender, op.amount)}
        if op.op_type == OpType.UNSTAKE:
            return {"withdrawn": engine.unstake(sender, op.amount)}
        if op.op_type == OpType.CLAIM_REWARDS:
            return {"claimed": engine.claim_rewards(sender)}
        if op.op_type == OpType.TAKE_LOAN:
            return {"principal": engine.take_loan(sender)}
        if op.op_type == OpType.PAY_BACK_LOAN:
            return engine.pay_back_loan(sender, op.amount).model_dump()
        if op.op_type == OpType.FUND:
            engine.fund(sender, op.amount)
            return {"funded": op.amount}
        if op.op_type == OpType.WITHDRAW_EXCESS:
            return {"withdrawn": engine.withdraw_excess(sender, op.amount)}
        if op.op_type == OpType.WITHDRAW_OVERDUE_LOANS:
            if "start_id" not in op.payload or "end_id" not in op.payload:
                raise ValidationError("WITHDRAW_OVERDUE_LOANS must provide 'start_id' and 'end_id' in payload")
            return {"collected": engine.withdraw_overdue_loans(sender, op.payload["start_id"], op.payload["end_id"])}
        if op.op_type == OpType.SET_BASE_URI:
            uri = op.payload.get("uri")
            if not isinstance(uri, str):
                raise ValidationError("SET_BASE_URI must provide 'uri' in payload")
            engine.set_base_uri(sender, uri)
            return {"uri": uri}

        raise ValidationError(f"Unknown operation type: {op.op_type}")

    def submit(self, op: Operation) -> OpReceipt:
        """
        Verifies and applies a signed operation.

        Returns the confirmed receipt. Raises ValidationError or LedgerError
        after recording a failed receipt.
        """
        op_hash = op.hash_hex
        op_type = op.op_type.value

        with self._lock:
            existing = self.receipts.get(op_hash)
            if existing and existing.status == "confirmed":
                raise ValidationError(f"Operation {op_hash[:16]} already applied")

            self.receipts.add_pending(op_hash, op_type)
            try:
                self.verify_operation(op)
                result = self._dispatch(op)
            except LoanDefaulted as e:
                # Forfeiture was committed even though the unstake was refused
                self.engine.bump_nonce(op.sender)
                self._commit(op, op_hash, {"defaulted": True})
                self._fail(op_hash, op_type, e, e.kind.value)
                raise
            except LedgerError as e:
                self._fail(op_hash, op_type, e, e.kind.value)
                raise
            except ValidationError as e:
                self._fail(op_hash, op_type, e, "ValidationError")
                raise
            except Exception as e:
                self._fail(op_hash, op_type, e, type(e).__name__)
                raise

            self.engine.bump_nonce(op.sender)
            self._commit(op, op_hash, result)
            metrics.record_operation(op_type)
            return self.receipts.mark_confirmed(op_hash, op_type, result)

    def _commit(self, op: Operation, op_hash: str, result: Dict[str, Any]):
        self.persist()
        if self.db is not None:
            self.db.append_operation(
                op_hash, op.op_type.value, op.sender, self.engine.clock(),
                json.dumps({"op": op.model_dump(mode="json"), "result": result})
            )

    def _fail(self, op_hash: str, op_type: str, error: Exception, error_kind: str):
        logger.warning(f"Operation {op_hash[:8]} ({op_type}) rejected: {error}")
        metrics.record_failure(op_type, error_kind)
        self.receipts.mark_failed(op_hash, op_type, str(error), error_kind)

    def close(self):
        if self.db is not None:
            self.db.close()
