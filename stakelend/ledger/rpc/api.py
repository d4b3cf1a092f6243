# MIT License
# Copyright (c) 2025 Hashborn

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from typing import Optional
from ...protocol.types.operation import Operation
from ...protocol.types.common import (
    ErrorKind, LedgerError, ValidationError,
)
from ...protocol.crypto.addresses import is_valid_address
from ..core.node import LedgerNode
import logging

logger = logging.getLogger(__name__)

app = FastAPI(title="stakelend Node RPC")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
node: Optional[LedgerNode] = None

ERROR_STATUS = {
    ErrorKind.INVALID_AMOUNT: 400,
    ErrorKind.INSUFFICIENT_BALANCE: 400,
    ErrorKind.TRANSFER_FAILED: 400,
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.PRECONDITION_NOT_MET: 409,
    ErrorKind.NOTHING_TO_DO: 409,
}

def _require_node() -> LedgerNode:
    if not node:
        raise HTTPException(status_code=503, detail="Node not initialized")
    return node

def _require_address(address: str):
    if not is_valid_address(address):
        raise HTTPException(status_code=400, detail=f"Invalid address: {address}")

@app.get("/status")
async def get_status():
    n = _require_node()
    return {
        "network": n.config.network_id,
        "owner": n.engine.owner,
        "total_staked": str(n.engine.get_total_staked()),
        "total_loaned": str(n.engine.get_total_loaned()),
        "state_root": n.engine.get_state_root(),
    }

@app.get("/account/{address}")
async def get_account(address: str):
    n = _require_node()
    _require_address(address)
    acc = n.engine.get_account(address)
    return {
        "address": address,
        "staked": str(acc.staked),
        "unstaked_cumulative": str(acc.unstaked_cumulative),
        "identity_token_id": acc.identity_token_id,
        "last_claimed_at": acc.last_claimed_at,
        "loan_balance": str(acc.loan_balance),
        "loan_issued_at": acc.loan_issued_at,
        "nonce": acc.nonce,
        "wallet_balance": str(n.vault.wallet_balance(address)),
        "reward_balance": str(n.reward_mint.balance_of(address)),
    }

@app.get("/account/{address}/rewards")
async def get_rewards(address: str):
    n = _require_node()
    _require_address(address)
    return {
        "address": address,
        "pending": str(n.engine.get_pending_rewards(address)),
        "last_claimed_at": n.engine.get_last_claimed(address),
    }

@app.get("/account/{address}/loan")
async def get_loan(address: str):
    n = _require_node()
    _require_address(address)
    status = n.engine.check_loan_status(address)
    return {
        "address": address,
        "state": status.state.value,
        "seconds_remaining": status.seconds_remaining,
        "status_code": status.as_signed(),
        "loan_balance": str(n.engine.get_loan_balance(address)),
    }

@app.get("/account/{address}/can_borrow")
async def get_can_borrow(address: str):
    n = _require_node()
    _require_address(address)
    return {
        "address": address,
        "can_take_loan": n.engine.can_take_loan(address),
        "credit_balance": n.credit.credit_balance(address),
    }

@app.get("/treasury")
async def get_treasury():
    n = _require_node()
    return {
        "total_staked": str(n.engine.get_total_staked()),
        "total_loaned": str(n.engine.get_total_loaned()),
        "held_value": str(n.engine.get_held_value()),
        "excess": str(n.engine.get_excess()),
    }

@app.get("/identity/{token_id}")
async def get_identity(token_id: int):
    n = _require_node()
    if not n.identity.exists(token_id):
        raise HTTPException(status_code=404, detail="Identity token not found")
    return {
        "token_id": token_id,
        "owner": n.identity.owner_of(token_id),
        "uri": n.identity.token_uri(token_id),
        "locked": n.credit.is_locked(token_id),
    }

@app.post("/op/submit")
async def submit_op(op: Operation):
    n = _require_node()
    try:
        receipt = n.submit(op)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LedgerError as e:
        raise HTTPException(
            status_code=ERROR_STATUS.get(e.kind, 400),
            detail={"error": str(e), "kind": e.kind.value, "op_hash": op.hash_hex},
        )
    return receipt.to_dict()

@app.get("/op/{op_hash}/receipt")
async def get_op_receipt(op_hash: str):
    n = _require_node()
    receipt = n.receipts.get(op_hash)
    if not receipt:
        raise HTTPException(status_code=404, detail="Operation not found")
    return receipt.to_dict()

@app.get("/metrics")
async def get_metrics():
    """Prometheus metrics endpoint."""
    from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
    from ..observability.metrics import metrics_registry, update_metrics

    n = _require_node()
    update_metrics(n)
    return Response(content=generate_latest(metrics_registry), media_type=CONTENT_TYPE_LATEST)
