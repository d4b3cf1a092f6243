# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import sys
import json
import requests
import os
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
from .keystore import KeyStore
from ..protocol.types.operation import Operation
from ..protocol.types.common import OpType
from ..protocol.config.params import DECIMALS, DENOM

DEFAULT_NODE = "http://localhost:8000"

def get_node_url(args):
    return args.node or os.environ.get("STAKELEND_NODE", DEFAULT_NODE)

def to_units(amount: str) -> int:
    """Converts a decimal SLD amount to minimal units."""
    try:
        units = Decimal(amount) * (10 ** DECIMALS)
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount}")
    if units != units.to_integral_value():
        raise ValueError(f"Amount {amount} has more than {DECIMALS} decimals")
    return int(units)

def format_units(units) -> str:
    return f"{Decimal(int(units)) / (10 ** DECIMALS)} {DENOM}"

def _get(url: str, path: str) -> Dict[str, Any]:
    try:
        resp = requests.get(f"{url}{path}")
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code != 200:
        print(f"Error: {resp.text}")
        sys.exit(1)
    return resp.json()

# --- Keys Commands ---
def cmd_keys_add(args):
    ks = KeyStore()
    try:
        key = ks.create_key(args.name)
        print(f"Key '{args.name}' created.")
        print(f"Address: {key['address']}")
        print(f"Pubkey:  {key['public_key']}")
        print("Important: Private key saved unencrypted. Do not share!")
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

def cmd_keys_import(args):
    ks = KeyStore()
    try:
        key = ks.import_key(args.name, args.private_key)
        print(f"Key '{args.name}' imported.")
        print(f"Address: {key['address']}")
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

def cmd_keys_list(args):
    ks = KeyStore()
    keys = ks.list_keys()
    if not keys:
        print("No keys found.")
        return

    print(f"{'Name':<15} {'Address':<45}")
    print("-" * 60)
    for k in keys:
        print(f"{k['name']:<15} {k['address']:<45}")

def cmd_keys_show(args):
    ks = KeyStore()
    key = ks.get_key(args.name)
    if not key:
        print(f"Key '{args.name}' not found.")
        sys.exit(1)
    print(json.dumps({k: v for k, v in key.items() if k != 'private_key'}, indent=2))

# --- Query Commands ---
def cmd_query_account(args):
    data = _get(get_node_url(args), f"/account/{args.address}")
    print(f"Address:      {data['address']}")
    print(f"Wallet:       {format_units(data['wallet_balance'])}")
    print(f"Staked:       {format_units(data['staked'])}")
    print(f"Loan balance: {format_units(data['loan_balance'])}")
    print(f"Rewards:      {format_units(data['reward_balance'])}")
    print(f"Token ID:     {data['identity_token_id']}")
    print(f"Nonce:        {data['nonce']}")

def cmd_query_loan(args):
    data = _get(get_node_url(args), f"/account/{args.address}/loan")
    print(f"State: {data['state']}")
    if data['state'] == "ACTIVE":
        hours = data['seconds_remaining'] / 3600
        print(f"Time remaining: {data['seconds_remaining']}s ({hours:.1f}h)")
    print(f"Owed: {format_units(data['loan_balance'])}")

def cmd_query_rewards(args):
    data = _get(get_node_url(args), f"/account/{args.address}/rewards")
    print(f"Pending rewards: {format_units(data['pending'])}")

def cmd_query_treasury(args):
    data = _get(get_node_url(args), "/treasury")
    print(f"Total staked: {format_units(data['total_staked'])}")
    print(f"Total loaned: {format_units(data['total_loaned'])}")
    print(f"Held value:   {format_units(data['held_value'])}")
    print(f"Excess:       {format_units(data['excess'])}")

# --- Tx Commands ---
def get_nonce(url, address):
    return _get(url, f"/account/{address}")['nonce']

def broadcast_op(url, op: Operation):
    try:
        resp = requests.post(f"{url}/op/submit", json=op.model_dump(mode="json"))
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)

    if resp.status_code == 200:
        res = resp.json()
        print(f"Success! OpHash: {res['op_hash']}")
        if res.get('result'):
            print(json.dumps(res['result'], indent=2))
    else:
        print(f"Error: {resp.text}")
        sys.exit(1)

def send_op(args, op_type: OpType, amount: int = 0, payload: Optional[Dict[str, Any]] = None):
    ks = KeyStore()
    sender_key = ks.get_key(args.from_name)
    if not sender_key:
        print(f"Key '{args.from_name}' not found.")
        sys.exit(1)

    url = get_node_url(args)
    from_addr = sender_key['address']

    op = Operation(
        op_type=op_type,
        sender=from_addr,
        amount=amount,
        nonce=get_nonce(url, from_addr),
        timestamp=int(time.time()),
        pub_key=sender_key['public_key'],
        payload=payload or {},
    )
    op.sign(bytes.fromhex(sender_key['private_key']))
    broadcast_op(url, op)

def _amount(args) -> int:
    try:
        return to_units(args.amount)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

def cmd_tx_stake(args):
    print(f"Staking {args.amount} {DENOM}...")
    send_op(args, OpType.STAKE, _amount(args))

def cmd_tx_unstake(args):
    print(f"Unstaking {args.amount} {DENOM}...")
    send_op(args, OpType.UNSTAKE, _amount(args))

def cmd_tx_claim(args):
    send_op(args, OpType.CLAIM_REWARDS)

def cmd_tx_borrow(args):
    send_op(args, OpType.TAKE_LOAN)

def cmd_tx_repay(args):
    print(f"Repaying {args.amount} {DENOM}...")
    send_op(args, OpType.PAY_BACK_LOAN, _amount(args))

def cmd_tx_fund(args):
    send_op(args, OpType.FUND, _amount(args))

# --- Admin Commands ---
def cmd_admin_withdraw_excess(args):
    send_op(args, OpType.WITHDRAW_EXCESS, _amount(args))

def cmd_admin_sweep_overdue(args):
    send_op(args, OpType.WITHDRAW_OVERDUE_LOANS,
            payload={"start_id": args.start_id, "end_id": args.end_id})

def cmd_admin_set_uri(args):
    send_op(args, OpType.SET_BASE_URI, payload={"uri": args.uri})

def main():
    parser = argparse.ArgumentParser(prog="stakelend", description="stakelend Client CLI")
    parser.add_argument("--node", help="Node URL (default: http://localhost:8000)")

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    # keys
    p_keys = subparsers.add_parser("keys", help="Manage keys")
    sp_keys = p_keys.add_subparsers(dest="subcommand")

    pk_add = sp_keys.add_parser("add", help="Create new key")
    pk_add.add_argument("name", help="Key name")

    pk_imp = sp_keys.add_parser("import", help="Import private key")
    pk_imp.add_argument("name", help="Key name")
    pk_imp.add_argument("--private-key", required=True, help="Hex private key")

    sp_keys.add_parser("list", help="List keys")

    pk_show = sp_keys.add_parser("show", help="Show key details")
    pk_show.add_argument("name", help="Key name")

    # query
    p_query = subparsers.add_parser("query", help="Query ledger state")
    sp_query = p_query.add_subparsers(dest="subcommand")

    for name, help_text in (("account", "Get account state"),
                            ("loan", "Get loan status"),
                            ("rewards", "Get pending rewards")):
        pq = sp_query.add_parser(name, help=help_text)
        pq.add_argument("address", help="Account address")

    sp_query.add_parser("treasury", help="Get treasury totals")

    # tx
    p_tx = subparsers.add_parser("tx", help="Create and send operations")
    sp_tx = p_tx.add_subparsers(dest="subcommand")

    pt_stake = sp_tx.add_parser("stake", help="Stake SLD")
    pt_stake.add_argument("amount", help="Amount in SLD")

    pt_unstake = sp_tx.add_parser("unstake", help="Withdraw stake")
    pt_unstake.add_argument("amount", help="Amount in SLD")

    sp_tx.add_parser("claim", help="Claim pending rewards")
    sp_tx.add_parser("borrow", help="Take a loan against the stake")

    pt_repay = sp_tx.add_parser("repay", help="Pay back the loan")
    pt_repay.add_argument("amount", help="Payment in SLD")

    pt_fund = sp_tx.add_parser("fund", help="Send value to the treasury")
    pt_fund.add_argument("amount", help="Amount in SLD")

    for p in (pt_stake, pt_unstake, pt_repay, pt_fund):
        p.add_argument("--from", dest="from_name", required=True, help="Sender key name")
    for name in ("claim", "borrow"):
        sp_tx.choices[name].add_argument("--from", dest="from_name", required=True, help="Sender key name")

    # admin
    p_admin = subparsers.add_parser("admin", help="Owner-only operations")
    sp_admin = p_admin.add_subparsers(dest="subcommand")

    pa_excess = sp_admin.add_parser("withdraw-excess", help="Withdraw uncommitted treasury value")
    pa_excess.add_argument("amount", help="Amount in SLD")

    pa_sweep = sp_admin.add_parser("sweep-overdue", help="Terminate overdue loans in a token-id range")
    pa_sweep.add_argument("start_id", type=int, help="First token id (inclusive)")
    pa_sweep.add_argument("end_id", type=int, help="Last token id (inclusive)")

    pa_uri = sp_admin.add_parser("set-uri", help="Set identity token base URI")
    pa_uri.add_argument("uri", help="Base URI")

    for p in (pa_excess, pa_sweep, pa_uri):
        p.add_argument("--from", dest="from_name", required=True, help="Owner key name")

    args = parser.parse_args()

    if args.command == "keys":
        if args.subcommand == "add": cmd_keys_add(args)
        elif args.subcommand == "import": cmd_keys_import(args)
        elif args.subcommand == "list": cmd_keys_list(args)
        elif args.subcommand == "show": cmd_keys_show(args)
        else: p_keys.print_help()

    elif args.command == "query":
        if args.subcommand == "account": cmd_query_account(args)
        elif args.subcommand == "loan": cmd_query_loan(args)
        elif args.subcommand == "rewards": cmd_query_rewards(args)
        elif args.subcommand == "treasury": cmd_query_treasury(args)
        else: p_query.print_help()

    elif args.command == "tx":
        if args.subcommand == "stake": cmd_tx_stake(args)
        elif args.subcommand == "unstake": cmd_tx_unstake(args)
        elif args.subcommand == "claim": cmd_tx_claim(args)
        elif args.subcommand == "borrow": cmd_tx_borrow(args)
        elif args.subcommand == "repay": cmd_tx_repay(args)
        elif args.subcommand == "fund": cmd_tx_fund(args)
        else: p_tx.print_help()

    elif args.command == "admin":
        if args.subcommand == "withdraw-excess": cmd_admin_withdraw_excess(args)
        elif args.subcommand == "sweep-overdue": cmd_admin_sweep_overdue(args)
        elif args.subcommand == "set-uri": cmd_admin_set_uri(args)
        else: p_admin.print_help()

    else:
        parser.print_help()

if __name__ == "__main__":
    main()
