# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import asyncio
import json
import logging
import os
from uvicorn import Config, Server
from ...protocol.crypto.keys import generate_private_key, public_key_from_private
from ...protocol.crypto.addresses import address_from_pubkey
from ...protocol.config.params import CURRENT_NETWORK
from ..core.node import LedgerNode
from ..rpc import api # import module to set globals

logger = logging.getLogger(__name__)

def cmd_init(args):
    """Initialize node: owner key, genesis allocation, data dir."""
    data_dir = args.datadir
    os.makedirs(data_dir, exist_ok=True)

    key_path = os.path.join(data_dir, "owner_key.hex")
    if not os.path.exists(key_path):
        priv = generate_private_key()
        with open(key_path, "w") as f:
            f.write(priv.hex())
        print("Generated new owner key.")
    else:
        print(f"Key already exists at {key_path}")
        with open(key_path, "r") as f:
            priv = bytes.fromhex(f.read().strip())

    pub = public_key_from_private(priv)
    owner_addr = address_from_pubkey(pub)
    print(f"Owner address: {owner_addr}")
    print(f"Owner pubkey:  {pub.hex()}")

    genesis_path = os.path.join(data_dir, "genesis.json")
    if os.path.exists(genesis_path):
        print(f"Genesis already exists at {genesis_path}")
    else:
        genesis_data = {
            "owner": owner_addr,
            "alloc": {owner_addr: CURRENT_NETWORK.faucet_premine},
            "credit": {owner_addr: 1},
        }
        with open(genesis_path, "w") as f:
            f.write(json.dumps(genesis_data, indent=2))
        print(f"Wrote genesis with {CURRENT_NETWORK.faucet_premine} premined to the owner.")
        print("Add addresses to the genesis 'alloc' and 'credit' maps to fund them before the first run.")

    print(f"\nNode initialized in {data_dir}")

async def run_node_async(args):
    data_dir = args.datadir
    db_path = os.path.join(data_dir, "ledger.db")

    print("Starting stakelend node...")
    print(f"Network: {CURRENT_NETWORK.network_id}")
    print(f"Data DB: {db_path}")
    print(f"RPC: {args.host}:{args.port}")

    node = LedgerNode(db_path, default_credit=args.default_credit)
    if node.engine.owner is None:
        logger.warning("No owner configured. Administrative operations are disabled.")

    api.node = node

    config = Config(app=api.app, host=args.host, port=args.port, log_level="info")
    server = Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        pass
    finally:
        node.persist()
        node.close()
        logger.info("Ledger state saved.")

def cmd_run(args):
    """Wrapper to run async main."""
    try:
        asyncio.run(run_node_async(args))
    except KeyboardInterrupt:
        pass

def main():
    parser = argparse.ArgumentParser(description="stakelend Node CLI")
    parser.add_argument("--datadir", default="./.stakelend", help="Data directory")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Initialize node configuration")

    run_parser = subparsers.add_parser("run", help="Run the node")
    run_parser.add_argument("--host", default="0.0.0.0", help="RPC Host")
    run_parser.add_argument("--port", type=int, default=8000, help="RPC Port")
    run_parser.add_argument("--default-credit", type=int, default=0,
                            help="Credit balance granted to accounts without a score")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    if args.command == "init":
        cmd_init(args)
    elif args.command == "run":
        cmd_run(args)

if __name__ == "__main__":
    main()
