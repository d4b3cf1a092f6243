# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict, Optional, List
from .accounts import Account, Treasury
from ...protocol.crypto.hash import sha256, merkle_root
from ..storage.db import StorageDB

class LedgerState:
    """
    Account Store and Treasury totals.

    Accounts are created lazily: an address without an entry reads as the
    all-zero account. Entries are never deleted.
    """

    def __init__(self, db: Optional[StorageDB] = None, accounts: Dict[str, Account] = None,
                 treasury: Optional[Treasury] = None):
        self.db = db
        # Cache for modified/accessed accounts: address -> Account
        self._accounts: Dict[str, Account] = accounts if accounts is not None else {}
        self.treasury: Treasury = treasury if treasury is not None else Treasury()

    def clone(self) -> 'LedgerState':
        """Creates a working copy; the engine commits it by swapping it in."""
        new_accounts = {k: v.model_copy() for k, v in self._accounts.items()}
        return LedgerState(self.db, new_accounts, self.treasury.model_copy())

    def get_account(self, address: str) -> Account:
        if address in self._accounts:
            return self._accounts[address]

        if self.db is not None:
            raw_json = self.db.get_state(f"acc:{address}")
            if raw_json:
                acc = Account.model_validate_json(raw_json)
                self._accounts[address] = acc
                return acc

        # Return generic new account
        return Account(address=address)

    def set_account(self, account: Account):
        """Updates account in local cache."""
        self._accounts[account.address] = account

    def get_all_accounts(self) -> List[Account]:
        """Loads all accounts from DB + cache overlay."""
        final_accounts: Dict[str, Account] = {}

        if self.db is not None:
            for k, v in self.db.get_state_by_prefix("acc:").items():
                addr = k.split(":", 1)[1]
                final_accounts[addr] = Account.model_validate_json(v)

        for addr, acc in self._accounts.items():
            final_accounts[addr] = acc

        return [final_accounts[addr] for addr in sorted(final_accounts)]

    def sum_staked(self) -> int:
        return sum(acc.staked for acc in self.get_all_accounts())

    def sum_loaned(self) -> int:
        return sum(acc.loan_balance for acc in self.get_all_accounts())

    def persist(self):
        """Writes cached accounts and the treasury to DB."""
        if self.db is None:
            return
        items = {f"acc:{addr}": acc.model_dump_json() for addr, acc in self._accounts.items()}
        items["treasury"] = self.treasury.model_dump_json()
        self.db.set_state_batch(items)

    def load(self):
        """Loads the treasury totals; accounts are loaded on access."""
        if self.db is None:
            return
        raw = self.db.get_state("treasury")
        if raw:
            self.treasury = Treasury.model_validate_json(raw)

    def compute_state_root(self) -> str:
        """Merkle root over every account (sorted by address) and the treasury."""
        leaves = []
        for acc in self.get_all_accounts():
            leaf_data = (
                acc.address
                + str(acc.staked)
                + str(acc.identity_token_id)
                + str(acc.last_claimed_at)
                + str(acc.loan_balance)
                + str(acc.loan_issued_at)
                + str(acc.nonce)
            ).encode("utf-8")
            leaves.append(sha256(leaf_data))

        leaves.append(sha256(
            f"treasury{self.treasury.total_staked}:{self.treasury.total_loaned}".encode("utf-8")
        ))
        return merkle_root(leaves).hex()

    @staticmethod
    def empty(db: Optional[StorageDB] = None) -> 'LedgerState':
        """Returns an empty state."""
        return LedgerState(db, {})
