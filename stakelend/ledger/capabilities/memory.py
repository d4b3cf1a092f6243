# MIT License
# Copyright (c) 2025 Hashborn

"""
In-memory capability implementations.

Used by the devnet node and by the test-suite. Each one supports
snapshot/restore for the engine's rollback and a JSON round-trip so the
node can persist it next to the ledger state.
"""

import json
import logging
from typing import Callable, Dict, Optional, Set, Tuple

from .base import IdentityToken, CreditRegistry, RewardMint, ValueVault
from ...protocol.types.common import InsufficientBalance, PreconditionNotMet, TransferFailed

logger = logging.getLogger(__name__)


class InMemoryIdentityToken(IdentityToken):
    def __init__(self, base_uri: str = ""):
        self._next_id = 1
        self._owners: Dict[int, str] = {}
        self.base_uri = base_uri

    def mint(self, owner: str) -> int:
        token_id = self._next_id
        self._next_id += 1
        self._owners[token_id] = owner
        logger.debug(f"Minted identity token #{token_id} for {owner}")
        return token_id

    def burn(self, token_id: int) -> None:
        if token_id not in self._owners:
            raise PreconditionNotMet(f"Identity token #{token_id} does not exist")
        owner = self._owners.pop(token_id)
        logger.debug(f"Burned identity token #{token_id} of {owner}")

    def exists(self, token_id: int) -> bool:
        return token_id in self._owners

    def owner_of(self, token_id: int) -> str:
        if token_id not in self._owners:
            raise PreconditionNotMet(f"Identity token #{token_id} does not exist")
        return self._owners[token_id]

    def set_base_uri(self, uri: str) -> None:
        self.base_uri = uri

    def token_uri(self, token_id: int) -> str:
        self.owner_of(token_id)
        return f"{self.base_uri}{token_id}"

    @property
    def minted_count(self) -> int:
        return self._next_id - 1

    def snapshot(self) -> Tuple[int, Dict[int, str], str]:
        return self._next_id, dict(self._owners), self.base_uri

    def restore(self, snapshot: Tuple[int, Dict[int, str], str]) -> None:
        self._next_id, owners, self.base_uri = snapshot
        self._owners = dict(owners)

    def to_json(self) -> str:
        return json.dumps({
            "next_id": self._next_id,
            "owners": {str(k): v for k, v in self._owners.items()},
            "base_uri": self.base_uri,
        })

    def load_json(self, raw: str) -> None:
        data = json.loads(raw)
        self._next_id = data["next_id"]
        self._owners = {int(k): v for k, v in data["owners"].items()}
        self.base_uri = data.get("base_uri", "")


class InMemoryCreditRegistry(CreditRegistry):
    """
    Scores are held per account. A token is linked to its account on lock,
    and the link survives unlock so the score can still be adjusted.
    """

    def __init__(self, default_balance: int = 0):
        self.default_balance = default_balance
        self._scores: Dict[str, int] = {}
        self._token_accounts: Dict[int, str] = {}
        self._locked: Set[int] = set()

    def set_credit(self, account: str, balance: int) -> None:
        self._scores[account] = max(0, balance)

    def credit_balance(self, account: str) -> int:
        return self._scores.get(account, self.default_balance)

    def lock(self, token_id: int, account: str) -> None:
        if token_id in self._locked:
            raise PreconditionNotMet(f"Token #{token_id} is already locked")
        self._token_accounts[token_id] = account
        self._locked.add(token_id)

    def unlock(self, token_id: int) -> None:
        self._locked.discard(token_id)

    def adjust_score(self, token_id: int, delta: int) -> None:
        account = self._token_accounts.get(token_id)
        if account is None:
            raise PreconditionNotMet(f"Token #{token_id} is not registered with the credit registry")
        self._scores[account] = max(0, self.credit_balance(account) + delta)
        logger.debug(f"Credit score of {account} adjusted by {delta:+d} -> {self._scores[account]}")

    def is_locked(self, token_id: int) -> bool:
        return token_id in self._locked

    def snapshot(self):
        return dict(self._scores), dict(self._token_accounts), set(self._locked)

    def restore(self, snapshot) -> None:
        scores, token_accounts, locked = snapshot
        self._scores = dict(scores)
        self._token_accounts = dict(token_accounts)
        self._locked = set(locked)

    def to_json(self) -> str:
        return json.dumps({
            "scores": self._scores,
            "token_accounts": {str(k): v for k, v in self._token_accounts.items()},
            "locked": sorted(self._locked),
        })

    def load_json(self, raw: str) -> None:
        data = json.loads(raw)
        self._scores = dict(data["scores"])
        self._token_accounts = {int(k): v for k, v in data["token_accounts"].items()}
        self._locked = set(data["locked"])


class InMemoryRewardMint(RewardMint):
    def __init__(self):
        self._balances: Dict[str, int] = {}
        self.total_minted = 0

    def mint(self, to: str, amount: int) -> None:
        self._balances[to] = self._balances.get(to, 0) + amount
        self.total_minted += amount

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def snapshot(self):
        return dict(self._balances), self.total_minted

    def restore(self, snapshot) -> None:
        balances, self.total_minted = snapshot
        self._balances = dict(balances)

    def to_json(self) -> str:
        return json.dumps({"balances": self._balances, "total_minted": self.total_minted})

    def load_json(self, raw: str) -> None:
        data = json.loads(raw)
        self._balances = dict(data["balances"])
        self.total_minted = data["total_minted"]


ReceiveHook = Callable[[str, int], None]


class InMemoryVault(ValueVault):
    """
    Wallet balances for external addresses plus the value held by the ledger.

    A receive hook runs after a transfer has been credited, standing in for
    recipient code. An exception from the hook aborts the transfer.
    """

    def __init__(self):
        self._wallets: Dict[str, int] = {}
        self._held = 0
        self._hooks: Dict[str, ReceiveHook] = {}
        self._rejecting: Set[str] = set()

    # --- Wallet helpers (faucet / tests) ---
    def credit(self, address: str, amount: int) -> None:
        self._wallets[address] = self._wallets.get(address, 0) + amount

    def wallet_balance(self, address: str) -> int:
        return self._wallets.get(address, 0)

    def on_receive(self, address: str, hook: Optional[ReceiveHook]) -> None:
        if hook is None:
            self._hooks.pop(address, None)
        else:
            self._hooks[address] = hook

    def reject_transfers(self, address: str, reject: bool = True) -> None:
        if reject:
            self._rejecting.add(address)
        else:
            self._rejecting.discard(address)

    # --- ValueVault ---
    def deposit(self, sender: str, amount: int) -> None:
        balance = self._wallets.get(sender, 0)
        if balance < amount:
            raise InsufficientBalance(f"Insufficient balance: have {balance}, need {amount}")
        self._wallets[sender] = balance - amount
        self._held += amount

    def transfer(self, to: str, amount: int) -> None:
        if self._held < amount:
            raise InsufficientBalance(f"Ledger holds {self._held}, cannot pay out {amount}")
        if to in self._rejecting:
            raise TransferFailed(f"Recipient {to} rejected transfer of {amount}")

        self._held -= amount
        self._wallets[to] = self._wallets.get(to, 0) + amount

        hook = self._hooks.get(to)
        if hook is not None:
            hook(to, amount)

    def held_balance(self) -> int:
        return self._held

    def snapshot(self):
        return dict(self._wallets), self._held

    def restore(self, snapshot) -> None:
        wallets, self._held = snapshot
        self._wallets = dict(wallets)

    def to_json(self) -> str:
        return json.dumps({"wallets": self._wallets, "held": self._held})

    def load_json(self, raw: str) -> None:
        data = json.loads(raw)
        self._wallets = dict(data["wallets"])
        self._held = data["held"]
