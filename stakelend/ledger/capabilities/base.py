# MIT License
# Copyright (c) 2025 Hashborn

"""
Capability interfaces consumed by the ledger engine.

The engine never reaches these collaborators through globals; they are
injected at construction so tests (and the devnet node) can plug in the
in-memory implementations from `memory.py`.

Every capability can be checkpointed. The engine snapshots each one before
an operation and restores them if the operation fails, so a failing call
leaves no trace anywhere. Remote implementations that settle atomically on
their own side can keep the default no-op pair.
"""

from abc import ABC, abstractmethod
from typing import Any


class Capability(ABC):
    name: str = "capability"

    def snapshot(self) -> Any:
        return None

    def restore(self, snapshot: Any) -> None:
        pass


class IdentityToken(Capability):
    """One-per-account non-fungible marker of a staking position."""
    name = "identity"

    @abstractmethod
    def mint(self, owner: str) -> int:
        ...

    @abstractmethod
    def burn(self, token_id: int) -> None:
        ...

    @abstractmethod
    def exists(self, token_id: int) -> bool:
        ...

    @abstractmethod
    def owner_of(self, token_id: int) -> str:
        ...

    @abstractmethod
    def set_base_uri(self, uri: str) -> None:
        ...

    @abstractmethod
    def token_uri(self, token_id: int) -> str:
        ...


class CreditRegistry(Capability):
    """Per-account creditworthiness; holds collateral tokens while a loan is open."""
    name = "credit"

    @abstractmethod
    def credit_balance(self, account: str) -> int:
        ...

    @abstractmethod
    def lock(self, token_id: int, account: str) -> None:
        ...

    @abstractmethod
    def unlock(self, token_id: int) -> None:
        ...

    @abstractmethod
    def adjust_score(self, token_id: int, delta: int) -> None:
        ...

    @abstractmethod
    def is_locked(self, token_id: int) -> bool:
        ...


class RewardMint(Capability):
    name = "reward_mint"

    @abstractmethod
    def mint(self, to: str, amount: int) -> None:
        ...

    @abstractmethod
    def balance_of(self, account: str) -> int:
        ...


class ValueVault(Capability):
    """
    Native value custody. `deposit` pulls value from a caller into the
    ledger, `transfer` pays value out. Both fail atomically.
    """
    name = "vault"

    @abstractmethod
    def deposit(self, sender: str, amount: int) -> None:
        ...

    @abstractmethod
    def transfer(self, to: str, amount: int) -> None:
        ...

    @abstractmethod
    def held_balance(self) -> int:
        ...
