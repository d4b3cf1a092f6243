# MIT License
# Copyright (c) 2025 Hashborn

"""
Staking and lending ledger.

Every mutating operation runs through `_operation()`:

1. the engine lock serializes callers and the reentrancy guard rejects
   callbacks into the ledger while an operation is in flight;
2. a clone of the state is installed as the live state and the operation
   mutates it before any capability call or outbound transfer, so a
   recipient reading the ledger mid-payout sees settled balances;
3. on success queued events are emitted; on failure the previous state is
   put back and every capability is restored from its snapshot.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple
import logging
import threading
import time

from ...protocol.config.params import LedgerConfig, CURRENT_NETWORK
from ...protocol.types.common import (
    InvalidAmount, InsufficientBalance, PreconditionNotMet, LoanDefaulted,
    Unauthorized, NothingToDo,
)
from ...protocol.types.loan import LoanStatus, RepaymentResult
from ..capabilities.base import IdentityToken, CreditRegistry, RewardMint, ValueVault, Capability
from .accounts import Account
from .state import LedgerState
from .rewards import calculate_pending_rewards
from .loans import loan_terms, interest_portion, evaluate_loan_status, loan_deadline
from .guard import NonReentrant
from . import events
from .events import EventBus

logger = logging.getLogger(__name__)


@dataclass
class OpContext:
    """Working state of one in-flight operation."""
    state: LedgerState
    now: int
    pending_events: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)

    def emit(self, event_type: str, **data: Any) -> None:
        self.pending_events.append((event_type, data))


class LedgerEngine:
    def __init__(self,
                 identity: IdentityToken,
                 credit: CreditRegistry,
                 reward_mint: RewardMint,
                 vault: ValueVault,
                 config: Optional[LedgerConfig] = None,
                 state: Optional[LedgerState] = None,
                 clock: Optional[Callable[[], int]] = None,
                 event_bus: Optional[EventBus] = None,
                 owner: Optional[str] = None):
        self.config = config or CURRENT_NETWORK
        self.state = state if state is not None else LedgerState.empty()
        self.identity = identity
        self.credit = credit
        self.reward_mint = reward_mint
        self.vault = vault
        self.clock = clock or (lambda: int(time.time()))
        self.events = event_bus or EventBus()
        self.owner = owner or self.config.owner_address

        self._lock = threading.RLock()
        self._guard = NonReentrant("LedgerEngine")

    @property
    def capabilities(self) -> Tuple[Capability, ...]:
        return (self.identity, self.credit, self.reward_mint, self.vault)

    # --- Atomic operation scope ---
    @contextmanager
    def _operation(self, name: str) -> Iterator[OpContext]:
        with self._lock, self._guard:
            committed = self.state
            ctx = OpContext(state=committed.clone(), now=self.clock())
            checkpoints = [(cap, cap.snapshot()) for cap in self.capabilities]
            self.state = ctx.state
            try:
                yield ctx
            except Exception as e:
                self.state = committed
                for cap, snap in checkpoints:
                    cap.restore(snap)
                logger.warning(f"{name} rejected: {e}")
                raise

        for event_type, data in ctx.pending_events:
            self.events.emit(event_type, **data)

    def _require_amount(self, amount: int, what: str = "amount") -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmount(f"{what} must be an integer, got {type(amount).__name__}")
        if amount <= 0:
            raise InvalidAmount(f"{what} must be positive, got {amount}")
        if amount > self.config.max_amount:
            raise InvalidAmount(f"{what} {amount} exceeds maximum {self.config.max_amount}")

    def _require_within_bound(self, value: int, what: str) -> None:
        if value > self.config.max_amount:
            raise InvalidAmount(f"{what} would reach {value}, above maximum {self.config.max_amount}")

    def _require_owner(self, sender: str) -> None:
        if self.owner is None or sender != self.owner:
            raise Unauthorized(f"{sender} is not the ledger owner")

    # --- Account Store / identity binding ---
    def stake(self, sender: str, amount: int) -> int:
        """
        Deposit `amount` as stake. Mints an identity token on first stake.

        Returns:
            The account's identity token id
        """
        self._require_amount(amount)

        with self._operation("stake") as ctx:
            acc = ctx.state.get_account(sender)
            self._require_within_bound(acc.staked + amount, "Stake")
            self._require_within_bound(ctx.state.treasury.total_staked + amount, "Total staked")
            self.vault.deposit(sender, amount)

            acc.staked += amount
            ctx.state.treasury.total_staked += amount
            if acc.last_claimed_at is None:
                acc.last_claimed_at = ctx.now
            ctx.state.set_account(acc)

            if acc.identity_token_id is None or not self.identity.exists(acc.identity_token_id):
                acc.identity_token_id = self.identity.mint(sender)
                logger.info(f"Identity token #{acc.identity_token_id} minted for {sender}")

            ctx.emit(events.STAKED, address=sender, amount=amount,
                     staked=acc.staked, token_id=acc.identity_token_id)

        logger.info(f"{sender} staked {amount} (total {acc.staked})")
        return acc.identity_token_id

    def unstake(self, sender: str, amount: int) -> int:
        """
        Withdraw `amount` of stake.

        An active loan blocks the withdrawal. An overdue loan is terminated
        (collateral forfeited, committed) and LoanDefaulted is raised.
        Withdrawing the whole stake claims pending rewards first and burns
        the identity token.

        Returns:
            Amount transferred back to the caller
        """
        self._require_amount(amount)
        defaulted: Optional[LoanDefaulted] = None

        with self._operation("unstake") as ctx:
            acc = ctx.state.get_account(sender)
            if amount > acc.staked:
                raise InsufficientBalance(f"Insufficient stake: have {acc.staked}, trying to unstake {amount}")

            status = evaluate_loan_status(acc, ctx.now, self.config)
            if status.is_active:
                raise PreconditionNotMet("Cannot unstake with active loan")

            if status.is_overdue:
                forfeited_stake = acc.staked
                forfeited_loan = self._terminate_loan(ctx, acc)
                defaulted = LoanDefaulted(sender, forfeited_loan, forfeited_stake)
            else:
                full_exit = amount == acc.staked
                pending = calculate_pending_rewards(acc, ctx.now, self.config) if full_exit else 0
                token_id = acc.identity_token_id
                self._require_within_bound(acc.unstaked_cumulative + amount, "Cumulative unstaked")

                acc.staked -= amount
                acc.unstaked_cumulative += amount
                ctx.state.treasury.total_staked -= amount
                if full_exit:
                    acc.identity_token_id = None
                    acc.last_claimed_at = None
                ctx.state.set_account(acc)

                if pending > 0:
                    self.reward_mint.mint(sender, pending)
                    ctx.emit(events.REWARDS_CLAIMED, address=sender, amount=pending)
                if full_exit and token_id is not None and self.identity.exists(token_id):
                    self.identity.burn(token_id)

                self.vault.transfer(sender, amount)
                ctx.emit(events.UNSTAKED, address=sender, amount=amount,
                         staked=acc.staked, token_burned=full_exit)

        if defaulted is not None:
            raise defaulted

        logger.info(f"{sender} unstaked {amount} (remaining {acc.staked})")
        return amount

    # --- Reward accrual ---
    def get_pending_rewards(self, address: str) -> int:
        with self._lock:
            return calculate_pending_rewards(self.state.get_account(address), self.clock(), self.config)

    def claim_rewards(self, sender: str) -> int:
        """Mints pending rewards to the caller. Blocked while a loan is outstanding."""
        with self._operation("claim_rewards") as ctx:
            acc = ctx.state.get_account(sender)
            if acc.has_loan:
                raise PreconditionNotMet("Cannot claim rewards while a loan is outstanding")

            pending = calculate_pending_rewards(acc, ctx.now, self.config)
            if pending <= 0:
                raise NothingToDo("No pending rewards")

            acc.last_claimed_at = ctx.now
            ctx.state.set_account(acc)

            self.reward_mint.mint(sender, pending)
            ctx.emit(events.REWARDS_CLAIMED, address=sender, amount=pending)

        logger.info(f"{sender} claimed {pending} in rewards")
        return pending

    # --- Loan lifecycle ---
    def check_loan_status(self, address: str) -> LoanStatus:
        with self._lock:
            return evaluate_loan_status(self.state.get_account(address), self.clock(), self.config)

    def _loan_ineligibility(self, acc: Account) -> Optional[str]:
        """Reason the account cannot borrow, or None."""
        if acc.staked == 0:
            return "No stake to borrow against"
        if acc.has_loan:
            return "Loan already outstanding"
        if acc.identity_token_id is None or not self.identity.exists(acc.identity_token_id):
            return "No identity token"
        if self.credit.credit_balance(acc.address) <= 0:
            return "No credit available"
        return None

    def can_take_loan(self, address: str) -> bool:
        with self._lock:
            return self._loan_ineligibility(self.state.get_account(address)) is None

    def take_loan(self, sender: str) -> int:
        """
        Borrows `loan_percentage`% of the stake. Interest is reserved up front.

        Returns:
            Principal transferred to the borrower
        """
        with self._operation("take_loan") as ctx:
            acc = ctx.state.get_account(sender)
            reason = self._loan_ineligibility(acc)
            if reason:
                raise PreconditionNotMet(f"Cannot take loan: {reason}")

            principal, owed = loan_terms(acc.staked, self.config)
            if principal == 0:
                raise InvalidAmount(f"Stake {acc.staked} too small: loan principal rounds to zero")
            self._require_within_bound(ctx.state.treasury.total_loaned + owed, "Total loaned")

            acc.loan_balance = owed
            acc.loan_issued_at = ctx.now
            ctx.state.treasury.total_loaned += owed
            ctx.state.set_account(acc)

            self.credit.lock(acc.identity_token_id, sender)
            self.vault.transfer(sender, principal)

            due_at = loan_deadline(acc, self.config)
            ctx.emit(events.LOAN_TAKEN, address=sender, principal=principal, owed=owed,
                     token_id=acc.identity_token_id, due_at=due_at)

        logger.info(f"Loan issued to {sender}: principal={principal}, owed={owed}, due_at={due_at}")
        return principal

    def pay_back_loan(self, sender: str, payment: int) -> RepaymentResult:
        """
        Repays the loan in full.

        Past the deadline the loan is terminated instead and the payment is
        refunded. Partial repayment is rejected before anything changes.
        On exact repayment the principal net of interest is refunded; an
        overpayment refunds only the excess.
        """
        self._require_amount(payment, "payment")

        with self._operation("pay_back_loan") as ctx:
            acc = ctx.state.get_account(sender)
            if acc.loan_balance == 0:
                raise PreconditionNotMet("No active loan")

            status = evaluate_loan_status(acc, ctx.now, self.config)
            if status.is_overdue:
                self.vault.deposit(sender, payment)
                forfeited_stake = acc.staked
                self._terminate_loan(ctx, acc)
                self.vault.transfer(sender, payment)
                result = RepaymentResult(defaulted=True, refund=payment, forfeited_stake=forfeited_stake)
            else:
                owed = acc.loan_balance
                if payment < owed:
                    raise InsufficientBalance(f"Payment {payment} does not cover loan balance {owed}")

                self.vault.deposit(sender, payment)
                interest = interest_portion(owed, self.config)
                token_id = acc.identity_token_id

                ctx.state.treasury.total_loaned -= owed
                acc.loan_balance = 0
                acc.loan_issued_at = None
                ctx.state.set_account(acc)

                self.credit.unlock(token_id)
                self.credit.adjust_score(token_id, self.config.repay_score_delta)

                refund = payment - owed if payment > owed else payment - interest
                if refund > 0:
                    self.vault.transfer(sender, refund)

                result = RepaymentResult(defaulted=False, refund=refund, interest_retained=interest)
                ctx.emit(events.LOAN_REPAID, address=sender, owed=owed, payment=payment,
                         refund=refund, interest=interest)

        if result.defaulted:
            logger.warning(f"Repayment from {sender} arrived after the deadline; loan terminated, payment refunded")
        else:
            logger.info(f"Loan of {sender} repaid: refund={result.refund}, interest={result.interest_retained}")
        return result

    def _terminate_loan(self, ctx: OpContext, acc: Account) -> int:
        """
        Forfeits the account's collateral and closes its loan.

        Both treasury aggregates are reduced so they keep matching the
        account sums.

        Returns:
            The forfeited loan balance
        """
        forfeited_loan = acc.loan_balance
        forfeited_stake = acc.staked
        token_id = acc.identity_token_id

        ctx.state.treasury.total_loaned -= forfeited_loan
        ctx.state.treasury.total_staked -= forfeited_stake
        acc.loan_balance = 0
        acc.loan_issued_at = None
        acc.staked = 0
        acc.last_claimed_at = None
        acc.identity_token_id = None
        ctx.state.set_account(acc)

        if token_id is not None:
            if self.config.default_score_delta:
                self.credit.adjust_score(token_id, self.config.default_score_delta)
            self.credit.unlock(token_id)
            if self.identity.exists(token_id):
                self.identity.burn(token_id)

        ctx.emit(events.LOAN_TERMINATED, address=acc.address, forfeited_loan=forfeited_loan,
                 forfeited_stake=forfeited_stake, token_id=token_id)
        logger.warning(f"Loan of {acc.address} terminated: forfeited stake={forfeited_stake}, loan={forfeited_loan}")
        return forfeited_loan

    # --- Treasury / administrative ---
    def fund(self, sender: str, amount: int) -> None:
        """Deposits value into the treasury without staking it."""
        self._require_amount(amount)

        with self._operation("fund") as ctx:
            self.vault.deposit(sender, amount)
            ctx.emit(events.FUNDED, address=sender, amount=amount)

        logger.info(f"Treasury funded with {amount} by {sender}")

    def withdraw_excess(self, sender: str, amount: int) -> int:
        self._require_owner(sender)
        self._require_amount(amount)

        with self._operation("withdraw_excess") as ctx:
            excess = self.vault.held_balance() - ctx.state.treasury.committed
            if excess <= 0:
                raise NothingToDo("No excess balance to withdraw")
            if excess < amount:
                raise InsufficientBalance(f"Excess {excess} is less than requested {amount}")

            self.vault.transfer(sender, amount)
            ctx.emit(events.EXCESS_WITHDRAWN, address=sender, amount=amount, excess_before=excess)

        logger.info(f"Owner withdrew {amount} of excess {excess}")
        return amount

    def withdraw_overdue_loans(self, sender: str, start_id: int, end_id: int) -> int:
        """
        Terminates every overdue loan whose identity token id lies in
        [start_id, end_id] and pays the forfeited balances to the owner.
        """
        self._require_owner(sender)
        for value in (start_id, end_id):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidAmount(f"Token id bounds must be non-negative integers, got {value!r}")
        if start_id > end_id:
            raise InvalidAmount(f"Invalid token id range: {start_id} > {end_id}")
        if end_id - start_id + 1 > self.config.max_sweep_range:
            raise InvalidAmount(f"Range of {end_id - start_id + 1} ids exceeds max {self.config.max_sweep_range}")

        with self._operation("withdraw_overdue_loans") as ctx:
            total = 0
            terminated: List[str] = []
            for token_id in range(start_id, end_id + 1):
                if not self.identity.exists(token_id):
                    continue
                acc = ctx.state.get_account(self.identity.owner_of(token_id))
                if acc.identity_token_id != token_id:
                    continue
                if evaluate_loan_status(acc, ctx.now, self.config).is_overdue:
                    total += self._terminate_loan(ctx, acc)
                    terminated.append(acc.address)

            if total == 0:
                raise NothingToDo(f"No overdue loans in token range [{start_id}, {end_id}]")

            self.vault.transfer(sender, total)
            ctx.emit(events.OVERDUE_LOANS_WITHDRAWN, address=sender, amount=total,
                     accounts=terminated, start_id=start_id, end_id=end_id)

        logger.info(f"Swept {len(terminated)} overdue loan(s) in [{start_id}, {end_id}]: {total} collected")
        return total

    def set_base_uri(self, sender: str, uri: str) -> None:
        self._require_owner(sender)

        with self._operation("set_base_uri") as ctx:
            self.identity.set_base_uri(uri)
            ctx.emit(events.BASE_URI_SET, uri=uri)

    def bump_nonce(self, address: str) -> int:
        """Advances the replay counter of a signed-operation sender."""
        with self._lock:
            acc = self.state.get_account(address)
            acc.nonce += 1
            self.state.set_account(acc)
            return acc.nonce

    # --- Read-only accessors ---
    def get_account(self, address: str) -> Account:
        with self._lock:
            return self.state.get_account(address).model_copy()

    def get_staked_balance(self, address: str) -> int:
        return self.get_account(address).staked

    def get_loan_balance(self, address: str) -> int:
        return self.get_account(address).loan_balance

    def get_last_claimed(self, address: str) -> Optional[int]:
        return self.get_account(address).last_claimed_at

    def get_token_id(self, address: str) -> Optional[int]:
        return self.get_account(address).identity_token_id

    def get_total_staked(self) -> int:
        with self._lock:
            return self.state.treasury.total_staked

    def get_total_loaned(self) -> int:
        with self._lock:
            return self.state.treasury.total_loaned

    def get_held_value(self) -> int:
        with self._lock:
            return self.vault.held_balance()

    def get_excess(self) -> int:
        with self._lock:
            return self.vault.held_balance() - self.state.treasury.committed

    def get_all_accounts(self) -> List[Account]:
        with self._lock:
            return [acc.model_copy() for acc in self.state.get_all_accounts()]

    def get_state_root(self) -> str:
        with self._lock:
            return self.state.compute_state_root()
