# MIT License
# Copyright (c) 2025 Hashborn

"""
Loan arithmetic and status evaluation.

Loans are a fixed fraction of the stake. Interest is charged up front:
the owed balance is principal plus a flat percentage, and does not grow
with time. A loan that outlives its repayment window is overdue.
"""

from typing import Tuple
from ...protocol.config.params import LedgerConfig
from ...protocol.types.loan import LoanStatus
from .accounts import Account


def loan_terms(staked: int, config: LedgerConfig) -> Tuple[int, int]:
    """Returns (principal, owed) for a loan against `staked`."""
    principal = staked * config.loan_percentage // 100
    owed = principal + principal * config.interest_rate // 100
    return principal, owed


def interest_portion(owed: int, config: LedgerConfig) -> int:
    """Back-solves the interest component from an owed total."""
    return owed * config.interest_rate // (100 + config.interest_rate)


def loan_deadline(account: Account, config: LedgerConfig) -> int:
    return account.loan_issued_at + config.loan_duration_sec


def evaluate_loan_status(account: Account, now: int, config: LedgerConfig) -> LoanStatus:
    """
    NO_LOAN when nothing is owed, OVERDUE once the deadline is reached,
    otherwise ACTIVE with the seconds left until the deadline.
    """
    if account.loan_balance == 0:
        return LoanStatus.no_loan()

    remaining = loan_deadline(account, config) - now
    if remaining <= 0:
        return LoanStatus.overdue()
    return LoanStatus.active(remaining)
