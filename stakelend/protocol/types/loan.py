# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum
from pydantic import BaseModel

class LoanState(str, Enum):
    NO_LOAN = "NO_LOAN"
    ACTIVE = "ACTIVE"
    OVERDUE = "OVERDUE"

class LoanStatus(BaseModel):
    """
    Status of an account's loan at a given moment.

    `seconds_remaining` is strictly positive for ACTIVE loans and 0 otherwise.
    """
    state: LoanState
    seconds_remaining: int = 0

    @classmethod
    def no_loan(cls) -> 'LoanStatus':
        return cls(state=LoanState.NO_LOAN)

    @classmethod
    def active(cls, seconds_remaining: int) -> 'LoanStatus':
        if seconds_remaining <= 0:
            raise ValueError("Active loan must have time remaining")
        return cls(state=LoanState.ACTIVE, seconds_remaining=seconds_remaining)

    @classmethod
    def overdue(cls) -> 'LoanStatus':
        return cls(state=LoanState.OVERDUE)

    @property
    def is_active(self) -> bool:
        return self.state == LoanState.ACTIVE

    @property
    def is_overdue(self) -> bool:
        return self.state == LoanState.OVERDUE

    def as_signed(self) -> int:
        """Legacy encoding: -1 no loan, 0 overdue, otherwise seconds remaining."""
        if self.state == LoanState.NO_LOAN:
            return -1
        if self.state == LoanState.OVERDUE:
            return 0
        return self.seconds_remaining

class RepaymentResult(BaseModel):
    """Outcome of a pay_back_loan call."""
    defaulted: bool
    refund: int
    interest_retained: int = 0
    forfeited_stake: int = 0
