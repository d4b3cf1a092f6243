# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, Field
from typing import Optional

class Account(BaseModel):
    address: str

    # Staking position
    staked: int = Field(default=0, ge=0)
    unstaked_cumulative: int = Field(default=0, ge=0)   # audit only
    identity_token_id: Optional[int] = None
    last_claimed_at: Optional[int] = None

    # Loan position (0 = no loan)
    loan_balance: int = Field(default=0, ge=0)
    loan_issued_at: Optional[int] = None

    # Replay protection for signed operations
    nonce: int = 0

    @property
    def has_loan(self) -> bool:
        return self.loan_balance > 0

    def is_empty(self) -> bool:
        """True when the position is back to the all-zero state."""
        return (
            self.staked == 0
            and self.loan_balance == 0
            and self.identity_token_id is None
            and self.last_claimed_at is None
            and self.loan_issued_at is None
        )

class Treasury(BaseModel):
    total_staked: int = Field(default=0, ge=0)
    total_loaned: int = Field(default=0, ge=0)

    @property
    def committed(self) -> int:
        """Value the ledger owes back to stakers and borrowers' collateral."""
        return self.total_staked + self.total_loaned
