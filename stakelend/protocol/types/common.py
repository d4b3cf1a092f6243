# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum

class OpType(str, Enum):
    STAKE = "STAKE"
    UNSTAKE = "UNSTAKE"
    CLAIM_REWARDS = "CLAIM_REWARDS"
    TAKE_LOAN = "TAKE_LOAN"
    PAY_BACK_LOAN = "PAY_BACK_LOAN"
    FUND = "FUND"                     # Plain value receipt into the treasury

    # Owner only
    WITHDRAW_EXCESS = "WITHDRAW_EXCESS"
    WITHDRAW_OVERDUE_LOANS = "WITHDRAW_OVERDUE_LOANS"
    SET_BASE_URI = "SET_BASE_URI"

class ErrorKind(str, Enum):
    INVALID_AMOUNT = "InvalidAmount"
    INSUFFICIENT_BALANCE = "InsufficientBalance"
    PRECONDITION_NOT_MET = "PreconditionNotMet"
    UNAUTHORIZED = "Unauthorized"
    NOTHING_TO_DO = "NothingToDo"
    TRANSFER_FAILED = "TransferFailed"

class ProtocolError(Exception):
    pass

class ValidationError(ProtocolError):
    pass

class LedgerError(ProtocolError, ValueError):
    """Base for every fail-closed ledger error. State is left untouched."""
    kind: ErrorKind = ErrorKind.PRECONDITION_NOT_MET

class InvalidAmount(LedgerError):
    kind = ErrorKind.INVALID_AMOUNT

class InsufficientBalance(LedgerError):
    kind = ErrorKind.INSUFFICIENT_BALANCE

class PreconditionNotMet(LedgerError):
    kind = ErrorKind.PRECONDITION_NOT_MET

class LoanDefaulted(PreconditionNotMet):
    """
    Raised by unstake when it discovers an overdue loan.

    Unlike every other ledger error, the forfeiture that caused it has
    already been committed.
    """

    def __init__(self, address: str, forfeited_loan: int, forfeited_stake: int):
        super().__init__(
            f"Loan of {address} is overdue: collateral {forfeited_stake} forfeited, "
            f"loan {forfeited_loan} terminated"
        )
        self.address = address
        self.forfeited_loan = forfeited_loan
        self.forfeited_stake = forfeited_stake

class ReentrancyError(PreconditionNotMet):
    pass

class Unauthorized(LedgerError):
    kind = ErrorKind.UNAUTHORIZED

class NothingToDo(LedgerError):
    kind = ErrorKind.NOTHING_TO_DO

class TransferFailed(LedgerError):
    kind = ErrorKind.TRANSFER_FAILED
