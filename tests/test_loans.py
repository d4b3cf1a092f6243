# MIT License
# Copyright (c) 2025 Hashborn

"""
Loan lifecycle: NoLoan -> Active -> Repaid | Overdue -> Defaulted.
"""

import pytest
from stakelend.protocol.config.params import SECONDS_PER_DAY
from stakelend.protocol.types.common import (
    InvalidAmount, InsufficientBalance, PreconditionNotMet, LoanDefaulted,
)
from stakelend.protocol.types.loan import LoanStatus, LoanState
from conftest import ALICE, BOB, CAROL, WALLET, LOAN_DAYS, assert_aggregates

LOAN_WINDOW = LOAN_DAYS * SECONDS_PER_DAY


# ═══════════════════════════════════════════════════════════════════
# ELIGIBILITY & ISSUANCE
# ═══════════════════════════════════════════════════════════════════

def test_cannot_borrow_without_stake(engine):
    assert not engine.can_take_loan(ALICE)
    with pytest.raises(PreconditionNotMet, match="No stake"):
        engine.take_loan(ALICE)


def test_cannot_borrow_without_credit(engine):
    engine.stake(CAROL, 1000)
    assert not engine.can_take_loan(CAROL)
    with pytest.raises(PreconditionNotMet, match="No credit"):
        engine.take_loan(CAROL)


def test_take_loan(engine, credit, vault, clock, recorded):
    token_id = engine.stake(ALICE, 1000)
    assert engine.can_take_loan(ALICE)

    assert engine.take_loan(ALICE) == 900

    acc = engine.get_account(ALICE)
    assert acc.loan_balance == 945
    assert acc.loan_issued_at == clock.now
    assert engine.get_total_loaned() == 945
    assert credit.is_locked(token_id)
    assert vault.wallet_balance(ALICE) == WALLET - 1000 + 900
    assert vault.held_balance() == 100

    status = engine.check_loan_status(ALICE)
    assert status.state == LoanState.ACTIVE
    assert status.seconds_remaining == LOAN_WINDOW

    name, data = recorded[-1]
    assert name == "loan_taken"
    assert data["due_at"] == clock.now + LOAN_WINDOW
    assert_aggregates(engine)


def test_second_loan_rejected(engine, borrower):
    assert not engine.can_take_loan(borrower)
    with pytest.raises(PreconditionNotMet, match="already outstanding"):
        engine.take_loan(borrower)
    assert engine.get_total_loaned() == 945


def test_principal_rounding_to_zero(engine, credit):
    engine.stake(ALICE, 1)
    with pytest.raises(InvalidAmount, match="rounds to zero"):
        engine.take_loan(ALICE)
    assert engine.get_loan_balance(ALICE) == 0
    assert not credit.is_locked(engine.get_token_id(ALICE))


# ═══════════════════════════════════════════════════════════════════
# STATUS
# ═══════════════════════════════════════════════════════════════════

def test_loan_status_encoding(engine, borrower, clock):
    assert engine.check_loan_status(BOB).as_signed() == -1

    clock.advance(LOAN_WINDOW - 1)
    status = engine.check_loan_status(borrower)
    assert status.is_active
    assert status.as_signed() == 1

    clock.advance(1)
    status = engine.check_loan_status(borrower)
    assert status.is_overdue
    assert status.as_signed() == 0


def test_active_status_requires_time_left():
    with pytest.raises(ValueError):
        LoanStatus.active(0)
    assert LoanStatus.no_loan().state == LoanState.NO_LOAN


# ═══════════════════════════════════════════════════════════════════
# REPAYMENT
# ═══════════════════════════════════════════════════════════════════

def test_exact_repayment(engine, borrower, credit, vault, recorded):
    token_id = engine.get_token_id(borrower)
    wallet_before = vault.wallet_balance(borrower)

    result = engine.pay_back_loan(borrower, 945)

    assert not result.defaulted
    assert result.interest_retained == 45
    assert result.refund == 900
    assert vault.wallet_balance(borrower) == wallet_before - 945 + 900
    assert engine.get_loan_balance(borrower) == 0
    assert engine.get_total_loaned() == 0
    assert engine.check_loan_status(borrower).state == LoanState.NO_LOAN
    assert not credit.is_locked(token_id)
    assert credit.credit_balance(borrower) == 2
    assert recorded[-1][0] == "loan_repaid"
    assert_aggregates(engine)


def test_overpayment_refunds_only_the_excess(engine, borrower, vault):
    wallet_before = vault.wallet_balance(borrower)

    result = engine.pay_back_loan(borrower, 1000)

    assert result.refund == 55
    assert vault.wallet_balance(borrower) == wallet_before - 945
    assert engine.get_loan_balance(borrower) == 0


def test_partial_repayment_changes_nothing(engine, borrower, credit, vault):
    token_id = engine.get_token_id(borrower)
    wallet_before = vault.wallet_balance(borrower)

    with pytest.raises(InsufficientBalance, match="does not cover"):
        engine.pay_back_loan(borrower, 900)

    assert engine.get_loan_balance(borrower) == 945
    assert credit.credit_balance(borrower) == 1
    assert credit.is_locked(token_id)
    assert vault.wallet_balance(borrower) == wallet_before


def test_repay_without_loan(engine):
    engine.stake(ALICE, 1000)
    with pytest.raises(PreconditionNotMet, match="No active loan"):
        engine.pay_back_loan(ALICE, 100)


def test_repay_zero(engine, borrower):
    with pytest.raises(InvalidAmount):
        engine.pay_back_loan(borrower, 0)


def test_repayment_after_deadline_terminates(engine, borrower, credit, identity, vault, clock, recorded):
    token_id = engine.get_token_id(borrower)
    wallet_before = vault.wallet_balance(borrower)
    clock.advance(LOAN_WINDOW)

    result = engine.pay_back_loan(borrower, 945)

    assert result.defaulted
    assert result.refund == 945
    assert result.forfeited_stake == 1000
    assert vault.wallet_balance(borrower) == wallet_before
    assert engine.get_account(borrower).is_empty()
    assert engine.get_total_staked() == 0
    assert engine.get_total_loaned() == 0
    assert not identity.exists(token_id)
    assert not credit.is_locked(token_id)
    assert credit.credit_balance(borrower) == 0
    assert any(name == "loan_terminated" for name, _ in recorded)
    assert_aggregates(engine)


# ═══════════════════════════════════════════════════════════════════
# DEFAULT THROUGH UNSTAKE
# ═══════════════════════════════════════════════════════════════════

def test_unstake_on_overdue_loan_defaults(engine, borrower, identity, vault, clock, recorded):
    token_id = engine.get_token_id(borrower)
    wallet_before = vault.wallet_balance(borrower)
    clock.advance(LOAN_WINDOW + 1)

    with pytest.raises(LoanDefaulted) as exc_info:
        engine.unstake(borrower, 1000)

    assert isinstance(exc_info.value, PreconditionNotMet)
    assert exc_info.value.forfeited_loan == 945
    assert exc_info.value.forfeited_stake == 1000

    # The forfeiture stands even though the call raised
    assert engine.get_account(borrower).is_empty()
    assert not identity.exists(token_id)
    assert vault.wallet_balance(borrower) == wallet_before
    assert recorded[-1][0] == "loan_terminated"
    assert_aggregates(engine)


def test_defaulted_borrower_loses_credit(engine, borrower, clock):
    clock.advance(LOAN_WINDOW)
    with pytest.raises(LoanDefaulted):
        engine.unstake(borrower, 1)

    engine.stake(borrower, 1000)
    assert not engine.can_take_loan(borrower)


def test_repaid_borrower_can_borrow_again(engine, borrower, clock):
    engine.stake(BOB, 2000)  # liquidity for the second payout
    engine.pay_back_loan(borrower, 945)
    clock.advance(60)

    assert engine.take_loan(borrower) == 900
    assert engine.check_loan_status(borrower).seconds_remaining == LOAN_WINDOW
