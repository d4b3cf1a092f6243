# MIT License
# Copyright (c) 2025 Hashborn

import pytest
from stakelend.protocol.config.params import SECONDS_PER_DAY
from stakelend.protocol.types.common import (
    InvalidAmount, InsufficientBalance, Unauthorized, NothingToDo,
)
from stakelend.ledger.core.engine import LedgerEngine
from conftest import ALICE, BOB, OWNER, WALLET, LOAN_DAYS, assert_aggregates

LOAN_WINDOW = LOAN_DAYS * SECONDS_PER_DAY


# ═══════════════════════════════════════════════════════════════════
# EXCESS WITHDRAWAL
# ═══════════════════════════════════════════════════════════════════

def test_withdraw_excess_requires_owner(engine):
    engine.fund(BOB, 500)
    with pytest.raises(Unauthorized):
        engine.withdraw_excess(ALICE, 100)
    # Owner check comes before amount validation
    with pytest.raises(Unauthorized):
        engine.withdraw_excess(ALICE, 0)


def test_withdraw_excess_nothing_to_withdraw(engine):
    engine.stake(ALICE, 1000)
    assert engine.get_excess() == 0
    with pytest.raises(NothingToDo):
        engine.withdraw_excess(OWNER, 1)


def test_withdraw_excess(engine, vault, recorded):
    engine.stake(ALICE, 1000)
    engine.fund(BOB, 500)
    assert engine.get_excess() == 500

    assert engine.withdraw_excess(OWNER, 200) == 200
    assert vault.wallet_balance(OWNER) == WALLET + 200
    assert engine.get_excess() == 300
    assert recorded[-1] == ("excess_withdrawn", {"address": OWNER, "amount": 200, "excess_before": 500})

    with pytest.raises(InsufficientBalance):
        engine.withdraw_excess(OWNER, 301)
    with pytest.raises(InvalidAmount):
        engine.withdraw_excess(OWNER, 0)


def test_fund_requires_wallet_balance(engine, vault):
    with pytest.raises(InsufficientBalance):
        engine.fund(BOB, WALLET + 1)
    assert vault.held_balance() == 0


def test_no_owner_configured(identity, credit, reward_mint, vault, clock):
    engine = LedgerEngine(identity, credit, reward_mint, vault, clock=clock)
    engine.owner = None
    with pytest.raises(Unauthorized):
        engine.withdraw_excess(OWNER, 1)
    with pytest.raises(Unauthorized):
        engine.set_base_uri(OWNER, "ipfs://x/")


# ═══════════════════════════════════════════════════════════════════
# OVERDUE SWEEP
# ═══════════════════════════════════════════════════════════════════

@pytest.mark.parametrize("start_id, end_id", [(5, 4), (-1, 3), (1, 11), (0, 10)])
def test_sweep_range_validation(engine, start_id, end_id):
    with pytest.raises(InvalidAmount):
        engine.withdraw_overdue_loans(OWNER, start_id, end_id)


def test_sweep_requires_owner(engine):
    with pytest.raises(Unauthorized):
        engine.withdraw_overdue_loans(ALICE, 1, 1)


def test_sweep_with_nothing_overdue(engine, borrower, identity):
    root = engine.state.compute_state_root()

    with pytest.raises(NothingToDo):
        engine.withdraw_overdue_loans(OWNER, 1, 10)

    assert engine.state.compute_state_root() == root
    assert engine.get_loan_balance(borrower) == 945
    assert identity.exists(1)


def test_sweep_collects_overdue_loans(engine, identity, credit, vault, clock, recorded):
    engine.stake(ALICE, 1000)          # token 1
    engine.take_loan(ALICE)
    engine.stake(BOB, 2000)            # token 2, no loan
    held_before = vault.held_balance()
    clock.advance(LOAN_WINDOW)

    assert engine.withdraw_overdue_loans(OWNER, 1, 5) == 945

    assert vault.wallet_balance(OWNER) == WALLET + 945
    assert vault.held_balance() == held_before - 945
    assert engine.get_account(ALICE).is_empty()
    assert not identity.exists(1)
    assert credit.credit_balance(ALICE) == 0
    assert engine.get_staked_balance(BOB) == 2000
    assert engine.get_total_staked() == 2000
    assert engine.get_total_loaned() == 0

    name, data = recorded[-1]
    assert name == "overdue_loans_withdrawn"
    assert data["accounts"] == [ALICE]
    assert_aggregates(engine)


def test_sweep_skips_tokens_outside_range(engine, clock):
    engine.stake(BOB, 5000)            # token 1
    engine.stake(ALICE, 1000)          # token 2
    engine.take_loan(ALICE)
    clock.advance(LOAN_WINDOW)

    with pytest.raises(NothingToDo):
        engine.withdraw_overdue_loans(OWNER, 1, 1)
    assert engine.get_loan_balance(ALICE) == 945


def test_failed_sweep_payout_rolls_back(engine, borrower, identity, credit, clock):
    # Vault holds only 100 after the loan, less than the 945 to collect
    clock.advance(LOAN_WINDOW)

    with pytest.raises(InsufficientBalance):
        engine.withdraw_overdue_loans(OWNER, 1, 1)

    assert engine.get_loan_balance(borrower) == 945
    assert engine.get_staked_balance(borrower) == 1000
    assert identity.exists(1)
    assert credit.is_locked(1)
    assert credit.credit_balance(borrower) == 1


# ═══════════════════════════════════════════════════════════════════
# BASE URI
# ═══════════════════════════════════════════════════════════════════

def test_set_base_uri(engine, identity, recorded):
    engine.stake(ALICE, 10)
    engine.set_base_uri(OWNER, "ipfs://meta/")

    assert identity.token_uri(1) == "ipfs://meta/1"
    assert recorded[-1] == ("base_uri_set", {"uri": "ipfs://meta/"})

    with pytest.raises(Unauthorized):
        engine.set_base_uri(ALICE, "https://evil/")
    assert identity.base_uri == "ipfs://meta/"
