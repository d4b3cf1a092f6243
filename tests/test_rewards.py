# MIT License
# Copyright (c) 2025 Hashborn

import pytest
from stakelend.protocol.config.params import SECONDS_PER_YEAR
from stakelend.protocol.types.common import PreconditionNotMet, NothingToDo
from stakelend.ledger.core.accounts import Account
from stakelend.ledger.core.rewards import calculate_pending_rewards
from conftest import ALICE, BOB, START_TIME


def test_pending_rewards_formula(config):
    acc = Account(address=ALICE, staked=1000, last_claimed_at=START_TIME)
    assert calculate_pending_rewards(acc, START_TIME + SECONDS_PER_YEAR, config) == 20_000
    assert calculate_pending_rewards(acc, START_TIME + SECONDS_PER_YEAR // 2, config) == 10_000


def test_pending_rewards_zero_cases(config):
    assert calculate_pending_rewards(Account(address=ALICE), START_TIME, config) == 0
    no_start = Account(address=ALICE, staked=1000)
    assert calculate_pending_rewards(no_start, START_TIME, config) == 0
    # Clock behind the last claim never yields negative rewards
    ahead = Account(address=ALICE, staked=1000, last_claimed_at=START_TIME + 10)
    assert calculate_pending_rewards(ahead, START_TIME, config) == 0


def test_rewards_accrue_on_current_stake(engine, clock):
    engine.stake(ALICE, 1000)
    clock.advance(SECONDS_PER_YEAR // 2)
    engine.stake(ALICE, 1000)

    # Simple interest on the whole stake since the last claim
    assert engine.get_pending_rewards(ALICE) == 20_000


def test_claim_rewards(engine, reward_mint, clock, recorded):
    engine.stake(ALICE, 1000)
    clock.advance(SECONDS_PER_YEAR)

    assert engine.claim_rewards(ALICE) == 20_000
    assert reward_mint.balance_of(ALICE) == 20_000
    assert engine.get_last_claimed(ALICE) == clock.now
    assert engine.get_pending_rewards(ALICE) == 0
    assert ("rewards_claimed", {"address": ALICE, "amount": 20_000}) in recorded


def test_claim_twice_is_nothing_to_do(engine, clock):
    engine.stake(ALICE, 1000)
    clock.advance(SECONDS_PER_YEAR)
    engine.claim_rewards(ALICE)

    with pytest.raises(NothingToDo):
        engine.claim_rewards(ALICE)


def test_claim_rounds_down_to_nothing(engine, clock):
    engine.stake(BOB, 1)
    clock.advance(1)
    with pytest.raises(NothingToDo, match="No pending rewards"):
        engine.claim_rewards(BOB)


def test_claim_blocked_while_loan_outstanding(engine, borrower, reward_mint, clock):
    clock.advance(86_400)
    before = engine.get_last_claimed(borrower)

    with pytest.raises(PreconditionNotMet, match="loan is outstanding"):
        engine.claim_rewards(borrower)

    assert reward_mint.balance_of(borrower) == 0
    assert engine.get_last_claimed(borrower) == before
