# MIT License
# Copyright (c) 2025 Hashborn

import pytest
from stakelend.protocol.config.params import LedgerConfig, SECONDS_PER_DAY
from stakelend.ledger.capabilities.memory import (
    InMemoryIdentityToken, InMemoryCreditRegistry, InMemoryRewardMint, InMemoryVault,
)
from stakelend.ledger.core.engine import LedgerEngine
from stakelend.ledger.core.events import EventBus
from stakelend.ledger.core import events as ev

ALICE = "alice"
BOB = "bob"
CAROL = "carol"   # funded, but without credit
OWNER = "owner"

START_TIME = 1_700_000_000
WALLET = 1_000_000
LOAN_DAYS = 30

ALL_EVENTS = (
    ev.STAKED, ev.UNSTAKED, ev.REWARDS_CLAIMED, ev.LOAN_TAKEN, ev.LOAN_REPAID,
    ev.LOAN_TERMINATED, ev.EXCESS_WITHDRAWN, ev.OVERDUE_LOANS_WITHDRAWN,
    ev.BASE_URI_SET, ev.FUNDED,
)


class FakeClock:
    """Manually advanced unix clock."""

    def __init__(self, start: int = START_TIME):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return LedgerConfig(
        network_id="test",
        loan_duration_sec=LOAN_DAYS * SECONDS_PER_DAY,
        max_sweep_range=10,
        owner_address=OWNER,
        base_uri="https://id.test/",
    )


@pytest.fixture
def identity(config):
    return InMemoryIdentityToken(base_uri=config.base_uri)


@pytest.fixture
def credit():
    registry = InMemoryCreditRegistry()
    registry.set_credit(ALICE, 1)
    registry.set_credit(BOB, 1)
    return registry


@pytest.fixture
def reward_mint():
    return InMemoryRewardMint()


@pytest.fixture
def vault():
    v = InMemoryVault()
    for address in (ALICE, BOB, CAROL, OWNER):
        v.credit(address, WALLET)
    return v


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def recorded(bus):
    """List of (event_name, data) in emission order."""
    seen = []
    for name in ALL_EVENTS:
        bus.subscribe(name, lambda _name=name, **data: seen.append((_name, data)))
    return seen


@pytest.fixture
def engine(identity, credit, reward_mint, vault, config, clock, bus):
    return LedgerEngine(
        identity=identity,
        credit=credit,
        reward_mint=reward_mint,
        vault=vault,
        config=config,
        clock=clock,
        event_bus=bus,
    )


@pytest.fixture
def borrower(engine):
    """ALICE with 1000 staked and an active loan (principal 900, owed 945)."""
    engine.stake(ALICE, 1000)
    engine.take_loan(ALICE)
    return ALICE


def assert_aggregates(engine):
    state = engine.state
    assert state.treasury.total_staked == state.sum_staked()
    assert state.treasury.total_loaned == state.sum_loaned()
