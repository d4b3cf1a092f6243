# MIT License
# Copyright (c) 2025 Hashborn

import os
from typing import Dict, Optional

# Global Constants
DENOM = "sld"
DECIMALS = 18

SECONDS_PER_DAY = 86_400
SECONDS_PER_YEAR = 365 * SECONDS_PER_DAY
MAX_UINT256 = 2**256 - 1

class LedgerConfig:
    def __init__(self,
                 network_id: str,
                 # Reward accrual
                 reward_multiplier: int = 20,
                 seconds_per_year: int = SECONDS_PER_YEAR,
                 # Loan terms (percentages are whole numbers)
                 loan_percentage: int = 90,
                 interest_rate: int = 5,
                 loan_duration_sec: int = 30 * SECONDS_PER_DAY,
                 # Credit registry feedback
                 repay_score_delta: int = 1,
                 default_score_delta: int = -1,
                 # Admin
                 max_sweep_range: int = 1000,
                 owner_address: Optional[str] = None,
                 base_uri: str = "",
                 # Amount bound (fixed-width ledger semantics)
                 max_amount: int = MAX_UINT256,
                 # Devnet wallet premine handed to the in-memory vault
                 faucet_premine: int = 0):
        if not 0 < loan_percentage <= 100:
            raise ValueError("loan_percentage must be in (0, 100]")
        if interest_rate < 0:
            raise ValueError("interest_rate must be non-negative")
        if loan_duration_sec <= 0 or seconds_per_year <= 0:
            raise ValueError("durations must be positive")

        self.network_id = network_id
        self.reward_multiplier = reward_multiplier
        self.seconds_per_year = seconds_per_year
        self.loan_percentage = loan_percentage
        self.interest_rate = interest_rate
        self.loan_duration_sec = loan_duration_sec
        self.repay_score_delta = repay_score_delta
        self.default_score_delta = default_score_delta
        self.max_sweep_range = max_sweep_range
        self.owner_address = owner_address
        self.base_uri = base_uri
        self.max_amount = max_amount
        self.faucet_premine = faucet_premine

    def with_owner(self, owner_address: str) -> 'LedgerConfig':
        """Copy of this config bound to an owner address."""
        clone = LedgerConfig.__new__(LedgerConfig)
        clone.__dict__.update(self.__dict__)
        clone.owner_address = owner_address
        return clone

NETWORKS: Dict[str, LedgerConfig] = {
    "devnet": LedgerConfig(
        network_id="devnet",
        loan_duration_sec=1 * SECONDS_PER_DAY,
        max_sweep_range=100,
        base_uri="http://localhost:8000/identity/",
        faucet_premine=1_000_000 * 10**DECIMALS,
    ),
    "testnet": LedgerConfig(
        network_id="testnet",
        loan_duration_sec=7 * SECONDS_PER_DAY,
    ),
    "mainnet": LedgerConfig(
        network_id="mainnet",
        loan_duration_sec=30 * SECONDS_PER_DAY,
    ),
}

CURRENT_NETWORK = NETWORKS[os.environ.get("STAKELEND_NETWORK", "devnet")]
