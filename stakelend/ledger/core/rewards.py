# MIT License
# Copyright (c) 2025 Hashborn

from ...protocol.config.params import LedgerConfig
from .accounts import Account


def calculate_pending_rewards(account: Account, now: int, config: LedgerConfig) -> int:
    """
    Simple (non-compounding) reward on the current stake since the last claim.

    pending = staked * elapsed * reward_multiplier // seconds_per_year

    Floor division: tiny stakes or short intervals may round to 0.

    Args:
        account: Account to evaluate
        now: Current unix timestamp
        config: Ledger parameters

    Returns:
        Pending reward in minimal units
    """
    if account.staked == 0 or account.last_claimed_at is None:
        return 0

    elapsed = max(0, now - account.last_claimed_at)
    return account.staked * elapsed * config.reward_multiplier // config.seconds_per_year
