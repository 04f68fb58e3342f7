# MIT License
# Copyright (c) 2025 Hashborn

"""
Staking parameters.

Single source of truth for fixed-point constants and the per-network
default staking configuration.
"""

import os
from dataclasses import dataclass, replace
from typing import Dict
from ..types.common import InvalidConfig

# Global Constants
DECIMALS = 18
UNIT = 10**DECIMALS         # Fixed-point 1.0

SECONDS_PER_DAY = 86_400
DEFAULT_SECONDS_PER_MONTH = 30 * SECONDS_PER_DAY

# Pagination cap for every "list" read
MAX_PAGE_SIZE = 500


@dataclass(frozen=True)
class StakingConfig:
    """
    Lock ledger configuration.

    Frozen: setters build a new instance with `version + 1` and swap it in,
    so a lock never observes a half-updated config.
    """
    min_lock_duration: int              # seconds
    max_lock_duration: int              # seconds
    min_lock_amount: int = 0            # minimal units
    seconds_per_month: int = DEFAULT_SECONDS_PER_MONTH
    eject_buffer: int = 0               # grace period after maturity before admin eject
    version: int = 1

    def validate(self) -> None:
        if self.min_lock_duration <= 0 or self.max_lock_duration <= 0:
            raise InvalidConfig("lock durations must be positive")
        if self.min_lock_duration >= self.max_lock_duration:
            raise InvalidConfig(
                f"min_lock_duration {self.min_lock_duration} >= max_lock_duration {self.max_lock_duration}"
            )
        if self.min_lock_amount < 0:
            raise InvalidConfig("min_lock_amount must be non-negative", code="min amount")
        if self.seconds_per_month <= 0:
            raise InvalidConfig("seconds_per_month must be positive", code="month")
        if self.eject_buffer < 0:
            raise InvalidConfig("eject_buffer must be non-negative", code="eject buffer")

    def updated(self, **changes) -> 'StakingConfig':
        """Returns a validated copy with the changes applied and the version bumped."""
        new_config = replace(self, version=self.version + 1, **changes)
        new_config.validate()
        return new_config

    def to_dict(self) -> dict:
        return {
            "min_lock_duration": self.min_lock_duration,
            "max_lock_duration": self.max_lock_duration,
            "min_lock_amount": self.min_lock_amount,
            "seconds_per_month": self.seconds_per_month,
            "eject_buffer": self.eject_buffer,
            "version": self.version,
        }


class NetworkConfig:
    def __init__(self,
                 network_id: str,
                 staking: StakingConfig,
                 bech32_prefix: str = "slk",
                 max_receipts: int = 10_000):
        self.network_id = network_id
        self.staking = staking
        self.bech32_prefix = bech32_prefix
        self.max_receipts = max_receipts


NETWORKS: Dict[str, NetworkConfig] = {
    "devnet": NetworkConfig(
        network_id="devnet",
        staking=StakingConfig(
            min_lock_duration=30 * SECONDS_PER_DAY,
            max_lock_duration=90 * SECONDS_PER_DAY,
            min_lock_amount=0,
        ),
    ),
    "testnet": NetworkConfig(
        network_id="testnet",
        staking=StakingConfig(
            min_lock_duration=6 * DEFAULT_SECONDS_PER_MONTH,
            max_lock_duration=36 * DEFAULT_SECONDS_PER_MONTH,
            min_lock_amount=1 * UNIT,
            eject_buffer=7 * SECONDS_PER_DAY,
        ),
    ),
    "mainnet": NetworkConfig(
        network_id="mainnet",
        staking=StakingConfig(
            min_lock_duration=6 * DEFAULT_SECONDS_PER_MONTH,
            max_lock_duration=36 * DEFAULT_SECONDS_PER_MONTH,
            min_lock_amount=100 * UNIT,
            eject_buffer=14 * SECONDS_PER_DAY,
        ),
    ),
}


def select_network(name: str = None) -> NetworkConfig:
    """Resolves the network from the argument or SHARELOCK_NETWORK (default devnet)."""
    name = name or os.environ.get("SHARELOCK_NETWORK", "devnet")
    if name not in NETWORKS:
        raise ValueError(f"Unknown network '{name}', expected one of {sorted(NETWORKS)}")
    return NETWORKS[name]


CURRENT_NETWORK = select_network()

# The multiplier only reads the duration bounds and the minimum deposit
MultiplierConfig = StakingConfig
