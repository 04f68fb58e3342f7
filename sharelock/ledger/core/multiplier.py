# MIT License
# Copyright (c) 2025 Hashborn

"""
Lock duration multiplier.

Maps a lock duration to the 18-decimal fixed-point ratio a deposit is
scaled by when shares are minted:

    min_ratio = min_lock_duration * UNIT // max_lock_duration
    ratio     = min_ratio + (duration - min) * (UNIT - min_ratio) // (max - min)

Integer arithmetic only, every division truncates. multiplier(min) is
exactly min_ratio and multiplier(max) is exactly UNIT.
"""

from ...protocol.config.params import UNIT, MultiplierConfig
from ...protocol.types.common import InvalidDuration


def multiplier(duration: int, config: MultiplierConfig) -> int:
    """
    Returns the fixed-point ratio for a lock duration.

    Raises:
        InvalidDuration: duration outside [min_lock_duration, max_lock_duration]
    """
    min_duration = config.min_lock_duration
    max_duration = config.max_lock_duration

    if duration < min_duration or duration > max_duration:
        raise InvalidDuration(
            f"duration {duration} outside [{min_duration}, {max_duration}]"
        )

    min_ratio = min_duration * UNIT // max_duration
    return min_ratio + (duration - min_duration) * (UNIT - min_ratio) // (max_duration - min_duration)


def shares_for(amount: int, duration: int, config: MultiplierConfig) -> int:
    """Shares minted for `amount` locked for `duration` (truncated)."""
    return amount * multiplier(duration, config) // UNIT
