"""
Tests for the lock duration multiplier.

Tests:
- Exact fixed-point values at 30/60/90 days with a 30..90 day range
- Bounds are inclusive, anything outside fails with InvalidDuration
- Monotonicity across the range
- Share amounts are truncated
"""
import pytest

from sharelock.ledger.core.multiplier import multiplier, shares_for
from sharelock.protocol.config.params import StakingConfig, UNIT, SECONDS_PER_DAY
from sharelock.protocol.types.common import InvalidDuration

DAY = SECONDS_PER_DAY


@pytest.fixture
def config():
    return StakingConfig(min_lock_duration=30 * DAY, max_lock_duration=90 * DAY)


def test_multiplier_reference_values(config):
    assert multiplier(30 * DAY, config) == 333333333333333333
    assert multiplier(60 * DAY, config) == 666666666666666666
    assert multiplier(90 * DAY, config) == 10**18


def test_multiplier_endpoints_are_exact(config):
    assert multiplier(config.min_lock_duration, config) == config.min_lock_duration * UNIT // config.max_lock_duration
    assert multiplier(config.max_lock_duration, config) == UNIT


def test_multiplier_rejects_out_of_range(config):
    with pytest.raises(InvalidDuration) as exc:
        multiplier(30 * DAY - 1, config)
    assert exc.value.code == "getDividendsMultiplier: Duration not correct"

    with pytest.raises(InvalidDuration):
        multiplier(90 * DAY + 1, config)

    with pytest.raises(InvalidDuration):
        multiplier(0, config)


def test_multiplier_is_monotonic(config):
    step = 3 * 3600
    previous = 0
    for duration in range(config.min_lock_duration, config.max_lock_duration + 1, step):
        ratio = multiplier(duration, config)
        assert ratio >= previous
        assert ratio <= UNIT
        previous = ratio


def test_shares_for_truncates(config):
    assert shares_for(5 * UNIT, 30 * DAY, config) == 1666666666666666665
    assert shares_for(5 * UNIT, 90 * DAY, config) == 5 * UNIT
    # 2 * 333333333333333333 // 10**18 == 0
    assert shares_for(2, 30 * DAY, config) == 0


def test_shares_for_propagates_invalid_duration(config):
    with pytest.raises(InvalidDuration):
        shares_for(UNIT, 91 * DAY, config)


def test_multiplier_other_ranges():
    config = StakingConfig(min_lock_duration=6, max_lock_duration=36)
    # min_ratio = 6e18 // 36
    min_ratio = 166666666666666666
    assert multiplier(6, config) == min_ratio
    assert multiplier(21, config) == min_ratio + 15 * (UNIT - min_ratio) // 30
    assert multiplier(36, config) == UNIT
