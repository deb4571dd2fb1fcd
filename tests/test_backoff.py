"""Unit tests for compute_backoff_delay."""

import pytest

from submission_queue import compute_backoff_delay


class TestComputeBackoffDelay:
    """Test suite for the exponential backoff calculator."""

    def test_doubles_from_one_second(self):
        """Test consecutive failures wait 1s, 2s, 4s, 8s, 16s."""
        delays = [compute_backoff_delay(attempts, 2.0) for attempts in range(1, 6)]
        assert delays == [1000, 2000, 4000, 8000, 16000]

    def test_capped_at_five_minutes(self):
        """Test growth stops at the 300000 ms cap."""
        assert compute_backoff_delay(9, 2.0) == 256000
        assert compute_backoff_delay(10, 2.0) == 300000
        assert compute_backoff_delay(25, 2.0) == 300000

    def test_per_entry_multiplier(self):
        """Test a custom multiplier changes the growth rate."""
        delays = [compute_backoff_delay(attempts, 3.0) for attempts in range(1, 4)]
        assert delays == [1000, 3000, 9000]

    def test_multiplier_of_one_is_constant(self):
        delays = {compute_backoff_delay(attempts, 1.0) for attempts in range(1, 10)}
        assert delays == {1000}

    def test_custom_base_and_cap(self):
        assert compute_backoff_delay(1, 2.0, base_delay_ms=500, max_delay_ms=1500) == 500
        assert compute_backoff_delay(2, 2.0, base_delay_ms=500, max_delay_ms=1500) == 1000
        assert compute_backoff_delay(3, 2.0, base_delay_ms=500, max_delay_ms=1500) == 1500

    def test_returns_whole_milliseconds(self):
        delay = compute_backoff_delay(2, 1.5)
        assert delay == 1500
        assert isinstance(delay, int)

    def test_huge_attempt_count_clamps_to_cap(self):
        """Test float overflow clamps instead of raising."""
        assert compute_backoff_delay(5000, 2.0) == 300000

    @pytest.mark.parametrize("attempts", [0, -1])
    def test_rejects_attempts_below_one(self, attempts):
        with pytest.raises(ValueError):
            _ = compute_backoff_delay(attempts, 2.0)

    def test_rejects_shrinking_multiplier(self):
        with pytest.raises(ValueError):
            _ = compute_backoff_delay(2, 0.5)
