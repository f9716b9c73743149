"""Unit tests for frontdesk/utils/timing.py."""

from __future__ import annotations

import time
from unittest.mock import patch

import pytest

from frontdesk.utils.timing import timed


@pytest.mark.unit
class TestTimedContextManager:
    def test_elapsed_starts_at_zero_inside_block(self) -> None:
        with timed("membership_load") as t:
            in_block_value = t["elapsed"]
        assert in_block_value == 0.0

    def test_elapsed_reflects_actual_duration(self) -> None:
        with timed("sleep_test") as t:
            time.sleep(0.05)
        # Generous tolerance for CI variability
        assert t["elapsed"] >= 0.04

    def test_elapsed_updated_after_exception(self) -> None:
        with pytest.raises(ValueError), timed("failing_op") as t:
            raise ValueError("boom")
        assert t["elapsed"] >= 0.0

    def test_fast_call_logged_at_debug(self) -> None:
        with patch("frontdesk.utils.timing.logger") as mock_logger:
            with timed("profile_lookup", warn_after=10.0):
                pass
            mock_logger.debug.assert_called_once()
            mock_logger.warning.assert_not_called()
            assert mock_logger.debug.call_args[0][0] == "timed"
            assert mock_logger.debug.call_args[1]["label"] == "profile_lookup"

    def test_slow_call_logged_at_warning(self) -> None:
        with patch("frontdesk.utils.timing.logger") as mock_logger:
            with timed("membership_load", warn_after=0.0):
                time.sleep(0.01)
            mock_logger.warning.assert_called_once()
            assert mock_logger.warning.call_args[0][0] == "slow_call"
            assert mock_logger.warning.call_args[1]["elapsed_seconds"] > 0.0
