"""Tests for the temperature unit monitor."""

from __future__ import annotations

import asyncio

import pytest

from pyintellibridge.monitor import (
    MAX_READINGS,
    ICTemperatureUnitMonitor,
    check_unit_consistency,
)


class TestCheckUnitConsistency:
    """Tests for check_unit_consistency."""

    def test_too_few_readings(self):
        """Test that fewer than three readings conclude nothing."""
        result = check_unit_consistency([25.0, 26.0], "F")

        assert result.is_consistent is True
        assert result.analysis_count == 2
        assert result.detected_unit is None

    def test_fahrenheit_readings_with_fahrenheit_config(self):
        """Test that matching readings are consistent."""
        result = check_unit_consistency([78.0, 80.0, 84.0], "F")

        assert result.is_consistent is True
        assert result.detected_unit == "F"
        assert result.confidence == 0.9

    def test_celsius_readings_with_fahrenheit_config(self):
        """Test that Celsius readings under a Fahrenheit config are a mismatch."""
        result = check_unit_consistency([25.0, 27.0, 30.0], "F")

        assert result.is_consistent is False
        assert result.detected_unit == "C"
        assert result.confidence == 0.9
        assert "Configured: F" in result.warning
        assert "70-104°F" in result.warning

    def test_low_confidence_mismatch_is_not_reported(self):
        """Test that a borderline mismatch stays consistent."""
        result = check_unit_consistency([16.0, 16.0, 16.0], "F")

        assert result.detected_unit == "C"
        assert result.confidence == 0.6
        assert result.is_consistent is True

    def test_implausible_readings_are_ignored(self):
        """Test that readings outside (-50, 200) and NaN are dropped."""
        result = check_unit_consistency([float("nan"), -60.0, 250.0, 80.0], "F")

        assert result.analysis_count == 1

    def test_ambiguous_readings(self):
        """Test that readings matching neither unit are consistent."""
        result = check_unit_consistency([150.0, 160.0, 170.0], "C")

        assert result.is_consistent is True
        assert result.detected_unit is None


class TestMonitor:
    """Tests for ICTemperatureUnitMonitor."""

    def test_collect_caps_readings(self):
        """Test that collection stops at the maximum and skips None."""
        monitor = ICTemperatureUnitMonitor("F")

        monitor.collect(None)
        for _ in range(MAX_READINGS + 5):
            monitor.collect(80.0)

        assert len(monitor.readings) == MAX_READINGS

    def test_mismatch_warns_once(self):
        """Test that a mismatch calls the warning callback and stops monitoring."""
        warnings = []
        monitor = ICTemperatureUnitMonitor("F", warnings.append)
        for value in (25.0, 27.0, 30.0):
            monitor.collect(value)

        first = monitor.check()
        second = monitor.check()

        assert first.is_consistent is False
        assert second is None
        assert len(warnings) == 1
        assert monitor.validated is True

    def test_enough_consistent_readings_validate(self):
        """Test that ten consistent readings end monitoring."""
        monitor = ICTemperatureUnitMonitor("F")
        for _ in range(9):
            monitor.collect(80.0)
        monitor.check()
        assert monitor.validated is False

        monitor.collect(80.0)
        monitor.check()

        assert monitor.validated is True
        monitor.collect(81.0)
        assert len(monitor.readings) == 10

    def test_reset(self):
        """Test that reset forgets readings and validation."""
        monitor = ICTemperatureUnitMonitor("F")
        for _ in range(10):
            monitor.collect(80.0)
        monitor.check()

        monitor.reset()

        assert monitor.validated is False
        assert monitor.readings == []

    @pytest.mark.asyncio
    async def test_periodic_checks(self):
        """Test that the background task checks until validated."""
        warnings = []
        monitor = ICTemperatureUnitMonitor("C", warnings.append, interval=0.01, window=1.0)

        monitor.start()
        assert monitor.running is True
        for value in (78.0, 80.0, 84.0):
            monitor.collect(value)
        for _ in range(100):
            if monitor.validated:
                break
            await asyncio.sleep(0.01)

        assert len(warnings) == 1
        assert warnings[0].detected_unit == "F"
        await monitor.stop()
        assert monitor.running is False

    @pytest.mark.asyncio
    async def test_stop_cancels(self):
        """Test that stopping a running monitor cancels its task."""
        monitor = ICTemperatureUnitMonitor("F", interval=10, window=100)

        monitor.start()
        await monitor.stop()

        assert monitor.running is False

    @pytest.mark.asyncio
    async def test_elapsed_window_is_not_restarted(self):
        """Test that a window that ended without a verdict stays closed."""
        monitor = ICTemperatureUnitMonitor("F", interval=0.01, window=0.02)

        monitor.start()
        for _ in range(100):
            if not monitor.running:
                break
            await asyncio.sleep(0.01)
        assert monitor.expired is True

        monitor.start()

        assert monitor.running is False
        assert monitor.validated is False

    def test_reset_reopens_the_window(self):
        """Test that reset clears an elapsed window."""
        monitor = ICTemperatureUnitMonitor("F")
        monitor._expired = True

        monitor.reset()

        assert monitor.expired is False
