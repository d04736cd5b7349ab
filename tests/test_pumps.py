"""Tests for the pump performance curves."""

from __future__ import annotations

import pytest

from pyintellibridge.pumps import (
    MAX_PUMP_RPM,
    estimate_metrics,
    pump_kind,
    vf_gpm,
    vs_gpm,
    vs_watts,
    vsf_gpm,
    vsf_watts,
)


class TestPumpKind:
    """Tests for pump_kind."""

    @pytest.mark.parametrize(
        ("subtype", "kind"),
        [("SPEED", "VS"), ("vsf", "VSF"), ("FLOW", "VF"), ("SINGLE", "SS"), ("DUAL", "DS")],
    )
    def test_known_subtypes(self, subtype, kind):
        """Test the SUBTYP to kind mapping."""
        assert pump_kind(subtype) == kind

    def test_unknown_subtype(self):
        """Test that unknown or missing subtypes have no kind."""
        assert pump_kind("MYSTERY") is None
        assert pump_kind(None) is None


class TestCurves:
    """Tests for the individual curves."""

    def test_vs_calibration_points(self):
        """Test the VS curve at its calibration points."""
        assert vs_watts(1800) == 225
        assert vs_watts(3400) == 1483
        assert vs_gpm(2500) == pytest.approx(65.6)

    def test_vsf_calibration_points(self):
        """Test the VSF curve at its calibration points."""
        assert vsf_gpm(2450) == 55
        assert vsf_gpm(3450) == 80
        assert vsf_watts(2450) == 820
        assert vsf_watts(3450) == 1982

    def test_below_minimum_speed_is_zero(self):
        """Test that a pump below 450 RPM reports nothing."""
        assert vs_gpm(400) == 0.0
        assert vs_watts(400) == 0
        assert vsf_gpm(100) == 0
        assert vf_gpm(449) == 0.0

    def test_speed_is_clamped(self):
        """Test that speeds above the maximum are clamped."""
        assert vs_watts(5000) == vs_watts(MAX_PUMP_RPM)
        assert vsf_gpm(5000) == 80


class TestEstimateMetrics:
    """Tests for estimate_metrics."""

    def test_variable_speed(self):
        """Test flow and power for a VS pump."""
        gpm, watts = estimate_metrics("SPEED", 2500)

        assert gpm == pytest.approx(65.6)
        assert watts == 775

    def test_pump_without_curve(self):
        """Test that single and dual speed pumps report zero."""
        assert estimate_metrics("SINGLE", 3000) == (0.0, 0)
        assert estimate_metrics(None, 3000) == (0.0, 0)

    def test_stopped_pump(self):
        """Test that zero RPM reports zero."""
        assert estimate_metrics("VSF", 0) == (0.0, 0)
