"""Temperature unit consistency monitor.

A controller set to Celsius while the session is configured for Fahrenheit
(or the other way round) produces setpoints that are wildly off. After the
first discovery the session samples body and sensor temperatures for a few
minutes and warns once if the readings clearly belong to the other unit.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

_LOGGER = logging.getLogger(__name__)

MAX_READINGS = 50
MIN_READINGS = 3  # below this, nothing is concluded
VALIDATED_AFTER_READINGS = 10  # consistent results this large stop the monitor
CONFIDENCE_THRESHOLD = 0.7  # mismatches below this are not reported
READING_RANGE = (-50.0, 200.0)  # exclusive bounds of a plausible reading

VALIDATION_INTERVAL = 30.0  # seconds between checks
VALIDATION_WINDOW = 300.0  # seconds before the monitor gives up

# (average, minimum, maximum) ranges a pool reading falls into per unit
UNIT_RANGES = {
    "F": ((65.0, 110.0), (50.0, 120.0), (50.0, 120.0)),
    "C": ((15.0, 45.0), (5.0, 50.0), (5.0, 50.0)),
}

# (low, high, confidence) tiers, tightest first
CONFIDENCE_TIERS = {
    "F": ((70.0, 104.0, 0.9), (65.0, 110.0, 0.8), (60.0, 115.0, 0.6)),
    "C": ((21.0, 40.0, 0.9), (18.0, 43.0, 0.8), (15.0, 45.0, 0.6)),
}
DEFAULT_CONFIDENCE = 0.3

EXPECTED_RANGE_TEXT = {
    "F": "70-104°F for pools/spas",
    "C": "21-40°C for pools/spas",
}


@dataclass(frozen=True)
class ICUnitConsistency:
    """Result of a unit consistency check."""

    is_consistent: bool
    configured_unit: str
    detected_unit: str | None = None
    analysis_count: int = 0
    confidence: float = 0.0
    warning: str | None = None


def _within(value: float, bounds: tuple[float, float]) -> bool:
    return bounds[0] <= value <= bounds[1]


def _confidence(unit: str, center: float) -> float:
    for low, high, confidence in CONFIDENCE_TIERS[unit]:
        if low <= center <= high:
            return confidence
    return DEFAULT_CONFIDENCE


def check_unit_consistency(readings: Iterable[float], configured: str) -> ICUnitConsistency:
    """Check whether readings look like they are in the configured unit.

    Args:
        readings: Raw temperature readings from bodies and sensors.
        configured: The configured unit, 'F' or 'C'.

    Returns:
        The consistency result. Anything ambiguous counts as consistent.
    """
    low, high = READING_RANGE
    valid = [r for r in readings if not math.isnan(r) and low < r < high]
    if len(valid) < MIN_READINGS:
        return ICUnitConsistency(True, configured, analysis_count=len(valid))

    average = sum(valid) / len(valid)
    minimum = min(valid)
    maximum = max(valid)

    detected: str | None = None
    for unit in ("F", "C"):
        avg_range, min_range, max_range = UNIT_RANGES[unit]
        if (
            _within(average, avg_range)
            and _within(minimum, min_range)
            and _within(maximum, max_range)
        ):
            detected = unit
            break

    if detected is None:
        return ICUnitConsistency(True, configured, analysis_count=len(valid))

    confidence = _confidence(detected, (average + minimum + maximum) / 3)
    if detected != configured and confidence > CONFIDENCE_THRESHOLD:
        warning = (
            f"Temperature unit mismatch detected. Configured: {configured}, "
            f"but readings appear to be in {detected} "
            f"({minimum:.1f}-{maximum:.1f}°{detected}). "
            f"Expected range: {EXPECTED_RANGE_TEXT.get(configured, '')}. "
            "Please verify your temperatureUnits setting."
        )
        return ICUnitConsistency(
            False, configured, detected, len(valid), confidence, warning=warning
        )
    return ICUnitConsistency(True, configured, detected, len(valid), confidence)


class ICTemperatureUnitMonitor:
    """Collect readings and check unit consistency until validated.

    Args:
        configured_unit: The configured unit, 'F' or 'C'.
        on_warning: Called once with the result when a mismatch is found.
        interval: Seconds between checks.
        window: Seconds after which monitoring stops regardless.
    """

    def __init__(
        self,
        configured_unit: str,
        on_warning: Callable[[ICUnitConsistency], Any] | None = None,
        *,
        interval: float = VALIDATION_INTERVAL,
        window: float = VALIDATION_WINDOW,
    ) -> None:
        self._configured_unit = configured_unit
        self._on_warning = on_warning
        self._interval = interval
        self._window = window
        self._readings: list[float] = []
        self._validated = False
        self._expired = False
        self._task: asyncio.Task[None] | None = None

    @property
    def validated(self) -> bool:
        return self._validated

    @property
    def expired(self) -> bool:
        """Return True once the window elapsed without a verdict."""
        return self._expired

    @property
    def readings(self) -> list[float]:
        return list(self._readings)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def collect(self, value: float | None) -> None:
        """Record a reading while monitoring is still useful."""
        if value is None or self._validated or len(self._readings) >= MAX_READINGS:
            return
        if math.isnan(value):
            return
        self._readings.append(value)

    def check(self) -> ICUnitConsistency | None:
        """Run one check, returning its result or None when there is too little data."""
        if self._validated or len(self._readings) < MIN_READINGS:
            return None
        result = check_unit_consistency(self._readings, self._configured_unit)
        if not result.is_consistent and result.warning:
            _LOGGER.warning(result.warning)
            self._validated = True
            if self._on_warning:
                self._on_warning(result)
        elif result.is_consistent and result.analysis_count >= VALIDATED_AFTER_READINGS:
            _LOGGER.debug(
                "Temperature units validated (%s, %d readings)",
                result.detected_unit or self._configured_unit,
                result.analysis_count,
            )
            self._validated = True
        return result

    def start(self) -> None:
        """Start periodic checks (no-op when running, validated or expired)."""
        if self.running or self._validated or self._expired:
            return
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._window
        try:
            while not self._validated and loop.time() < deadline:
                await asyncio.sleep(self._interval)
                self.check()
        except Exception:  # noqa: BLE001 - Background task must not crash
            _LOGGER.exception("Temperature unit monitor failed")
        if not self._validated and loop.time() >= deadline:
            self._expired = True
            _LOGGER.debug("Temperature unit monitoring window elapsed")

    async def stop(self) -> None:
        """Stop periodic checks."""
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def reset(self) -> None:
        """Forget readings and validation (monitoring must be stopped first)."""
        self._readings.clear()
        self._validated = False
        self._expired = False
