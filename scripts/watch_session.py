#!/usr/bin/env python3
"""Watch a live IntelliCenter session.

Connects with the settings from .env, runs discovery and prints every
registration and entity update until interrupted (Ctrl-C or SIGTERM).

.env keys:
    INTELLICENTER_HOST   controller address (required)
    INTELLICENTER_PORT   TCP port (default 6681)
    INTELLICENTER_UNITS  F or C (default F)
    INTELLICENTER_VSP    expose pump RPM/GPM/WATTS (default true)
"""

import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

from pyintellibridge import ICSessionListenerBase, ICSessionManager  # noqa: E402


class PrintingListener(ICSessionListenerBase):
    """Print every hook to stdout."""

    def on_registered(self, registration):
        print(f"+ {registration.kind.value:<12} {registration.id:<20} {registration.name}")

    def on_unregistered(self, registration):
        print(f"- {registration.kind.value:<12} {registration.id:<20} {registration.name}")

    def on_discovery_complete(self, topology):
        print(
            f"Discovery complete: {len(topology.panels)} panels, "
            f"{len(topology.registrations)} registrations, "
            f"{len(topology.heater_bindings)} heater bindings"
        )

    def on_circuit_updated(self, circuit):
        print(f"  circuit {circuit.id:<8} {circuit.name:<24} {circuit.status}")

    def on_body_updated(self, body):
        print(
            f"  body    {body.id:<8} {body.name:<24} {body.temperature}° "
            f"(low {body.low_temperature}, high {body.high_temperature})"
        )

    def on_heater_updated(self, state):
        print(f"  heater  {state.id:<8} {state.name:<24} {state.current_state().value}")

    def on_sensor_updated(self, sensor):
        print(f"  sensor  {sensor.id:<8} {sensor.name:<24} {sensor.probe}")

    def on_color_changed(self, circuit, color):
        print(f"  color   {circuit.id:<8} {circuit.name:<24} {color}")

    def on_pump_metrics(self, pump, rpm, gpm, watts):
        print(f"  pump    {pump.id:<8} {pump.name:<24} {rpm:.0f} RPM {gpm:.1f} GPM {watts} W")

    def on_temperature_unit_warning(self, result):
        print(f"! {result.warning}")


def run_forever() -> int:
    host = os.getenv("INTELLICENTER_HOST")
    if not host:
        print("INTELLICENTER_HOST not set in .env")
        return 2

    session = ICSessionManager(
        {
            "ipAddress": host,
            "port": int(os.getenv("INTELLICENTER_PORT", "6681")),
            "temperatureUnits": os.getenv("INTELLICENTER_UNITS", "F"),
            "supportVSP": os.getenv("INTELLICENTER_VSP", "true"),
        },
        PrintingListener(),
    )

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    session.install_signal_handlers(loop)
    try:
        if not loop.run_until_complete(session.connect()):
            print(f"Could not connect to {host}")
            loop.run_until_complete(session.cleanup())
            return 1
        loop.run_forever()
    except Exception:  # noqa: BLE001 - Report and exit non-zero
        logging.exception("Session crashed")
        loop.run_until_complete(session.cleanup())
        return 1
    finally:
        loop.close()
    print("Stopped")
    return 0


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.DEBUG if os.getenv("DEBUG") else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    sys.exit(run_forever())
