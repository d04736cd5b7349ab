"""pyintellibridge - resilient session manager for Pentair IntelliCenter.

This library keeps a TCP session to an IntelliCenter controller alive,
discovers its equipment, keeps an in-memory model of it up to date from
change notifications, and reports every change to a listener.

Example usage:
    ```python
    import asyncio
    from pyintellibridge import ICSessionListenerBase, ICSessionManager

    class Printer(ICSessionListenerBase):
        def on_circuit_updated(self, circuit):
            print(f"{circuit.name}: {circuit.status}")

    async def main():
        session = ICSessionManager({"ipAddress": "192.168.1.100"}, Printer())
        await session.connect()
        await asyncio.Event().wait()

    asyncio.run(main())
    ```
"""

from .attributes import (
    ACT_ATTR,
    BODY_TYPE,
    CIRCUIT_TYPE,
    DEFAULT_PORT,
    GPM_ATTR,
    HEATER_TYPE,
    INTELLIBRITE_OPTIONS,
    LOTMP_ATTR,
    LSTTMP_ATTR,
    PUMP_TYPE,
    RPM_ATTR,
    SENSE_TYPE,
    STATUS_ATTR,
    WATTS_ATTR,
)
from .codec import ICFrameDecoder, IntelliCenterRequest, IntelliCenterResponse
from .config import ICBridgeConfig, ICConfigValidator, ICValidationResult, validate_config
from .discovery import ICDiscoveryOrchestrator, merge_answer
from .dispatch import ICDispatchRouter, RouteResult
from .exceptions import (
    ICCircuitOpenError,
    ICConfigError,
    ICConnectionError,
    ICError,
    ICProtocolError,
    ICResponseError,
    ICTimeoutError,
)
from .heater import HeatingMode, HeatingState, ICHeaterState
from .listener import ICSessionListener, ICSessionListenerBase
from .locate import ICControllerInfo, locate_controller_host, locate_controllers
from .model import Body, Circuit, Heater, ICEntityStore, Module, Panel, Pump, PumpCircuit, Sensor
from .monitor import ICTemperatureUnitMonitor, ICUnitConsistency, check_unit_consistency
from .registry import ICRegistration, ICRegistry, RegistrationKind
from .resilience import (
    CircuitState,
    ICCircuitBreaker,
    ICDeadLetterQueue,
    ICHealthMonitor,
    ICRateLimiter,
    ICRetryPolicy,
    with_retry,
)
from .session import ICSessionManager, ICSessionState, ICSessionTimings
from .topology import (
    DefaultHeaterPumpScorer,
    HeaterScoringThresholds,
    ICTopology,
    ICTopologyBuilder,
    transform_panels,
)

__version__ = "1.0.0"

__all__ = [
    # Version
    "__version__",
    # Session
    "ICSessionManager",
    "ICSessionState",
    "ICSessionTimings",
    "ICSessionListener",
    "ICSessionListenerBase",
    # Configuration
    "ICBridgeConfig",
    "ICConfigValidator",
    "ICValidationResult",
    "validate_config",
    # Wire codec
    "ICFrameDecoder",
    "IntelliCenterRequest",
    "IntelliCenterResponse",
    # Discovery and topology
    "ICDiscoveryOrchestrator",
    "merge_answer",
    "ICTopology",
    "ICTopologyBuilder",
    "transform_panels",
    "DefaultHeaterPumpScorer",
    "HeaterScoringThresholds",
    # Registry and dispatch
    "ICRegistration",
    "ICRegistry",
    "RegistrationKind",
    "ICDispatchRouter",
    "RouteResult",
    # Entities
    "Body",
    "Circuit",
    "Heater",
    "ICEntityStore",
    "Module",
    "Panel",
    "Pump",
    "PumpCircuit",
    "Sensor",
    # Heaters and temperature units
    "HeatingMode",
    "HeatingState",
    "ICHeaterState",
    "ICTemperatureUnitMonitor",
    "ICUnitConsistency",
    "check_unit_consistency",
    # Resilience
    "CircuitState",
    "ICCircuitBreaker",
    "ICDeadLetterQueue",
    "ICHealthMonitor",
    "ICRateLimiter",
    "ICRetryPolicy",
    "with_retry",
    # Locating controllers
    "ICControllerInfo",
    "locate_controller_host",
    "locate_controllers",
    # Exceptions
    "ICError",
    "ICCircuitOpenError",
    "ICConfigError",
    "ICConnectionError",
    "ICProtocolError",
    "ICResponseError",
    "ICTimeoutError",
    # Protocol constants
    "DEFAULT_PORT",
    "BODY_TYPE",
    "CIRCUIT_TYPE",
    "HEATER_TYPE",
    "PUMP_TYPE",
    "SENSE_TYPE",
    "ACT_ATTR",
    "GPM_ATTR",
    "LOTMP_ATTR",
    "LSTTMP_ATTR",
    "RPM_ATTR",
    "STATUS_ATTR",
    "WATTS_ATTR",
    "INTELLIBRITE_OPTIONS",
]
