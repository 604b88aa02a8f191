"""Insurance Market Simulation"""

from ._version import __version__

# Use lazy imports to avoid import issues during test discovery
# Direct imports are defined but modules are imported only when accessed

__all__ = [
    "__version__",
    "Config",
    "ConfigurationError",
    "EventLog",
    "EventQueue",
    "InvariantViolation",
    "ReplayCursor",
    "RunSummary",
    "Simulation",
    "SimulationConfig",
    "canonical_market",
    "reconstruct",
    "run_simulation",
    "verify_log",
    "verify_reconstruction",
]


def __getattr__(name):
    """Lazy import modules to avoid circular dependencies during test discovery."""
    if name in ["Config", "ConfigurationError", "SimulationConfig"]:
        from .config import Config, ConfigurationError, SimulationConfig

        return locals()[name]
    elif name == "canonical_market":
        from .config.presets import canonical_market

        return canonical_market
    elif name == "EventLog" or name == "ReplayCursor":
        from .event_log import EventLog, ReplayCursor

        return locals()[name]
    elif name == "EventQueue":
        from .event_queue import EventQueue

        return EventQueue
    elif name in ["RunSummary", "Simulation", "run_simulation"]:
        from .simulation import RunSummary, Simulation, run_simulation

        return locals()[name]
    elif name == "reconstruct" or name == "verify_reconstruction":
        from .reconstruction import reconstruct, verify_reconstruction

        return locals()[name]
    elif name == "InvariantViolation" or name == "verify_log":
        from .invariants import InvariantViolation, verify_log

        return locals()[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
