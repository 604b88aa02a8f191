"""Configuration management using Pydantic v2 models.

This package provides the configuration classes consumed when a simulation
is constructed. Sections are composed into the master :class:`Config`, which
is frozen: configuration never changes once a run starts.

Sub-modules:
    agents: Insurer, insured and broker population entries.
    core: Master Config class that composes all sub-configs.
    exceptions: ConfigurationError raised by ``Config.validate``.
    market: Lifecycle offsets, underwriting limits, pricing, routing and
        follow-market panels.
    perils: Attritional and catastrophe occurrence parameters.
    presets: Ready-made market populations.
    reporting: Output and logging configs.
    simulation: Seed, horizon and dispatch budget.

Examples:
    Loading from file::

        config = Config.from_yaml(Path("market.yaml"))
        config.validate()
        config.setup_logging()

Note:
    All monetary values are integers in minor currency units. Rates and
    ratios are expressed as decimals (0.1 = 10%).

Since:
    Version 0.1.0
"""

from .agents import BrokerConfig, InsuredConfig, InsurerConfig
from .core import Config
from .exceptions import ConfigurationError
from .market import (
    LifecycleConfig,
    PanelConfig,
    PricingConfig,
    RoutingConfig,
    UnderwritingConfig,
)
from .perils import AttritionalConfig, CatPerilConfig
from .reporting import LoggingConfig, OutputConfig
from .simulation import SimulationConfig

__all__ = [
    # Core
    "Config",
    "ConfigurationError",
    # Agents
    "BrokerConfig",
    "InsuredConfig",
    "InsurerConfig",
    # Market
    "LifecycleConfig",
    "PanelConfig",
    "PricingConfig",
    "RoutingConfig",
    "UnderwritingConfig",
    # Perils
    "AttritionalConfig",
    "CatPerilConfig",
    # Reporting
    "LoggingConfig",
    "OutputConfig",
    # Simulation
    "SimulationConfig",
]
