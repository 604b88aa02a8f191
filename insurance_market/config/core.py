"""Master configuration class composing all sub-configurations.

Contains the top-level ``Config`` class that aggregates the agent
populations, the market mechanics and the run settings into one immutable
object consumed at construction time. Nothing in a ``Config`` is read after
the first event is dispatched.

Since:
    Version 0.1.0
"""

from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional
import warnings

from pydantic import BaseModel, ConfigDict, Field
import yaml

from .._warnings import ConfigurationWarning
from .agents import BrokerConfig, InsuredConfig, InsurerConfig
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
from .utils import deep_merge


class Config(BaseModel):
    """Complete configuration of an insurance market run.

    Every mechanics section has defaults; the populations (``insurers``,
    ``insureds``, ``brokers``) do not, so a usable configuration is either
    loaded from YAML or built by :func:`~insurance_market.config.presets.canonical_market`.

    Examples:
        Canonical population with a different seed::

            from insurance_market.config.presets import canonical_market

            config = canonical_market().with_overrides({"simulation": {"seed": 7}})

        From a YAML file::

            config = Config.from_yaml(Path("market.yaml"))
            config.validate()
    """

    model_config = ConfigDict(frozen=True)

    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    lifecycle: LifecycleConfig = Field(default_factory=LifecycleConfig)
    underwriting: UnderwritingConfig = Field(default_factory=UnderwritingConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    panel: PanelConfig = Field(default_factory=PanelConfig)
    attritional: AttritionalConfig = Field(default_factory=AttritionalConfig)
    catastrophes: List[CatPerilConfig] = Field(default_factory=list)

    insurers: List[InsurerConfig] = Field(default_factory=list)
    insureds: List[InsuredConfig] = Field(default_factory=list)
    brokers: List[BrokerConfig] = Field(default_factory=list)

    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # ------------------------------------------------------------------ #
    #  Factory methods
    # ------------------------------------------------------------------ #

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file.

        Returns:
            Config object with validated parameters.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            ValidationError: If configuration is invalid.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        # Remove private anchors if present
        data = {k: v for k, v in data.items() if not k.startswith("_")}

        return cls(**data)

    @classmethod
    def from_dict(cls, data: dict, base_config: Optional["Config"] = None) -> "Config":
        """Create config from dictionary, optionally overriding base config.

        Args:
            data: Dictionary with configuration parameters.
            base_config: Optional base configuration to override.

        Returns:
            Config object with validated parameters.
        """
        if base_config is None:
            return cls(**data)

        merged = deep_merge(base_config.model_dump(mode="json"), data)
        return cls(**merged)

    def with_overrides(self, overrides: Dict[str, Any]) -> "Config":
        """Return a new config with ``overrides`` deep-merged into this one.

        Args:
            overrides: Nested mapping of section name to field values.

        Returns:
            New validated Config; ``self`` is unchanged.
        """
        return type(self).from_dict(overrides, base_config=self)

    # ------------------------------------------------------------------ #
    #  Lookups
    # ------------------------------------------------------------------ #

    def pricing_for(self, insurer: InsurerConfig) -> PricingConfig:
        """Pricing section applying to ``insurer``."""
        return insurer.pricing if insurer.pricing is not None else self.pricing

    def routing_for(self, broker: BrokerConfig) -> RoutingConfig:
        """Routing section applying to ``broker``."""
        return broker.routing if broker.routing is not None else self.routing

    # ------------------------------------------------------------------ #
    #  Validation
    # ------------------------------------------------------------------ #

    def validate(self) -> None:  # type: ignore[override]
        """Check the run can start, before any event is dispatched.

        Critical problems are collected and raised together; legal but
        unusual settings emit :class:`~insurance_market._warnings.ConfigurationWarning`.

        Raises:
            ConfigurationError: If the populations are empty, ids are
                duplicated, an insured names an unknown broker, or the seed is
                negative.
        """
        issues: List[str] = []

        if self.simulation.seed < 0:
            issues.append(f"Seed must be non-negative, got {self.simulation.seed}")
        if not self.insurers:
            issues.append("No insurers configured")
        if not self.insureds:
            issues.append("No insureds configured")
        if not self.brokers:
            issues.append("No brokers configured")

        for label, ids in (
            ("insurer", [i.id for i in self.insurers]),
            ("insured", [i.id for i in self.insureds]),
            ("broker", [b.id for b in self.brokers]),
        ):
            duplicates = sorted(k for k, n in Counter(ids).items() if n > 1)
            if duplicates:
                issues.append(f"Duplicate {label} ids: {duplicates}")

        broker_ids = {b.id for b in self.brokers}
        for insured in self.insureds:
            if insured.broker_id not in broker_ids:
                issues.append(
                    f"Insured {insured.id} references unknown broker {insured.broker_id}"
                )

        if issues:
            raise ConfigurationError(issues)

        self._warn_unusual()

    def _warn_unusual(self) -> None:
        """Emit warnings for legal settings that rarely make sense."""
        insurer_ids = {i.id for i in self.insurers}
        placed_brokers = {i.broker_id for i in self.insureds}
        for broker in self.brokers:
            if broker.id not in placed_brokers:
                warnings.warn(f"Broker {broker.id} has no insureds", ConfigurationWarning)
            unknown = sorted(set(broker.relationship_scores) - insurer_ids)
            if unknown:
                warnings.warn(
                    f"Broker {broker.id} scores unknown insurers {unknown}",
                    ConfigurationWarning,
                )

        if self.lifecycle.max_quote_attempts > len(self.insurers):
            warnings.warn(
                f"max_quote_attempts ({self.lifecycle.max_quote_attempts}) exceeds the "
                f"number of insurers ({len(self.insurers)})",
                ConfigurationWarning,
            )
        if self.panel.max_followers > len(self.insurers) - 1:
            warnings.warn(
                f"max_followers ({self.panel.max_followers}) exceeds the "
                f"{len(self.insurers) - 1} insurers able to follow a lead",
                ConfigurationWarning,
            )

        largest_line = max(i.capital for i in self.insurers) * self.underwriting.max_line_fraction
        for insured in self.insureds:
            if insured.risk.limit > largest_line:
                warnings.warn(
                    f"Insured {insured.id} limit {insured.risk.limit:,} exceeds every "
                    f"insurer's opening line capacity",
                    ConfigurationWarning,
                )

        covered = {
            (insured.risk.territory, peril)
            for insured in self.insureds
            for peril in insured.risk.perils_covered
        }
        for cat in self.catastrophes:
            if cat.key not in covered:
                warnings.warn(
                    f"Catastrophe {cat.peril.value} in {cat.territory} matches no insured risk",
                    ConfigurationWarning,
                )

    # ------------------------------------------------------------------ #
    #  Serialization
    # ------------------------------------------------------------------ #

    def to_yaml(self, path: Path) -> None:
        """Save configuration to YAML file.

        Args:
            path: Path where to save the configuration.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False, sort_keys=False)

    # ------------------------------------------------------------------ #
    #  Logging
    # ------------------------------------------------------------------ #

    def setup_logging(self) -> None:
        """Configure logging based on settings.

        Sets up logging handlers for console and/or file output based
        on the logging configuration.
        """
        if not self.logging.enabled:
            return

        import logging
        import sys

        # Create logger
        logger = logging.getLogger("insurance_market")
        logger.setLevel(getattr(logging, self.logging.level))
        logger.handlers.clear()

        # Create formatter
        formatter = logging.Formatter(self.logging.format)

        # Console handler
        if self.logging.console_output:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)

        # File handler
        if self.logging.log_file:
            log_path = self.output.output_path / self.logging.log_file
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
