"""Live aggregate instances and their construction from configuration.

The registry is the only object that maps a typed identity to a live
aggregate, and it does so only for the duration of one dispatch. Aggregates
never hold references to each other.

The ``build_*`` factories are shared by the simulation (live instances) and
by :mod:`~insurance_market.reconstruction` (fresh instances to replay into),
so both start from exactly the same initial state.

Since:
    Version 0.1.0
"""

from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional, Protocol, Tuple, Union

import numpy as np

from .broker import Broker
from .config.agents import BrokerConfig, InsuredConfig, InsurerConfig
from .config.core import Config
from .consumers import ALL, Address, Role, addresses
from .events import Event, Scheduled
from .insured import Insured
from .insurer import Insurer
from .market import MarketCoordinator
from .market_types import Day
from .perils import LossGenerator
from .pricing import build_pricing
from .routing import build_routing

logger = logging.getLogger(__name__)


class Aggregate(Protocol):
    """Handler contract shared by every aggregate.

    ``handle`` mutates only the aggregate's own fields and returns
    ``(day_offset, event)`` pairs; it never touches the queue or the log.
    """

    def handle(self, event: Event, day: Day, rng: np.random.Generator) -> List[Scheduled]:
        """Apply ``event`` and return the events it causes."""


def build_insurer(entry: InsurerConfig, config: Config) -> Insurer:
    """Fresh insurer in its configured initial state."""
    return Insurer(
        insurer_id=entry.id,
        capital=entry.capital,
        underwriting=config.underwriting,
        pricing=build_pricing(config.pricing_for(entry), config.attritional, config.catastrophes),
    )


def build_insured(entry: InsuredConfig, config: Config) -> Insured:
    """Fresh insured in its configured initial state."""
    return Insured(
        insured_id=entry.id,
        broker_id=entry.broker_id,
        risk=entry.risk,
        max_rate_on_line=entry.max_rate_on_line,
        lifecycle=config.lifecycle,
    )


def build_broker(entry: BrokerConfig, config: Config) -> Broker:
    """Fresh broker in its configured initial state."""
    return Broker(
        broker_id=entry.id,
        insurer_ids=tuple(sorted(i.id for i in config.insurers)),
        capacities={i.id: i.capital for i in config.insurers},
        lifecycle=config.lifecycle,
        panel_config=config.panel,
        routing=build_routing(config.routing_for(entry)),
        relationship_scores=dict(entry.relationship_scores),
    )


def build_market(config: Config) -> MarketCoordinator:
    """Fresh market coordinator."""
    return MarketCoordinator(
        lifecycle=config.lifecycle,
        years=config.simulation.years,
        initial_benchmark=config.underwriting.initial_benchmark_loss_ratio,
    )


def build_nature(config: Config) -> LossGenerator:
    """Fresh loss generator."""
    return LossGenerator.from_config(
        config.attritional, config.catastrophes, config.lifecycle.policy_term_days
    )


@dataclass
class AggregateRegistry:
    """Every live aggregate of a run, keyed by role and id."""

    market: MarketCoordinator
    nature: LossGenerator
    insurers: Dict[int, Insurer] = field(default_factory=dict)
    insureds: Dict[int, Insured] = field(default_factory=dict)
    brokers: Dict[int, Broker] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: Config) -> "AggregateRegistry":
        """Build every aggregate in its initial state."""
        return cls(
            market=build_market(config),
            nature=build_nature(config),
            insurers={i.id: build_insurer(i, config) for i in config.insurers},
            insureds={i.id: build_insured(i, config) for i in config.insureds},
            brokers={b.id: build_broker(b, config) for b in config.brokers},
        )

    def _population(self, role: Role) -> Dict[int, Aggregate]:
        if role is Role.INSURER:
            return self.insurers  # type: ignore[return-value]
        if role is Role.INSURED:
            return self.insureds  # type: ignore[return-value]
        if role is Role.BROKER:
            return self.brokers  # type: ignore[return-value]
        raise ValueError(f"Role {role.value} is a singleton")

    def get(self, role: Role, aggregate_id: Optional[int] = None) -> Optional[Aggregate]:
        """Live aggregate for ``(role, aggregate_id)``, or None if unknown."""
        if role is Role.MARKET:
            return self.market
        if role is Role.NATURE:
            return self.nature
        return self._population(role).get(aggregate_id)  # type: ignore[arg-type]

    def resolve(self, event: Event) -> List[Tuple[Address, Aggregate]]:
        """Live consumers of ``event`` in dispatch order.

        Broadcasts expand in ascending id order. Addresses naming an id with
        no live aggregate are skipped with a warning.
        """
        out: List[Tuple[Address, Aggregate]] = []
        for role, target in addresses(event):
            if target == ALL:
                population = self._population(role)
                out.extend(((role, i), population[i]) for i in sorted(population))
                continue
            aggregate = self.get(role, target)  # type: ignore[arg-type]
            if aggregate is None:
                logger.warning("%s names unknown %s %s", event.tag, role.value, target)
                continue
            out.append(((role, target), aggregate))
        return out

    def all_addresses(self) -> List[Tuple[Role, Union[int, None]]]:
        """Every live aggregate address."""
        out: List[Tuple[Role, Union[int, None]]] = [(Role.MARKET, None), (Role.NATURE, None)]
        out.extend((Role.INSURER, i) for i in sorted(self.insurers))
        out.extend((Role.INSURED, i) for i in sorted(self.insureds))
        out.extend((Role.BROKER, i) for i in sorted(self.brokers))
        return out
