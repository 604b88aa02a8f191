"""Agent population configuration.

One entry per insurer, insured and broker taking part in the run. Ids are
the typed identities that events carry, so they must be unique within each
population; :meth:`Config.validate` checks this together with the
insured-to-broker references.

Since:
    Version 0.1.0
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field

from ..events import Risk
from .market import PricingConfig, RoutingConfig


class InsurerConfig(BaseModel):
    """Initial state of one insurer.

    Attributes:
        id: Insurer identity.
        name: Display name.
        capital: Opening capital in minor currency units.
        pricing: Insurer-specific pricing; falls back to the market default.

    Examples:
        A thinly capitalised fixed-rate writer::

            InsurerConfig(
                id=7,
                capital=8_000_000_000,
                pricing=PricingConfig(method="fixed", rate_on_line=0.065),
            )
    """

    id: int = Field(ge=0)
    name: str = ""
    capital: int = Field(gt=0, description="Opening capital")
    pricing: Optional[PricingConfig] = None


class InsuredConfig(BaseModel):
    """One insured and the asset it seeks cover for.

    Attributes:
        id: Insured identity.
        name: Display name.
        broker_id: Broker that places this insured's cover.
        risk: Coverage terms requested at every renewal.
        max_rate_on_line: Reservation price; the highest premium per unit of
            limit the insured accepts before any post-loss uplift.
    """

    id: int = Field(ge=0)
    name: str = ""
    broker_id: int = Field(ge=0)
    risk: Risk
    max_rate_on_line: float = Field(default=0.15, gt=0)


class BrokerConfig(BaseModel):
    """One broker.

    Attributes:
        id: Broker identity.
        name: Display name.
        routing: Broker-specific routing; falls back to the market default.
        relationship_scores: Starting relationship score per insurer id,
            used by relationship-score routing.
    """

    id: int = Field(ge=0)
    name: str = ""
    routing: Optional[RoutingConfig] = None
    relationship_scores: Dict[int, float] = Field(default_factory=dict)
