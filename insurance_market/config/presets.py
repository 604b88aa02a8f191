"""Ready-made market populations.

Since:
    Version 0.1.0
"""

from typing import Dict, List, Tuple

from ..events import Peril, Risk
from .agents import BrokerConfig, InsuredConfig, InsurerConfig
from .core import Config
from .market import PanelConfig, PricingConfig
from .perils import CatPerilConfig
from .simulation import SimulationConfig

# All monetary values are in pence.
RISK_TEMPLATES: Dict[str, Risk] = {
    "large_us_wind": Risk(
        sum_insured=10_000_000_000,
        territory="US-SE",
        limit=5_000_000_000,
        attachment=500_000_000,
        perils_covered=(Peril.WINDSTORM_ATLANTIC,),
    ),
    "medium_us_flood": Risk(
        sum_insured=2_000_000_000,
        territory="US-SE",
        limit=1_000_000_000,
        attachment=100_000_000,
        perils_covered=(Peril.FLOOD,),
    ),
    "eu_property": Risk(
        sum_insured=1_000_000_000,
        territory="EU",
        limit=500_000_000,
        attachment=50_000_000,
        perils_covered=(Peril.WINDSTORM_EUROPEAN, Peril.FLOOD),
    ),
    "uk_property": Risk(
        sum_insured=500_000_000,
        territory="UK",
        limit=200_000_000,
        attachment=20_000_000,
        perils_covered=(Peril.ATTRITIONAL,),
    ),
    "us_earthquake": Risk(
        sum_insured=3_000_000_000,
        territory="US-CA",
        limit=1_500_000_000,
        attachment=200_000_000,
        perils_covered=(Peril.EARTHQUAKE_US,),
    ),
    "jp_property": Risk(
        sum_insured=3_000_000_000,
        territory="JP",
        limit=1_500_000_000,
        attachment=200_000_000,
        perils_covered=(Peril.EARTHQUAKE_JAPAN,),
    ),
}
"""Reusable coverage terms keyed by a short description."""

# (capital, base rate on line) in three size tiers
_INSURER_TIERS: List[Tuple[int, float]] = [
    (50_000_000_000, 0.045),
    (50_000_000_000, 0.050),
    (50_000_000_000, 0.055),
    (20_000_000_000, 0.050),
    (20_000_000_000, 0.055),
    (20_000_000_000, 0.060),
    (20_000_000_000, 0.062),
    (20_000_000_000, 0.058),
    (20_000_000_000, 0.065),
    (8_000_000_000, 0.055),
    (8_000_000_000, 0.060),
    (8_000_000_000, 0.0625),
    (8_000_000_000, 0.065),
    (8_000_000_000, 0.0675),
    (8_000_000_000, 0.070),
]

_BROKER_BOOKS: Dict[int, List[Tuple[int, str, str]]] = {
    1: [
        (101, "Atlantic Energy Corp", "large_us_wind"),
        (102, "Gulf Flood Holdings", "medium_us_flood"),
        (103, "Pacific Seismic Group", "us_earthquake"),
        (104, "Anglo-American Properties", "uk_property"),
    ],
    2: [
        (201, "Mississippi Commercial Trust", "medium_us_flood"),
        (202, "Southern Wind Power", "large_us_wind"),
        (203, "Thames Valley Properties", "uk_property"),
        (204, "Continental European Holdings", "eu_property"),
    ],
    3: [
        (301, "Rhine Delta Industrial", "eu_property"),
        (302, "British Retail Property", "uk_property"),
        (303, "North Sea Flood Group", "medium_us_flood"),
        (304, "US Atlantic Wind Portfolio", "large_us_wind"),
    ],
    4: [
        (401, "Osaka Manufacturing Hub", "jp_property"),
        (402, "Silicon Valley Industrial", "us_earthquake"),
        (403, "Hamburg Port Authority", "eu_property"),
        (404, "London Commercial Property", "uk_property"),
    ],
}


def canonical_market(seed: int = 42, years: int = 5) -> Config:
    """Build the reference market population.

    Fifteen insurers in three capital tiers, each experience-rating its own
    fixed base rate; four brokers placing sixteen insureds across five
    catastrophe territories and one attritional book. Every lead is followed
    by up to three insurers writing 15% of the line each.

    Args:
        seed: Seed of the run's random generator.
        years: Number of simulated years.

    Returns:
        A validated-ready :class:`Config`.

    Examples:
        Run the reference market::

            from insurance_market import Simulation
            from insurance_market.config.presets import canonical_market

            sim = Simulation.from_config(canonical_market(seed=1))
            sim.run()
    """
    insurers = [
        InsurerConfig(
            id=index,
            name=f"Syndicate {index}",
            capital=capital,
            pricing=PricingConfig(
                method="experience_rated", base_method="fixed", rate_on_line=rate
            ),
        )
        for index, (capital, rate) in enumerate(_INSURER_TIERS, start=1)
    ]

    insureds = []
    brokers = []
    for broker_id, book in _BROKER_BOOKS.items():
        brokers.append(BrokerConfig(id=broker_id, name=f"Broker {broker_id}"))
        for insured_id, name, template in book:
            insureds.append(
                InsuredConfig(
                    id=insured_id,
                    name=name,
                    broker_id=broker_id,
                    risk=RISK_TEMPLATES[template],
                    max_rate_on_line=0.07 if template != "uk_property" else 0.09,
                )
            )

    catastrophes = [
        CatPerilConfig(peril=Peril.WINDSTORM_ATLANTIC, territory="US-SE", annual_frequency=0.5),
        CatPerilConfig(peril=Peril.FLOOD, territory="US-SE", annual_frequency=0.3),
        CatPerilConfig(peril=Peril.WINDSTORM_EUROPEAN, territory="EU", annual_frequency=0.4),
        CatPerilConfig(peril=Peril.FLOOD, territory="EU", annual_frequency=0.3),
        CatPerilConfig(peril=Peril.EARTHQUAKE_US, territory="US-CA", annual_frequency=0.1),
        CatPerilConfig(peril=Peril.EARTHQUAKE_JAPAN, territory="JP", annual_frequency=0.1),
    ]

    return Config(
        simulation=SimulationConfig(seed=seed, years=years),
        panel=PanelConfig(max_followers=3, follower_share_bps=1_500),
        catastrophes=catastrophes,
        insurers=insurers,
        insureds=insureds,
        brokers=brokers,
    )
