"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from insurance_market.config import (
    AttritionalConfig,
    BrokerConfig,
    Config,
    InsuredConfig,
    InsurerConfig,
    LifecycleConfig,
    LoggingConfig,
    PanelConfig,
    PricingConfig,
    RoutingConfig,
    SimulationConfig,
    UnderwritingConfig,
)
from insurance_market.events import PanelEntry, Peril, PolicyBound, Risk


@pytest.fixture
def rng():
    """Fresh seeded generator."""
    return np.random.default_rng(12345)


@pytest.fixture
def flood_risk():
    """Small UK flood risk with round numbers: SI 100, limit 100, no attachment."""
    return Risk(
        sum_insured=100,
        territory="UK",
        limit=100,
        attachment=0,
        perils_covered=(Peril.FLOOD,),
    )


@pytest.fixture
def layered_risk():
    """US wind risk with a retention, for layer arithmetic."""
    return Risk(
        sum_insured=1_000,
        territory="US-SE",
        limit=500,
        attachment=100,
        perils_covered=(Peril.WINDSTORM_ATLANTIC, Peril.ATTRITIONAL),
    )


@pytest.fixture
def make_config(flood_risk):
    """Factory for a one-insured, one-broker market with fixed-rate pricing.

    Attritional losses are switched off and no catastrophes are configured,
    so nothing happens that a test does not schedule itself.
    """

    def _make(
        capitals=(1_000,),
        max_rate_on_line=0.15,
        rate_on_line=0.05,
        underwriting=None,
        lifecycle=None,
        routing="round_robin",
        panel=None,
        catastrophes=(),
        attritional_rate=0.0,
        risk=None,
        years=1,
        seed=42,
    ):
        if lifecycle is None:
            lifecycle = LifecycleConfig(max_quote_attempts=min(3, len(capitals)))
        return Config(
            simulation=SimulationConfig(seed=seed, years=years),
            lifecycle=lifecycle,
            underwriting=underwriting or UnderwritingConfig(max_line_fraction=1.0),
            pricing=PricingConfig(method="fixed", rate_on_line=rate_on_line),
            routing=RoutingConfig(method=routing),
            panel=panel or PanelConfig(),
            attritional=AttritionalConfig(annual_rate=attritional_rate),
            catastrophes=list(catastrophes),
            insurers=[InsurerConfig(id=i, capital=c) for i, c in enumerate(capitals)],
            insureds=[
                InsuredConfig(
                    id=0,
                    broker_id=0,
                    risk=risk or flood_risk,
                    max_rate_on_line=max_rate_on_line,
                )
            ],
            brokers=[BrokerConfig(id=0)],
            logging=LoggingConfig(enabled=False),
        )

    return _make


@pytest.fixture
def make_bound(flood_risk):
    """Factory for a single-lead ``PolicyBound`` outside the quoting flow."""

    def _make(policy_id=0, insurer_id=0, premium=0, risk=None, insured_id=0, broker_id=0):
        risk = risk or flood_risk
        return PolicyBound(
            policy_id=policy_id,
            submission_id=policy_id,
            insured_id=insured_id,
            broker_id=broker_id,
            insurer_id=insurer_id,
            premium=premium,
            sum_insured=risk.sum_insured,
            risk=risk,
            panel=(PanelEntry(insurer_id=insurer_id, share_bps=10_000, premium=premium),),
        )

    return _make
