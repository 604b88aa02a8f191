"""Pluggable premium functions.

The quoting handler treats "what premium should this insurer quote" as an
injected capability. A pricing function receives the risk, the insurer's
current experience, the market benchmark loss ratio effective on the quote
day, and the run's generator, and returns an integer premium. It must be
deterministic given those inputs.

Three functions are provided:

* :class:`FixedRatePricing` quotes a constant rate on line.
* :class:`ExpectedLossPricing` prices the modelled expected layer loss,
  following the pure premium, technical premium, market premium chain.
* :class:`ExperienceRatedPricing` scales a base function by a credibility
  blend of the insurer's own loss ratio and the industry benchmark.

Examples:
    Build the function configured for an insurer::

        from insurance_market.pricing import build_pricing

        pricing = build_pricing(config.pricing_for(insurer), config.attritional, config.catastrophes)
        premium = pricing(risk, Experience(loss_ratio=0.8, years=2), 0.65, rng)

Since:
    Version 0.1.0
"""

from dataclasses import dataclass
import logging
from typing import Dict, List, Optional, Protocol, Sequence

import numpy as np
from scipy import integrate, stats

from .config.market import PricingConfig
from .config.perils import AttritionalConfig, CatPerilConfig
from .events import Peril, Risk

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Experience:
    """An insurer's own experience as seen on the quote day.

    Attributes:
        loss_ratio: EWMA of closed-year loss ratios, or None before the
            first year with written premium closes.
        years: Number of closed years folded into ``loss_ratio``.
    """

    loss_ratio: Optional[float] = None
    years: int = 0


class PricingFunction(Protocol):
    """Premium function contract."""

    def __call__(
        self,
        risk: Risk,
        experience: Experience,
        benchmark: float,
        rng: np.random.Generator,
    ) -> int:
        """Return the premium to quote for ``risk``."""


@dataclass(frozen=True)
class PremiumBreakdown:
    """Pricing details for a single risk.

    Attributes:
        expected_layer_loss: Expected annual loss to the policy layer.
        pure_premium: Expected loss cost.
        technical_premium: Pure premium with risk loading.
        market_premium: Technical premium grossed up by the target loss
            ratio, after floor and cap.
        rate_on_line: Market premium per unit of limit.
    """

    expected_layer_loss: float
    pure_premium: float
    technical_premium: float
    market_premium: int
    rate_on_line: float


@dataclass(frozen=True)
class FixedRatePricing:
    """Quote ``rate_on_line`` times the risk's limit."""

    rate_on_line: float

    def __call__(
        self,
        risk: Risk,
        experience: Experience,
        benchmark: float,
        rng: np.random.Generator,
    ) -> int:
        return int(round(self.rate_on_line * risk.limit))


class ExpectedLossPricing:
    """Price the modelled expected annual loss to the policy layer.

    Each occurrence damages a fraction ``X`` of the sum insured (clipped to
    1), and the layer pays ``clip(X * SI - attachment, 0, limit - attachment)``.
    Its expectation is the limited-expected-value difference::

        SI * integral_{attachment/SI}^{limit/SI} P(X > x) dx

    which is integrated numerically once per distinct risk and cached.

    Args:
        attritional: Per-policy occurrence parameters.
        catastrophes: Catastrophe perils; those matching a risk's
            ``(territory, peril)`` contribute their frequency.
        target_loss_ratio: Claims-to-premium ratio priced for.
        risk_loading: Uncertainty loading on the pure premium.
        min_premium: Premium floor.
        max_rate_on_line: Premium cap per unit of limit.

    Examples:
        Pricing an attritional book::

            pricer = ExpectedLossPricing(AttritionalConfig(), [], target_loss_ratio=0.7)
            pricer.price_breakdown(risk).rate_on_line
    """

    def __init__(
        self,
        attritional: AttritionalConfig,
        catastrophes: Sequence[CatPerilConfig],
        target_loss_ratio: float = 0.70,
        risk_loading: float = 0.10,
        min_premium: int = 0,
        max_rate_on_line: float = 1.0,
    ):
        if target_loss_ratio <= 0:
            raise ValueError(f"Target loss ratio must be positive, got {target_loss_ratio}")
        self.attritional = attritional
        self.catastrophes: List[CatPerilConfig] = list(catastrophes)
        self.target_loss_ratio = target_loss_ratio
        self.risk_loading = risk_loading
        self.min_premium = min_premium
        self.max_rate_on_line = max_rate_on_line
        self._cache: Dict[Risk, PremiumBreakdown] = {}

    def _layer_severity(self, dist, risk: Risk) -> float:
        lower = risk.attachment / risk.sum_insured
        upper = risk.limit / risk.sum_insured
        value, _ = integrate.quad(dist.sf, lower, upper)
        return risk.sum_insured * value

    def expected_layer_loss(self, risk: Risk) -> float:
        """Expected annual loss to the layer across all covered perils."""
        expected = 0.0
        if risk.covers(Peril.ATTRITIONAL) and self.attritional.annual_rate > 0:
            dist = stats.lognorm(s=self.attritional.sigma, scale=np.exp(self.attritional.mu))
            expected += self.attritional.annual_rate * self._layer_severity(dist, risk)
        for cat in self.catastrophes:
            if cat.territory == risk.territory and risk.covers(cat.peril):
                if cat.annual_frequency <= 0:
                    continue
                dist = stats.pareto(b=cat.pareto_shape, scale=cat.pareto_scale)
                expected += cat.annual_frequency * self._layer_severity(dist, risk)
        return expected

    def price_breakdown(self, risk: Risk) -> PremiumBreakdown:
        """Full pricing chain for ``risk`` (cached per distinct risk)."""
        cached = self._cache.get(risk)
        if cached is not None:
            return cached

        expected = self.expected_layer_loss(risk)
        pure_premium = expected
        technical_premium = pure_premium * (1 + self.risk_loading)
        market = technical_premium / self.target_loss_ratio
        market = max(market, self.min_premium)
        market = min(market, risk.limit * self.max_rate_on_line)
        premium = int(round(market))

        breakdown = PremiumBreakdown(
            expected_layer_loss=expected,
            pure_premium=pure_premium,
            technical_premium=technical_premium,
            market_premium=premium,
            rate_on_line=premium / risk.limit,
        )
        self._cache[risk] = breakdown
        logger.debug(
            "Priced %s risk in %s: expected layer loss %.0f, premium %d",
            risk.line_of_business,
            risk.territory,
            expected,
            premium,
        )
        return breakdown

    def __call__(
        self,
        risk: Risk,
        experience: Experience,
        benchmark: float,
        rng: np.random.Generator,
    ) -> int:
        return self.price_breakdown(risk).market_premium


@dataclass
class ExperienceRatedPricing:
    """Scale a base premium by blended experience.

    The blended loss ratio is ``Z * own + (1 - Z) * benchmark`` with
    credibility ``Z``; an insurer without closed years relies on the
    benchmark alone. The multiplier ``blended / target_loss_ratio`` is
    clamped to ``[min_factor, max_factor]`` so a single catastrophic year
    cannot price the insurer out of the market entirely.
    """

    base: PricingFunction
    target_loss_ratio: float = 0.70
    credibility: float = 0.3
    min_factor: float = 0.5
    max_factor: float = 3.0
    max_rate_on_line: float = 1.0

    def blended_loss_ratio(self, experience: Experience, benchmark: float) -> float:
        """Credibility-weighted loss ratio."""
        if experience.loss_ratio is None:
            return benchmark
        z = self.credibility
        return z * experience.loss_ratio + (1 - z) * benchmark

    def factor(self, experience: Experience, benchmark: float) -> float:
        """Multiplier applied to the base premium."""
        raw = self.blended_loss_ratio(experience, benchmark) / self.target_loss_ratio
        return float(np.clip(raw, self.min_factor, self.max_factor))

    def __call__(
        self,
        risk: Risk,
        experience: Experience,
        benchmark: float,
        rng: np.random.Generator,
    ) -> int:
        base_premium = self.base(risk, experience, benchmark, rng)
        premium = base_premium * self.factor(experience, benchmark)
        return int(round(min(premium, risk.limit * self.max_rate_on_line)))


def build_pricing(
    pricing: PricingConfig,
    attritional: AttritionalConfig,
    catastrophes: Sequence[CatPerilConfig],
) -> PricingFunction:
    """Construct the premium function selected by ``pricing``.

    Args:
        pricing: Pricing section applying to one insurer.
        attritional: Market attritional parameters.
        catastrophes: Market catastrophe parameters.

    Returns:
        A callable satisfying :class:`PricingFunction`.
    """

    def _simple(method: str) -> PricingFunction:
        if method == "fixed":
            return FixedRatePricing(rate_on_line=pricing.rate_on_line)
        return ExpectedLossPricing(
            attritional,
            catastrophes,
            target_loss_ratio=pricing.target_loss_ratio,
            risk_loading=pricing.risk_loading,
            min_premium=pricing.min_premium,
            max_rate_on_line=pricing.max_rate_on_line,
        )

    if pricing.method != "experience_rated":
        return _simple(pricing.method)
    return ExperienceRatedPricing(
        base=_simple(pricing.base_method),
        target_loss_ratio=pricing.target_loss_ratio,
        credibility=pricing.credibility,
        min_factor=pricing.min_experience_factor,
        max_factor=pricing.max_experience_factor,
        max_rate_on_line=pricing.max_rate_on_line,
    )
