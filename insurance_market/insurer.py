"""Insurer aggregate: quoting, premium credit, claim debit and insolvency.

The insurer owns its capital exclusively. Capital moves for exactly two
reasons: a premium credit when a policy it sits on is bound, and a claim
debit when a ``ClaimSettled`` names it. Debits never overdraw: a claim larger
than the remaining capital pays down to exactly zero, and the first time a
positive claim leaves capital at zero the insurer emits one
``InsurerInsolvent`` fact and refuses quote requests from the following day
on. Policies already bound run off normally.

Underwriting limits are computed from the insurer's position at the opening
of the quote day, so a depleted insurer tightens from the next day on and
every quote given on one day sees the same capital, solvency flag and
catastrophe exposure whatever else that day brings:

* line limit: ``line <= opening_capital * max_line_fraction``
* catastrophe aggregate: ``opening_exposure[(territory, peril)] + line <=
  opening_capital * cat_aggregate_fraction`` for every covered catastrophe
  peril

where ``line`` is the full limit for a lead quote and the requested share of
it for a follower quote. Followers write at the lead's price: their premium
is the lead premium scaled by the share.

Experience is tracked per calendar year (keyed by ``year_of(day)``) and
folded into an EWMA loss ratio at ``YearEnd``. Both that EWMA and the
published industry benchmark become effective on the day after the year
closes, so a quote never depends on whether a year-end fact was dispatched
before or after it on the same day.

Examples:
    Scenario of a single insolvency::

        insurer = Insurer(insurer_id=1, capital=40, underwriting=UnderwritingConfig(),
                          pricing=FixedRatePricing(0.05))
        insurer.handle(ClaimSettled(policy_id=0, insurer_id=1, peril=Peril.FLOOD, amount=40), 5, rng)
        # [(0, InsurerInsolvent(insurer_id=1))]
        insurer.handle(ClaimSettled(policy_id=0, insurer_id=1, peril=Peril.FLOOD, amount=40), 6, rng)
        # []

Since:
    Version 0.1.0
"""

from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from .config.market import UnderwritingConfig
from .events import (
    ClaimSettled,
    DeclineReason,
    Event,
    FollowerQuoteDeclined,
    FollowerQuoteIssued,
    FollowerQuoteRequested,
    InsurerInsolvent,
    LeadQuoteDeclined,
    LeadQuoteIssued,
    LeadQuoteRequested,
    MarketStatsPublished,
    Peril,
    PolicyBound,
    PolicyExpired,
    Risk,
    Scheduled,
    YearEnd,
)
from .market_types import BASIS_POINTS, Day, InsurerId, year_of
from .pricing import Experience, PricingFunction

logger = logging.getLogger(__name__)

ExposureKey = Tuple[str, Peril]


@dataclass
class Insurer:
    """Insurer aggregate state.

    Attributes:
        insurer_id: Identity carried by quote, panel and claim events.
        capital: Current capital; never negative.
        underwriting: Capital-linked limits and EWMA weight.
        pricing: Injected premium function.
        insolvent: Set once by the first claim that exhausts capital.
        year_premium: Premium credited per calendar year.
        year_claims: Claims incurred per calendar year.
        claims_paid: Total capital actually paid out.
        experience_history: ``(effective_day, ewma_loss_ratio)`` entries.
        benchmark_history: ``(effective_day, industry_loss_ratio)`` entries.
        cat_exposure: Bound limit share per ``(territory, peril)``.
        policy_exposure: Exposure contributed by each live policy, released
            on expiry.
        quotes_issued: Lead quotes issued.
        quotes_declined: Lead quotes declined, by reason.
        follower_quotes_issued: Follower quotes issued.
        follower_quotes_declined: Follower quotes declined, by reason.
        opening_day: Day the opening position was last taken.
        opening_capital: Capital at the opening of ``opening_day``.
        opening_insolvent: Solvency flag at the opening of ``opening_day``.
        opening_cat_exposure: Catastrophe exposure at the opening of
            ``opening_day``.
    """

    insurer_id: InsurerId
    capital: int
    underwriting: UnderwritingConfig = field(compare=False, repr=False)
    pricing: PricingFunction = field(compare=False, repr=False)
    insolvent: bool = False
    year_premium: Dict[int, int] = field(default_factory=dict)
    year_claims: Dict[int, int] = field(default_factory=dict)
    claims_paid: int = 0
    experience_history: List[Tuple[Day, float]] = field(default_factory=list)
    benchmark_history: List[Tuple[Day, float]] = field(default_factory=list)
    cat_exposure: Dict[ExposureKey, int] = field(default_factory=dict)
    policy_exposure: Dict[int, Tuple[Tuple[ExposureKey, int], ...]] = field(default_factory=dict)
    quotes_issued: int = 0
    quotes_declined: Dict[str, int] = field(default_factory=dict)
    follower_quotes_issued: int = 0
    follower_quotes_declined: Dict[str, int] = field(default_factory=dict)
    opening_day: Optional[Day] = None
    opening_capital: int = 0
    opening_insolvent: bool = False
    opening_cat_exposure: Dict[ExposureKey, int] = field(default_factory=dict)

    def __post_init__(self):
        if self.capital < 0:
            raise ValueError(f"Insurer {self.insurer_id}: capital must be non-negative")
        if self.opening_day is None:
            self.opening_capital = self.capital
            self.opening_insolvent = self.insolvent
            self.opening_cat_exposure = dict(self.cat_exposure)

    # ------------------------------------------------------------------ #
    #  Views
    # ------------------------------------------------------------------ #

    def experience_at(self, day: Day) -> Experience:
        """Own experience effective on ``day``."""
        effective = [lr for eff, lr in self.experience_history if eff <= day]
        if not effective:
            return Experience()
        return Experience(loss_ratio=effective[-1], years=len(effective))

    def benchmark_at(self, day: Day) -> float:
        """Industry loss ratio effective on ``day``."""
        value = self.underwriting.initial_benchmark_loss_ratio
        for eff, ratio in self.benchmark_history:
            if eff <= day:
                value = ratio
        return value

    def line_capacity(self) -> float:
        """Largest single line acceptable at opening capital."""
        return self.opening_capital * self.underwriting.max_line_fraction

    def cat_capacity(self) -> float:
        """Largest aggregate line per catastrophe key at opening capital."""
        return self.opening_capital * self.underwriting.cat_aggregate_fraction

    def exposure_at_quote(self, risk: Risk) -> int:
        """Largest opening exposure among the catastrophe keys of ``risk``."""
        return max(
            (self.opening_cat_exposure.get((risk.territory, p), 0) for p in risk.catastrophe_perils),
            default=0,
        )

    def decline_reason(self, risk: Risk, share_bps: int = BASIS_POINTS) -> Optional[DeclineReason]:
        """Reason this insurer would refuse ``share_bps`` of ``risk`` today, if any.

        Args:
            risk: Terms being quoted.
            share_bps: Share of the limit to be written; the whole line for
                a lead quote.

        Returns:
            The first failing check, or None if the line can be written.
        """
        if self.opening_insolvent:
            return DeclineReason.INSOLVENT
        line = risk.limit * share_bps // BASIS_POINTS
        if line > self.line_capacity():
            return DeclineReason.LINE_LIMIT
        for peril in risk.catastrophe_perils:
            current = self.opening_cat_exposure.get((risk.territory, peril), 0)
            if current + line > self.cat_capacity():
                return DeclineReason.CAT_AGGREGATE_LIMIT
        return None

    # ------------------------------------------------------------------ #
    #  Handlers
    # ------------------------------------------------------------------ #

    def handle(self, event: Event, day: Day, rng: np.random.Generator) -> List[Scheduled]:
        """Apply ``event`` and return the events it causes."""
        if day != self.opening_day:
            self._open_day(day)
        if isinstance(event, LeadQuoteRequested):
            return self._on_lead_quote_requested(event, day, rng)
        if isinstance(event, FollowerQuoteRequested):
            return self._on_follower_quote_requested(event)
        if isinstance(event, PolicyBound):
            return self._on_policy_bound(event, day)
        if isinstance(event, PolicyExpired):
            return self._on_policy_expired(event)
        if isinstance(event, ClaimSettled):
            return self._on_claim_settled(event, day)
        if isinstance(event, YearEnd):
            return self._on_year_end(event, day)
        if isinstance(event, MarketStatsPublished):
            self.benchmark_history.append((event.effective_day, event.industry_loss_ratio))
            return []
        return []

    def _open_day(self, day: Day) -> None:
        # Runs before the first event of a day touches any state.
        self.opening_day = day
        self.opening_capital = self.capital
        self.opening_insolvent = self.insolvent
        self.opening_cat_exposure = dict(self.cat_exposure)

    def _on_lead_quote_requested(
        self, event: LeadQuoteRequested, day: Day, rng: np.random.Generator
    ) -> List[Scheduled]:
        ids = dict(
            submission_id=event.submission_id,
            insured_id=event.insured_id,
            broker_id=event.broker_id,
            insurer_id=self.insurer_id,
        )
        reason = self.decline_reason(event.risk)
        if reason is not None:
            self.quotes_declined[reason.value] = self.quotes_declined.get(reason.value, 0) + 1
            logger.debug(
                "Insurer %d declines submission %d: %s", self.insurer_id, event.submission_id, reason.value
            )
            return [(0, LeadQuoteDeclined(reason=reason, **ids))]

        premium = self.pricing(event.risk, self.experience_at(day), self.benchmark_at(day), rng)
        self.quotes_issued += 1
        return [
            (
                0,
                LeadQuoteIssued(
                    premium=premium, cat_exposure_at_quote=self.exposure_at_quote(event.risk), **ids
                ),
            )
        ]

    def _on_follower_quote_requested(self, event: FollowerQuoteRequested) -> List[Scheduled]:
        ids = dict(
            submission_id=event.submission_id,
            insured_id=event.insured_id,
            broker_id=event.broker_id,
            insurer_id=self.insurer_id,
        )
        reason = self.decline_reason(event.risk, event.share_bps)
        if reason is not None:
            self.follower_quotes_declined[reason.value] = (
                self.follower_quotes_declined.get(reason.value, 0) + 1
            )
            return [(0, FollowerQuoteDeclined(reason=reason, **ids))]

        self.follower_quotes_issued += 1
        premium = event.lead_premium * event.share_bps // BASIS_POINTS
        return [(0, FollowerQuoteIssued(share_bps=event.share_bps, premium=premium, **ids))]

    def _on_policy_bound(self, event: PolicyBound, day: Day) -> List[Scheduled]:
        entry = next((e for e in event.panel if e.insurer_id == self.insurer_id), None)
        if entry is None:
            logger.warning(
                "Insurer %d is not on the panel of policy %d", self.insurer_id, event.policy_id
            )
            return []
        if event.policy_id in self.policy_exposure:
            logger.warning("Insurer %d: policy %d already bound", self.insurer_id, event.policy_id)
            return []

        self.capital += entry.premium
        year = year_of(day)
        self.year_premium[year] = self.year_premium.get(year, 0) + entry.premium

        share = event.risk.limit * entry.share_bps // BASIS_POINTS
        records = tuple(((event.risk.territory, p), share) for p in event.risk.catastrophe_perils)
        for key, amount in records:
            self.cat_exposure[key] = self.cat_exposure.get(key, 0) + amount
        self.policy_exposure[event.policy_id] = records
        return []

    def _on_policy_expired(self, event: PolicyExpired) -> List[Scheduled]:
        records = self.policy_exposure.pop(event.policy_id, None)
        if records is None:
            logger.warning("Insurer %d: unknown or retired policy %d", self.insurer_id, event.policy_id)
            return []
        for key, amount in records:
            remaining = self.cat_exposure.get(key, 0) - amount
            assert remaining >= 0, f"negative exposure for {key}"
            if remaining:
                self.cat_exposure[key] = remaining
            else:
                self.cat_exposure.pop(key, None)
        return []

    def _on_claim_settled(self, event: ClaimSettled, day: Day) -> List[Scheduled]:
        year = year_of(day)
        self.year_claims[year] = self.year_claims.get(year, 0) + event.amount

        paid = min(event.amount, self.capital)
        self.capital -= paid
        self.claims_paid += paid
        assert self.capital >= 0

        if self.capital == 0 and event.amount > 0 and not self.insolvent:
            self.insolvent = True
            logger.info("Insurer %d insolvent on day %d", self.insurer_id, day)
            return [(0, InsurerInsolvent(insurer_id=self.insurer_id))]
        return []

    def _on_year_end(self, event: YearEnd, day: Day) -> List[Scheduled]:
        premium = self.year_premium.get(event.year, 0)
        if premium <= 0:
            return []
        loss_ratio = self.year_claims.get(event.year, 0) / premium
        alpha = self.underwriting.ewma_alpha
        if self.experience_history:
            loss_ratio = alpha * loss_ratio + (1 - alpha) * self.experience_history[-1][1]
        self.experience_history.append((day + 1, loss_ratio))
        return []
