"""Insured aggregate: coverage demand and the accept/reject decision.

An insured holds one asset (its :class:`~insurance_market.events.Risk`) and a
reservation price expressed as a maximum rate on line. A presented quote is
accepted when ``premium / limit`` does not exceed the reservation price plus
a post-loss uplift: suffering damage makes the insured temporarily willing
to pay more, and the uplift decays at every year end.

Coverage is sought at the start of the run, again the day a policy expires,
and again ``renewal_offset`` days after a rejection or a dropped submission.

Since:
    Version 0.1.0
"""

from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional

import numpy as np

from .config.market import LifecycleConfig
from .events import (
    CoverageRequested,
    Event,
    InsuredLoss,
    PolicyBound,
    PolicyExpired,
    QuoteAccepted,
    QuotePresented,
    QuoteRejected,
    Risk,
    Scheduled,
    SimulationStart,
    SubmissionDropped,
    YearEnd,
)
from .market_types import BrokerId, Day, InsuredId, PolicyId, year_of

logger = logging.getLogger(__name__)

UPLIFT_FACTOR: float = 0.5
"""Uplift added per unit of damage fraction suffered."""

UPLIFT_DECAY: float = 0.65
"""Multiplier applied to the uplift at each year end."""

MAX_UPLIFT: float = 0.5
"""Cap on the uplift above the base reservation rate."""


@dataclass
class Insured:
    """Insured aggregate state.

    Attributes:
        insured_id: Identity carried by coverage and loss events.
        broker_id: Broker placing this insured's cover.
        risk: Coverage terms requested at every renewal.
        max_rate_on_line: Base reservation rate; never mutated.
        lifecycle: Offsets used when requesting cover.
        uplift: Current post-loss uplift of the reservation rate.
        ground_up_losses: Ground-up loss suffered per calendar year.
        active_policy_id: Policy currently in force, if any.
        policies_bound: Number of policies bound for this insured.
        quotes_rejected: Number of quotes rejected on price.
    """

    insured_id: InsuredId
    broker_id: BrokerId
    risk: Risk
    max_rate_on_line: float
    lifecycle: LifecycleConfig = field(compare=False, repr=False)
    uplift: float = 0.0
    ground_up_losses: Dict[int, int] = field(default_factory=dict)
    active_policy_id: Optional[PolicyId] = None
    policies_bound: int = 0
    quotes_rejected: int = 0

    @property
    def effective_max_rate_on_line(self) -> float:
        """Reservation rate including the post-loss uplift."""
        return self.max_rate_on_line + self.uplift

    def accepts(self, premium: int) -> bool:
        """Whether a quote of ``premium`` is within the reservation price."""
        return premium / self.risk.limit <= self.effective_max_rate_on_line

    def handle(self, event: Event, day: Day, rng: np.random.Generator) -> List[Scheduled]:
        """Apply ``event`` and return the events it causes."""
        if isinstance(event, SimulationStart):
            offset = int(rng.integers(0, self.lifecycle.initial_request_window))
            return [(offset, self._request())]
        if isinstance(event, QuotePresented):
            return self._on_quote_presented(event)
        if isinstance(event, SubmissionDropped):
            return [(self.lifecycle.renewal_offset, self._request())]
        if isinstance(event, PolicyBound):
            self.active_policy_id = event.policy_id
            self.policies_bound += 1
            return []
        if isinstance(event, PolicyExpired):
            return self._on_policy_expired(event)
        if isinstance(event, InsuredLoss):
            return self._on_insured_loss(event, day)
        if isinstance(event, YearEnd):
            self.uplift *= UPLIFT_DECAY
            return []
        return []

    def _request(self) -> CoverageRequested:
        return CoverageRequested(insured_id=self.insured_id, broker_id=self.broker_id, risk=self.risk)

    def _on_quote_presented(self, event: QuotePresented) -> List[Scheduled]:
        ids = dict(
            submission_id=event.submission_id,
            insured_id=self.insured_id,
            broker_id=event.broker_id,
            insurer_id=event.insurer_id,
            premium=event.premium,
        )
        if self.accepts(event.premium):
            return [(0, QuoteAccepted(risk=self.risk, panel=event.panel, **ids))]

        self.quotes_rejected += 1
        logger.debug(
            "Insured %d rejects premium %d (rate %.4f > %.4f)",
            self.insured_id,
            event.premium,
            event.premium / self.risk.limit,
            self.effective_max_rate_on_line,
        )
        return [
            (0, QuoteRejected(**ids)),
            (self.lifecycle.renewal_offset, self._request()),
        ]

    def _on_policy_expired(self, event: PolicyExpired) -> List[Scheduled]:
        if event.policy_id != self.active_policy_id:
            logger.warning(
                "Insured %d: expiry of policy %d which is not in force", self.insured_id, event.policy_id
            )
            return []
        self.active_policy_id = None
        return [(0, self._request())]

    def _on_insured_loss(self, event: InsuredLoss, day: Day) -> List[Scheduled]:
        year = year_of(day)
        self.ground_up_losses[year] = self.ground_up_losses.get(year, 0) + event.ground_up_loss
        damage = event.ground_up_loss / self.risk.sum_insured
        self.uplift = min(self.uplift + UPLIFT_FACTOR * damage, MAX_UPLIFT)
        return []
