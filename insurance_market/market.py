"""Market coordinator: policy map, loss index and industry statistics.

The coordinator is a router, not a participant. It makes no pricing or
acceptance decision; it owns only cross-aggregate indices and totals:

* the policy map, with each policy's stage (``pending -> bound -> expired``),
  terms, panel, bind and expiry days and per-year ground-up headroom;
* the ``(territory, peril) -> policy ids`` loss index, mutated only by
  ``PolicyBound`` (insert) and ``PolicyExpired`` (remove);
* per-year bound premium and settled claims, published at ``YearEnd`` as
  the industry benchmark effective from the following day;
* the year calendar (``YearStart`` / ``YearEnd`` scheduling).

Loss routing converges on one settlement path for both loss classes::

    gul          = min(round(damage_fraction * sum_insured), headroom[year])
    insured_loss = max(min(gul, limit) - attachment, 0)

``insured_loss`` is split over the panel by ``share_bps`` with the floor of
each share and the remainder added to the lead entry, so the split
conserves the total exactly. A policy is eligible for an occurrence on day
``d`` only when ``bound_day < d < expiry_day``.

Since:
    Version 0.1.0
"""

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from .config.market import LifecycleConfig
from .events import (
    AttritionalLoss,
    ClaimSettled,
    Event,
    InsuredLoss,
    InsurerInsolvent,
    LossEvent,
    MarketStatsPublished,
    PanelEntry,
    Peril,
    PolicyBound,
    PolicyExpired,
    QuoteAccepted,
    Risk,
    Scheduled,
    YearEnd,
    YearStart,
)
from .market_types import (
    BASIS_POINTS,
    DAYS_PER_YEAR,
    BrokerId,
    Day,
    IdAllocator,
    InsuredId,
    InsurerId,
    PolicyId,
    SubmissionId,
    year_of,
)

logger = logging.getLogger(__name__)

LossKey = Tuple[str, Peril]


class PolicyStage(str, Enum):
    """Lifecycle stage of a policy."""

    PENDING = "pending"
    BOUND = "bound"
    EXPIRED = "expired"


@dataclass
class PolicyRecord:
    """One policy in the coordinator's map.

    Attributes:
        policy_id: Coordinator-allocated id.
        submission_id: Submission the policy was placed from.
        insured_id: Policyholder.
        broker_id: Placing broker.
        insurer_id: Lead insurer.
        premium: Total premium.
        risk: Coverage terms.
        stage: Lifecycle stage.
        panel: Panel shares; lead entry first.
        bound_day: Day ``PolicyBound`` was handled.
        expiry_day: Day the policy stops covering occurrences.
        headroom: Remaining ground-up capacity per calendar year; a year
            absent from the map has the full sum insured.
    """

    policy_id: PolicyId
    submission_id: SubmissionId
    insured_id: InsuredId
    broker_id: BrokerId
    insurer_id: InsurerId
    premium: int
    risk: Risk
    stage: PolicyStage = PolicyStage.PENDING
    panel: Tuple[PanelEntry, ...] = ()
    bound_day: Optional[Day] = None
    expiry_day: Optional[Day] = None
    headroom: Dict[int, int] = field(default_factory=dict)

    def covers_day(self, day: Day) -> bool:
        """Whether an occurrence on ``day`` falls inside the cover window."""
        return (
            self.stage is PolicyStage.BOUND
            and self.bound_day is not None
            and self.expiry_day is not None
            and self.bound_day < day < self.expiry_day
        )

    def remaining_headroom(self, year: int) -> int:
        """Ground-up capacity left in ``year``."""
        return self.headroom.get(year, self.risk.sum_insured)


def split_claim(amount: int, panel: Tuple[PanelEntry, ...]) -> List[Tuple[int, int]]:
    """Pro-rate ``amount`` across ``panel`` by share.

    Each entry receives ``floor(amount * share_bps / 10000)``; the rounding
    remainder goes to the lead (first) entry.

    Returns:
        ``(insurer_id, amount)`` pairs in panel order.

    Examples:
        >>> split_claim(100, (PanelEntry(insurer_id=1, share_bps=3333, premium=0),
        ...                   PanelEntry(insurer_id=2, share_bps=6667, premium=0)))
        [(1, 34), (2, 66)]
    """
    shares = [(entry.insurer_id, amount * entry.share_bps // BASIS_POINTS) for entry in panel]
    remainder = amount - sum(s for _, s in shares)
    if shares and remainder:
        lead_id, lead_amount = shares[0]
        shares[0] = (lead_id, lead_amount + remainder)
    return shares


@dataclass
class MarketCoordinator:
    """Market coordinator aggregate state.

    Attributes:
        lifecycle: Offsets for binding and expiry.
        years: Number of simulated years; no ``YearStart`` follows the last.
        initial_benchmark: Benchmark loss ratio before the first
            published year.
        policy_ids: Policy id allocator.
        policies: Policy map.
        loss_index: Bound policies by ``(territory, peril)``; values are
            insertion-ordered sets.
        year_premium: Bound premium per calendar year.
        year_claims: Settled claims per calendar year.
        industry_loss_ratio: Latest published benchmark.
        current_year: Last year opened by ``YearStart``.
        insolvent_insurers: Insurers that have failed, with the day.
    """

    lifecycle: LifecycleConfig = field(compare=False, repr=False)
    years: int = 1
    initial_benchmark: float = 0.65
    policy_ids: IdAllocator = field(default_factory=IdAllocator)
    policies: Dict[int, PolicyRecord] = field(default_factory=dict)
    loss_index: Dict[LossKey, Dict[int, None]] = field(default_factory=dict)
    year_premium: Dict[int, int] = field(default_factory=dict)
    year_claims: Dict[int, int] = field(default_factory=dict)
    industry_loss_ratio: Optional[float] = None
    current_year: int = 0
    insolvent_insurers: Dict[int, Day] = field(default_factory=dict)

    def handle(self, event: Event, day: Day, rng: np.random.Generator) -> List[Scheduled]:
        """Apply ``event`` and return the events it causes."""
        if isinstance(event, QuoteAccepted):
            return self._on_quote_accepted(event)
        if isinstance(event, PolicyBound):
            return self._on_policy_bound(event, day)
        if isinstance(event, PolicyExpired):
            return self._on_policy_expired(event)
        if isinstance(event, LossEvent):
            return self._on_loss_event(event, day)
        if isinstance(event, AttritionalLoss):
            return self._on_attritional_loss(event, day)
        if isinstance(event, InsuredLoss):
            return self._on_insured_loss(event)
        if isinstance(event, ClaimSettled):
            year = year_of(day)
            self.year_claims[year] = self.year_claims.get(year, 0) + event.amount
            return []
        if isinstance(event, InsurerInsolvent):
            self.insolvent_insurers.setdefault(event.insurer_id, day)
            return []
        if isinstance(event, YearStart):
            self.current_year = event.year
            return [(DAYS_PER_YEAR, YearEnd(year=event.year))]
        if isinstance(event, YearEnd):
            return self._on_year_end(event, day)
        return []

    # ------------------------------------------------------------------ #
    #  Views
    # ------------------------------------------------------------------ #

    def policies_for(self, territory: str, peril: Peril) -> List[int]:
        """Bound policy ids indexed under ``(territory, peril)``."""
        return list(self.loss_index.get((territory, peril), ()))

    def bound_policy_count(self) -> int:
        """Number of policies currently bound."""
        return sum(1 for p in self.policies.values() if p.stage is PolicyStage.BOUND)

    # ------------------------------------------------------------------ #
    #  Binding and expiry
    # ------------------------------------------------------------------ #

    def _on_quote_accepted(self, event: QuoteAccepted) -> List[Scheduled]:
        policy_id = self.policy_ids.allocate()
        panel = event.panel or (
            PanelEntry(insurer_id=event.insurer_id, share_bps=BASIS_POINTS, premium=event.premium),
        )
        self.policies[policy_id] = PolicyRecord(
            policy_id=policy_id,
            submission_id=event.submission_id,
            insured_id=event.insured_id,
            broker_id=event.broker_id,
            insurer_id=event.insurer_id,
            premium=event.premium,
            risk=event.risk,
            panel=panel,
        )
        return [
            (
                self.lifecycle.bind_offset,
                PolicyBound(
                    policy_id=policy_id,
                    submission_id=event.submission_id,
                    insured_id=event.insured_id,
                    broker_id=event.broker_id,
                    insurer_id=event.insurer_id,
                    premium=event.premium,
                    sum_insured=event.risk.sum_insured,
                    risk=event.risk,
                    panel=panel,
                ),
            )
        ]

    def _on_policy_bound(self, event: PolicyBound, day: Day) -> List[Scheduled]:
        record = self.policies.get(event.policy_id)
        if record is None:
            # Bound outside the quoting flow: adopt it and keep the allocator ahead.
            record = PolicyRecord(
                policy_id=event.policy_id,
                submission_id=event.submission_id,
                insured_id=event.insured_id,
                broker_id=event.broker_id,
                insurer_id=event.insurer_id,
                premium=event.premium,
                risk=event.risk,
            )
            self.policies[event.policy_id] = record
            self.policy_ids.next_id = max(self.policy_ids.next_id, event.policy_id + 1)
        elif record.stage is not PolicyStage.PENDING:
            logger.warning("Policy %d bound twice; ignoring", event.policy_id)
            return []

        record.stage = PolicyStage.BOUND
        record.panel = event.panel
        record.bound_day = day
        record.expiry_day = day + self.lifecycle.policy_term_days
        for peril in event.risk.perils_covered:
            self.loss_index.setdefault((event.risk.territory, peril), {})[event.policy_id] = None

        year = year_of(day)
        self.year_premium[year] = self.year_premium.get(year, 0) + event.premium
        return [
            (
                self.lifecycle.policy_term_days,
                PolicyExpired(
                    policy_id=event.policy_id,
                    insured_id=event.insured_id,
                    insurer_ids=tuple(entry.insurer_id for entry in event.panel),
                ),
            )
        ]

    def _on_policy_expired(self, event: PolicyExpired) -> List[Scheduled]:
        record = self.policies.get(event.policy_id)
        if record is None or record.stage is not PolicyStage.BOUND:
            logger.warning("Unknown or retired policy %d cannot expire", event.policy_id)
            return []
        record.stage = PolicyStage.EXPIRED
        for peril in record.risk.perils_covered:
            key = (record.risk.territory, peril)
            bucket = self.loss_index.get(key)
            if bucket is not None:
                bucket.pop(event.policy_id, None)
                if not bucket:
                    del self.loss_index[key]
        return []

    # ------------------------------------------------------------------ #
    #  Loss routing
    # ------------------------------------------------------------------ #

    def _ground_up(
        self, record: PolicyRecord, damage_fraction: float, day: Day
    ) -> int:
        year = year_of(day)
        remaining = record.remaining_headroom(year)
        gul = min(int(round(damage_fraction * record.risk.sum_insured)), remaining)
        record.headroom[year] = remaining - gul
        assert record.headroom[year] >= 0
        return gul

    def _on_loss_event(self, event: LossEvent, day: Day) -> List[Scheduled]:
        out: List[Scheduled] = []
        for policy_id in self.policies_for(event.territory, event.peril):
            record = self.policies[policy_id]
            if not record.covers_day(day):
                continue
            gul = self._ground_up(record, event.damage_fraction, day)
            if gul > 0:
                out.append(
                    (
                        0,
                        InsuredLoss(
                            policy_id=policy_id,
                            insured_id=record.insured_id,
                            peril=event.peril,
                            ground_up_loss=gul,
                            loss_event_id=event.event_id,
                        ),
                    )
                )
        if out:
            logger.debug(
                "Loss event %d (%s, %s) hits %d policies",
                event.event_id,
                event.peril.value,
                event.territory,
                len(out),
            )
        return out

    def _on_attritional_loss(self, event: AttritionalLoss, day: Day) -> List[Scheduled]:
        record = self.policies.get(event.policy_id)
        if record is None or not record.covers_day(day):
            logger.warning("Attritional loss %d for ineligible policy %d", event.event_id, event.policy_id)
            return []
        gul = self._ground_up(record, event.damage_fraction, day)
        if gul <= 0:
            return []
        return [
            (
                0,
                InsuredLoss(
                    policy_id=event.policy_id,
                    insured_id=record.insured_id,
                    peril=Peril.ATTRITIONAL,
                    ground_up_loss=gul,
                    loss_event_id=event.event_id,
                ),
            )
        ]

    def _on_insured_loss(self, event: InsuredLoss) -> List[Scheduled]:
        record = self.policies.get(event.policy_id)
        if record is None or record.stage is PolicyStage.PENDING:
            logger.warning("Insured loss for unknown policy %d", event.policy_id)
            return []
        risk = record.risk
        insured_loss = max(min(event.ground_up_loss, risk.limit) - risk.attachment, 0)
        if insured_loss == 0:
            return []
        return [
            (
                0,
                ClaimSettled(
                    policy_id=event.policy_id,
                    insurer_id=insurer_id,
                    peril=event.peril,
                    amount=amount,
                ),
            )
            for insurer_id, amount in split_claim(insured_loss, record.panel)
            if amount > 0
        ]

    # ------------------------------------------------------------------ #
    #  Calendar
    # ------------------------------------------------------------------ #

    def _on_year_end(self, event: YearEnd, day: Day) -> List[Scheduled]:
        premium = self.year_premium.get(event.year, 0)
        claims = self.year_claims.get(event.year, 0)
        if premium > 0:
            self.industry_loss_ratio = claims / premium
        ratio = self.industry_loss_ratio
        if ratio is None:
            ratio = self.initial_benchmark
        logger.info(
            "Year %d closed: premium %d, claims %d, industry loss ratio %.3f",
            event.year,
            premium,
            claims,
            ratio,
        )
        out: List[Scheduled] = [
            (
                0,
                MarketStatsPublished(
                    year=event.year,
                    industry_loss_ratio=ratio,
                    bound_premium=premium,
                    claims_paid=claims,
                    effective_day=day + 1,
                ),
            )
        ]
        if event.year < self.years:
            out.append((0, YearStart(year=event.year + 1)))
        return out
