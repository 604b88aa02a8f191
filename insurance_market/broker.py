"""Broker aggregate: submissions, lead-quote routing and the follow market.

A broker turns each ``CoverageRequested`` into a submission with a fresh id
and solicits one insurer at a time for a lead quote. A decline re-routes the
submission to the next insurer chosen by the broker's routing policy; after
``max_quote_attempts`` solicitations, or as soon as no eligible insurer
remains, the submission is dropped with an explicit ``SubmissionDropped``.
Every submission therefore ends in exactly one of three logged fates: bound,
rejected by the insured, or dropped.

Once a lead quote is issued the broker may syndicate the line. With
``panel.max_followers`` above zero it asks the next insurers in rotation
order after the lead, ``follower_offset`` days later, to each write
``follower_share_bps`` at the lead's price. When every follower has
answered, the panel is assembled in solicitation order (lead first, then
the followers that issued) and presented to the insured as one placement at
the lead's total premium. A follower decline only shrinks the panel; the
lead keeps every share nobody follows.

An ``InsurerInsolvent`` fact removes that insurer from routing from the
following day on, so routing on the failure day does not depend on whether
the insolvency was dispatched first.

Since:
    Version 0.1.0
"""

from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from .config.market import LifecycleConfig, PanelConfig
from .events import (
    CoverageRequested,
    DeclineReason,
    Event,
    FollowerQuoteDeclined,
    FollowerQuoteIssued,
    FollowerQuoteRequested,
    InsurerInsolvent,
    LeadQuoteDeclined,
    LeadQuoteIssued,
    LeadQuoteRequested,
    PanelEntry,
    PolicyBound,
    QuotePresented,
    QuoteRejected,
    Risk,
    Scheduled,
    SubmissionDropped,
    YearEnd,
)
from .market_types import (
    BASIS_POINTS,
    BrokerId,
    Day,
    IdAllocator,
    InsuredId,
    InsurerId,
    SubmissionId,
)
from .routing import RoundRobinRouting, RoutingContext, RoutingPolicy

logger = logging.getLogger(__name__)

ISSUED_SCORE: float = 1.0
"""Relationship score gained when an insurer issues a quote."""

DECLINED_SCORE: float = -0.5
"""Relationship score change when an insurer declines on capacity."""

SCORE_DECAY: float = 0.9
"""Multiplier applied to every relationship score at year end."""


@dataclass
class OpenSubmission:
    """Routing state of one submission.

    Attributes:
        submission_id: Broker-allocated id.
        insured_id: Insured seeking cover.
        risk: Terms being placed.
        solicited: Insurers asked for a lead quote so far, in order.
        lead_premium: Premium of the issued lead quote; None until a lead
            is found.
        followers: Insurers asked to follow, in solicitation order.
        awaiting: Followers that have not answered yet.
        follower_entries: Panel entry of every follower that issued.
    """

    submission_id: SubmissionId
    insured_id: InsuredId
    risk: Risk
    solicited: List[InsurerId] = field(default_factory=list)
    lead_premium: Optional[int] = None
    followers: List[InsurerId] = field(default_factory=list)
    awaiting: List[InsurerId] = field(default_factory=list)
    follower_entries: Dict[InsurerId, PanelEntry] = field(default_factory=dict)

    @property
    def attempts(self) -> int:
        """Number of insurers solicited for the lead so far."""
        return len(self.solicited)

    @property
    def lead_id(self) -> Optional[InsurerId]:
        """Insurer leading the placement, once a lead quote is issued."""
        if self.lead_premium is None:
            return None
        return self.solicited[-1]

    def panel(self) -> Tuple[PanelEntry, ...]:
        """Lead entry followed by the issued followers in solicitation order.

        Followers write at the lead's price, so the lead's entry carries the
        remaining share and the remaining premium.
        """
        assert self.lead_id is not None and self.lead_premium is not None
        entries = [self.follower_entries[i] for i in self.followers if i in self.follower_entries]
        lead = PanelEntry(
            insurer_id=self.lead_id,
            share_bps=BASIS_POINTS - sum(e.share_bps for e in entries),
            premium=self.lead_premium - sum(e.premium for e in entries),
        )
        return (lead, *entries)


@dataclass
class Broker:
    """Broker aggregate state.

    Attributes:
        broker_id: Identity carried by every submission event.
        insurer_ids: Configured insurers, in ascending id order.
        capacities: Opening capital per insurer.
        lifecycle: Offsets and the attempt bound.
        panel_config: Follow-market size and share.
        routing: Injected routing policy.
        submission_ids: Submission id allocator.
        open_submissions: Submissions awaiting a fate.
        cursor: Rotation cursor into ``insurer_ids``.
        relationship_scores: Score per insurer.
        known_insolvent: Insurer id to first day it is excluded from routing.
        bound: Submissions that ended bound.
        rejected: Submissions rejected by the insured.
        dropped: Submissions dropped for lack of supply.
    """

    broker_id: BrokerId
    insurer_ids: Tuple[InsurerId, ...]
    capacities: Dict[InsurerId, int] = field(compare=False, repr=False)
    lifecycle: LifecycleConfig = field(compare=False, repr=False)
    panel_config: PanelConfig = field(default_factory=PanelConfig, compare=False, repr=False)
    routing: RoutingPolicy = field(default_factory=RoundRobinRouting, compare=False, repr=False)
    submission_ids: IdAllocator = field(default_factory=IdAllocator)
    open_submissions: Dict[SubmissionId, OpenSubmission] = field(default_factory=dict)
    cursor: int = 0
    relationship_scores: Dict[InsurerId, float] = field(default_factory=dict)
    known_insolvent: Dict[InsurerId, Day] = field(default_factory=dict)
    bound: int = 0
    rejected: int = 0
    dropped: int = 0

    def routing_context(self, day: Day) -> RoutingContext:
        """Snapshot of what the broker knows on ``day``."""
        return RoutingContext(
            insurer_ids=self.insurer_ids,
            capacities=self.capacities,
            known_insolvent=frozenset(i for i, eff in self.known_insolvent.items() if eff <= day),
            relationship_scores=dict(self.relationship_scores),
            cursor=self.cursor,
        )

    def follower_candidates(self, lead_id: InsurerId, day: Day) -> List[InsurerId]:
        """Insurers to ask to follow ``lead_id`` on ``day``.

        Rotation order starting after the lead, skipping insurers known to
        be insolvent on ``day``, truncated to ``max_followers``.
        """
        if lead_id not in self.insurer_ids:
            return []
        start = self.insurer_ids.index(lead_id) + 1
        ring = self.insurer_ids[start:] + self.insurer_ids[: start - 1]
        excluded = self.routing_context(day).known_insolvent
        return [i for i in ring if i not in excluded][: self.panel_config.max_followers]

    def handle(self, event: Event, day: Day, rng: np.random.Generator) -> List[Scheduled]:
        """Apply ``event`` and return the events it causes."""
        if isinstance(event, CoverageRequested):
            return self._on_coverage_requested(event, day)
        if isinstance(event, LeadQuoteIssued):
            return self._on_lead_quote_issued(event, day)
        if isinstance(event, LeadQuoteDeclined):
            return self._on_lead_quote_declined(event, day)
        if isinstance(event, (FollowerQuoteIssued, FollowerQuoteDeclined)):
            return self._on_follower_answer(event)
        if isinstance(event, QuoteRejected):
            if self._close(event.submission_id) is not None:
                self.rejected += 1
            return []
        if isinstance(event, PolicyBound):
            if self._close(event.submission_id) is not None:
                self.bound += 1
            return []
        if isinstance(event, InsurerInsolvent):
            self.known_insolvent.setdefault(event.insurer_id, day + 1)
            return []
        if isinstance(event, YearEnd):
            self.relationship_scores = {
                k: v * SCORE_DECAY for k, v in self.relationship_scores.items()
            }
            return []
        return []

    # ------------------------------------------------------------------ #
    #  Submission flow
    # ------------------------------------------------------------------ #

    def _on_coverage_requested(self, event: CoverageRequested, day: Day) -> List[Scheduled]:
        submission = OpenSubmission(
            submission_id=self.submission_ids.allocate(),
            insured_id=event.insured_id,
            risk=event.risk,
        )
        self.open_submissions[submission.submission_id] = submission
        return self._solicit_next(submission, day, self.lifecycle.quote_request_offset)

    def _on_lead_quote_issued(self, event: LeadQuoteIssued, day: Day) -> List[Scheduled]:
        submission = self._lookup(event.submission_id, event.insurer_id)
        if submission is None:
            return []
        self._score(event.insurer_id, ISSUED_SCORE)
        submission.lead_premium = event.premium

        offset = self.lifecycle.follower_offset
        followers = self.follower_candidates(event.insurer_id, day + offset)
        if not followers:
            return [self._present(submission)]

        submission.followers = list(followers)
        submission.awaiting = list(followers)
        share_bps = self.panel_config.follower_share_bps
        return [
            (
                offset,
                FollowerQuoteRequested(
                    submission_id=submission.submission_id,
                    insured_id=submission.insured_id,
                    broker_id=self.broker_id,
                    insurer_id=insurer_id,
                    risk=submission.risk,
                    share_bps=share_bps,
                    lead_premium=event.premium,
                ),
            )
            for insurer_id in followers
        ]

    def _on_lead_quote_declined(self, event: LeadQuoteDeclined, day: Day) -> List[Scheduled]:
        submission = self._lookup(event.submission_id, event.insurer_id)
        if submission is None:
            return []
        if event.reason is not DeclineReason.INSOLVENT:
            self._score(event.insurer_id, DECLINED_SCORE)
        if submission.attempts >= self.lifecycle.max_quote_attempts:
            return self._drop(submission)
        return self._solicit_next(submission, day, self.lifecycle.reroute_offset)

    def _on_follower_answer(
        self, event: Union[FollowerQuoteIssued, FollowerQuoteDeclined]
    ) -> List[Scheduled]:
        submission = self.open_submissions.get(event.submission_id)
        if submission is None or event.insurer_id not in submission.awaiting:
            logger.warning(
                "Broker %d: submission %d is not awaiting follower %d",
                self.broker_id,
                event.submission_id,
                event.insurer_id,
            )
            return []
        submission.awaiting.remove(event.insurer_id)
        if isinstance(event, FollowerQuoteIssued):
            self._score(event.insurer_id, ISSUED_SCORE)
            submission.follower_entries[event.insurer_id] = PanelEntry(
                insurer_id=event.insurer_id, share_bps=event.share_bps, premium=event.premium
            )
        elif event.reason is not DeclineReason.INSOLVENT:
            self._score(event.insurer_id, DECLINED_SCORE)

        if submission.awaiting:
            return []
        return [self._present(submission)]

    def _present(self, submission: OpenSubmission) -> Scheduled:
        panel = submission.panel()
        if len(panel) > 1:
            logger.debug(
                "Broker %d places submission %d with a panel of %d",
                self.broker_id,
                submission.submission_id,
                len(panel),
            )
        return (
            self.lifecycle.present_offset,
            QuotePresented(
                submission_id=submission.submission_id,
                insured_id=submission.insured_id,
                broker_id=self.broker_id,
                insurer_id=panel[0].insurer_id,
                premium=submission.lead_premium,
                panel=panel,
            ),
        )

    def _solicit_next(self, submission: OpenSubmission, day: Day, offset: int) -> List[Scheduled]:
        attempt = submission.attempts + 1
        # Routing sees the day the request will be handled on.
        insurer_id = self.routing.select(submission, self.routing_context(day + offset), attempt)
        if insurer_id is None:
            return self._drop(submission)

        submission.solicited.append(insurer_id)
        self.cursor = self.insurer_ids.index(insurer_id) + 1
        return [
            (
                offset,
                LeadQuoteRequested(
                    submission_id=submission.submission_id,
                    insured_id=submission.insured_id,
                    broker_id=self.broker_id,
                    insurer_id=insurer_id,
                    risk=submission.risk,
                    attempt=attempt,
                ),
            )
        ]
    def _drop(self, submission: OpenSubmission) -> List[Scheduled]:
        self._close(submission.submission_id)
        self.dropped += 1
        logger.debug(
            "Broker %d drops submission %d after %d attempts",
            self.broker_id,
            submission.submission_id,
            submission.attempts,
        )
        return [
            (
                0,
                SubmissionDropped(
                    submission_id=submission.submission_id,
                    insured_id=submission.insured_id,
                    broker_id=self.broker_id,
                    attempts=submission.attempts,
                ),
            )
        ]

    # ------------------------------------------------------------------ #
    #  Helpers
    # ------------------------------------------------------------------ #

    def _lookup(self, submission_id: int, insurer_id: int) -> Optional[OpenSubmission]:
        submission = self.open_submissions.get(submission_id)
        if (
            submission is None
            or submission.lead_premium is not None
            or not submission.solicited
            or submission.solicited[-1] != insurer_id
        ):
            logger.warning(
                "Broker %d: no open submission %d awaiting insurer %d",
                self.broker_id,
                submission_id,
                insurer_id,
            )
            return None
        return submission

    def _close(self, submission_id: int) -> Optional[OpenSubmission]:
        submission = self.open_submissions.pop(submission_id, None)
        if submission is None:
            logger.warning("Broker %d: unknown or closed submission %d", self.broker_id, submission_id)
        return submission

    def _score(self, insurer_id: int, delta: float) -> None:
        self.relationship_scores[insurer_id] = self.relationship_scores.get(insurer_id, 0.0) + delta
