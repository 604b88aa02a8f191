"""Pluggable broker routing policies.

A routing policy decides which insurer a broker solicits next for an open
submission. Policies are pure functions of the submission, a
:class:`RoutingContext` snapshot built by the broker, and the attempt
number; they never draw from the generator and never mutate the broker.
The broker applies any state change (such as advancing its rotation cursor)
after the choice is made.

Every policy excludes insurers already solicited for the submission and
insurers the broker knows to be insolvent. ``None`` means no candidate is
left and the submission must be dropped.

Since:
    Version 0.1.0
"""

from dataclasses import dataclass, field
import math
from typing import TYPE_CHECKING, Dict, FrozenSet, List, Optional, Protocol, Tuple

from .config.market import RoutingConfig
from .market_types import InsurerId

if TYPE_CHECKING:
    from .broker import OpenSubmission

_GOLDEN_FRACTION = (math.sqrt(5) - 1) / 2


@dataclass(frozen=True)
class RoutingContext:
    """What a broker knows about the insurer panel when routing.

    Attributes:
        insurer_ids: Every configured insurer, in ascending id order.
        capacities: Opening capital per insurer.
        known_insolvent: Insurers the broker has seen fail.
        relationship_scores: Broker's current score per insurer.
        cursor: Rotation cursor into ``insurer_ids``.
    """

    insurer_ids: Tuple[InsurerId, ...]
    capacities: Dict[InsurerId, int] = field(default_factory=dict)
    known_insolvent: FrozenSet[InsurerId] = frozenset()
    relationship_scores: Dict[InsurerId, float] = field(default_factory=dict)
    cursor: int = 0

    def candidates(self, submission: "OpenSubmission") -> List[InsurerId]:
        """Eligible insurers in rotation order starting at the cursor."""
        n = len(self.insurer_ids)
        if n == 0:
            return []
        start = self.cursor % n
        ring = self.insurer_ids[start:] + self.insurer_ids[:start]
        solicited = set(submission.solicited)
        return [i for i in ring if i not in solicited and i not in self.known_insolvent]


class RoutingPolicy(Protocol):
    """Routing contract."""

    def select(
        self, submission: "OpenSubmission", context: RoutingContext, attempt: int
    ) -> Optional[InsurerId]:
        """Return the insurer to solicit on ``attempt``, or None if none remain."""


class RoundRobinRouting:
    """Solicit the next eligible insurer after the broker's cursor."""

    def select(
        self, submission: "OpenSubmission", context: RoutingContext, attempt: int
    ) -> Optional[InsurerId]:
        candidates = context.candidates(submission)
        return candidates[0] if candidates else None


class CapacityWeightedRouting:
    """Spread submissions across insurers in proportion to opening capital.

    The choice is a deterministic low-discrepancy point derived from the
    submission id, mapped onto the cumulative capacity of the remaining
    candidates. Over many submissions each insurer's share of first
    solicitations tends to its share of capacity.
    """

    def select(
        self, submission: "OpenSubmission", context: RoutingContext, attempt: int
    ) -> Optional[InsurerId]:
        candidates = sorted(context.candidates(submission))
        if not candidates:
            return None
        weights = [max(context.capacities.get(i, 0), 0) for i in candidates]
        total = sum(weights)
        if total <= 0:
            return candidates[0]
        point = math.modf((submission.submission_id + 1) * _GOLDEN_FRACTION)[0] * total
        running = 0
        for insurer_id, weight in zip(candidates, weights):
            running += weight
            if point < running:
                return insurer_id
        return candidates[-1]


class RelationshipScoreRouting:
    """Solicit the best-scored eligible insurer.

    Ties are broken by rotation order from the cursor, so a broker with no
    scores behaves like round-robin.
    """

    def select(
        self, submission: "OpenSubmission", context: RoutingContext, attempt: int
    ) -> Optional[InsurerId]:
        candidates = context.candidates(submission)
        if not candidates:
            return None
        best = candidates[0]
        best_score = context.relationship_scores.get(best, 0.0)
        for insurer_id in candidates[1:]:
            score = context.relationship_scores.get(insurer_id, 0.0)
            if score > best_score:
                best, best_score = insurer_id, score
        return best


def build_routing(routing: RoutingConfig) -> RoutingPolicy:
    """Construct the routing policy selected by ``routing``."""
    if routing.method == "capacity_weighted":
        return CapacityWeightedRouting()
    if routing.method == "relationship_score":
        return RelationshipScoreRouting()
    return RoundRobinRouting()
