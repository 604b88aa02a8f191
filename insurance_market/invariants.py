"""Read-only verification of lifecycle invariants over an event log.

These checks read nothing but the log, so they apply equally to a live run
and to a persisted NDJSON file produced by another process. They are the
reference that external analysis tooling can compare itself against.

Checks:
    - ``day_monotonic``: dispatch days never decrease.
    - ``unique_bind``: a policy id is bound at most once.
    - ``eligibility``: an ``InsuredLoss`` names a policy bound on an
      earlier day and not yet expired.
    - ``gul_cap``: ground-up loss per (policy, year) stays within the sum
      insured.
    - ``claim_conservation``: on every (policy, day) the ``ClaimSettled``
      amounts add up to the layered insured loss, paid only to panel members.
    - ``single_insolvency``: each insurer fails at most once.
    - ``insolvent_quoting``: a failed insurer issues no lead or follower
      quote on any day after the day it failed. Quotes are decided on the
      opening position of their day, so the failure day itself may still
      carry quotes.
    - ``quote_pairing``: every lead and follower quote response answers an
      open request and every presented quote is answered once.
    - ``panel_integrity``: every bound panel has positive shares summing to
      10 000 bps with no insurer listed twice, and a presented panel is
      the one bound.
    - ``submission_fate``: every submission ends bound, rejected or dropped,
      and only once.

Examples:
    Verify a run::

        sim.run()
        violations = verify_log(sim.log, require_terminal=False)
        for v in violations:
            print(v.check, v.seq, v.message)

Since:
    Version 0.1.0
"""

from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional, Set, Tuple

from .event_log import EventLog, LogEntry
from .events import (
    ClaimSettled,
    FollowerQuoteDeclined,
    FollowerQuoteIssued,
    FollowerQuoteRequested,
    InsuredLoss,
    InsurerInsolvent,
    LeadQuoteDeclined,
    LeadQuoteIssued,
    LeadQuoteRequested,
    PanelEntry,
    PolicyBound,
    PolicyExpired,
    QuoteAccepted,
    QuotePresented,
    QuoteRejected,
    SubmissionDropped,
)
from .market_types import BASIS_POINTS, Day, year_of

logger = logging.getLogger(__name__)

SubmissionKey = Tuple[int, int]
"""``(broker_id, submission_id)``; submission ids are unique per broker."""


@dataclass
class InvariantViolation:
    """One broken invariant.

    Attributes:
        check: Name of the failed check.
        seq: Log index where the violation was detected, if any.
        message: Human-readable description.
    """

    check: str
    seq: Optional[int]
    message: str


@dataclass
class _PolicyView:
    bound_day: Day
    sum_insured: int
    limit: int
    attachment: int
    panel: Set[int]
    expired: bool = False
    gul_by_year: Dict[int, int] = field(default_factory=dict)


class LogVerifier:
    """Single pass over a log, accumulating violations.

    Args:
        require_terminal: Also flag quote requests, presented quotes and
            submissions still in flight at the end of the log. Leave off for
            runs stopped at a horizon, where renewals are legitimately open.
    """

    def __init__(self, require_terminal: bool = False):
        self.require_terminal = require_terminal
        self.violations: List[InvariantViolation] = []
        self._last_day: Optional[Day] = None
        self._policies: Dict[int, _PolicyView] = {}
        self._expected_claims: Dict[Tuple[int, Day], int] = {}
        self._settled_claims: Dict[Tuple[int, Day], int] = {}
        self._insolvent: Dict[int, int] = {}
        self._insolvent_day: Dict[int, Day] = {}
        self._open_requests: Dict[Tuple[int, int, int], int] = {}
        self._open_follower_requests: Dict[Tuple[int, int, int], int] = {}
        self._open_presented: Dict[Tuple[int, int, int], int] = {}
        self._presented_panels: Dict[SubmissionKey, Tuple[PanelEntry, ...]] = {}
        self._submissions: Dict[SubmissionKey, int] = {}
        self._fates: Dict[SubmissionKey, List[str]] = {}

    def _flag(self, check: str, seq: Optional[int], message: str) -> None:
        self.violations.append(InvariantViolation(check, seq, message))

    def feed(self, entry: LogEntry) -> None:
        """Fold one log entry into the running checks."""
        if self._last_day is not None and entry.day < self._last_day:
            self._flag(
                "day_monotonic", entry.seq, f"day {entry.day} after day {self._last_day}"
            )
        self._last_day = entry.day

        event = entry.event
        if isinstance(event, PolicyBound):
            self._on_policy_bound(entry, event)
        elif isinstance(event, PolicyExpired):
            view = self._policies.get(event.policy_id)
            if view is not None:
                view.expired = True
        elif isinstance(event, InsuredLoss):
            self._on_insured_loss(entry, event)
        elif isinstance(event, ClaimSettled):
            self._on_claim_settled(entry, event)
        elif isinstance(event, InsurerInsolvent):
            if event.insurer_id in self._insolvent:
                self._flag(
                    "single_insolvency",
                    entry.seq,
                    f"insurer {event.insurer_id} already insolvent at seq "
                    f"{self._insolvent[event.insurer_id]}",
                )
            else:
                self._insolvent[event.insurer_id] = entry.seq
                self._insolvent_day[event.insurer_id] = entry.day
        elif isinstance(event, LeadQuoteRequested):
            key = (event.broker_id, event.submission_id, event.insurer_id)
            self._open_requests[key] = entry.seq
            self._submissions.setdefault((event.broker_id, event.submission_id), entry.seq)
        elif isinstance(event, (LeadQuoteIssued, LeadQuoteDeclined)):
            self._on_quote_response(entry, event, self._open_requests)
        elif isinstance(event, FollowerQuoteRequested):
            key = (event.broker_id, event.submission_id, event.insurer_id)
            self._open_follower_requests[key] = entry.seq
        elif isinstance(event, (FollowerQuoteIssued, FollowerQuoteDeclined)):
            self._on_quote_response(entry, event, self._open_follower_requests)
        elif isinstance(event, QuotePresented):
            key = (event.broker_id, event.submission_id, event.insurer_id)
            self._open_presented[key] = entry.seq
            if event.panel:
                self._presented_panels[(event.broker_id, event.submission_id)] = event.panel
        elif isinstance(event, (QuoteAccepted, QuoteRejected)):
            key = (event.broker_id, event.submission_id, event.insurer_id)
            if self._open_presented.pop(key, None) is None:
                self._flag(
                    "quote_pairing",
                    entry.seq,
                    f"{event.tag} for submission {event.submission_id} was never presented",
                )
            if isinstance(event, QuoteRejected):
                self._fate(entry, event.broker_id, event.submission_id, "rejected")
        elif isinstance(event, SubmissionDropped):
            self._submissions.setdefault((event.broker_id, event.submission_id), entry.seq)
            self._fate(entry, event.broker_id, event.submission_id, "dropped")

    def _on_policy_bound(self, entry: LogEntry, event: PolicyBound) -> None:
        if event.policy_id in self._policies:
            self._flag("unique_bind", entry.seq, f"policy {event.policy_id} bound twice")
            return
        self._policies[event.policy_id] = _PolicyView(
            bound_day=entry.day,
            sum_insured=event.risk.sum_insured,
            limit=event.risk.limit,
            attachment=event.risk.attachment,
            panel={e.insurer_id for e in event.panel},
        )
        self._check_panel(entry, event)
        if (event.broker_id, event.submission_id) in self._submissions:
            self._fate(entry, event.broker_id, event.submission_id, "bound")

    def _check_panel(self, entry: LogEntry, event: PolicyBound) -> None:
        shares = [e.share_bps for e in event.panel]
        insurers = [e.insurer_id for e in event.panel]
        if sum(shares) != BASIS_POINTS or any(s <= 0 for s in shares):
            self._flag(
                "panel_integrity",
                entry.seq,
                f"policy {event.policy_id} panel shares {shares} do not split {BASIS_POINTS} bps",
            )
        if len(set(insurers)) != len(insurers):
            self._flag(
                "panel_integrity", entry.seq, f"policy {event.policy_id} panel repeats {insurers}"
            )
        presented = self._presented_panels.pop((event.broker_id, event.submission_id), None)
        if presented is not None and presented != event.panel:
            self._flag(
                "panel_integrity",
                entry.seq,
                f"policy {event.policy_id} bound with a panel other than the one presented",
            )

    def _on_insured_loss(self, entry: LogEntry, event: InsuredLoss) -> None:
        view = self._policies.get(event.policy_id)
        if view is None or view.expired or entry.day <= view.bound_day:
            self._flag(
                "eligibility",
                entry.seq,
                f"loss on day {entry.day} for policy {event.policy_id} outside its cover",
            )
            return

        year = year_of(entry.day)
        total = view.gul_by_year.get(year, 0) + event.ground_up_loss
        view.gul_by_year[year] = total
        if total > view.sum_insured:
            self._flag(
                "gul_cap",
                entry.seq,
                f"policy {event.policy_id} year {year}: ground-up {total} exceeds "
                f"sum insured {view.sum_insured}",
            )

        insured_loss = max(min(event.ground_up_loss, view.limit) - view.attachment, 0)
        key = (event.policy_id, entry.day)
        self._expected_claims[key] = self._expected_claims.get(key, 0) + insured_loss

    def _on_claim_settled(self, entry: LogEntry, event: ClaimSettled) -> None:
        view = self._policies.get(event.policy_id)
        if view is None or event.insurer_id not in view.panel:
            self._flag(
                "claim_conservation",
                entry.seq,
                f"claim on policy {event.policy_id} paid to insurer {event.insurer_id} "
                "outside its panel",
            )
        key = (event.policy_id, entry.day)
        self._settled_claims[key] = self._settled_claims.get(key, 0) + event.amount

    def _on_quote_response(
        self, entry: LogEntry, event, open_requests: Dict[Tuple[int, int, int], int]
    ) -> None:
        key = (event.broker_id, event.submission_id, event.insurer_id)
        if open_requests.pop(key, None) is None:
            self._flag(
                "quote_pairing",
                entry.seq,
                f"{event.tag} from insurer {event.insurer_id} answers no open request",
            )
        failed_on = self._insolvent_day.get(event.insurer_id)
        if (
            isinstance(event, (LeadQuoteIssued, FollowerQuoteIssued))
            and failed_on is not None
            and entry.day > failed_on
        ):
            self._flag(
                "insolvent_quoting",
                entry.seq,
                f"insurer {event.insurer_id} quoted on day {entry.day} after failing on day "
                f"{failed_on}",
            )

    def _fate(self, entry: LogEntry, broker_id: int, submission_id: int, fate: str) -> None:
        fates = self._fates.setdefault((broker_id, submission_id), [])
        fates.append(fate)
        if len(fates) > 1:
            self._flag(
                "submission_fate",
                entry.seq,
                f"submission {submission_id} of broker {broker_id} ended {fates}",
            )

    def finish(self) -> List[InvariantViolation]:
        """Run the end-of-log checks and return every violation found."""
        for key in sorted(set(self._expected_claims) | set(self._settled_claims)):
            expected = self._expected_claims.get(key, 0)
            settled = self._settled_claims.get(key, 0)
            if expected != settled:
                self._flag(
                    "claim_conservation",
                    None,
                    f"policy {key[0]} day {key[1]}: settled {settled}, insured loss {expected}",
                )

        if self.require_terminal:
            for (_, submission_id, insurer_id), seq in sorted(self._open_requests.items()):
                self._flag(
                    "quote_pairing",
                    seq,
                    f"request for submission {submission_id} to insurer {insurer_id} unanswered",
                )
            for (_, submission_id, insurer_id), seq in sorted(self._open_follower_requests.items()):
                self._flag(
                    "quote_pairing",
                    seq,
                    f"follow request for submission {submission_id} to insurer {insurer_id} "
                    "unanswered",
                )
            for (_, submission_id, _), seq in sorted(self._open_presented.items()):
                self._flag(
                    "quote_pairing", seq, f"presented quote for submission {submission_id} unanswered"
                )
            for key, seq in sorted(self._submissions.items()):
                if key not in self._fates:
                    self._flag(
                        "submission_fate",
                        seq,
                        f"submission {key[1]} of broker {key[0]} never reached a fate",
                    )
        return self.violations


def verify_log(log: EventLog, require_terminal: bool = False) -> List[InvariantViolation]:
    """Check every lifecycle invariant over ``log``.

    Args:
        log: Log to verify, read from index 0.
        require_terminal: Flag work still in flight at the end of the log.

    Returns:
        Violations in detection order; empty when the log is consistent.
    """
    verifier = LogVerifier(require_terminal=require_terminal)
    for entry in log:
        verifier.feed(entry)
    violations = verifier.finish()
    if violations:
        logger.warning("%d invariant violations in a log of %d events", len(violations), len(log))
    return violations
