"""Typed event variants and their persisted wire format.

Events are immutable facts. They carry no behaviour and no timestamp: the
``Day`` is attached when an event is scheduled, so the same logical fact can
be built once and placed on different days depending on which handler emits
it.

The tag (class name) and field names of every variant form the contract read
by external analysis tooling, so a variant must never be renamed or
restructured casually. Records use an externally tagged layout::

    {"day": 10, "event": {"PolicyBound": {"policy_id": 0, ...}}}

Examples:
    Encode and decode one event::

        from insurance_market.events import InsurerInsolvent, event_from_dict, event_to_dict

        payload = event_to_dict(InsurerInsolvent(insurer_id=3))
        # {"InsurerInsolvent": {"insurer_id": 3}}
        assert event_from_dict(payload) == InsurerInsolvent(insurer_id=3)

Since:
    Version 0.1.0
"""

from enum import Enum
from typing import Any, Dict, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .market_types import (
    BASIS_POINTS,
    BrokerId,
    InsuredId,
    InsurerId,
    LossEventId,
    PolicyId,
    SubmissionId,
)


class Peril(str, Enum):
    """Perils a risk can be covered against.

    Every peril except ``ATTRITIONAL`` is a catastrophe peril: its
    occurrences are market-wide and hit all policies in a territory at once.
    """

    WINDSTORM_ATLANTIC = "WindstormAtlantic"
    WINDSTORM_EUROPEAN = "WindstormEuropean"
    EARTHQUAKE_US = "EarthquakeUS"
    EARTHQUAKE_JAPAN = "EarthquakeJapan"
    FLOOD = "Flood"
    ATTRITIONAL = "Attritional"

    @property
    def is_catastrophe(self) -> bool:
        """Whether occurrences of this peril are correlated across policies."""
        return self is not Peril.ATTRITIONAL


class DeclineReason(str, Enum):
    """Typed reasons an insurer gives when it will not lead a risk."""

    LINE_LIMIT = "LineLimit"
    CAT_AGGREGATE_LIMIT = "CatAggregateLimit"
    INSOLVENT = "Insolvent"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class Risk(_Frozen):
    """Coverage terms of a single insured asset.

    Attributes:
        line_of_business: Free-text line (e.g. ``"property"``).
        sum_insured: Total insured value; caps annual ground-up loss.
        territory: Territory code matched by catastrophe occurrences.
        limit: Maximum recovery under the policy.
        attachment: Loss retained by the insured before the policy pays.
        perils_covered: Perils that can trigger a loss on this risk.
    """

    line_of_business: str = "property"
    sum_insured: int = Field(gt=0)
    territory: str
    limit: int = Field(gt=0)
    attachment: int = Field(default=0, ge=0)
    perils_covered: Tuple[Peril, ...]

    @model_validator(mode="after")
    def validate_layer(self) -> "Risk":
        """Ensure the layer sits inside the insured value."""
        if self.limit > self.sum_insured:
            raise ValueError(
                f"Limit {self.limit:,} cannot exceed sum insured {self.sum_insured:,}"
            )
        if self.attachment >= self.limit:
            raise ValueError(
                f"Attachment {self.attachment:,} must be below limit {self.limit:,}"
            )
        return self

    def covers(self, peril: Peril) -> bool:
        """Return True if ``peril`` is one of the covered perils."""
        return peril in self.perils_covered

    @property
    def catastrophe_perils(self) -> Tuple[Peril, ...]:
        """Covered perils that are market-wide catastrophes."""
        return tuple(p for p in self.perils_covered if p.is_catastrophe)


class PanelEntry(_Frozen):
    """One insurer's share of a bound policy."""

    insurer_id: InsurerId
    share_bps: int = Field(gt=0, le=BASIS_POINTS)
    premium: int = Field(ge=0)


def _check_shares(panel: Tuple[PanelEntry, ...]) -> Tuple[PanelEntry, ...]:
    total = sum(entry.share_bps for entry in panel)
    if total != BASIS_POINTS:
        raise ValueError(f"Panel shares sum to {total} bps, expected {BASIS_POINTS}")
    insurers = [entry.insurer_id for entry in panel]
    if len(set(insurers)) != len(insurers):
        raise ValueError(f"Panel names an insurer twice: {insurers}")
    return panel


class Event(_Frozen):
    """Base class for all event variants.

    The class name is the variant tag used on the wire.
    """

    @property
    def tag(self) -> str:
        """Variant tag used in the persisted log."""
        return type(self).__name__


# --------------------------------------------------------------------------- #
#  Calendar
# --------------------------------------------------------------------------- #


class SimulationStart(Event):
    """First event of every run; insureds seek their initial coverage."""

    year: int = 1


class YearStart(Event):
    """Opens a simulation year; catastrophe occurrences are scheduled here."""

    year: int


class YearEnd(Event):
    """Closes a simulation year.

    Fires on the first day after the year so that every event dated inside
    the year has already been dispatched.
    """

    year: int


class MarketStatsPublished(Event):
    """Industry-wide results of a closed year, used as the pricing benchmark."""

    year: int
    industry_loss_ratio: float
    bound_premium: int
    claims_paid: int
    effective_day: int


# --------------------------------------------------------------------------- #
#  Quoting and binding
# --------------------------------------------------------------------------- #


class CoverageRequested(Event):
    """An insured asks its broker to place cover for its risk."""

    insured_id: InsuredId
    broker_id: BrokerId
    risk: Risk


class LeadQuoteRequested(Event):
    """A broker solicits a lead quote from one insurer."""

    submission_id: SubmissionId
    insured_id: InsuredId
    broker_id: BrokerId
    insurer_id: InsurerId
    risk: Risk
    attempt: int = Field(ge=1)


class LeadQuoteIssued(Event):
    """An insurer offers to lead the risk at ``premium``."""

    submission_id: SubmissionId
    insured_id: InsuredId
    broker_id: BrokerId
    insurer_id: InsurerId
    premium: int = Field(ge=0)
    cat_exposure_at_quote: int = Field(default=0, ge=0)


class LeadQuoteDeclined(Event):
    """An insurer will not lead the risk."""

    submission_id: SubmissionId
    insured_id: InsuredId
    broker_id: BrokerId
    insurer_id: InsurerId
    reason: DeclineReason


class FollowerQuoteRequested(Event):
    """A broker asks an insurer to follow a led risk for a fixed share.

    Sent on the day after the lead quote, so the follower never depends on
    same-day ordering against the lead's own decision.
    """

    submission_id: SubmissionId
    insured_id: InsuredId
    broker_id: BrokerId
    insurer_id: InsurerId
    risk: Risk
    share_bps: int = Field(gt=0, lt=BASIS_POINTS)
    lead_premium: int = Field(ge=0)


class FollowerQuoteIssued(Event):
    """An insurer agrees to write ``share_bps`` of the risk at the lead's price."""

    submission_id: SubmissionId
    insured_id: InsuredId
    broker_id: BrokerId
    insurer_id: InsurerId
    share_bps: int = Field(gt=0, lt=BASIS_POINTS)
    premium: int = Field(ge=0)


class FollowerQuoteDeclined(Event):
    """An insurer will not follow the risk."""

    submission_id: SubmissionId
    insured_id: InsuredId
    broker_id: BrokerId
    insurer_id: InsurerId
    reason: DeclineReason


class QuotePresented(Event):
    """The broker presents a placed quote to the insured.

    ``premium`` is the total price of the placement. ``panel`` lists the
    lead entry first and then any followers; an empty panel means the lead
    writes the whole line.
    """

    submission_id: SubmissionId
    insured_id: InsuredId
    broker_id: BrokerId
    insurer_id: InsurerId
    premium: int = Field(ge=0)
    panel: Tuple[PanelEntry, ...] = ()

    @field_validator("panel")
    @classmethod
    def validate_panel(cls, v: Tuple[PanelEntry, ...]) -> Tuple[PanelEntry, ...]:
        """A non-empty panel must cover exactly 100% of the risk."""
        return _check_shares(v) if v else v


class QuoteAccepted(Event):
    """The insured accepts a presented quote; the policy is now pending."""

    submission_id: SubmissionId
    insured_id: InsuredId
    broker_id: BrokerId
    insurer_id: InsurerId
    premium: int = Field(ge=0)
    risk: Risk
    panel: Tuple[PanelEntry, ...] = ()

    @field_validator("panel")
    @classmethod
    def validate_panel(cls, v: Tuple[PanelEntry, ...]) -> Tuple[PanelEntry, ...]:
        """A non-empty panel must cover exactly 100% of the risk."""
        return _check_shares(v) if v else v


class QuoteRejected(Event):
    """The insured rejects a presented quote on price."""

    submission_id: SubmissionId
    insured_id: InsuredId
    broker_id: BrokerId
    insurer_id: InsurerId
    premium: int = Field(ge=0)


class SubmissionDropped(Event):
    """Supply was exhausted before any insurer would lead the risk."""

    submission_id: SubmissionId
    insured_id: InsuredId
    broker_id: BrokerId
    attempts: int = Field(ge=0)


class PolicyBound(Event):
    """A policy is bound; from here on it is visible to loss routing."""

    policy_id: PolicyId
    submission_id: SubmissionId
    insured_id: InsuredId
    broker_id: BrokerId
    insurer_id: InsurerId
    premium: int = Field(ge=0)
    sum_insured: int = Field(gt=0)
    risk: Risk
    panel: Tuple[PanelEntry, ...]

    @field_validator("panel")
    @classmethod
    def validate_panel(cls, v: Tuple[PanelEntry, ...]) -> Tuple[PanelEntry, ...]:
        """Panel shares must cover exactly 100% of the risk."""
        if not v:
            raise ValueError("A bound policy needs at least one panel entry")
        return _check_shares(v)


class PolicyExpired(Event):
    """A policy reached the end of its term and leaves the loss index."""

    policy_id: PolicyId
    insured_id: InsuredId
    insurer_ids: Tuple[InsurerId, ...]


# --------------------------------------------------------------------------- #
#  Losses, claims and capital
# --------------------------------------------------------------------------- #


class LossEvent(Event):
    """A catastrophe occurrence with one shared damage fraction."""

    event_id: LossEventId
    peril: Peril
    territory: str
    damage_fraction: float = Field(ge=0.0, le=1.0)


class AttritionalLoss(Event):
    """An independent occurrence against a single policy."""

    event_id: LossEventId
    policy_id: PolicyId
    insured_id: InsuredId
    damage_fraction: float = Field(ge=0.0, le=1.0)


class InsuredLoss(Event):
    """Ground-up damage suffered by an insured under a bound policy."""

    policy_id: PolicyId
    insured_id: InsuredId
    peril: Peril
    ground_up_loss: int = Field(ge=0)
    loss_event_id: LossEventId


class ClaimSettled(Event):
    """One panel member's share of an insured loss."""

    policy_id: PolicyId
    insurer_id: InsurerId
    peril: Peril
    amount: int = Field(ge=0)


class InsurerInsolvent(Event):
    """An insurer's capital reached the solvency floor."""

    insurer_id: InsurerId


EVENT_TYPES: Dict[str, Type[Event]] = {
    cls.__name__: cls
    for cls in (
        SimulationStart,
        YearStart,
        YearEnd,
        MarketStatsPublished,
        CoverageRequested,
        LeadQuoteRequested,
        LeadQuoteIssued,
        LeadQuoteDeclined,
        FollowerQuoteRequested,
        FollowerQuoteIssued,
        FollowerQuoteDeclined,
        QuotePresented,
        QuoteAccepted,
        QuoteRejected,
        SubmissionDropped,
        PolicyBound,
        PolicyExpired,
        LossEvent,
        AttritionalLoss,
        InsuredLoss,
        ClaimSettled,
        InsurerInsolvent,
    )
}
"""Registry of every variant keyed by its wire tag."""


def event_to_dict(event: Event) -> Dict[str, Dict[str, Any]]:
    """Encode an event as ``{tag: fields}`` with JSON-compatible values."""
    return {event.tag: event.model_dump(mode="json")}


def event_from_dict(data: Dict[str, Dict[str, Any]]) -> Event:
    """Decode a ``{tag: fields}`` mapping produced by :func:`event_to_dict`.

    Raises:
        ValueError: If the mapping does not hold exactly one known tag.
    """
    if len(data) != 1:
        raise ValueError(f"Expected exactly one event tag, got {sorted(data)}")
    tag, fields = next(iter(data.items()))
    event_cls = EVENT_TYPES.get(tag)
    if event_cls is None:
        raise ValueError(f"Unknown event tag: {tag!r}")
    return event_cls.model_validate(fields)


Scheduled = Tuple[int, Event]
"""A handler output: ``(day_offset, event)``, relative to the handled day."""
