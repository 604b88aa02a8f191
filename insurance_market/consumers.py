"""Which aggregates observe each event variant.

Consumer roles form a fixed table keyed on the event tag. Each entry names a
role and a selector:

* ``None`` addresses the singleton of that role (market, nature);
* :data:`ALL` broadcasts to every instance of the role;
* a field name routes by the id (or tuple of ids) carried in that field;
* :data:`PANEL` routes to every insurer on a ``PolicyBound`` panel.

The table is the only place routing is decided, so the set of events that
name an aggregate (the slice replayed to reconstruct it) can be read
straight from it.

Since:
    Version 0.1.0
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from .events import Event, PolicyBound


class Role(str, Enum):
    """Aggregate kinds."""

    MARKET = "market"
    NATURE = "nature"
    INSURER = "insurer"
    INSURED = "insured"
    BROKER = "broker"


ALL = "*"
"""Selector broadcasting to every instance of a role."""

PANEL = "panel"
"""Selector routing to every insurer on a bound panel."""

Selector = Optional[str]
Address = Tuple[Role, Union[int, str, None]]
"""``(role, id)``; the id is ``None`` for singletons and :data:`ALL` for broadcasts."""

CONSUMER_TABLE: Dict[str, Tuple[Tuple[Role, Selector], ...]] = {
    "SimulationStart": ((Role.INSURED, ALL),),
    "YearStart": ((Role.MARKET, None), (Role.NATURE, None)),
    "YearEnd": (
        (Role.MARKET, None),
        (Role.INSURER, ALL),
        (Role.INSURED, ALL),
        (Role.BROKER, ALL),
    ),
    "MarketStatsPublished": ((Role.INSURER, ALL),),
    "CoverageRequested": ((Role.BROKER, "broker_id"),),
    "LeadQuoteRequested": ((Role.INSURER, "insurer_id"),),
    "LeadQuoteIssued": ((Role.BROKER, "broker_id"),),
    "LeadQuoteDeclined": ((Role.BROKER, "broker_id"),),
    "FollowerQuoteRequested": ((Role.INSURER, "insurer_id"),),
    "FollowerQuoteIssued": ((Role.BROKER, "broker_id"),),
    "FollowerQuoteDeclined": ((Role.BROKER, "broker_id"),),
    "QuotePresented": ((Role.INSURED, "insured_id"),),
    "QuoteAccepted": ((Role.MARKET, None),),
    "QuoteRejected": ((Role.BROKER, "broker_id"),),
    "SubmissionDropped": ((Role.INSURED, "insured_id"),),
    "PolicyBound": (
        (Role.MARKET, None),
        (Role.INSURER, PANEL),
        (Role.INSURED, "insured_id"),
        (Role.BROKER, "broker_id"),
        (Role.NATURE, None),
    ),
    "PolicyExpired": (
        (Role.MARKET, None),
        (Role.INSURER, "insurer_ids"),
        (Role.INSURED, "insured_id"),
    ),
    "LossEvent": ((Role.MARKET, None),),
    "AttritionalLoss": ((Role.MARKET, None),),
    "InsuredLoss": ((Role.MARKET, None), (Role.INSURED, "insured_id")),
    "ClaimSettled": ((Role.INSURER, "insurer_id"), (Role.MARKET, None)),
    "InsurerInsolvent": ((Role.BROKER, ALL), (Role.MARKET, None)),
}


def addresses(event: Event) -> List[Address]:
    """Consumer addresses of ``event``, in dispatch order.

    Unknown tags have no consumers.
    """
    out: List[Address] = []
    for role, selector in CONSUMER_TABLE.get(event.tag, ()):
        if selector is None or selector == ALL:
            out.append((role, selector))
        elif selector == PANEL:
            assert isinstance(event, PolicyBound)
            out.extend((role, entry.insurer_id) for entry in event.panel)
        else:
            value = getattr(event, selector)
            if isinstance(value, tuple):
                out.extend((role, v) for v in value)
            else:
                out.append((role, value))
    return out


def consumes(event: Event, role: Role, aggregate_id: Optional[int] = None) -> bool:
    """Whether the aggregate ``(role, aggregate_id)`` observes ``event``."""
    for addr_role, addr_id in addresses(event):
        if addr_role is not role:
            continue
        if addr_id is None or addr_id == ALL or addr_id == aggregate_id:
            return True
    return False
