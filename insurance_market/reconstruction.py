"""Rebuild aggregate state from the event log.

Every market participant is an event-sourced aggregate: its fields are a
left fold of the events that name it, applied in log order, starting from
the same initial configuration the live run used. Reconstruction replays
that slice through the ordinary handlers into a fresh instance and discards
whatever the handlers emit.

The random generator is the one input that cannot be replayed. Handlers
only use draws to shape emitted payloads, so replay hands them a throwaway
generator and the rebuilt state is still identical. This holds for the loss
generator too, whose occurrence ids are derived from replayed data.

Examples:
    Check every live aggregate against its replay::

        sim = Simulation.from_config(config)
        sim.run()
        assert verify_reconstruction(sim) == []

    Rebuild one insurer from a persisted log::

        log = EventLog.read_ndjson("outputs/events.ndjson")
        insurer = reconstruct(Role.INSURER, 3, log, config)
        print(insurer.capital)

Since:
    Version 0.1.0
"""

from dataclasses import dataclass, fields
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from .config.core import Config
from .consumers import Role, consumes
from .event_log import EventLog, LogEntry
from .random_source import replay_rng
from .registry import (
    Aggregate,
    build_broker,
    build_insured,
    build_insurer,
    build_market,
    build_nature,
)

if TYPE_CHECKING:
    from .simulation import Simulation

logger = logging.getLogger(__name__)

RECONSTRUCTIBLE_ROLES: Tuple[Role, ...] = (
    Role.MARKET,
    Role.NATURE,
    Role.INSURER,
    Role.INSURED,
    Role.BROKER,
)


@dataclass
class ReconstructionMismatch:
    """A live aggregate whose state differs from its replay.

    Attributes:
        role: Aggregate kind.
        aggregate_id: Aggregate id, or None for the market.
        fields: Names of the fields that differ.
    """

    role: Role
    aggregate_id: Optional[int]
    fields: List[str]


def initial_aggregate(role: Role, aggregate_id: Optional[int], config: Config) -> Aggregate:
    """Fresh aggregate in its configured initial state.

    Raises:
        ValueError: If no configured aggregate of ``role`` has ``aggregate_id``.
    """
    if role is Role.MARKET:
        return build_market(config)
    if role is Role.NATURE:
        return build_nature(config)
    populations: Dict[Role, Tuple[List[Any], Callable[[Any, Config], Aggregate]]] = {
        Role.INSURER: (config.insurers, build_insurer),
        Role.INSURED: (config.insureds, build_insured),
        Role.BROKER: (config.brokers, build_broker),
    }
    entries, build = populations[role]
    for entry in entries:
        if entry.id == aggregate_id:
            return build(entry, config)
    raise ValueError(f"No configured {role.value} with id {aggregate_id}")


def consumed_slice(log: EventLog, role: Role, aggregate_id: Optional[int] = None) -> List[LogEntry]:
    """Entries of ``log`` observed by ``(role, aggregate_id)``, in log order."""
    return [entry for entry in log if consumes(entry.event, role, aggregate_id)]


def reconstruct(
    role: Role, aggregate_id: Optional[int], log: EventLog, config: Config
) -> Aggregate:
    """Replay the consumed slice of ``log`` into a fresh aggregate.

    Args:
        role: Aggregate kind.
        aggregate_id: Aggregate id (ignored for the market).
        log: Full log of the run, from index 0.
        config: The configuration the run was built from.

    Returns:
        The rebuilt aggregate.
    """
    aggregate = initial_aggregate(role, aggregate_id, config)
    rng = replay_rng()
    for entry in consumed_slice(log, role, aggregate_id):
        aggregate.handle(entry.event, entry.day, rng)
    return aggregate


def differing_fields(live: Any, rebuilt: Any) -> List[str]:
    """Compared dataclass fields whose values differ between two aggregates."""
    return [
        f.name
        for f in fields(live)
        if f.compare and getattr(live, f.name) != getattr(rebuilt, f.name)
    ]


def verify_reconstruction(sim: "Simulation") -> List[ReconstructionMismatch]:
    """Compare every live reconstructible aggregate with its replay.

    Returns:
        One mismatch per aggregate whose state differs; empty when the run
        is fully reconstructible.
    """
    mismatches: List[ReconstructionMismatch] = []
    for role, aggregate_id in sim.registry.all_addresses():
        if role not in RECONSTRUCTIBLE_ROLES:
            continue
        live = sim.registry.get(role, aggregate_id)
        rebuilt = reconstruct(role, aggregate_id, sim.log, sim.config)
        if live != rebuilt:
            diff = differing_fields(live, rebuilt)
            logger.warning("%s %s does not match its replay: %s", role.value, aggregate_id, diff)
            mismatches.append(ReconstructionMismatch(role, aggregate_id, diff))
    return mismatches
