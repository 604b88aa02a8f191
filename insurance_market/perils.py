"""Loss occurrence generation ("nature").

Two structurally distinct loss classes are scheduled here:

* **Catastrophes** are scheduled at each ``YearStart``. For every configured
  ``(territory, peril)`` a Poisson number of occurrences is drawn, each on a
  uniform day inside the year and with ONE Pareto damage fraction that the
  market coordinator applies identically to every matching policy. Sharing
  the draw is what correlates losses across insurers.
* **Attritional losses** are scheduled per policy when its ``PolicyBound``
  is handled. Each occurrence lands strictly inside the policy term and
  carries its own lognormal damage fraction.

All draws are written into the emitted payloads and occurrence ids are
derived from the year (catastrophes) or the policy (attritional) plus the
index of the draw, so the generator holds no state beyond its configuration.
Replaying its slice rebuilds it exactly; only the emitted payloads differ
under a different generator.

Since:
    Version 0.1.0
"""

from dataclasses import dataclass, field
import logging
from typing import List, Sequence

import numpy as np
from scipy import stats

from .config.perils import AttritionalConfig, CatPerilConfig
from .events import AttritionalLoss, Event, LossEvent, Peril, PolicyBound, Scheduled, YearStart
from .market_types import DAYS_PER_YEAR, Day, attritional_event_id, catastrophe_event_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DamageFractionModel:
    """Distribution of the fraction of an asset destroyed by one occurrence.

    Samples are clipped to 1 so that a single occurrence never exceeds the
    insured value.

    Attributes:
        kind: ``"lognormal"`` or ``"pareto"``.
        a: Log-space mean (lognormal) or minimum fraction (pareto).
        b: Log-space std (lognormal) or tail index (pareto).
    """

    kind: str
    a: float
    b: float

    @classmethod
    def lognormal(cls, mu: float, sigma: float) -> "DamageFractionModel":
        """Lognormal model with log-space parameters."""
        return cls("lognormal", mu, sigma)

    @classmethod
    def pareto(cls, scale: float, shape: float) -> "DamageFractionModel":
        """Pareto model with minimum ``scale`` and tail index ``shape``."""
        return cls("pareto", scale, shape)

    def distribution(self):
        """Frozen :mod:`scipy.stats` distribution of the unclipped fraction."""
        if self.kind == "lognormal":
            return stats.lognorm(s=self.b, scale=np.exp(self.a))
        if self.kind == "pareto":
            return stats.pareto(b=self.b, scale=self.a)
        raise ValueError(f"Unknown damage fraction model: {self.kind}")

    def sample(self, rng: np.random.Generator) -> float:
        """Draw one damage fraction in ``[0, 1]``."""
        value = float(self.distribution().rvs(random_state=rng))
        return min(value, 1.0)


@dataclass
class LossGenerator:
    """Schedules loss occurrences; consumes ``YearStart`` and ``PolicyBound``.

    Attributes:
        attritional: Per-policy occurrence parameters.
        catastrophes: Catastrophe perils scheduled every year.
        policy_term_days: Length of a policy; bounds attritional offsets.
    """

    attritional: AttritionalConfig = field(compare=False, repr=False)
    catastrophes: List[CatPerilConfig] = field(compare=False, repr=False)
    policy_term_days: int = DAYS_PER_YEAR

    @classmethod
    def from_config(
        cls,
        attritional: AttritionalConfig,
        catastrophes: Sequence[CatPerilConfig],
        policy_term_days: int = DAYS_PER_YEAR,
    ) -> "LossGenerator":
        """Build a generator from the peril sections of a configuration."""
        return cls(
            attritional=attritional,
            catastrophes=list(catastrophes),
            policy_term_days=policy_term_days,
        )

    def handle(self, event: Event, day: Day, rng: np.random.Generator) -> List[Scheduled]:
        """Route ``event`` to its scheduling step."""
        if isinstance(event, YearStart):
            return self.schedule_catastrophes(event, rng)
        if isinstance(event, PolicyBound):
            return self.schedule_attritional(event, rng)
        return []

    def schedule_catastrophes(self, event: YearStart, rng: np.random.Generator) -> List[Scheduled]:
        """Draw this year's catastrophe occurrences.

        Offsets are uniform on ``1..359`` days after ``YearStart`` so every
        occurrence falls inside the year it was drawn for.
        """
        out: List[Scheduled] = []
        for cat in self.catastrophes:
            if cat.annual_frequency <= 0:
                continue
            model = DamageFractionModel.pareto(cat.pareto_scale, cat.pareto_shape)
            count = int(rng.poisson(cat.annual_frequency))
            for _ in range(count):
                offset = int(rng.integers(1, DAYS_PER_YEAR))
                out.append(
                    (
                        offset,
                        LossEvent(
                            event_id=catastrophe_event_id(event.year, len(out)),
                            peril=cat.peril,
                            territory=cat.territory,
                            damage_fraction=model.sample(rng),
                        ),
                    )
                )
        if out:
            logger.debug("Year %d: scheduled %d catastrophe occurrences", event.year, len(out))
        return out

    def schedule_attritional(self, event: PolicyBound, rng: np.random.Generator) -> List[Scheduled]:
        """Draw attritional occurrences strictly inside the policy term.

        The Poisson mean is the annual rate scaled by the term length; offsets
        are uniform on ``1..term-1`` so every occurrence satisfies the
        eligibility window ``bound_day < day < expiry_day``.
        """
        if not event.risk.covers(Peril.ATTRITIONAL) or self.attritional.annual_rate <= 0:
            return []
        term = self.policy_term_days
        model = DamageFractionModel.lognormal(self.attritional.mu, self.attritional.sigma)
        count = int(rng.poisson(self.attritional.annual_rate * term / DAYS_PER_YEAR))
        out: List[Scheduled] = []
        for _ in range(count):
            offset = int(rng.integers(1, term))
            out.append(
                (
                    offset,
                    AttritionalLoss(
                        event_id=attritional_event_id(event.policy_id, len(out)),
                        policy_id=event.policy_id,
                        insured_id=event.insured_id,
                        damage_fraction=model.sample(rng),
                    ),
                )
            )
        return out
