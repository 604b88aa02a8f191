"""Simulation execution configuration.

Since:
    Version 0.1.0
"""

from typing import Optional

from pydantic import BaseModel, Field

from ..market_types import DAYS_PER_YEAR


class SimulationConfig(BaseModel):
    """Simulation execution parameters.

    Attributes:
        seed: Seed of the run's single random generator. Checked for
            negativity by :meth:`Config.validate` so the problem is reported
            together with every other population issue.
        years: Number of simulated years; the last ``YearEnd`` closes year
            ``years`` and schedules no further year.
        max_events: Optional budget of dispatched events.
        stop_after_final_year: Stop dispatching after the final ``YearEnd``
            even though renewals and policy expiries remain queued.

    Examples:
        Short reproducible run::

            SimulationConfig(seed=7, years=3)
    """

    seed: int = Field(default=42, description="Random seed for reproducibility")
    years: int = Field(default=5, gt=0, le=1000, description="Simulation horizon in years")
    max_events: Optional[int] = Field(default=None, gt=0, description="Dispatch budget")
    stop_after_final_year: bool = Field(default=True)

    @property
    def horizon_day(self) -> Optional[int]:
        """Last day dispatched when stopping after the final year."""
        if not self.stop_after_final_year:
            return None
        return self.years * DAYS_PER_YEAR
