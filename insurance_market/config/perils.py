"""Loss occurrence (peril) configuration.

Frequency and damage-fraction parameters for the two structurally distinct
loss classes: independent attritional occurrences scheduled per policy at
bind time, and correlated catastrophe occurrences scheduled per territory at
the start of each year.

Since:
    Version 0.1.0
"""

from pydantic import BaseModel, Field, field_validator

from ..events import Peril


class AttritionalConfig(BaseModel):
    """Independent per-policy losses.

    The occurrence count over a policy term is Poisson with mean
    ``annual_rate`` scaled by the term length; each occurrence draws its own
    lognormal damage fraction (clipped to 1).

    Attributes:
        annual_rate: Expected occurrences per policy-year.
        mu: Log-space mean of the damage fraction.
        sigma: Log-space standard deviation of the damage fraction.

    Examples:
        Frequent small losses::

            AttritionalConfig(annual_rate=4.0, mu=-4.5, sigma=0.8)
    """

    annual_rate: float = Field(default=2.0, ge=0, description="Expected occurrences per policy-year")
    mu: float = Field(default=-3.0, description="Log-space mean of the damage fraction")
    sigma: float = Field(default=1.0, gt=0, description="Log-space std of the damage fraction")


class CatPerilConfig(BaseModel):
    """Correlated catastrophe occurrences for one (territory, peril) key.

    A Poisson number of occurrences is scheduled at each ``YearStart``; every
    occurrence draws one Pareto damage fraction shared by all policies
    matched by the key.

    Attributes:
        peril: Catastrophe peril (never ``Attritional``).
        territory: Territory code matched against ``Risk.territory``.
        annual_frequency: Expected occurrences per year.
        pareto_scale: Minimum damage fraction of an occurrence.
        pareto_shape: Tail index; values above 1 give a finite mean.
    """

    peril: Peril
    territory: str = Field(min_length=1)
    annual_frequency: float = Field(default=0.5, ge=0, description="Expected occurrences per year")
    pareto_scale: float = Field(default=0.05, gt=0, lt=1, description="Minimum damage fraction")
    pareto_shape: float = Field(default=1.5, gt=0, description="Pareto tail index")

    @field_validator("peril")
    @classmethod
    def validate_catastrophe_peril(cls, v: Peril) -> Peril:
        """Attritional losses are configured separately.

        Raises:
            ValueError: If ``v`` is the attritional peril.
        """
        if not v.is_catastrophe:
            raise ValueError("Attritional losses belong in AttritionalConfig, not catastrophes")
        return v

    @property
    def key(self):
        """The ``(territory, peril)`` loss-index key this peril strikes."""
        return (self.territory, self.peril)
