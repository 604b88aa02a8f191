"""Market mechanics configuration: lifecycle timing, underwriting, pricing, routing.

Every day offset used by a lifecycle handler is declared in
:class:`LifecycleConfig`, so the whole timing contract of a run can be read
(and changed) in one place.

Since:
    Version 0.1.0
"""

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from ..market_types import BASIS_POINTS


class LifecycleConfig(BaseModel):
    """Day offsets and retry bounds of the policy lifecycle.

    Attributes:
        quote_request_offset: CoverageRequested to first LeadQuoteRequested.
        reroute_offset: LeadQuoteDeclined to the next LeadQuoteRequested.
        follower_offset: LeadQuoteIssued to the FollowerQuoteRequested
            round; the placed quote is presented ``present_offset`` days
            after the last follower answers.
        present_offset: LeadQuoteIssued to QuotePresented.
        bind_offset: QuoteAccepted to PolicyBound.
        policy_term_days: PolicyBound to PolicyExpired.
        renewal_offset: QuoteRejected or SubmissionDropped to the next
            CoverageRequested from the same insured.
        max_quote_attempts: Insurers solicited per submission before it is
            dropped.
        initial_request_window: Insureds place their first request on a day
            drawn uniformly from ``[0, initial_request_window)``.

    Examples:
        Slower, more patient market::

            LifecycleConfig(present_offset=3, max_quote_attempts=6)
    """

    quote_request_offset: int = Field(default=1, ge=0)
    reroute_offset: int = Field(default=0, ge=0)
    follower_offset: int = Field(default=1, ge=1)
    present_offset: int = Field(default=1, ge=0)
    bind_offset: int = Field(default=1, ge=0)
    policy_term_days: int = Field(default=360, gt=1)
    renewal_offset: int = Field(default=360, gt=0)
    max_quote_attempts: int = Field(default=3, ge=1)
    initial_request_window: int = Field(default=30, ge=1, le=360)


class UnderwritingConfig(BaseModel):
    """Capital-linked underwriting limits and experience tracking.

    Both limits are recomputed from current capital at the moment of
    quoting, so a depleted insurer tightens automatically.

    Attributes:
        max_line_fraction: Largest single limit as a fraction of capital.
        cat_aggregate_fraction: Largest aggregate limit per
            ``(territory, peril)`` as a fraction of capital.
        ewma_alpha: Weight of the newest year in the experience loss ratio.
        initial_benchmark_loss_ratio: Industry benchmark before the first
            published year.
    """

    max_line_fraction: float = Field(default=0.3, gt=0, le=1)
    cat_aggregate_fraction: float = Field(default=1.0, gt=0)
    ewma_alpha: float = Field(default=0.3, gt=0, le=1)
    initial_benchmark_loss_ratio: float = Field(default=0.65, ge=0)


class PricingConfig(BaseModel):
    """Selects and parameterises the premium function of an insurer.

    Attributes:
        method: ``fixed`` quotes ``rate_on_line`` times limit;
            ``expected_loss`` prices the modelled layer loss;
            ``experience_rated`` scales a base method by blended experience.
        base_method: Base function used by ``experience_rated``.
        rate_on_line: Premium per unit of limit for ``fixed``.
        target_loss_ratio: Claims-to-premium ratio the insurer prices for.
        risk_loading: Loading for parameter uncertainty on the pure premium.
        min_premium: Premium floor.
        max_rate_on_line: Premium cap per unit of limit.
        credibility: Weight of the insurer's own experience against the
            market benchmark.
        min_experience_factor: Lower bound of the experience multiplier.
        max_experience_factor: Upper bound of the experience multiplier.
    """

    method: Literal["fixed", "expected_loss", "experience_rated"] = "experience_rated"
    base_method: Literal["fixed", "expected_loss"] = "expected_loss"
    rate_on_line: float = Field(default=0.05, gt=0, le=1)
    target_loss_ratio: float = Field(default=0.70, gt=0, le=2)
    risk_loading: float = Field(default=0.10, ge=0)
    min_premium: int = Field(default=0, ge=0)
    max_rate_on_line: float = Field(default=1.0, gt=0, le=1)
    credibility: float = Field(default=0.3, ge=0, le=1)
    min_experience_factor: float = Field(default=0.5, gt=0)
    max_experience_factor: float = Field(default=3.0, gt=0)

    @model_validator(mode="after")
    def validate_factor_bounds(self):
        """Ensure the experience multiplier band is not empty.

        Raises:
            ValueError: If the lower bound exceeds the upper bound.
        """
        if self.min_experience_factor > self.max_experience_factor:
            raise ValueError(
                f"min_experience_factor ({self.min_experience_factor}) exceeds "
                f"max_experience_factor ({self.max_experience_factor})"
            )
        return self


class RoutingConfig(BaseModel):
    """Selects how a broker picks the next insurer to solicit."""

    method: Literal["round_robin", "capacity_weighted", "relationship_score"] = "round_robin"


class PanelConfig(BaseModel):
    """Follow-market syndication of a led risk.

    Once a lead quote is issued the broker asks up to ``max_followers``
    further insurers, in rotation order after the lead, to each write
    ``follower_share_bps`` of the line at the lead's price. The lead keeps
    whatever share the followers do not take.

    Attributes:
        max_followers: Followers solicited per placement; 0 places every
            risk with the lead alone.
        follower_share_bps: Share each follower is asked to write, in basis
            points of the limit.

    Examples:
        Lead keeps at least 40%::

            PanelConfig(max_followers=3, follower_share_bps=2_000)
    """

    max_followers: int = Field(default=0, ge=0)
    follower_share_bps: int = Field(default=2_000, gt=0, lt=BASIS_POINTS)

    @model_validator(mode="after")
    def validate_lead_share(self):
        """Ensure a full follow round still leaves the lead a positive share.

        Raises:
            ValueError: If followers could take the whole line.
        """
        if self.max_followers * self.follower_share_bps >= BASIS_POINTS:
            raise ValueError(
                f"{self.max_followers} followers at {self.follower_share_bps} bps leave "
                "no share for the lead"
            )
        return self
