"""Tests for the insurer aggregate."""

import pytest

from insurance_market.config import UnderwritingConfig
from insurance_market.events import (
    ClaimSettled,
    DeclineReason,
    FollowerQuoteDeclined,
    FollowerQuoteIssued,
    FollowerQuoteRequested,
    InsurerInsolvent,
    LeadQuoteDeclined,
    LeadQuoteIssued,
    LeadQuoteRequested,
    MarketStatsPublished,
    PanelEntry,
    Peril,
    PolicyExpired,
    YearEnd,
)
from insurance_market.insurer import Insurer
from insurance_market.pricing import Experience, ExperienceRatedPricing, FixedRatePricing


def make_insurer(capital=1_000, pricing=None, **underwriting):
    underwriting.setdefault("max_line_fraction", 1.0)
    return Insurer(
        insurer_id=1,
        capital=capital,
        underwriting=UnderwritingConfig(**underwriting),
        pricing=pricing or FixedRatePricing(0.05),
    )


def request(risk, submission_id=0):
    return LeadQuoteRequested(
        submission_id=submission_id, insured_id=0, broker_id=0, insurer_id=1, risk=risk, attempt=1
    )


def claim(amount, policy_id=0):
    return ClaimSettled(policy_id=policy_id, insurer_id=1, peril=Peril.FLOOD, amount=amount)


def follow(risk, share_bps=2_000, lead_premium=50, submission_id=0):
    return FollowerQuoteRequested(
        submission_id=submission_id,
        insured_id=0,
        broker_id=0,
        insurer_id=1,
        risk=risk,
        share_bps=share_bps,
        lead_premium=lead_premium,
    )


class TestQuoting:
    """Test the quote decision."""

    def test_issues_priced_quote(self, flood_risk, rng):
        """A risk within limits gets a quote from the pricing function."""
        insurer = make_insurer()
        [(offset, event)] = insurer.handle(request(flood_risk), 5, rng)
        assert offset == 0
        assert isinstance(event, LeadQuoteIssued)
        assert event.premium == 5
        assert insurer.quotes_issued == 1

    def test_line_limit(self, flood_risk, rng):
        """A limit above the line capacity is declined."""
        insurer = make_insurer(capital=1_000, max_line_fraction=0.05)
        [(_, event)] = insurer.handle(request(flood_risk), 5, rng)
        assert isinstance(event, LeadQuoteDeclined)
        assert event.reason is DeclineReason.LINE_LIMIT

    def test_cat_aggregate_limit(self, flood_risk, make_bound, rng):
        """Bound exposure plus the new limit must fit the aggregate capacity."""
        insurer = make_insurer(capital=150, cat_aggregate_fraction=1.0)
        assert isinstance(insurer.handle(request(flood_risk), 1, rng)[0][1], LeadQuoteIssued)

        insurer.handle(make_bound(policy_id=0, insurer_id=1), 2, rng)
        assert insurer.cat_exposure == {("UK", Peril.FLOOD): 100}
        [(_, event)] = insurer.handle(request(flood_risk, submission_id=1), 3, rng)
        assert event.reason is DeclineReason.CAT_AGGREGATE_LIMIT

    def test_insolvent_declines_everything(self, flood_risk, rng):
        """After insolvency every request is declined Insolvent."""
        insurer = make_insurer(capital=10)
        insurer.handle(claim(10), 1, rng)
        [(_, event)] = insurer.handle(request(flood_risk), 2, rng)
        assert event.reason is DeclineReason.INSOLVENT
        assert insurer.quotes_declined == {"Insolvent": 1}

    def test_cat_exposure_reported_on_quote(self, flood_risk, make_bound, rng):
        """Issued quotes report the exposure already held on the key."""
        insurer = make_insurer(capital=10_000)
        insurer.handle(make_bound(policy_id=0, insurer_id=1), 2, rng)
        [(_, event)] = insurer.handle(request(flood_risk), 3, rng)
        assert event.cat_exposure_at_quote == 100


class TestOpeningPosition:
    """Test that same-day quotes see the position at the opening of the day."""

    def test_same_day_claim_does_not_change_decision(self, flood_risk, rng):
        """Swapping a claim and a quote request on one day gives the same answer."""
        answers = []
        for claim_first in (True, False):
            insurer = make_insurer(capital=150, cat_aggregate_fraction=1.0)
            same_day = [claim(100), request(flood_risk, submission_id=1)]
            if not claim_first:
                same_day.reverse()
            out = [insurer.handle(event, 20, rng) for event in same_day]
            [(_, answer)] = [pair for pairs in out for pair in pairs]
            answers.append(answer)

        assert answers[0] == answers[1]
        assert isinstance(answers[0], LeadQuoteIssued)
        assert insurer.capital == 50

    def test_same_day_bind_does_not_change_decision(self, flood_risk, make_bound, rng):
        """Exposure bound on the quote day counts from the next day."""
        insurer = make_insurer(capital=150, cat_aggregate_fraction=1.0)
        insurer.handle(make_bound(policy_id=0, insurer_id=1), 5, rng)
        assert isinstance(insurer.handle(request(flood_risk), 5, rng)[0][1], LeadQuoteIssued)
        [(_, event)] = insurer.handle(request(flood_risk, submission_id=1), 6, rng)
        assert event.reason is DeclineReason.CAT_AGGREGATE_LIMIT

    def test_capacity_follows_next_day(self, flood_risk, rng):
        """A loss shrinks line capacity from the following day."""
        insurer = make_insurer(capital=1_000, max_line_fraction=0.1)
        insurer.handle(claim(1), 30, rng)
        assert insurer.line_capacity() == 100
        insurer.handle(claim(1), 31, rng)
        assert insurer.line_capacity() == pytest.approx(99.9)
        [(_, event)] = insurer.handle(request(flood_risk), 31, rng)
        assert event.reason is DeclineReason.LINE_LIMIT

    def test_insolvency_day_quote_answered_from_opening(self, flood_risk, rng):
        """On the failure day a request is answered from the opening position."""
        insurer = make_insurer(capital=200)
        insurer.handle(claim(200), 40, rng)
        assert insurer.insolvent
        assert isinstance(insurer.handle(request(flood_risk), 40, rng)[0][1], LeadQuoteIssued)
        [(_, event)] = insurer.handle(request(flood_risk, submission_id=1), 41, rng)
        assert event.reason is DeclineReason.INSOLVENT


class TestFollowerQuoting:
    """Test quotes for a share of a led risk."""

    def test_follows_at_lead_price(self, flood_risk, rng):
        """The follower premium is the lead premium scaled by the share."""
        insurer = make_insurer(capital=1_000)
        [(offset, event)] = insurer.handle(follow(flood_risk, share_bps=2_500, lead_premium=41), 7, rng)
        assert offset == 0
        assert event == FollowerQuoteIssued(
            submission_id=0, insured_id=0, broker_id=0, insurer_id=1, share_bps=2_500, premium=10
        )
        assert insurer.follower_quotes_issued == 1
        assert insurer.quotes_issued == 0

    def test_share_checked_against_line(self, flood_risk, rng):
        """A share can fit a line the full limit would not."""
        insurer = make_insurer(capital=1_000, max_line_fraction=0.03)
        assert insurer.decline_reason(flood_risk) is DeclineReason.LINE_LIMIT
        [(_, event)] = insurer.handle(follow(flood_risk, share_bps=2_000), 7, rng)
        assert isinstance(event, FollowerQuoteIssued)
        [(_, event)] = insurer.handle(follow(flood_risk, share_bps=4_000, submission_id=1), 7, rng)
        assert event == FollowerQuoteDeclined(
            submission_id=1, insured_id=0, broker_id=0, insurer_id=1, reason=DeclineReason.LINE_LIMIT
        )
        assert insurer.follower_quotes_declined == {"LineLimit": 1}

    def test_share_checked_against_cat_aggregate(self, flood_risk, make_bound, rng):
        """Follower shares add to the opening catastrophe exposure."""
        insurer = make_insurer(capital=110, cat_aggregate_fraction=1.0)
        insurer.handle(make_bound(policy_id=0, insurer_id=1), 1, rng)
        [(_, event)] = insurer.handle(follow(flood_risk, share_bps=1_000), 2, rng)
        assert isinstance(event, FollowerQuoteIssued)
        [(_, event)] = insurer.handle(follow(flood_risk, share_bps=2_000, submission_id=1), 2, rng)
        assert event.reason is DeclineReason.CAT_AGGREGATE_LIMIT

    def test_insolvent_follower_declines(self, flood_risk, rng):
        """A failed insurer follows nothing."""
        insurer = make_insurer(capital=10)
        insurer.handle(claim(10), 1, rng)
        [(_, event)] = insurer.handle(follow(flood_risk), 2, rng)
        assert event.reason is DeclineReason.INSOLVENT


class TestBindingAndExpiry:
    """Test premium credit and exposure release."""

    def test_premium_credited(self, make_bound, rng):
        """Binding credits the panel premium to capital and the year."""
        insurer = make_insurer(capital=1_000)
        insurer.handle(make_bound(policy_id=0, insurer_id=1, premium=30), 400, rng)
        assert insurer.capital == 1_030
        assert insurer.year_premium == {2: 30}

    def test_partial_panel_share(self, flood_risk, make_bound, rng):
        """Exposure is the limit scaled by the panel share."""
        event = make_bound(policy_id=0, insurer_id=2, premium=10).model_copy(
            update={
                "panel": (
                    PanelEntry(insurer_id=2, share_bps=6_000, premium=6),
                    PanelEntry(insurer_id=1, share_bps=4_000, premium=4),
                )
            }
        )
        insurer = make_insurer(capital=1_000)
        insurer.handle(event, 1, rng)
        assert insurer.capital == 1_004
        assert insurer.cat_exposure == {("UK", Peril.FLOOD): 40}

    def test_expiry_releases_exposure(self, make_bound, rng):
        """Expiry removes exactly the exposure the policy added."""
        insurer = make_insurer()
        insurer.handle(make_bound(policy_id=0, insurer_id=1), 1, rng)
        insurer.handle(PolicyExpired(policy_id=0, insured_id=0, insurer_ids=(1,)), 361, rng)
        assert insurer.cat_exposure == {}
        assert insurer.policy_exposure == {}

    def test_not_on_panel(self, make_bound, rng, caplog):
        """A policy without this insurer on the panel is ignored with a warning."""
        insurer = make_insurer()
        assert insurer.handle(make_bound(policy_id=0, insurer_id=7, premium=50), 1, rng) == []
        assert insurer.capital == 1_000
        assert "not on the panel" in caplog.text

    def test_unknown_expiry(self, rng, caplog):
        """Expiry of an unknown policy is a logged no-op."""
        insurer = make_insurer()
        assert insurer.handle(PolicyExpired(policy_id=9, insured_id=0, insurer_ids=(1,)), 1, rng) == []
        assert "unknown or retired policy 9" in caplog.text


class TestClaimsAndInsolvency:
    """Test the capital floor and the single insolvency fact."""

    def test_claim_debits_capital(self, rng):
        """A claim within capital is paid in full."""
        insurer = make_insurer(capital=100)
        assert insurer.handle(claim(40), 50, rng) == []
        assert insurer.capital == 60
        assert insurer.claims_paid == 40

    def test_overdraw_pays_to_zero_and_fails_once(self, rng):
        """Capital floors at zero and exactly one insolvency is emitted."""
        insurer = make_insurer(capital=40)
        assert insurer.handle(claim(100), 50, rng) == [(0, InsurerInsolvent(insurer_id=1))]
        assert insurer.capital == 0
        assert insurer.claims_paid == 40
        assert insurer.insolvent

        assert insurer.handle(claim(40), 60, rng) == []
        assert insurer.capital == 0
        assert insurer.year_claims == {1: 140}

    def test_zero_claim_never_triggers_insolvency(self, rng):
        """A zero-amount claim against zero capital is not a failure."""
        insurer = make_insurer(capital=1)
        insurer.capital = 0
        assert insurer.handle(claim(0), 5, rng) == []
        assert not insurer.insolvent

    def test_negative_capital_rejected(self):
        """An insurer cannot start below zero."""
        with pytest.raises(ValueError):
            make_insurer(capital=-1)


class TestExperience:
    """Test EWMA experience and the benchmark history."""

    def test_year_end_folds_loss_ratio(self, make_bound, rng):
        """The first closed year seeds the EWMA, effective the next day."""
        insurer = make_insurer(capital=1_000, ewma_alpha=0.5)
        insurer.handle(make_bound(policy_id=0, insurer_id=1, premium=100), 10, rng)
        insurer.handle(claim(50), 20, rng)
        insurer.handle(YearEnd(year=1), 360, rng)

        assert insurer.experience_history == [(361, 0.5)]
        assert insurer.experience_at(360) == Experience()
        assert insurer.experience_at(361) == Experience(loss_ratio=0.5, years=1)

    def test_ewma_blends_years(self, make_bound, rng):
        """Later years are blended with weight alpha."""
        insurer = make_insurer(capital=10_000, ewma_alpha=0.5)
        insurer.handle(make_bound(policy_id=0, insurer_id=1, premium=100), 10, rng)
        insurer.handle(YearEnd(year=1), 360, rng)
        insurer.handle(make_bound(policy_id=1, insurer_id=1, premium=100), 370, rng)
        insurer.handle(claim(100, policy_id=1), 400, rng)
        insurer.handle(YearEnd(year=2), 720, rng)
        assert insurer.experience_history[-1] == (721, pytest.approx(0.5))

    def test_year_without_premium_skipped(self, rng):
        """A year with no premium leaves the EWMA untouched."""
        insurer = make_insurer()
        insurer.handle(YearEnd(year=1), 360, rng)
        assert insurer.experience_history == []

    def test_benchmark_effective_next_day(self, rng):
        """A published benchmark applies only from its effective day."""
        insurer = make_insurer(initial_benchmark_loss_ratio=0.6)
        stats = MarketStatsPublished(
            year=1, industry_loss_ratio=0.9, bound_premium=10, claims_paid=9, effective_day=361
        )
        insurer.handle(stats, 360, rng)
        assert insurer.benchmark_at(360) == 0.6
        assert insurer.benchmark_at(361) == 0.9

    def test_quote_uses_effective_experience(self, flood_risk, rng):
        """Experience-rated quotes see the benchmark effective on the quote day."""
        pricing = ExperienceRatedPricing(base=FixedRatePricing(0.10), target_loss_ratio=0.5)
        insurer = make_insurer(capital=10_000, pricing=pricing, initial_benchmark_loss_ratio=0.5)
        insurer.handle(
            MarketStatsPublished(
                year=1, industry_loss_ratio=1.0, bound_premium=1, claims_paid=1, effective_day=361
            ),
            360,
            rng,
        )
        assert insurer.handle(request(flood_risk), 360, rng)[0][1].premium == 10
        assert insurer.handle(request(flood_risk, 1), 361, rng)[0][1].premium == 20
