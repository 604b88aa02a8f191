"""Tests for the dispatch loop and end-to-end lifecycle scenarios."""

import pytest

from insurance_market.config import (
    ConfigurationError,
    OutputConfig,
    PanelConfig,
    UnderwritingConfig,
)
from insurance_market.config.presets import canonical_market
from insurance_market.event_log import EventLog, ReplayCursor
from insurance_market.events import (
    ClaimSettled,
    CoverageRequested,
    FollowerQuoteIssued,
    FollowerQuoteRequested,
    InsurerInsolvent,
    LeadQuoteDeclined,
    LeadQuoteIssued,
    LeadQuoteRequested,
    LossEvent,
    MarketStatsPublished,
    Peril,
    PanelEntry,
    PolicyBound,
    QuotePresented,
    QuoteRejected,
    SimulationStart,
    YearEnd,
    YearStart,
)
from insurance_market.invariants import verify_log
from insurance_market.reconstruction import verify_reconstruction
from insurance_market.simulation import Simulation, run_simulation


def uk_flood(day_fraction, event_id=0):
    return LossEvent(event_id=event_id, peril=Peril.FLOOD, territory="UK", damage_fraction=day_fraction)


def tags(log, *event_types):
    return [(e.day, e.event) for e in log.events_of(*event_types)]


class TestDispatchLoop:
    """Test the kernel mechanics."""

    def test_bootstrap_events(self, make_config):
        """A bootstrapped run opens with SimulationStart and YearStart on day 0."""
        sim = Simulation(make_config())
        sim.run(max_events=2)
        assert [(e.day, e.event) for e in sim.log] == [
            (0, SimulationStart(year=1)),
            (0, YearStart(year=1)),
        ]

    def test_log_days_never_decrease(self, make_config):
        """Dispatch is in non-decreasing day order."""
        sim = Simulation(make_config(years=2))
        sim.run()
        days = [e.day for e in sim.log]
        assert days == sorted(days)

    def test_horizon_includes_final_year_end(self, make_config):
        """The default horizon stops right after the final YearEnd day."""
        sim = Simulation(make_config(years=2))
        summary = sim.run()
        assert summary.stop_reason == "max_day"
        year_ends = [(e.day, e.event.year) for e in sim.log.events_of(YearEnd)]
        assert year_ends == [(360, 1), (720, 2)]
        assert [e.event.effective_day for e in sim.log.events_of(MarketStatsPublished)] == [361, 721]
        assert sim.log[-1].day <= 720
        assert sim.queue.peek_day() > 720

    def test_empty_queue_ends_run(self, make_config):
        """Without bootstrap and scheduled events the run is exhausted at once."""
        sim = Simulation(make_config(), bootstrap=False)
        summary = sim.run()
        assert summary.stop_reason == "exhausted"
        assert summary.events_dispatched == 0
        assert summary.last_day is None

    def test_event_budget(self, make_config):
        """max_events bounds the events dispatched by one call."""
        sim = Simulation(make_config())
        summary = sim.run(max_events=5)
        assert summary.stop_reason == "max_events"
        assert len(sim.log) == 5

    def test_resume_continues_from_queue(self, make_config):
        """A stopped run resumes where it left off."""
        sim = Simulation(make_config(years=2))
        cursor = ReplayCursor(sim.log)
        sim.run(max_day=100)
        first = cursor.advance()
        sim.run()
        rest = cursor.advance()
        assert first and rest
        assert rest[0].seq == len(first)
        assert all(e.day > 100 for e in rest)

    def test_schedule_in_past_refused(self, make_config):
        """Events cannot be scheduled before the day being dispatched."""
        sim = Simulation(make_config())
        sim.run(max_day=50)
        with pytest.raises(ValueError):
            sim.schedule(sim.current_day - 1, YearStart(year=1))

    def test_invalid_config_refused_before_dispatch(self, make_config):
        """Configuration errors surface at construction."""
        config = make_config().model_copy(update={"brokers": []})
        with pytest.raises(ConfigurationError):
            Simulation(config)

    def test_summary(self, make_config):
        """The summary reports counts per tag."""
        sim = Simulation(make_config())
        summary = sim.run()
        assert summary.events_dispatched == len(sim.log)
        assert summary.event_counts["YearStart"] == 1
        df = summary.to_dataframe()
        assert list(df.columns) == ["event_type", "count"]
        assert df["count"].sum() == summary.events_dispatched
        assert summary.summary_stats()["log_length"] == len(sim.log)


class TestDeterminism:
    """Test byte-for-byte reproducibility."""

    def test_same_seed_same_log(self):
        """Two runs from the same seed produce identical logs."""
        logs = []
        for _ in range(2):
            sim = Simulation(canonical_market(seed=11, years=2))
            sim.run()
            logs.append(list(sim.log.to_ndjson_lines()))
        assert logs[0] == logs[1]
        assert len(logs[0]) > 100

    def test_different_seed_different_log(self):
        """The seed drives the run."""
        a = Simulation(canonical_market(seed=1, years=1))
        b = Simulation(canonical_market(seed=2, years=1))
        a.run()
        b.run()
        assert list(a.log.to_ndjson_lines()) != list(b.log.to_ndjson_lines())

    def test_canonical_market_places_cover(self):
        """The reference market binds policies within its first year."""
        sim = Simulation(canonical_market(seed=5, years=1))
        summary = sim.run()
        assert summary.event_counts.get("PolicyBound", 0) > 0
        assert summary.bound_policies > 0


class TestScenarios:
    """End-to-end lifecycle scenarios built from scheduled events."""

    def test_single_catastrophe_claim(self, make_config, make_bound):
        """Bind at day 10, 40% flood at day 50: one claim of 40."""
        sim = Simulation(make_config(capitals=(1_000,)), bootstrap=False)
        sim.schedule(10, make_bound(policy_id=0, insurer_id=0, premium=0))
        sim.schedule(50, uk_flood(0.4))
        sim.run(max_day=100)

        claims = tags(sim.log, ClaimSettled)
        assert claims == [
            (50, ClaimSettled(policy_id=0, insurer_id=0, peril=Peril.FLOOD, amount=40))
        ]
        assert sim.registry.insurers[0].capital == 960

    def test_insolvency_emitted_once(self, make_config, make_bound):
        """Capital 40 against two claims of 40: one payout, one failure."""
        sim = Simulation(make_config(capitals=(40,)), bootstrap=False)
        sim.schedule(10, make_bound(policy_id=0, insurer_id=0, premium=0))
        sim.schedule(50, uk_flood(0.4, event_id=0))
        sim.schedule(60, uk_flood(0.4, event_id=1))
        sim.run(max_day=100)

        assert [e.amount for _, e in tags(sim.log, ClaimSettled)] == [40, 40]
        assert tags(sim.log, InsurerInsolvent) == [(50, InsurerInsolvent(insurer_id=0))]
        insurer = sim.registry.insurers[0]
        assert insurer.capital == 0
        assert insurer.claims_paid == 40
        assert sim.registry.market.insolvent_insurers == {0: 50}

    def test_decline_then_reroute_same_day(self, make_config, flood_risk):
        """Insurer 0 declines on exposure; insurer 1 issues on attempt 2."""
        config = make_config(
            capitals=(150, 1_000),
            underwriting=UnderwritingConfig(max_line_fraction=1.0, cat_aggregate_fraction=0.5),
        )
        sim = Simulation(config, bootstrap=False)
        sim.schedule(0, CoverageRequested(insured_id=0, broker_id=0, risk=flood_risk))
        sim.run(max_day=1)

        requests = tags(sim.log, LeadQuoteRequested)
        assert [(d, e.insurer_id, e.attempt) for d, e in requests] == [(1, 0, 1), (1, 1, 2)]

        responses = tags(sim.log, LeadQuoteDeclined, LeadQuoteIssued)
        assert [type(e) for _, e in responses] == [LeadQuoteDeclined, LeadQuoteIssued]
        (declined_day, declined), (issued_day, issued) = responses
        assert declined.submission_id == issued.submission_id == 0
        assert declined_day == issued_day == 1
        assert declined.insurer_id == 0
        assert declined.reason.value == "CatAggregateLimit"
        assert issued.insurer_id == 1

    def test_rejection_renews_at_offset(self, make_config):
        """A quote above the reservation price is rejected and re-requested later."""
        config = make_config(max_rate_on_line=0.01, rate_on_line=0.05)
        renewal = config.lifecycle.renewal_offset
        sim = Simulation(config, bootstrap=False)
        sim.schedule(0, CoverageRequested(insured_id=0, broker_id=0, risk=config.insureds[0].risk))
        sim.run(max_day=2 + renewal)

        [(rejected_day, _)] = tags(sim.log, QuoteRejected)
        assert rejected_day == 2
        requests = [d for d, _ in tags(sim.log, CoverageRequested)]
        assert requests == [0, rejected_day + renewal]
        assert tags(sim.log, PolicyBound) == []


class TestFollowMarket:
    """End-to-end placement with a lead and followers."""

    @pytest.fixture
    def syndicated(self, make_config, flood_risk):
        """Three insurers; the lead keeps half and two followers write a quarter each."""
        config = make_config(
            capitals=(1_000, 1_000, 1_000),
            panel=PanelConfig(max_followers=2, follower_share_bps=2_500),
            rate_on_line=0.08,
        )
        sim = Simulation(config, bootstrap=False)
        sim.schedule(0, CoverageRequested(insured_id=0, broker_id=0, risk=flood_risk))
        sim.schedule(50, uk_flood(0.4))
        sim.run(max_day=100)
        return sim

    def test_follower_round_one_day_after_lead(self, syndicated):
        """Lead on day 1, followers on day 2, placement presented on day 3, bound on day 4."""
        [(lead_day, _)] = tags(syndicated.log, LeadQuoteIssued)
        follow_days = [d for d, _ in tags(syndicated.log, FollowerQuoteRequested)]
        [(presented_day, presented)] = tags(syndicated.log, QuotePresented)
        [(bound_day, bound)] = tags(syndicated.log, PolicyBound)
        assert (lead_day, follow_days, presented_day, bound_day) == (1, [2, 2], 3, 4)
        assert [d for d, _ in tags(syndicated.log, FollowerQuoteIssued)] == [2, 2]
        assert bound.panel == presented.panel
        assert bound.panel == (
            PanelEntry(insurer_id=0, share_bps=5_000, premium=4),
            PanelEntry(insurer_id=1, share_bps=2_500, premium=2),
            PanelEntry(insurer_id=2, share_bps=2_500, premium=2),
        )
        assert bound.premium == 8

    def test_panel_claim_conserved(self, syndicated):
        """A 40% flood settles 40 across the panel and debits every member."""
        claims = [e for _, e in tags(syndicated.log, ClaimSettled)]
        assert [(c.insurer_id, c.amount) for c in claims] == [(0, 20), (1, 10), (2, 10)]
        assert sum(c.amount for c in claims) == 40
        capitals = {i: ins.capital for i, ins in syndicated.registry.insurers.items()}
        assert capitals == {0: 984, 1: 992, 2: 992}

    def test_panel_run_is_consistent(self, syndicated):
        """The syndicated run satisfies every invariant and replays exactly."""
        assert verify_log(syndicated.log) == []
        assert verify_reconstruction(syndicated) == []

    def test_canonical_market_binds_panels(self):
        """The reference market places most risks with followers."""
        sim = Simulation(canonical_market(seed=5, years=3))
        sim.run()
        sizes = [len(e.event.panel) for e in sim.log.events_of(PolicyBound)]
        assert sizes
        assert max(sizes) > 1
        assert verify_log(sim.log) == []

class TestPersistence:
    """Test log export."""

    def test_write_log_to_configured_path(self, make_config, tmp_path):
        """write_log defaults to the configured output path."""
        config = make_config().model_copy(
            update={
                "output": OutputConfig(
                    output_directory=str(tmp_path), event_log_file="events.ndjson"
                )
            }
        )
        sim = Simulation(config)
        sim.run()
        path = sim.write_log()
        assert path == tmp_path / "events.ndjson"
        assert list(EventLog.read_ndjson(path)) == list(sim.log)

    def test_write_log_without_path(self, make_config):
        """Without a path or configured file there is nowhere to write."""
        sim = Simulation(make_config())
        with pytest.raises(ValueError):
            sim.write_log()

    def test_run_simulation_persists(self, make_config, tmp_path):
        """run_simulation runs to the horizon and writes the configured log."""
        config = make_config().model_copy(
            update={
                "output": OutputConfig(
                    output_directory=str(tmp_path), event_log_file="run.ndjson"
                )
            }
        )
        sim = run_simulation(config)
        assert (tmp_path / "run.ndjson").exists()
        last = sim.log[-1]
        assert isinstance(last.event, MarketStatsPublished)
        assert (last.day, last.event.year, last.event.effective_day) == (360, 1, 361)
