"""Tests for teamBalancer.rating: the weight evidence chain and its cache."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from teamBalancer import rating
from teamBalancer.config import BalancerConfig
from teamBalancer.errors import ExternalLookupFailure
from teamBalancer.models import Competitor, WeightSource
from teamBalancer.rating import (
    calculate_rank_drop_decay,
    calculate_time_decay,
    calculate_tournament_bonus,
    calculate_unranked_penalty,
    compute_weight_detailed,
    resolve_all,
    resolve_competitor,
    weight_cache_info,
)

NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)


def _make_competitor(cid="p1", **kwargs):
    return Competitor(id=cid, name=kwargs.pop("name", cid), **kwargs)


@pytest.fixture
def config():
    return BalancerConfig()


# ============================================================================
# Helpers
# ============================================================================


class TestDecayHelpers:
    def test_no_time_decay_inside_grace_period(self, config):
        assert calculate_time_decay(None, config) == 0.0
        assert calculate_time_decay(60, config) == 0.0

    def test_time_decay_grows_and_stays_capped(self, config):
        short = calculate_time_decay(90, config)
        long = calculate_time_decay(2000, config)
        assert 0 < short < long <= config.max_decay_percent

    def test_rank_drop_tiers(self, config):
        assert calculate_rank_drop_decay(49, config) == 0.0
        assert calculate_rank_drop_decay(50, config) == 0.2
        assert calculate_rank_drop_decay(100, config) == 0.4
        assert calculate_rank_drop_decay(250, config) == 0.6
        assert calculate_rank_drop_decay(300, config) == 0.8

    def test_unranked_penalty_grows_with_peak(self, config):
        assert calculate_unranked_penalty(500, config) == 0.25
        assert calculate_unranked_penalty(265, config) == 0.22
        assert calculate_unranked_penalty(190, config) == 0.2
        assert calculate_unranked_penalty(130, config) == 0.18
        assert calculate_unranked_penalty(40, config) == 0.15

    def test_tournament_bonus_diminishes(self, config):
        assert calculate_tournament_bonus(0, config) == 0
        assert calculate_tournament_bonus(1, config) == 15
        assert calculate_tournament_bonus(2, config) == 22.5
        assert calculate_tournament_bonus(10, config) <= config.max_tournament_bonus


# ============================================================================
# Evidence chain
# ============================================================================


class TestComputeWeight:
    def test_manual_weight_override(self, config):
        c = _make_competitor(use_manual_override=True, manual_weight_override=275,
                             current_rank="Gold 1", rank_override_reason="smurf")
        weight, source, trace = compute_weight_detailed(c, config, NOW)
        assert weight == 275
        assert source is WeightSource.MANUAL_OVERRIDE
        assert "Reason: smurf" in trace.factors

    def test_manual_rank_override(self, config):
        c = _make_competitor(use_manual_override=True, manual_rank_override="Immortal 1",
                             current_rank="Silver 1")
        weight, source, _ = compute_weight_detailed(c, config, NOW)
        assert (weight, source) == (300, WeightSource.MANUAL_OVERRIDE)

    def test_disabled_override_is_ignored(self, config):
        c = _make_competitor(use_manual_override=False, manual_weight_override=275,
                             current_rank="Gold 1")
        weight, source, _ = compute_weight_detailed(c, config, NOW)
        assert (weight, source) == (70, WeightSource.CURRENT_TIER)

    def test_current_tier_only(self, config):
        weight, source, trace = compute_weight_detailed(
            _make_competitor(current_rank="Diamond 2"), config, NOW)
        assert (weight, source) == (170, WeightSource.CURRENT_TIER)
        assert not trace.is_fallback

    def test_unknown_tier_uses_weight_rating(self, config):
        c = _make_competitor(current_rank="Mythic 9", weight_rating=222)
        weight, source, trace = compute_weight_detailed(c, config, NOW)
        assert (weight, source) == (222, WeightSource.CURRENT_TIER)
        assert trace.used_weight_rating

    def test_blend_with_small_drop_keeps_full_gap(self, config):
        # Gap of 40 is below the first tier, peak is recent
        c = _make_competitor(current_rank="Diamond 2", peak_rank="Ascendant 1",
                             peak_rank_date=NOW - timedelta(days=10))
        weight, source, trace = compute_weight_detailed(c, config, NOW)
        assert source is WeightSource.EVIDENCE_BLEND
        assert weight == 215
        assert trace.rank_drop_decay == 0.0

    def test_blend_with_big_drop_keeps_less_of_peak(self, config):
        # Gap 200 -> 60% of the extra credit removed
        c = _make_competitor(current_rank="Diamond 1", peak_rank="Immortal 2")
        weight, _, trace = compute_weight_detailed(c, config, NOW)
        assert trace.rank_drop_decay == 0.6
        assert weight == 230

    def test_old_peak_decays(self, config):
        fresh = _make_competitor(current_rank="Diamond 1", peak_rank="Immortal 1",
                                 peak_rank_date=NOW - timedelta(days=30))
        stale = _make_competitor(current_rank="Diamond 1", peak_rank="Immortal 1",
                                 peak_rank_date=NOW - timedelta(days=400))
        fresh_weight, _, _ = compute_weight_detailed(fresh, config, NOW)
        stale_weight, _, trace = compute_weight_detailed(stale, config, NOW)
        assert stale_weight < fresh_weight
        assert trace.time_decay > 0
        assert trace.days_since_peak == 400

    def test_explicit_unranked_with_peak(self, config):
        c = _make_competitor(current_rank="Unranked", peak_rank="Immortal 3")
        weight, source, trace = compute_weight_detailed(c, config, NOW)
        assert source is WeightSource.EVIDENCE_BLEND
        assert trace.unranked_penalty == 0.25
        assert weight == 300

    def test_unrated_counts_as_unranked(self, config):
        c = _make_competitor(current_rank="Unrated", peak_rank="Platinum 3")
        weight, source, _ = compute_weight_detailed(c, config, NOW)
        assert source is WeightSource.EVIDENCE_BLEND
        assert weight == int(130 * 0.82)

    def test_missing_current_falls_back_to_peak(self, config):
        c = _make_competitor(peak_rank="Ascendant 3")
        weight, source, trace = compute_weight_detailed(c, config, NOW)
        assert source is WeightSource.PEAK_FALLBACK
        assert weight == int(265 * 0.85)
        assert trace.peak_fallback_penalty == 0.15

    def test_no_evidence_uses_default(self, config):
        weight, source, trace = compute_weight_detailed(_make_competitor(), config, NOW)
        assert (weight, source) == (150, WeightSource.DEFAULT)
        assert trace.is_fallback

    def test_unranked_without_peak_uses_default(self, config):
        weight, source, _ = compute_weight_detailed(
            _make_competitor(current_rank="Unranked"), config, NOW)
        assert (weight, source) == (150, WeightSource.DEFAULT)

    def test_wins_blend_with_current(self, config):
        c = _make_competitor(current_rank="Diamond 1", tournaments_won=1)
        weight, source, trace = compute_weight_detailed(c, config, NOW)
        assert source is WeightSource.EVIDENCE_BLEND
        assert weight == 165
        assert trace.tournament_bonus == 15

    def test_bonus_never_creates_an_elite(self, config):
        c = _make_competitor(current_rank="Custom", weight_rating=390, tournaments_won=2)
        weight, _, trace = compute_weight_detailed(c, config, NOW)
        assert weight == config.elite_threshold - 1
        assert trace.bonus_capped

    def test_bonus_stacks_on_elite_rank_evidence(self, config):
        c = _make_competitor(current_rank="Immortal 3", tournaments_won=1)
        weight, _, trace = compute_weight_detailed(c, config, NOW)
        assert weight == 415
        assert not trace.bonus_capped


# ============================================================================
# Resolution and cache
# ============================================================================


class TestResolveCompetitor:
    def test_elite_flag(self, config):
        assert resolve_competitor(_make_competitor(current_rank="Radiant"), config, NOW).is_elite
        assert not resolve_competitor(_make_competitor(current_rank="Immortal 2"), config, NOW).is_elite

    def test_cache_hit_reuses_weight_without_rederiving(self, config):
        c = _make_competitor(current_rank="Gold 2", peak_rank="Platinum 1")
        first = resolve_competitor(c, config, NOW)
        with patch.object(rating, "compute_weight_detailed") as compute:
            second = resolve_competitor(c, config, NOW)
            compute.assert_not_called()
        assert second.effective_weight == first.effective_weight
        assert second.weight_source == first.weight_source
        assert second.trace.cache_hit
        assert not first.trace.cache_hit
        assert weight_cache_info()["hits"] == 1

    def test_config_change_misses_cache(self, config):
        c = _make_competitor(current_rank="Gold 2")
        resolve_competitor(c, config, NOW)
        other = config.with_overrides(rank_values={**config.rank_values, "Gold 2": 85})
        assert resolve_competitor(c, other, NOW).effective_weight == 85

    def test_override_change_misses_cache(self, config):
        c = _make_competitor(current_rank="Gold 2")
        resolve_competitor(c, config, NOW)
        overridden = _make_competitor(current_rank="Gold 2", use_manual_override=True,
                                      manual_weight_override=300)
        assert resolve_competitor(overridden, config, NOW).effective_weight == 300


class TestResolveAll:
    def test_lookup_refreshes_current_rank(self, config):
        c = _make_competitor(current_rank="Gold 1", riot_id="p1#EUW")
        [resolved] = resolve_all([c], config, lookup=lambda comp: "Diamond 1", now=NOW)
        assert resolved.competitor.current_rank == "Diamond 1"
        assert resolved.effective_weight == 150
        assert c.current_rank == "Gold 1"

    def test_lookup_failure_degrades_to_snapshot(self, config):
        def failing(comp):
            raise ExternalLookupFailure("henrikdev", "down")

        c = _make_competitor(current_rank="Gold 1", riot_id="p1#EUW")
        [resolved] = resolve_all([c], config, lookup=failing, now=NOW)
        assert resolved.effective_weight == 70
        assert resolved.trace.degraded_sources == ("live_rank",)

    def test_keeps_roster_order(self, config):
        roster = [_make_competitor(f"p{i}", current_rank="Gold 1") for i in range(4)]
        assert [r.id for r in resolve_all(roster, config, now=NOW)] == ["p0", "p1", "p2", "p3"]
