"""Weight resolution: one effective weight per competitor, with the trace behind it."""

import hashlib
import json
import logging
import math
from dataclasses import replace
from datetime import datetime, timezone

from teamBalancer.errors import ExternalLookupFailure, raise_if_cancelled
from teamBalancer.models import ResolvedCompetitor, WeightSource, WeightTrace

UNRANKED_TIERS = ("unranked", "unrated")

# fingerprint -> (effective_weight, weight_source, trace)
_WEIGHT_CACHE = {}
_CACHE_STATS = {"hits": 0, "misses": 0}


def clear_weight_cache():
    _WEIGHT_CACHE.clear()
    _CACHE_STATS["hits"] = 0
    _CACHE_STATS["misses"] = 0


def weight_cache_info():
    return {"size": len(_WEIGHT_CACHE), **_CACHE_STATS}


def rank_to_numeric(rank_str, config):
    return config.rank_points(rank_str)


def is_unranked(rank_str):
    return bool(rank_str) and rank_str.strip().lower() in UNRANKED_TIERS


def _iso(value):
    return value.isoformat() if value else None


def competitor_fingerprint(competitor, config):
    """Cache key built from everything that feeds the weight plus the config digest."""
    payload = [
        competitor.id,
        competitor.current_rank,
        competitor.peak_rank,
        competitor.use_manual_override,
        competitor.manual_rank_override,
        competitor.manual_weight_override,
        competitor.rank_override_reason,
        competitor.tournaments_won,
        competitor.weight_rating,
        _iso(competitor.peak_rank_date),
        _iso(competitor.last_tournament_win),
        config.weight_digest(),
    ]
    raw = json.dumps(payload, default=str)
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def days_since(moment, now=None):
    if moment is None:
        return None
    now = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return max(0, (now - moment).days)


def calculate_time_decay(days, config):
    """Share of credit lost because the peak is old. Zero inside the grace period."""
    if days is None or days <= config.rank_decay_threshold_days:
        return 0.0
    extra_days = days - config.rank_decay_threshold_days
    decay = config.max_decay_percent * (1 - math.exp(-extra_days / config.decay_constant_days))
    return min(decay, config.max_decay_percent)


def calculate_rank_drop_decay(point_gap, config):
    for min_gap, share in config.rank_drop_tiers:
        if point_gap >= min_gap:
            return share
    return 0.0


def calculate_unranked_penalty(peak_points, config):
    for min_peak, penalty in config.unranked_penalties:
        if peak_points >= min_peak:
            return penalty
    return 0.0


def calculate_tournament_bonus(wins, config):
    """Each further win is worth tournament_bonus_decay times the one before it."""
    bonus = 0.0
    step = config.tournament_win_bonus
    for _ in range(max(0, wins)):
        bonus += step
        step *= config.tournament_bonus_decay
    return min(bonus, config.max_tournament_bonus)


def _floor_points(value):
    # Absorb float noise such as 79.99999999 before flooring
    return math.floor(value + 1e-9)


def _apply_bonus(rank_weight, rank_evidence, competitor, config, trace):
    """Add the win bonus without letting it alone push a non-elite over the threshold."""
    bonus = calculate_tournament_bonus(competitor.tournaments_won, config)
    if bonus <= 0:
        return rank_weight
    if rank_evidence < config.elite_threshold and rank_weight + bonus >= config.elite_threshold:
        bonus = max(0.0, config.elite_threshold - 1 - rank_weight)
        trace.bonus_capped = True
        trace.factors.append(f"Tournament bonus capped at +{bonus:g} (rank evidence below elite)")
    else:
        trace.factors.append(f"Tournament wins: +{bonus:g} ({competitor.tournaments_won} wins)")
    trace.tournament_bonus = bonus
    return rank_weight + bonus


def _override_weight(competitor, config, trace):
    if not competitor.use_manual_override:
        return None
    if competitor.manual_weight_override is not None and competitor.manual_weight_override > 0:
        trace.factors.append(f"Manual weight override: {competitor.manual_weight_override:g}")
        return float(competitor.manual_weight_override)
    points = config.rank_points(competitor.manual_rank_override)
    if points is not None:
        trace.factors.append(f"Manual rank override: {competitor.manual_rank_override} ({points} pts)")
        return float(points)
    trace.factors.append("Manual override enabled but no usable weight or tier, ignored")
    return None


def compute_weight_detailed(competitor, config, now=None):
    """
    Walk the evidence chain for one competitor.

    Args:
        competitor: Competitor record
        config: BalancerConfig
        now: Reference time for decay, defaults to the current UTC time

    Returns:
        tuple: (effective_weight, WeightSource, WeightTrace)
    """
    trace = WeightTrace()

    override = _override_weight(competitor, config, trace)
    if override is not None:
        trace.branch = WeightSource.MANUAL_OVERRIDE.value
        trace.base_points = override
        if competitor.rank_override_reason:
            trace.factors.append(f"Reason: {competitor.rank_override_reason}")
        return override, WeightSource.MANUAL_OVERRIDE, trace

    current = competitor.current_rank
    unranked_now = is_unranked(current)
    current_points = None if unranked_now else config.rank_points(current)
    if current and not unranked_now and current_points is None and competitor.weight_rating is not None:
        current_points = float(competitor.weight_rating)
        trace.used_weight_rating = True
        trace.factors.append(f"Unknown tier '{current}', using weight rating {current_points:g}")
    peak_points = config.rank_points(competitor.peak_rank)
    has_wins = competitor.tournaments_won > 0

    trace.current_points = current_points
    trace.peak_points = peak_points
    trace.days_since_peak = days_since(competitor.peak_rank_date, now)

    # Ranked now, with a peak or wins to blend in
    if current_points is not None and (peak_points is not None or has_wins):
        trace.branch = WeightSource.EVIDENCE_BLEND.value
        trace.base_points = current_points
        trace.factors.append(f"Current rank: {current} ({current_points:g} pts)")
        weight = current_points
        if peak_points is not None and peak_points > current_points:
            gap = peak_points - current_points
            trace.rank_drop_decay = calculate_rank_drop_decay(gap, config)
            trace.time_decay = calculate_time_decay(trace.days_since_peak, config)
            weight = current_points + gap * (1 - trace.rank_drop_decay) * (1 - trace.time_decay)
            trace.factors.append(
                f"Peak {competitor.peak_rank} ({peak_points:g} pts): gap {gap:g}, "
                f"drop decay {trace.rank_drop_decay:.0%}, time decay {trace.time_decay:.1%}"
            )
        weight = _floor_points(weight)
        rank_evidence = max(current_points, peak_points or 0)
        weight = _floor_points(_apply_bonus(weight, rank_evidence, competitor, config, trace))
        return float(weight), WeightSource.EVIDENCE_BLEND, trace

    # Explicitly unranked now, peak tells us where they were
    if unranked_now and peak_points is not None:
        trace.branch = WeightSource.EVIDENCE_BLEND.value
        trace.base_points = peak_points
        trace.unranked_penalty = calculate_unranked_penalty(peak_points, config)
        trace.time_decay = calculate_time_decay(trace.days_since_peak, config)
        weight = peak_points * (1 - trace.unranked_penalty) * (1 - trace.time_decay)
        trace.factors.append(
            f"Unranked, peak {competitor.peak_rank} ({peak_points:g} pts) "
            f"less {trace.unranked_penalty:.0%} penalty, time decay {trace.time_decay:.1%}"
        )
        weight = _floor_points(weight)
        weight = _floor_points(_apply_bonus(weight, peak_points, competitor, config, trace))
        return float(weight), WeightSource.EVIDENCE_BLEND, trace

    if current_points is not None:
        trace.branch = WeightSource.CURRENT_TIER.value
        trace.base_points = current_points
        if not trace.used_weight_rating:
            trace.factors.append(f"Current rank only: {current} ({current_points:g} pts)")
        return float(current_points), WeightSource.CURRENT_TIER, trace

    if not unranked_now and peak_points is not None:
        trace.branch = WeightSource.PEAK_FALLBACK.value
        trace.base_points = peak_points
        trace.peak_fallback_penalty = config.peak_fallback_penalty
        weight = _floor_points(peak_points * (1 - config.peak_fallback_penalty))
        trace.factors.append(
            f"No current rank, peak {competitor.peak_rank} ({peak_points:g} pts) "
            f"less {config.peak_fallback_penalty:.0%}"
        )
        return float(weight), WeightSource.PEAK_FALLBACK, trace

    trace.branch = WeightSource.DEFAULT.value
    trace.base_points = config.default_weight
    trace.is_fallback = True
    trace.factors.append(f"No rank evidence, default {config.default_weight:g} pts")
    return float(config.default_weight), WeightSource.DEFAULT, trace


def resolve_competitor(competitor, config, now=None, degraded_sources=()):
    key = competitor_fingerprint(competitor, config)
    cached = _WEIGHT_CACHE.get(key)
    if cached is not None:
        _CACHE_STATS["hits"] += 1
        weight, source, trace = cached
        trace = replace(trace, cache_hit=True, factors=list(trace.factors))
    else:
        _CACHE_STATS["misses"] += 1
        weight, source, trace = compute_weight_detailed(competitor, config, now)
        _WEIGHT_CACHE[key] = (weight, source, replace(trace, factors=list(trace.factors)))

    if degraded_sources:
        trace = replace(trace, degraded_sources=tuple(degraded_sources))

    return ResolvedCompetitor(
        competitor=competitor,
        effective_weight=weight,
        weight_source=source,
        is_elite=weight >= config.elite_threshold,
        trace=trace,
    )


def _refresh_current_rank(competitor, lookup):
    """Returns (competitor, degraded_sources) after asking the lookup for a fresh tier."""
    try:
        rank = lookup(competitor)
    except ExternalLookupFailure as e:
        logging.warning(f"Live rank lookup failed for {competitor.display_name}: {e}")
        return competitor, ("live_rank",)
    if rank and rank != competitor.current_rank:
        logging.info(f"{competitor.display_name}: current rank {competitor.current_rank} -> {rank}")
        competitor = replace(competitor, current_rank=rank)
    return competitor, ()


def resolve_all(roster, config, lookup=None, now=None, should_cancel=None):
    """Resolve the whole roster before any seeding happens."""
    resolved = []
    for competitor in roster:
        raise_if_cancelled(should_cancel, "weight resolution")
        degraded = ()
        if lookup is not None:
            competitor, degraded = _refresh_current_rank(competitor, lookup)
        item = resolve_competitor(competitor, config, now=now, degraded_sources=degraded)
        logging.debug(
            f"{item.name}: {item.effective_weight:g} pts via {item.weight_source.value}"
            f"{' (cached)' if item.trace.cache_hit else ''}"
        )
        resolved.append(item)
    return resolved
