"""Balance statistics, quality classification and the optional swap pass."""

import logging
import math

from teamBalancer.models import BalanceMetrics, Phase, QualityTier, SwapSuggestion


def classify_balance(max_difference, bands=(50, 100, 150)):
    ideal, good, warning = bands
    if max_difference <= ideal:
        return QualityTier.IDEAL
    if max_difference <= good:
        return QualityTier.GOOD
    if max_difference <= warning:
        return QualityTier.WARNING
    return QualityTier.POOR


def _max_difference(totals):
    return max(totals) - min(totals) if totals else 0.0


def _stacking_count(elite_counts, config):
    return sum(1 for count in elite_counts if count > config.max_elite_per_team)


def calculate_statistics(teams, config):
    totals = tuple(team.total for team in teams)
    elites = tuple(team.elite_count for team in teams)
    average = sum(totals) / len(totals) if totals else 0.0
    std_dev = math.sqrt(sum((t - average) ** 2 for t in totals) / len(totals)) if totals else 0.0
    max_difference = _max_difference(totals)
    return BalanceMetrics(
        team_totals=totals,
        min_total=min(totals) if totals else 0.0,
        max_total=max(totals) if totals else 0.0,
        average_total=average,
        max_difference=max_difference,
        std_dev=std_dev,
        quality_tier=classify_balance(max_difference, config.quality_bands),
        elite_per_team=elites,
        elite_stacking_count=_stacking_count(elites, config),
    )


def suggest_redistribution(teams, config):
    """
    Find the single one-for-one swap that lowers max_difference the most.

    Captains never move, team sizes stay the same and the elite stacking count
    never goes up. Returns a list with zero or one SwapSuggestion.
    """
    totals = [team.total for team in teams]
    elites = [team.elite_count for team in teams]
    before = _max_difference(totals)
    stacking_before = _stacking_count(elites, config)

    best = None
    for a in teams:
        for b in teams:
            if b.index <= a.index:
                continue
            for out_member in a.members[1:]:
                for in_member in b.members[1:]:
                    delta = in_member.effective_weight - out_member.effective_weight
                    if delta == 0:
                        continue
                    new_totals = list(totals)
                    new_totals[a.index] += delta
                    new_totals[b.index] -= delta
                    after = _max_difference(new_totals)
                    if after >= before or (best is not None and after >= best.max_difference_after):
                        continue

                    elite_shift = int(in_member.is_elite) - int(out_member.is_elite)
                    new_elites = list(elites)
                    new_elites[a.index] += elite_shift
                    new_elites[b.index] -= elite_shift
                    if _stacking_count(new_elites, config) > stacking_before:
                        continue

                    best = SwapSuggestion(
                        from_team=a.index,
                        to_team=b.index,
                        out_id=out_member.id,
                        in_id=in_member.id,
                        max_difference_before=before,
                        max_difference_after=after,
                    )

    if best is not None:
        logging.info(
            f"Suggested swap between Team {best.from_team + 1} and Team {best.to_team + 1}: "
            f"max difference {best.max_difference_before:g} -> {best.max_difference_after:g}"
        )
    return [best] if best else []


def _member_position(team, member_id):
    for position, member in enumerate(team.members):
        if member.id == member_id:
            return position
    raise KeyError(f"{member_id} is not on {team.name}")


def apply_suggestions(teams, suggestions, log):
    """Carry out swap suggestions in place, logging validation_adjustment steps."""
    for suggestion in suggestions:
        a = teams[suggestion.from_team]
        b = teams[suggestion.to_team]
        pos_out = _member_position(a, suggestion.out_id)
        pos_in = _member_position(b, suggestion.in_id)
        out_member = a.members[pos_out]
        in_member = b.members[pos_in]
        a.members[pos_out], b.members[pos_in] = in_member, out_member

        common = {
            "max_difference_before": suggestion.max_difference_before,
            "max_difference_after": suggestion.max_difference_after,
        }
        log.record(out_member, b.index, Phase.VALIDATION_ADJUSTMENT, "redistribution_swap", teams,
                   from_team=a.index, swapped_with=in_member.id,
                   swapped_with_name=in_member.name, **common)
        log.record(in_member, a.index, Phase.VALIDATION_ADJUSTMENT, "redistribution_swap", teams,
                   from_team=b.index, swapped_with=out_member.id,
                   swapped_with_name=out_member.name, **common)
    return teams
