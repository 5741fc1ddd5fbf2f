"""Captain seeding: one anchor per team, strongest captain in the last slot."""

import logging

from teamBalancer.errors import raise_if_cancelled
from teamBalancer.models import Phase, Team


def sort_by_weight(resolved):
    """Descending weight, ties broken by id and then roster position."""
    ordered = sorted(
        enumerate(resolved),
        key=lambda pair: (-pair[1].effective_weight, pair[1].id, pair[0]),
    )
    return [member for _, member in ordered]


def _spread_if_placed(teams, team_index, weight):
    totals = [team.total for team in teams]
    totals[team_index] += weight
    return max(totals) - min(totals)


def seed_captains(ranked, config, log, should_cancel=None):
    """
    Place the top team_count competitors as captains.

    Args:
        ranked: ResolvedCompetitors already ordered by sort_by_weight
        config: BalancerConfig
        log: DecisionLog receiving captain_seed steps

    Returns:
        tuple: (teams, remaining competitors in the same order)
    """
    teams = [Team(index=i) for i in range(config.team_count)]
    captains = ranked[: config.team_count]
    remaining = ranked[config.team_count :]

    for position, captain in enumerate(captains):
        raise_if_cancelled(should_cancel, "captain seeding")
        if position == 0:
            target = teams[-1]
            target.add(captain, config.team_size)
            log.record(captain, target.index, Phase.CAPTAIN_SEED, "highest_weight_last_slot", teams,
                       captain_rank=1)
            continue

        open_teams = [team for team in teams if team.size == 0]
        best = min(
            open_teams,
            key=lambda team: (_spread_if_placed(teams, team.index, captain.effective_weight), team.index),
        )
        spread = _spread_if_placed(teams, best.index, captain.effective_weight)
        best.add(captain, config.team_size)
        log.record(captain, best.index, Phase.CAPTAIN_SEED, "minimize_spread", teams,
                   captain_rank=position + 1, spread_after=spread)

    logging.info(
        "Captains: " + ", ".join(f"{team.name}={team.captain.name}" for team in teams if team.captain)
    )
    return teams, remaining
