import argparse
import json
import logging
import os
import time
from collections import Counter

from tqdm import tqdm

from teamBalancer.analysis import apply_suggestions, calculate_statistics, suggest_redistribution
from teamBalancer.apiHandler import LiveRankLookup
from teamBalancer.captains import seed_captains, sort_by_weight
from teamBalancer.config import BalancerConfig, read_config_file
from teamBalancer.decisions import DecisionLog
from teamBalancer.errors import BalancerError, CapacityInvariantViolation, InsufficientRoster
from teamBalancer.models import RunResult, RunState, Substitute
from teamBalancer.optimizer import assign_remaining
from teamBalancer.players import loadPlayers
from teamBalancer.rating import resolve_all

"""
Team Formation Engine for Valorant tournaments

Splits the checked-in roster into fixed-size teams that are balanced on
points and never stack elite players. Every competitor gets one effective
weight (rank evidence, decay, tournament wins, manual overrides), the
strongest N become captains, and the rest are placed by exact search for
small pools or by a greedy look-ahead for larger ones.

Player scores are exported to player_scores.json and the teams to teams.json
by default.

Usage:
    team-balancer --players players.json
    team-balancer --players players.json --team-count 4 --live-ranks

Configuration:
    Settings are read from config.json (see teamBalancer/config.json for
    every key); command line flags win over the file.
"""


class RunStateMachine:
    """idle -> resolving_weights -> seeding_captains -> optimizing -> analyzing -> complete"""

    ORDER = [
        RunState.IDLE,
        RunState.RESOLVING_WEIGHTS,
        RunState.SEEDING_CAPTAINS,
        RunState.OPTIMIZING,
        RunState.ANALYZING,
        RunState.COMPLETE,
    ]

    def __init__(self, log, on_transition=None):
        self.log = log
        self.on_transition = on_transition
        self.state = RunState.IDLE
        self.history = [RunState.IDLE]

    def advance(self, state):
        if self.state is RunState.COMPLETE:
            raise RuntimeError("Run already complete")
        expected = self.ORDER[self.ORDER.index(self.state) + 1]
        if state is not expected:
            raise RuntimeError(f"Cannot go from {self.state.value} to {state.value}")
        logging.info(f"State: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)
        if self.on_transition is not None:
            self.on_transition(state, len(self.log), self.log.total_steps)


def split_roster(roster, config):
    """First team_count * team_size entries play; the latest check-ins become substitutes."""
    required = config.required_roster_size
    if len(roster) < required:
        raise InsufficientRoster(len(roster), required)
    return roster[:required], roster[required:]


def _check_unique_ids(roster):
    duplicates = [cid for cid, count in Counter(c.id for c in roster).items() if count > 1]
    if duplicates:
        raise ValueError(f"Duplicate competitor ids in roster: {sorted(duplicates)}")


def verify_teams(teams, players, config):
    """Every player on exactly one team and no team over team_size."""
    placed = [member.id for team in teams for member in team.members]
    state = [{"team": t.index, "members": t.member_ids(), "total": t.total} for t in teams]
    if any(team.size > config.team_size for team in teams):
        logging.error(f"Team over capacity: {state}")
        raise CapacityInvariantViolation("A team exceeds team_size", team_state=state)
    if sorted(placed) != sorted(p.id for p in players):
        logging.error(f"Placed players do not match the roster: {state}")
        raise CapacityInvariantViolation("Placed players do not match the roster", team_state=state)


def resolve_teams(roster, config=None, progress=None, on_transition=None,
                  should_cancel=None, lookup=None, now=None):
    """
    Form balanced teams from a roster snapshot.

    Args:
        roster: Competitors in check-in order
        config: BalancerConfig, defaults to the built-in settings
        progress: Optional callable(step_index, total_steps, last_decision) after every placement
        on_transition: Optional callable(state, step_index, total_steps) on every state change
        should_cancel: Optional callable polled while working; returning True raises RunCancelled
        lookup: Optional live rank lookup, competitor -> current tier
        now: Reference time for rank decay

    Returns:
        RunResult: teams, decision log, metrics, weight traces and substitutes
    """
    config = config or BalancerConfig()
    roster = list(roster)
    _check_unique_ids(roster)
    players, surplus = split_roster(roster, config)

    log = DecisionLog(total_steps=len(players), progress=progress)
    machine = RunStateMachine(log, on_transition)

    machine.advance(RunState.RESOLVING_WEIGHTS)
    resolved = resolve_all(roster, config, lookup=lookup, now=now, should_cancel=should_cancel)
    active = resolved[: len(players)]
    substitutes = [
        Substitute(resolved=r, roster_position=len(players) + i, reason="roster_overflow")
        for i, r in enumerate(resolved[len(players):])
    ]
    for sub in substitutes:
        logging.info(f"{sub.resolved.name} checked in after the teams were full, added as substitute")

    machine.advance(RunState.SEEDING_CAPTAINS)
    ranked = sort_by_weight(active)
    teams, remaining = seed_captains(ranked, config, log, should_cancel)

    machine.advance(RunState.OPTIMIZING)
    assign_remaining(teams, remaining, config, log, should_cancel)
    verify_teams(teams, active, config)

    machine.advance(RunState.ANALYZING)
    suggestions = []
    if config.enable_redistribution:
        suggestions = suggest_redistribution(teams, config)
        if config.apply_redistribution and suggestions:
            apply_suggestions(teams, suggestions, log)
            verify_teams(teams, active, config)
    metrics = calculate_statistics(teams, config)
    logging.info(
        f"Balance {metrics.quality_tier.value}: max difference {metrics.max_difference:g}, "
        f"elite per team {list(metrics.elite_per_team)}"
    )

    machine.advance(RunState.COMPLETE)
    return RunResult(
        teams=teams,
        decision_log=list(log),
        metrics=metrics,
        weight_traces=resolved,
        substitutes=substitutes,
        suggestions=suggestions,
        state=machine.state,
        state_history=list(machine.history),
    )


def export_player_scores(resolved, output_file):
    """
    Export the effective weight of each player to a JSON file

    Args:
        resolved: ResolvedCompetitors (RunResult.weight_traces)
        output_file: Filename for the output file

    Returns:
        dict: Player name to score details, strongest first
    """
    player_scores = {}
    for item in resolved:
        player_scores[item.name] = {
            "score": round(item.effective_weight, 2),
            "weight_source": item.weight_source.value,
            "is_elite": item.is_elite,
            "current_rank": item.competitor.current_rank or "Unknown",
            "peak_rank": item.competitor.peak_rank or "Unknown",
            "factors": list(item.trace.factors),
        }

    sorted_scores = {
        k: v
        for k, v in sorted(player_scores.items(), key=lambda item: item[1]["score"], reverse=True)
    }

    with open(output_file, "w", encoding="utf-8") as f:
        json.dump(sorted_scores, f, indent=2)

    print(f"Player scores exported to {output_file}")
    return sorted_scores


def export_teams(result, output_file):
    with open(output_file, "w", encoding="utf-8") as f:
        json.dump(result.as_dict(), f, indent=2, default=str)
    print(f"Teams exported to {output_file}")


def print_result(result, verbose=False):
    metrics = result.metrics
    print("\n==== Best Team Arrangement ====")
    print(f"Formed {len(result.teams)} teams of {result.teams[0].size}.")
    print(f"Score difference across teams = {metrics.max_difference:.2f} ({metrics.quality_tier.value})")
    print(f"Standard deviation of team scores = {metrics.std_dev:.2f}")
    print(f"Elite players per team = {list(metrics.elite_per_team)}")

    for team in result.teams:
        print(f"\n{team.name.upper()}: total score = {team.total:.2f}")
        for position, member in enumerate(team.members):
            tag = " (C)" if position == 0 else ""
            elite = " *elite*" if member.is_elite else ""
            print(f"  {member.name}{tag}: {member.effective_weight:.0f} [{member.weight_source.value}]{elite}")

    print("\nTeam score comparison:")
    order = sorted(range(len(result.teams)), key=lambda i: result.teams[i].total)
    for i in order:
        diff_from_avg = result.teams[i].total - metrics.average_total
        print(f"  Team {i+1}: {result.teams[i].total:.2f} ({diff_from_avg:+.2f} from avg)")

    if result.substitutes:
        print(f"\nSubstitutes ({len(result.substitutes)} players):")
        for sub in result.substitutes:
            print(f"  {sub.resolved.name}: {sub.resolved.effective_weight:.0f}")
    else:
        print("\nNo substitutes - all players assigned to teams!")

    for suggestion in result.suggestions:
        print(
            f"\nSuggested swap: {suggestion.out_id} (Team {suggestion.from_team + 1}) <-> "
            f"{suggestion.in_id} (Team {suggestion.to_team + 1}), max difference "
            f"{suggestion.max_difference_before:.0f} -> {suggestion.max_difference_after:.0f}"
        )

    if verbose:
        print("\nDecisions:")
        for step in result.decision_log:
            print(f"  {step.step:>3}. {step.describe()}")


def build_parser():
    parser = argparse.ArgumentParser(description="Form balanced tournament teams from a players file")
    parser.add_argument("--players", help="Players JSON file (default: players_file from config)")
    parser.add_argument("--config", help="Config JSON file (default: the packaged config.json)")
    parser.add_argument("--teams-out", help="Where to write the teams JSON")
    parser.add_argument("--scores-out", help="Where to write the player scores JSON")
    parser.add_argument("--team-count", type=int, help="Number of teams to form")
    parser.add_argument("--team-size", type=int, help="Players per team")
    parser.add_argument("--live-ranks", action="store_true", help="Refresh current ranks from the HenrikDev API")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print every placement decision")
    parser.add_argument("--log-file", default="teamBalancer.log", help="Log file (default: teamBalancer.log)")
    return parser


def main(argv=None):
    """
    Main program logic
    """
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        filename=args.log_file,
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)s: %(message)s",
    )

    raw = read_config_file(args.config)
    overrides = {"team_count": args.team_count, "team_size": args.team_size}
    raw.update({k: v for k, v in overrides.items() if v is not None})
    try:
        config = BalancerConfig.from_dict(raw)
    except (TypeError, ValueError) as e:
        print(f"Error: invalid configuration: {e}")
        return 1

    players_path = args.players or raw.get("players_file", "players.json")
    print(f"Loading player data from {players_path}")
    try:
        roster = loadPlayers(players_path)
    except FileNotFoundError:
        print(f"Error: Player file '{players_path}' not found.")
        return 1
    except json.JSONDecodeError:
        print(f"Error: Player file '{players_path}' is not valid JSON.")
        return 1
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    lookup = None
    if args.live_ranks:
        lookup = LiveRankLookup(apiKey=raw.get("henrik_api_key") or os.environ.get("HENRIK_API_KEY"))

    print(f"Creating {config.team_count} teams of {config.team_size} from {len(roster)} players...")
    start_time = time.time()
    try:
        with tqdm(total=config.required_roster_size, desc="Forming teams", unit="player") as bar:
            def on_progress(step_index, total_steps, last_decision):
                bar.total = total_steps
                bar.update(step_index - bar.n)

            result = resolve_teams(roster, config, progress=on_progress, lookup=lookup)
    except InsufficientRoster as e:
        print(f"Error: {e}")
        return 1
    except BalancerError as e:
        logging.error(f"Team formation failed: {e}")
        print(f"Error: team formation failed: {e}")
        return 1
    end_time = time.time()
    print(f"Team formation completed in {end_time - start_time:.2f} seconds.")

    export_player_scores(result.weight_traces, args.scores_out or raw.get("scores_output", "player_scores.json"))
    export_teams(result, args.teams_out or raw.get("teams_output", "teams.json"))
    print_result(result, verbose=args.verbose)
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
