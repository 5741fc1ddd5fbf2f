"""
Assignment of everyone who is not a captain.

Small residual pools are searched exhaustively (ExactSearch); larger ones go
through a greedy placement with one step of look-ahead (GreedyLookahead).
Capacity is enforced by only ever offering teams with room.
"""

import logging

from teamBalancer.errors import CapacityInvariantViolation, raise_if_cancelled
from teamBalancer.models import Phase

CANCEL_POLL_INTERVAL = 1024


def variance(values):
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


def is_high_value(member, config):
    return member.is_elite or member.effective_weight >= config.high_value_threshold


def _team_state(teams):
    return [
        {"team": team.index, "size": team.size, "total": team.total, "members": team.member_ids()}
        for team in teams
    ]


def check_capacity(teams, remaining, config):
    free = sum(config.team_size - team.size for team in teams)
    if len(remaining) > free:
        state = _team_state(teams)
        logging.error(f"{len(remaining)} competitors left but only {free} free slots. Teams: {state}")
        raise CapacityInvariantViolation(
            f"{len(remaining)} competitors cannot fit into {free} free slots", team_state=state
        )


class ExactSearch:
    """Exhaustive backtracking over player to team assignments, bounded by a candidate budget."""

    def __init__(self, config, should_cancel=None):
        self.config = config
        self.should_cancel = should_cancel
        self.evaluated = 0
        self.best_score = None
        self.best_assignment = None

    def score(self, totals, elites):
        # Every elite beyond the cap counts, so piling elites onto one team never pays
        cap = self.config.max_elite_per_team
        violations = sum(max(0, count - cap) for count in elites)
        return 1000 / (1 + variance(totals)) - 100 * violations

    @property
    def budget_exhausted(self):
        return self.evaluated >= self.config.exact_search_budget

    def _search(self, pool, depth, totals, sizes, elites, assignment):
        if self.budget_exhausted:
            return
        if depth == len(pool):
            self.evaluated += 1
            if self.evaluated % CANCEL_POLL_INTERVAL == 0:
                raise_if_cancelled(self.should_cancel, "exact search")
            score = self.score(totals, elites)
            if self.best_score is None or score > self.best_score:
                self.best_score = score
                self.best_assignment = list(assignment)
            return

        member = pool[depth]
        for index in range(len(totals)):
            if sizes[index] >= self.config.team_size:
                continue
            totals[index] += member.effective_weight
            sizes[index] += 1
            elites[index] += 1 if member.is_elite else 0
            assignment.append(index)

            self._search(pool, depth + 1, totals, sizes, elites, assignment)

            assignment.pop()
            elites[index] -= 1 if member.is_elite else 0
            sizes[index] -= 1
            totals[index] -= member.effective_weight
            if self.budget_exhausted:
                return

    def run(self, teams, pool, log):
        self.evaluated = 0
        self.best_score = None
        self.best_assignment = None
        self._search(
            pool,
            0,
            [team.total for team in teams],
            [team.size for team in teams],
            [team.elite_count for team in teams],
            [],
        )
        if self.best_assignment is None:
            raise CapacityInvariantViolation(
                "Exact search found no complete assignment", team_state=_team_state(teams)
            )

        exhausted = self.budget_exhausted
        reason = "exact_search_budget_exhausted" if exhausted else "exact_search_optimal"
        if exhausted:
            logging.warning(f"Exact search budget of {self.config.exact_search_budget} used up, keeping best so far")
        logging.info(f"Exact search: {self.evaluated} candidates, best score {self.best_score:.2f}")

        for member, index in zip(pool, self.best_assignment):
            teams[index].add(member, self.config.team_size)
            log.record(member, index, Phase.EXACT_SEARCH, reason, teams,
                       score=self.best_score, candidates_evaluated=self.evaluated)
        return teams


class GreedyLookahead:
    """Descending weight placement scored by variance reduction minus penalties."""

    def __init__(self, config, should_cancel=None):
        self.config = config
        self.should_cancel = should_cancel

    @staticmethod
    def strict_max_team(teams):
        totals = [team.total for team in teams]
        top = max(totals)
        leaders = [team for team in teams if team.total == top]
        return leaders[0] if len(leaders) == 1 else None

    def _penalties(self, member, team, new_totals, forced, high_value_left):
        config = self.config
        unit = member.effective_weight ** 2 / len(new_totals)
        penalties = {}
        others = [t for i, t in enumerate(new_totals) if i != team.index]
        if high_value_left and others and new_totals[team.index] > max(others):
            penalties["lookahead"] = config.lookahead_penalty * unit
        if forced:
            penalties["anti_stacking"] = config.anti_stacking_penalty * unit
        if member.is_elite and team.elite_count >= config.max_elite_per_team:
            penalties["elite_cap"] = config.elite_cap_penalty * unit
        return penalties

    def place(self, member, teams, high_value_left):
        """Pick a team for one competitor. Returns (team, reason, details)."""
        config = self.config
        candidates = [team for team in teams if team.has_room(config.team_size)]
        if not candidates:
            raise CapacityInvariantViolation(
                f"No team has room for {member.name}", team_state=_team_state(teams)
            )

        reason = "balance_lookahead"
        forced = False
        excluded = None
        if is_high_value(member, config):
            strongest = self.strict_max_team(teams)
            if strongest is not None and strongest in candidates:
                others = [team for team in candidates if team is not strongest]
                if others:
                    candidates = others
                    excluded = strongest.index
                    reason = "anti_stacking_redirect"
                else:
                    forced = True
                    reason = "forced_onto_strongest"

        totals = [team.total for team in teams]
        variance_before = variance(totals)
        scored = []
        for team in candidates:
            new_totals = list(totals)
            new_totals[team.index] += member.effective_weight
            variance_after = variance(new_totals)
            penalties = self._penalties(member, team, new_totals, forced, high_value_left)
            score = (variance_before - variance_after) - sum(penalties.values())
            scored.append((score, team, variance_after, penalties))

        score, team, variance_after, penalties = min(
            scored, key=lambda item: (-item[0], item[1].total, item[1].index)
        )
        details = {
            "score": score,
            "variance_before": variance_before,
            "variance_after": variance_after,
            "penalties": penalties,
            "candidates": [c.index for c in candidates],
        }
        if excluded is not None:
            details["excluded_team"] = excluded
        return team, reason, details

    def run(self, teams, pool, log):
        for position, member in enumerate(pool):
            raise_if_cancelled(self.should_cancel, "heuristic assignment")
            high_value_left = any(is_high_value(m, self.config) for m in pool[position + 1 :])
            team, reason, details = self.place(member, teams, high_value_left)
            team.add(member, self.config.team_size)
            log.record(member, team.index, Phase.HEURISTIC, reason, teams, **details)
        return teams


def assign_remaining(teams, remaining, config, log, should_cancel=None):
    """Fill the seeded teams with every remaining competitor, strongest first."""
    check_capacity(teams, remaining, config)
    if not remaining:
        return teams

    if len(remaining) <= config.exact_search_threshold:
        logging.info(f"Residual pool of {len(remaining)}: exact search")
        strategy = ExactSearch(config, should_cancel)
    else:
        logging.info(f"Residual pool of {len(remaining)}: greedy look-ahead")
        strategy = GreedyLookahead(config, should_cancel)
    return strategy.run(teams, remaining, log)
