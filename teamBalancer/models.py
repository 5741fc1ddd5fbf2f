"""
Data types shared by the team formation engine.

Competitor is the immutable roster record handed in by the caller. Everything
else is derived during a single run: ResolvedCompetitor (weight + trace),
Team, DecisionStep, BalanceMetrics and the RunResult that bundles them.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum

from teamBalancer.errors import CapacityInvariantViolation


class WeightSource(str, Enum):
    MANUAL_OVERRIDE = "manual_override"
    EVIDENCE_BLEND = "evidence_blend"
    CURRENT_TIER = "current_tier"
    PEAK_FALLBACK = "peak_fallback"
    DEFAULT = "default"


class Phase(str, Enum):
    CAPTAIN_SEED = "captain_seed"
    EXACT_SEARCH = "exact_search"
    HEURISTIC = "heuristic"
    VALIDATION_ADJUSTMENT = "validation_adjustment"


class RunState(str, Enum):
    IDLE = "idle"
    RESOLVING_WEIGHTS = "resolving_weights"
    SEEDING_CAPTAINS = "seeding_captains"
    OPTIMIZING = "optimizing"
    ANALYZING = "analyzing"
    COMPLETE = "complete"


class QualityTier(str, Enum):
    IDEAL = "ideal"
    GOOD = "good"
    WARNING = "warning"
    POOR = "poor"


# ============================================================================
# Competitors
# ============================================================================


@dataclass(frozen=True)
class Competitor:
    """One checked-in player as the roster collaborator hands it over."""

    id: str
    name: str = ""
    current_rank: str | None = None
    peak_rank: str | None = None
    peak_rank_date: datetime | None = None  # When the peak was reached
    use_manual_override: bool = False
    manual_rank_override: str | None = None
    manual_weight_override: float | None = None
    rank_override_reason: str | None = None
    tournaments_won: int = 0
    last_tournament_win: datetime | None = None
    weight_rating: float | None = None  # Raw rating, used when the tier is unknown
    riot_id: str | None = None  # "name#tag", only needed for live rank lookups
    region: str | None = None

    @property
    def display_name(self):
        return self.name or self.id


@dataclass
class WeightTrace:
    """Every intermediate quantity behind an effective weight."""

    branch: str = ""
    base_points: float = 0.0
    current_points: float | None = None
    peak_points: float | None = None
    rank_drop_decay: float = 0.0
    time_decay: float = 0.0
    days_since_peak: int | None = None
    unranked_penalty: float = 0.0
    peak_fallback_penalty: float = 0.0
    tournament_bonus: float = 0.0
    bonus_capped: bool = False
    used_weight_rating: bool = False
    is_fallback: bool = False
    cache_hit: bool = False
    degraded_sources: tuple = ()
    factors: list = field(default_factory=list)

    def as_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class ResolvedCompetitor:
    competitor: Competitor
    effective_weight: float
    weight_source: WeightSource
    is_elite: bool
    trace: WeightTrace

    @property
    def id(self):
        return self.competitor.id

    @property
    def name(self):
        return self.competitor.display_name

    def as_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "effective_weight": self.effective_weight,
            "weight_source": self.weight_source.value,
            "is_elite": self.is_elite,
            "trace": self.trace.as_dict(),
        }


@dataclass(frozen=True)
class Substitute:
    """A competitor left out of the teams because the roster overflowed."""

    resolved: ResolvedCompetitor
    roster_position: int
    reason: str


# ============================================================================
# Teams
# ============================================================================


@dataclass
class Team:
    index: int
    members: list = field(default_factory=list)

    @property
    def name(self):
        return f"Team {self.index + 1}"

    @property
    def size(self):
        return len(self.members)

    @property
    def total(self):
        return sum(m.effective_weight for m in self.members)

    @property
    def elite_count(self):
        return sum(1 for m in self.members if m.is_elite)

    @property
    def captain(self):
        return self.members[0] if self.members else None

    def has_room(self, team_size):
        return len(self.members) < team_size

    def add(self, member, team_size):
        if not self.has_room(team_size):
            raise CapacityInvariantViolation(
                f"{self.name} is full ({self.size}/{team_size}), cannot add {member.name}"
            )
        self.members.append(member)

    def member_ids(self):
        return [m.id for m in self.members]

    def as_dict(self):
        return {
            "team": self.name,
            "index": self.index,
            "total": self.total,
            "captain": self.captain.id if self.captain else None,
            "members": [
                {"id": m.id, "name": m.name, "weight": m.effective_weight, "is_elite": m.is_elite}
                for m in self.members
            ],
        }


# ============================================================================
# Decisions
# ============================================================================


@dataclass(frozen=True)
class DecisionStep:
    """One assignment in the audit trail. Text is rendered by describe() only."""

    step: int
    competitor_id: str
    competitor_name: str
    weight: float
    is_elite: bool
    team_index: int
    phase: Phase
    reason: str
    details: dict
    team_totals: tuple

    def describe(self):
        who = f"{self.competitor_name} ({self.weight:g} pts{', elite' if self.is_elite else ''})"
        target = f"Team {self.team_index + 1}"
        d = self.details

        if self.phase is Phase.CAPTAIN_SEED:
            if self.reason == "highest_weight_last_slot":
                return f"Captain {who} -> {target}: highest weight goes to the last slot"
            return f"Captain {who} -> {target}: spread after seeding {d.get('spread_after', 0):g}"

        if self.phase is Phase.EXACT_SEARCH:
            text = (
                f"Exact search placed {who} on {target} "
                f"(score {d.get('score', 0):.2f}, {d.get('candidates_evaluated', 0)} candidates)"
            )
            if self.reason == "exact_search_budget_exhausted":
                text += ", evaluation budget exhausted"
            return text

        if self.phase is Phase.HEURISTIC:
            text = f"Heuristic placed {who} on {target}"
            if self.reason == "anti_stacking_redirect":
                text += f", kept off strongest Team {d['excluded_team'] + 1}"
            elif self.reason == "forced_onto_strongest":
                text += ", strongest team was the only one with room"
            penalties = d.get("penalties") or {}
            if penalties:
                text += " [penalties: " + ", ".join(sorted(penalties)) + "]"
            return text

        return (
            f"Swap: {who} moved to {target} for {d.get('swapped_with_name', '?')} "
            f"(max difference {d.get('max_difference_before', 0):g} -> "
            f"{d.get('max_difference_after', 0):g})"
        )

    def as_dict(self):
        data = asdict(self)
        data["phase"] = self.phase.value
        data["team_totals"] = list(self.team_totals)
        return data


# ============================================================================
# Analysis and results
# ============================================================================


@dataclass(frozen=True)
class BalanceMetrics:
    team_totals: tuple
    min_total: float
    max_total: float
    average_total: float
    max_difference: float
    std_dev: float
    quality_tier: QualityTier
    elite_per_team: tuple
    elite_stacking_count: int

    def as_dict(self):
        data = asdict(self)
        data["quality_tier"] = self.quality_tier.value
        data["team_totals"] = list(self.team_totals)
        data["elite_per_team"] = list(self.elite_per_team)
        return data


@dataclass(frozen=True)
class SwapSuggestion:
    """Proposed one-for-one swap; from_team gives up out_id and receives in_id."""

    from_team: int
    to_team: int
    out_id: str
    in_id: str
    max_difference_before: float
    max_difference_after: float


@dataclass
class RunResult:
    teams: list
    decision_log: list
    metrics: BalanceMetrics
    weight_traces: list
    substitutes: list = field(default_factory=list)
    suggestions: list = field(default_factory=list)
    state: RunState = RunState.COMPLETE
    state_history: list = field(default_factory=list)

    def membership(self):
        return [team.member_ids() for team in self.teams]

    def as_dict(self):
        return {
            "teams": [team.as_dict() for team in self.teams],
            "metrics": self.metrics.as_dict(),
            "substitutes": [
                {"id": s.resolved.id, "name": s.resolved.name, "reason": s.reason}
                for s in self.substitutes
            ],
            "suggestions": [asdict(s) for s in self.suggestions],
            "decision_log": [step.as_dict() for step in self.decision_log],
            "weight_traces": [r.as_dict() for r in self.weight_traces],
            "state": self.state.value,
        }
