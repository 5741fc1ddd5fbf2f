"""
Balancer configuration.

Settings come from a config.json file (the one next to this module unless a
path is given) merged over the built-in defaults below, then validated into a
frozen BalancerConfig.
"""

import hashlib
import json
import logging
import os
from dataclasses import dataclass, field, fields, replace

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "config.json")

DEFAULT_RANK_VALUES = {
    "Iron 1": 10, "Iron 2": 15, "Iron 3": 20,
    "Bronze 1": 25, "Bronze 2": 30, "Bronze 3": 35,
    "Silver 1": 40, "Silver 2": 50, "Silver 3": 60,
    "Gold 1": 70, "Gold 2": 80, "Gold 3": 90,
    "Platinum 1": 100, "Platinum 2": 115, "Platinum 3": 130,
    "Diamond 1": 150, "Diamond 2": 170, "Diamond 3": 190,
    "Ascendant 1": 215, "Ascendant 2": 240, "Ascendant 3": 265,
    "Immortal 1": 300, "Immortal 2": 350, "Immortal 3": 400,
    "Radiant": 500,
}

# (minimum point gap, share of the peak credit removed), largest gap first
DEFAULT_RANK_DROP_TIERS = ((300, 0.8), (200, 0.6), (100, 0.4), (50, 0.2))

# (minimum peak points, penalty), highest peak first
DEFAULT_UNRANKED_PENALTIES = ((400, 0.25), (265, 0.22), (190, 0.2), (130, 0.18), (0, 0.15))

# Keys that belong to the command line tool, not to the engine
CLI_KEYS = ("players_file", "teams_output", "scores_output", "henrik_api_key")

# Fields that change how a single competitor's weight is derived
WEIGHT_FIELDS = (
    "elite_threshold",
    "tournament_win_bonus",
    "rank_decay_threshold_days",
    "max_decay_percent",
    "decay_constant_days",
    "default_weight",
    "rank_drop_tiers",
    "unranked_penalties",
    "peak_fallback_penalty",
    "tournament_bonus_decay",
    "max_tournament_bonus",
    "rank_values",
)


def _as_tiers(value):
    return tuple(sorted(((float(a), float(b)) for a, b in value), reverse=True))


@dataclass(frozen=True)
class BalancerConfig:
    team_count: int = 2
    team_size: int = 5
    elite_threshold: float = 400
    max_elite_per_team: int = 1
    tournament_win_bonus: float = 15
    rank_decay_threshold_days: int = 60
    max_decay_percent: float = 0.25
    decay_constant_days: float = 120
    exact_search_threshold: int = 6
    exact_search_budget: int = 50000
    quality_bands: tuple = (50, 100, 150)
    default_weight: float = 150
    high_value_threshold: float = 300
    rank_drop_tiers: tuple = DEFAULT_RANK_DROP_TIERS
    unranked_penalties: tuple = DEFAULT_UNRANKED_PENALTIES
    peak_fallback_penalty: float = 0.15
    tournament_bonus_decay: float = 0.5
    max_tournament_bonus: float = 45
    lookahead_penalty: float = 0.5
    anti_stacking_penalty: float = 10.0
    elite_cap_penalty: float = 5.0
    enable_redistribution: bool = False
    apply_redistribution: bool = False
    rank_values: dict = field(default_factory=lambda: dict(DEFAULT_RANK_VALUES))

    def __post_init__(self):
        # json gives lists, normalise so the config stays hashable-ish and ordered
        object.__setattr__(self, "quality_bands", tuple(self.quality_bands))
        object.__setattr__(self, "rank_drop_tiers", _as_tiers(self.rank_drop_tiers))
        object.__setattr__(self, "unranked_penalties", _as_tiers(self.unranked_penalties))
        object.__setattr__(self, "rank_values", dict(self.rank_values))
        self._validate()

    def _validate(self):
        if self.team_count < 1:
            raise ValueError(f"team_count must be at least 1, got {self.team_count}")
        if self.team_size < 1:
            raise ValueError(f"team_size must be at least 1, got {self.team_size}")
        if self.max_elite_per_team < 0:
            raise ValueError("max_elite_per_team cannot be negative")
        if self.exact_search_threshold < 0:
            raise ValueError("exact_search_threshold cannot be negative")
        if self.exact_search_budget < 1:
            raise ValueError("exact_search_budget must be at least 1")
        if self.decay_constant_days <= 0:
            raise ValueError("decay_constant_days must be positive")
        if self.default_weight < 0:
            raise ValueError("default_weight cannot be negative")

        bands = self.quality_bands
        if len(bands) != 3 or list(bands) != sorted(bands) or bands[0] < 0:
            raise ValueError(f"quality_bands must be three ascending values, got {list(bands)}")

        for name in ("max_decay_percent", "peak_fallback_penalty", "tournament_bonus_decay"):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")
        for name in ("rank_drop_tiers", "unranked_penalties"):
            for _, share in getattr(self, name):
                if not 0 <= share <= 1:
                    raise ValueError(f"{name} shares must be between 0 and 1, got {share}")

        if self.apply_redistribution and not self.enable_redistribution:
            raise ValueError("apply_redistribution requires enable_redistribution")

    @property
    def required_roster_size(self):
        return self.team_count * self.team_size

    def rank_points(self, rank):
        """Points for a rank string, or None when the table does not know it."""
        if not rank:
            return None
        if rank in self.rank_values:
            return self.rank_values[rank]
        # Case-insensitive fallback, rosters are typed in by hand
        wanted = rank.strip().lower()
        for name, points in self.rank_values.items():
            if name.lower() == wanted:
                return points
        return None

    def weight_digest(self):
        """Short hash of every setting that influences weight resolution."""
        payload = {name: getattr(self, name) for name in WEIGHT_FIELDS}
        raw = json.dumps(payload, sort_keys=True, default=list)
        return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:12]

    def with_overrides(self, **overrides):
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **overrides) if overrides else self

    @classmethod
    def from_dict(cls, data):
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key in known:
                kwargs[key] = value
            elif key not in CLI_KEYS:
                logging.warning(f"Ignoring unknown config key '{key}'")
        return cls(**kwargs)


def read_config_file(path=None):
    """
    Read a config.json file.

    Args:
        path: File to read. Defaults to the config.json shipped with the package.

    Returns:
        dict: Raw settings, empty when the file does not exist.
    """
    path = path or DEFAULT_CONFIG_PATH
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        logging.warning(f"Config file {path} not found. Using default configuration.")
        return {}


def load_config(path=None, **overrides):
    """Load settings from a file, apply keyword overrides (None means keep) and validate."""
    raw = read_config_file(path)
    raw.update({k: v for k, v in overrides.items() if v is not None})
    config = BalancerConfig.from_dict(raw)
    logging.debug(
        f"Loaded config: {config.team_count} teams of {config.team_size}, "
        f"elite threshold {config.elite_threshold}"
    )
    return config
