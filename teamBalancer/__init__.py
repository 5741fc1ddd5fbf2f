from teamBalancer.config import BalancerConfig, load_config
from teamBalancer.errors import (
    BalancerError,
    CapacityInvariantViolation,
    ExternalLookupFailure,
    InsufficientRoster,
    RunCancelled,
)
from teamBalancer.models import Competitor, Phase, QualityTier, RunResult, RunState, WeightSource
from teamBalancer.rating import clear_weight_cache
from teamBalancer.teams import resolve_teams
