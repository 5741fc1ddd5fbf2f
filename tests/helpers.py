"""Builders shared by the engine tests."""

from teamBalancer.config import BalancerConfig
from teamBalancer.models import Competitor
from teamBalancer.rating import resolve_competitor


def make_weighted(cid, weight, **kwargs):
    """A competitor whose effective weight is pinned through a manual override."""
    return Competitor(
        id=cid,
        name=kwargs.pop("name", cid),
        use_manual_override=True,
        manual_weight_override=weight,
        **kwargs,
    )


def make_roster(weights, prefix="p"):
    return [make_weighted(f"{prefix}{i:02d}", w) for i, w in enumerate(weights)]


def make_resolved(weights, config=None, prefix="p"):
    config = config or BalancerConfig()
    return [resolve_competitor(c, config) for c in make_roster(weights, prefix)]
