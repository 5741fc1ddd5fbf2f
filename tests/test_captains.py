"""Tests for teamBalancer.captains: captain ordering and placement."""

from helpers import make_resolved

from teamBalancer.captains import seed_captains, sort_by_weight
from teamBalancer.config import BalancerConfig
from teamBalancer.decisions import DecisionLog
from teamBalancer.models import Phase


class TestSortByWeight:
    def test_descending(self):
        ranked = sort_by_weight(make_resolved([100, 300, 200]))
        assert [r.effective_weight for r in ranked] == [300, 200, 100]

    def test_ties_broken_by_id(self):
        resolved = make_resolved([200, 200, 200])
        ranked = sort_by_weight(list(reversed(resolved)))
        assert [r.id for r in ranked] == ["p00", "p01", "p02"]


class TestSeedCaptains:
    def test_strongest_captain_goes_last(self):
        config = BalancerConfig(team_count=3, team_size=2)
        ranked = sort_by_weight(make_resolved([500, 400, 300, 200, 100, 50]))
        log = DecisionLog()
        teams, remaining = seed_captains(ranked, config, log)

        assert teams[-1].captain.effective_weight == 500
        assert [t.size for t in teams] == [1, 1, 1]
        assert [r.effective_weight for r in remaining] == [200, 100, 50]

    def test_later_captains_fill_lowest_index_first(self):
        config = BalancerConfig(team_count=3, team_size=2)
        ranked = sort_by_weight(make_resolved([500, 400, 300, 200, 100, 50]))
        teams, _ = seed_captains(ranked, config, DecisionLog())
        assert [t.captain.effective_weight for t in teams] == [400, 300, 500]

    def test_every_captain_logged(self):
        config = BalancerConfig(team_count=2, team_size=2)
        ranked = sort_by_weight(make_resolved([450, 420, 100, 90]))
        log = DecisionLog()
        seed_captains(ranked, config, log)

        steps = log.by_phase(Phase.CAPTAIN_SEED)
        assert [s.reason for s in steps] == ["highest_weight_last_slot", "minimize_spread"]
        assert steps[0].team_totals == (0, 450)
        assert steps[1].team_totals == (420, 450)
        assert "last slot" in steps[0].describe()
