"""
Interfaces for the systems around the engine.

The engine itself never touches storage or notifications. A tournament
service supplies a RosterSource, a TeamStore and optionally a TeamNotifier,
and form_and_commit() wires them around resolve_teams().
"""

import json
import logging
from typing import Protocol

from teamBalancer.players import loadPlayers
from teamBalancer.teams import resolve_teams


class RosterSource(Protocol):
    def fetch_roster(self):
        """Checked-in competitors in check-in order."""
        ...


class TeamStore(Protocol):
    def save_teams(self, teams):
        """Persist final teams. Captains come first in each member list."""
        ...


class TeamNotifier(Protocol):
    def notify_team(self, team):
        ...


class JsonRosterSource:
    def __init__(self, players_file):
        self.players_file = players_file

    def fetch_roster(self):
        return loadPlayers(self.players_file)


class JsonTeamStore:
    def __init__(self, output_file):
        self.output_file = output_file

    def save_teams(self, teams):
        payload = [team.as_dict() for team in teams]
        with open(self.output_file, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        logging.info(f"Saved {len(teams)} teams to {self.output_file}")


def form_and_commit(source, config=None, store=None, notifier=None, **kwargs):
    """Fetch the roster, form teams, then save and notify. Nothing is saved if forming fails."""
    roster = source.fetch_roster()
    result = resolve_teams(roster, config, **kwargs)
    if store is not None:
        store.save_teams(result.teams)
    if notifier is not None:
        for team in result.teams:
            notifier.notify_team(team)
    return result
