import json
import logging
from datetime import datetime

from teamBalancer.models import Competitor

DATE_FIELDS = ("peak_rank_date", "last_tournament_win")


def parseDate(value):
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        logging.warning(f"Ignoring peak date that is not an ISO string: {value!r}")
        return None
    try:
        # fromisoformat only learned the trailing Z in 3.11
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logging.warning(f"Ignoring unparseable date '{value}'")
        return None


def competitorFromInfo(name, info):
    """
    Build a Competitor from one players file entry.
    Entries keyed by name (the team maker format) use the name as id unless an id is given.
    """
    return Competitor(
        id=str(info.get("id") or name),
        name=info.get("name") or name,
        current_rank=info.get("current_rank"),
        peak_rank=info.get("peak_rank"),
        peak_rank_date=parseDate(info.get("peak_rank_date")),
        use_manual_override=bool(info.get("use_manual_override", False)),
        manual_rank_override=info.get("manual_rank_override"),
        manual_weight_override=info.get("manual_weight_override"),
        rank_override_reason=info.get("rank_override_reason"),
        tournaments_won=int(info.get("tournaments_won") or 0),
        last_tournament_win=parseDate(info.get("last_tournament_win")),
        weight_rating=info.get("weight_rating"),
        riot_id=info.get("riot_id"),
        region=info.get("region"),
    )


def competitorToInfo(competitor):
    info = {
        "id": competitor.id,
        "current_rank": competitor.current_rank,
        "peak_rank": competitor.peak_rank,
        "use_manual_override": competitor.use_manual_override,
        "manual_rank_override": competitor.manual_rank_override,
        "manual_weight_override": competitor.manual_weight_override,
        "rank_override_reason": competitor.rank_override_reason,
        "tournaments_won": competitor.tournaments_won,
        "weight_rating": competitor.weight_rating,
        "riot_id": competitor.riot_id,
        "region": competitor.region,
    }
    for field_name in DATE_FIELDS:
        value = getattr(competitor, field_name)
        info[field_name] = value.isoformat() if value else None
    return {k: v for k, v in info.items() if v is not None}


def parsePlayers(playersData):
    """Accepts either {name: info} or a list of entries that carry their own id or name."""
    if isinstance(playersData, dict):
        return [competitorFromInfo(name, info) for name, info in playersData.items()]
    roster = []
    for entry in playersData:
        name = entry.get("name") or entry.get("id")
        if not name:
            raise ValueError(f"Player entry without id or name: {entry}")
        roster.append(competitorFromInfo(name, entry))
    return roster


def loadPlayers(playersFile):
    """Read a players file in roster (check-in) order."""
    with open(playersFile, "r", encoding="utf-8") as f:
        playersData = json.load(f)
    roster = parsePlayers(playersData)
    logging.info(f"Loaded {len(roster)} players from {playersFile}")
    return roster


def savePlayers(roster, playersFile):
    playersData = {c.display_name: competitorToInfo(c) for c in roster}
    with open(playersFile, "w", encoding="utf-8") as f:
        json.dump(playersData, f, indent=2)
    logging.info(f"Saved {len(roster)} players to {playersFile}")
