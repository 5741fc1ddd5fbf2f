import logging
from urllib.parse import quote

import requests

from teamBalancer.errors import ExternalLookupFailure

HENRIK_MMR_URL = "https://api.henrikdev.xyz/valorant/v2/mmr/{region}/{name}/{tag}"
SOURCE = "henrikdev"


def fetchCurrentRank(region, playerName, playerTag, apiKey=None, timeout=10):
    """
    Fetch the current competitive tier for a player using Henrik's API v2.
    Returns the tier name, e.g. "Diamond 2".
    Raises ExternalLookupFailure on network errors, non-200 responses and bad payloads.
    """
    encoded_name = quote(playerName, safe="")
    encoded_tag = quote(playerTag, safe="")
    url = HENRIK_MMR_URL.format(region=region, name=encoded_name, tag=encoded_tag)
    headers = {"Authorization": apiKey} if apiKey else {}

    try:
        response = requests.get(url, headers=headers, timeout=timeout)
    except requests.RequestException as e:
        errText = f"Request for {playerName}#{playerTag} failed: {e}"
        logging.error(errText)
        raise ExternalLookupFailure(SOURCE, errText) from e

    if response.status_code != 200:
        if response.status_code == 429:
            rate_limit_headers = {
                key: value
                for key, value in response.headers.items()
                if "rate" in key.lower() or "limit" in key.lower() or "retry" in key.lower()
            }
            logging.warning(
                f"Rate limited (429) for {playerName}#{playerTag}. Rate limit headers: {rate_limit_headers}"
            )
            errText = "Rate limited (429). Check logs for rate limit details."
        else:
            errText = f"Error fetching rank: {response.status_code} - {response.text}"
        logging.error(errText)
        raise ExternalLookupFailure(SOURCE, errText)

    try:
        data = response.json()
        rank = data["data"]["current_data"]["currenttierpatched"]
    except (ValueError, KeyError, TypeError) as e:
        raise ExternalLookupFailure(SOURCE, f"Unexpected payload for {playerName}#{playerTag}") from e

    logging.debug(f"Live rank for {playerName}#{playerTag}: {rank}")
    return rank or None


class LiveRankLookup:
    """Callable handed to resolve_all: competitor -> current tier (or None when unknown)."""

    def __init__(self, apiKey=None, defaultRegion="eu", timeout=10):
        self.apiKey = apiKey
        self.defaultRegion = defaultRegion
        self.timeout = timeout

    def __call__(self, competitor):
        if not competitor.riot_id or "#" not in competitor.riot_id:
            return None
        name, tag = competitor.riot_id.rsplit("#", 1)
        region = competitor.region or self.defaultRegion
        return fetchCurrentRank(region, name, tag, apiKey=self.apiKey, timeout=self.timeout)
