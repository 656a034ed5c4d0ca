"""
teams.py — Team Classifier
===========================
Labels each team of a lobby as a player team, a spectator team or an
"other" team (computers, creeps, host-managed slots). Runs once, at
construction; the result is never refreshed.
"""

import re
from collections.abc import Iterable

from microlobby.apps.lobby.models import SLOT_FILLED, TeamType

OTHER_TEAM_NAMES = re.compile(r"computer|creeps|summoned", re.I)
SPEC_TEAM_NAMES = re.compile(r"host|spectator|observer|referee", re.I)


def classify_team_name(team_name: str) -> TeamType:
    """Classify by team name alone."""
    if not team_name:
        return TeamType.PLAYER_TEAMS
    if OTHER_TEAM_NAMES.search(team_name):
        return TeamType.OTHER_TEAMS
    if SPEC_TEAM_NAMES.search(team_name):
        return TeamType.SPEC_TEAMS
    return TeamType.PLAYER_TEAMS


def classify_team(team_name: str, is_host: bool, members: Iterable[dict]) -> TeamType:
    """
    Classify a team from its member slots.

    Args:
        team_name: team label as shown in the lobby
        is_host: whether the local client hosts the lobby
        members: raw slot payloads whose `team` is this team

    Returns:
        TeamType
    """
    members = list(members)

    if any(slot.get("isObserver") for slot in members):
        return TeamType.SPEC_TEAMS

    if is_host:
        # no movable slot: AI or host-managed team
        if not any(slot.get("slotTypeChangeEnabled") or slot.get("isSelf") for slot in members):
            return TeamType.OTHER_TEAMS
    else:
        if all(slot.get("slotStatus") == SLOT_FILLED and not slot.get("playerRegion") for slot in members):
            return TeamType.OTHER_TEAMS

    return classify_team_name(team_name)
