import copy

import pytest

from microlobby.apps.lobby.service import MicroLobby
from microlobby.apps.lobby.models import slot_player_name

START_MS = 1_700_000_000_000


class FakeClock:
    """Deterministic epoch-millisecond clock."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def build_slot(slot, name="", region="", team=0, status=None, is_self=False, **overrides):
    if status is None:
        status = 2 if (name or is_self) else 0
    data = {
        "slotStatus": status,
        "slot": slot,
        "team": team,
        "slotType": 0,
        "isObserver": False,
        "isSelf": is_self,
        "slotTypeChangeEnabled": True,
        "id": slot,
        "name": name,
        "playerRegion": region,
        "playerGateway": -1,
        "color": slot,
        "colorChangeEnabled": True,
        "teamChangeEnabled": True,
        "race": 0,
        "raceChangeEnabled": True,
        "handicap": 100,
        "handicapChangeEnabled": True,
    }
    data.update(overrides)
    return data


def build_payload(players, teams=None, is_host=False, map_name="Legion TD 10.2d"):
    if teams is None:
        teams = [{"name": "Team 1", "team": 0, "filledSlots": 1, "totalSlots": 2}]
    return {
        "isHost": is_host,
        "playerHost": "Host#1111",
        "maxTeams": max(len(teams), 1),
        "isCustomForces": True,
        "isCustomPlayers": True,
        "mapData": {
            "mapSize": "Extra Small",
            "mapSpeed": "Fast",
            "mapName": map_name,
            "mapPath": "Maps/Download/Legion TD.w3x",
            "mapAuthor": "Lich",
            "description": "Defend the line.",
            "suggested_players": "4",
        },
        "lobbyName": "Test Lobby",
        "mapFlags": {
            "flagLockTeams": False,
            "flagPlaceTeamsTogether": True,
            "flagFullSharedUnitControl": False,
            "flagRandomRaces": False,
            "flagRandomHero": False,
            "settingObservers": "Full Observers",
            "typeObservers": 3,
            "settingVisibility": "Default",
            "typeVisibility": 0,
        },
        "teamData": {
            "teams": teams,
            "playableSlots": 6,
            "filledPlayableSlots": 3,
            "observerSlotsRemaining": 1,
        },
        "availableTeamColors": {},
        "players": players,
    }


def standard_players():
    """
    team 0 "Team 1"    : 0 Me (self), 1 open, 2 Foo
    team 1 "Team 2"    : 3 open, 4 closed, 5 Bar
    team 2 "Observers" : 6 open observer seat
    """
    return [
        build_slot(0, "Me#1111", "us", team=0, is_self=True),
        build_slot(1, team=0),
        build_slot(2, "Foo#1234", "us", team=0),
        build_slot(3, team=1),
        build_slot(4, team=1, status=1),
        build_slot(5, "Bar#5678", "eu", team=1),
        build_slot(6, team=2, isObserver=True),
    ]


STANDARD_TEAMS = [
    {"name": "Team 1", "team": 0, "filledSlots": 2, "totalSlots": 3},
    {"name": "Team 2", "team": 1, "filledSlots": 1, "totalSlots": 3},
    {"name": "Observers", "team": 2, "filledSlots": 0, "totalSlots": 1},
]


def assert_consistent(lobby):
    """slot keys in range and player records track exactly the bound names."""
    assert all(0 <= index <= 23 for index in lobby.slots)
    assert len(lobby.slots) <= 24
    bound = {slot_player_name(slot) for slot in lobby.slots.values()} - {None}
    assert set(lobby.get_all_player_data()) == bound


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_slot():
    return build_slot


@pytest.fixture
def make_payload():
    return build_payload


@pytest.fixture
def check_consistent():
    return assert_consistent


@pytest.fixture
def standard_payload():
    return build_payload(standard_players(), teams=copy.deepcopy(STANDARD_TEAMS))


@pytest.fixture
def lobby(standard_payload, clock):
    return MicroLobby(region="us", payload=standard_payload, clock=clock)
