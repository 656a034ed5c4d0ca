"""
Lobby models — in-memory state of one mirrored lobby.
Slots stay raw client dicts; everything derived from them is typed.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

MAX_SLOTS = 24

SLOT_OPEN = 0
SLOT_CLOSED = 1
SLOT_FILLED = 2


class TeamType(str, Enum):
    PLAYER_TEAMS = "playerTeams"
    SPEC_TEAMS = "specTeams"
    OTHER_TEAMS = "otherTeams"


@dataclass(frozen=True)
class TeamInfo:
    """Team classification. Computed once when the lobby is built."""
    type: TeamType
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type.value, "name": self.name}

    @classmethod
    def from_dict(cls, data: dict) -> TeamInfo:
        return cls(type=TeamType(data["type"]), name=data["name"])


@dataclass
class PlayerRecord:
    joined_at: int | float
    cleared: bool = False
    extra: dict | None = None  # played, wins, losses, rating, lastChange, rank

    # wire name → attribute, for scalar patch merges
    SCALAR_FIELDS = {"joinedAt": "joined_at", "cleared": "cleared"}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"joinedAt": self.joined_at, "cleared": self.cleared}
        if self.extra is not None:
            data["extra"] = copy.deepcopy(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> PlayerRecord:
        extra = data.get("extra")
        return cls(
            joined_at=data["joinedAt"],
            cleared=data.get("cleared", False),
            extra=copy.deepcopy(extra) if extra is not None else None,
        )


@dataclass(frozen=True)
class ChatMessage:
    name: str
    message: str
    time: int | float  # epoch milliseconds

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "message": self.message, "time": self.time}

    @classmethod
    def from_dict(cls, data: dict) -> ChatMessage:
        return cls(name=data["name"], message=data["message"], time=data.get("time", 0))


@dataclass(frozen=True)
class TeamSlotView:
    """One row of export_team_structure()."""
    display_name: str
    real_player: bool
    slot_status: int
    slot_index: int
    record: PlayerRecord | int  # -1 when no record is tracked

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.display_name,
            "realPlayer": self.real_player,
            "slotStatus": self.slot_status,
            "slot": self.slot_index,
            "data": self.record.to_dict() if isinstance(self.record, PlayerRecord) else self.record,
        }


@dataclass
class LobbySnapshot:
    region: str
    lobby_static: dict
    slots: dict[int, dict] = field(default_factory=dict)
    team_list_lookup: dict[int, TeamInfo] = field(default_factory=dict)
    chat_messages: list[ChatMessage] = field(default_factory=list)
    player_data: dict[str, PlayerRecord] = field(default_factory=dict)
    all_players: list[str] = field(default_factory=list)
    non_spec_players: list[str] = field(default_factory=list)
    stats_available: bool = False
    lookup_name: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Exported form, ready for json.dumps. Rosters are not persisted."""
        return {
            "region": self.region,
            "lobbyStatic": copy.deepcopy(self.lobby_static),
            "slots": {index: copy.deepcopy(slot) for index, slot in sorted(self.slots.items())},
            "teamListLookup": {team: info.to_dict() for team, info in self.team_list_lookup.items()},
            "chatMessages": [chat.to_dict() for chat in self.chat_messages],
            "playerData": {name: record.to_dict() for name, record in self.player_data.items()},
            "statsAvailable": self.stats_available,
            "lookupName": self.lookup_name,
        }


def is_identity_bound(slot: dict) -> bool:
    """A real player (has a region) or the local client itself."""
    return bool(slot.get("playerRegion")) or slot.get("isSelf") is True


def slot_player_name(slot: dict) -> str | None:
    """
    Name of the player bound to `slot`.

    None when the slot is not identity-bound or carries a non-string
    name (a malformed payload applied fail-open).
    """
    if not is_identity_bound(slot):
        return None
    name = slot.get("name")
    if name is None:
        return ""
    return name if isinstance(name, str) else None


def slot_display_name(slot: dict) -> str:
    status = slot.get("slotStatus")
    if status == SLOT_FILLED:
        name = slot.get("name")
        return name if isinstance(name, str) else ""
    if status == SLOT_CLOSED:
        return "CLOSED"
    return "OPEN"
