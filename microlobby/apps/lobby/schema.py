"""
schema.py — Game Client Payload Schemas
========================================
Pydantic models describing every shape the game client (or a stored
snapshot) can hand us. They are only used through core.validator:
state keeps the raw dicts, so a payload that fails validation can still
be applied verbatim.

Field names are snake_case in Python and camelCase on the wire
(alias_generator=to_camel), except where the client itself uses
snake_case (mapData.suggested_players).
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

BATTLE_TAG_PATTERN = (
    r"(^([A-zÀ-ú][A-zÀ-ú0-9]{2,11})|(^([а-яёА-ЯЁÀ-ú][а-яёА-ЯЁ0-9À-ú]{2,11})))(#[0-9]{4,8})$"
)
MAX_SAFE_INTEGER = 2**53 - 1

Region = Literal["us", "eu", "usw", "kr"]
PlayerRegion = Literal["us", "eu", "usw", "kr", ""]
TeamTypeName = Literal["otherTeams", "specTeams", "playerTeams"]


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, extra="ignore")


# ═══════════════════════════════════════════════════
# SLOTS & CHAT
# ═══════════════════════════════════════════════════

class PlayerPayload(WireModel):
    """One of the 24 lobby seats as the client reports it."""
    slot_status: int = Field(..., ge=0, le=2)              # 0 open, 1 closed, 2 filled
    slot: int = Field(..., ge=0, le=23)
    team: int = Field(..., ge=0, le=24)
    slot_type: int = Field(..., ge=0, le=1)
    is_observer: bool
    is_self: bool
    slot_type_change_enabled: bool
    id: int = Field(..., ge=0, le=255)
    name: str | None = Field(None, min_length=0, max_length=32)
    player_region: PlayerRegion | None = None               # "" for open/closed/AI
    player_gateway: int
    color: int = Field(..., ge=0, le=24)
    color_change_enabled: bool
    team_change_enabled: bool
    race: int = Field(..., ge=0, le=32)
    race_change_enabled: bool
    handicap: int = Field(..., ge=50, le=100)
    handicap_change_enabled: bool


class ChatMessage(WireModel):
    name: str = Field(..., pattern=BATTLE_TAG_PATTERN)
    message: str = Field(..., min_length=1, max_length=255)
    time: float | None = Field(None, ge=0, le=MAX_SAFE_INTEGER)  # strict float still takes ints


class PlayerDataPatch(WireModel):
    """Envelope of a playerData update; field contents are checked separately."""
    name: str = Field(..., max_length=32)
    data: dict | None = None
    extra_data: dict | None = None


class ExtraData(WireModel):
    """Historical stats attached to a player record."""
    model_config = ConfigDict(alias_generator=to_camel, extra="allow")

    played: int | float | None = None
    wins: int | float | None = None
    losses: int | float | None = None
    rating: int | float | None = None
    last_change: int | float | None = None
    rank: int | float | None = None


# ═══════════════════════════════════════════════════
# LOBBY STATIC DATA
# ═══════════════════════════════════════════════════

class MapData(WireModel):
    map_size: str = Field(..., min_length=4, max_length=32)
    map_speed: str = Field(..., min_length=4, max_length=32)
    map_name: str = Field(..., min_length=2, max_length=48)
    map_path: str = Field(..., min_length=4, max_length=127)
    map_author: str = Field(..., min_length=1, max_length=32)
    description: str = Field(..., min_length=1, max_length=255)
    suggested_players: str = Field(..., alias="suggested_players", min_length=1, max_length=32)


class MapFlags(WireModel):
    flag_lock_teams: bool
    flag_place_teams_together: bool
    flag_full_shared_unit_control: bool
    flag_random_races: bool
    flag_random_hero: bool
    setting_observers: Literal["No Observers", "Observers on Defeat", "Referees", "Full Observers"]
    type_observers: int
    setting_visibility: Literal["Default", "Hide Terrain", "Map Explored", "Always Visible"]
    type_visibility: int = Field(..., ge=0, le=3)


class LobbyStatic(WireModel):
    """Lobby metadata that never changes after the lobby is created."""
    is_host: bool
    player_host: str = Field(..., pattern=BATTLE_TAG_PATTERN)
    max_teams: int = Field(..., ge=1, le=24)
    is_custom_forces: bool
    is_custom_players: bool
    map_data: MapData
    lobby_name: str = Field(..., min_length=1, max_length=32)
    map_flags: MapFlags


# ═══════════════════════════════════════════════════
# FIRST-CONTACT CLIENT PAYLOAD
# ═══════════════════════════════════════════════════

class TeamEntry(WireModel):
    name: str = Field(..., min_length=1, max_length=32)
    team: int = Field(..., ge=0, le=24)
    filled_slots: int = Field(..., ge=0, le=24)
    total_slots: int = Field(..., ge=1, le=25)


class TeamData(WireModel):
    teams: list[TeamEntry]
    playable_slots: int = Field(..., ge=0, le=24)
    filled_playable_slots: int = Field(..., ge=1, le=25)
    observer_slots_remaining: int = Field(..., ge=0, le=24)


class GameClientLobbyPayload(LobbyStatic):
    team_data: TeamData
    players: list[PlayerPayload] = Field(..., max_length=24)


# ═══════════════════════════════════════════════════
# SNAPSHOT ENTRIES
# ═══════════════════════════════════════════════════

class TeamLookupEntry(WireModel):
    type: TeamTypeName
    name: str = Field(..., min_length=0, max_length=32)


class PlayerRecordEntry(WireModel):
    joined_at: int | float
    cleared: bool = False
    extra: ExtraData | None = None
