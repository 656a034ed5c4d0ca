"""
updates.py — Lobby Updates & Events
====================================
Everything that flows into or out of a MicroLobby is one case of the
LobbyUpdate tagged union below.

WIRE FORMAT:
------------
The game client speaks in single-key objects:

    {"chatMessage": {"name": "Foo#1234", "message": "hi"}}
    {"playerPayload": [{...slot...}, ...], "playerData": {...}}
    {"playerData": {"name": "Foo#1234", "extraData": {...}}}

parse_update() turns such a dict into its variant, and every variant
renders back with to_wire().

INPUT  : ChatMessageUpdate, SlotBatchUpdate, PlayerDataUpdate
OUTPUT : PlayerJoined, PlayerLeft, PlayerMoved, PlayersSwapped,
         PlayerDataUpdate (echo)
RESERVED (produced by other layers, passed through untouched):
         SlotOpened, SlotClosed, Stale, LeftLobby, NewLobby, LobbyReady
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from microlobby.core.errors import InvalidUpdateError


# ═══════════════════════════════════════════════════
# INPUT VARIANTS
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class ChatMessageUpdate:
    KIND: ClassVar[str] = "chatMessage"

    name: Any
    message: Any

    def to_wire(self) -> dict:
        return {self.KIND: {"name": self.name, "message": self.message}}


@dataclass(frozen=True)
class PlayerDataUpdate:
    """Out-of-band stats/profile patch for one player."""
    KIND: ClassVar[str] = "playerData"

    name: str
    data: dict | None = None         # scalar PlayerRecord fields (joinedAt, cleared)
    extra_data: dict | None = None   # replaces PlayerRecord.extra wholesale

    def to_wire(self) -> dict:
        body: dict[str, Any] = {"name": self.name}
        if self.data is not None:
            body["data"] = copy.deepcopy(self.data)
        if self.extra_data is not None:
            body["extraData"] = copy.deepcopy(self.extra_data)
        return {self.KIND: body}


@dataclass(frozen=True)
class SlotBatchUpdate:
    KIND: ClassVar[str] = "playerPayload"

    payloads: list[dict]
    player_data: PlayerDataUpdate | None = None

    def to_wire(self) -> dict:
        wire: dict[str, Any] = {self.KIND: copy.deepcopy(self.payloads)}
        if self.player_data is not None:
            wire.update(self.player_data.to_wire())
        return wire


# ═══════════════════════════════════════════════════
# OUTPUT EVENTS
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class PlayerJoined:
    KIND: ClassVar[str] = "playerJoined"

    slot: dict

    @property
    def name(self) -> str:
        return self.slot.get("name") or ""

    def to_wire(self) -> dict:
        return {self.KIND: copy.deepcopy(self.slot)}


@dataclass(frozen=True)
class PlayerLeft:
    KIND: ClassVar[str] = "playerLeft"

    name: str

    def to_wire(self) -> dict:
        return {self.KIND: self.name}


@dataclass(frozen=True)
class PlayerMoved:
    KIND: ClassVar[str] = "playerMoved"

    from_slot: int  # -1 when the player was not found in any slot
    to_slot: int
    name: str

    def to_wire(self) -> dict:
        return {self.KIND: {"from": self.from_slot, "to": self.to_slot, "name": self.name}}


@dataclass(frozen=True)
class PlayersSwapped:
    KIND: ClassVar[str] = "playersSwapped"

    slots: tuple[int, int]
    players: tuple[str, str]

    def to_wire(self) -> dict:
        return {self.KIND: {"slots": list(self.slots), "players": list(self.players)}}


# ═══════════════════════════════════════════════════
# RESERVED VARIANTS
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class SlotOpened:
    KIND: ClassVar[str] = "slotOpened"

    slot: int

    def to_wire(self) -> dict:
        return {self.KIND: self.slot}


@dataclass(frozen=True)
class SlotClosed:
    KIND: ClassVar[str] = "slotClosed"

    slot: int

    def to_wire(self) -> dict:
        return {self.KIND: self.slot}


@dataclass(frozen=True)
class Stale:
    KIND: ClassVar[str] = "stale"

    def to_wire(self) -> dict:
        return {self.KIND: True}


@dataclass(frozen=True)
class LeftLobby:
    KIND: ClassVar[str] = "leftLobby"

    def to_wire(self) -> dict:
        return {self.KIND: True}


@dataclass(frozen=True)
class LobbyReady:
    KIND: ClassVar[str] = "lobbyReady"

    def to_wire(self) -> dict:
        return {self.KIND: True}


@dataclass(frozen=True)
class NewLobby:
    KIND: ClassVar[str] = "newLobby"

    snapshot: dict

    def to_wire(self) -> dict:
        return {self.KIND: copy.deepcopy(self.snapshot)}


LobbyEvent = Union[PlayerJoined, PlayerLeft, PlayerMoved, PlayersSwapped, PlayerDataUpdate]
ReservedUpdate = Union[SlotOpened, SlotClosed, Stale, LeftLobby, NewLobby, LobbyReady]
LobbyUpdate = Union[
    ChatMessageUpdate,
    SlotBatchUpdate,
    PlayerDataUpdate,
    PlayerJoined,
    PlayerLeft,
    PlayerMoved,
    PlayersSwapped,
    SlotOpened,
    SlotClosed,
    Stale,
    LeftLobby,
    NewLobby,
    LobbyReady,
]

RESERVED_TYPES = (SlotOpened, SlotClosed, Stale, LeftLobby, NewLobby, LobbyReady)


# ═══════════════════════════════════════════════════
# RESULTS
# ═══════════════════════════════════════════════════

@dataclass
class IngestResult:
    is_updated: bool = False
    events: list[LobbyUpdate] = field(default_factory=list)

    def to_wire(self) -> dict:
        return {"isUpdated": self.is_updated, "events": [event.to_wire() for event in self.events]}


@dataclass
class SlotUpdateResult:
    player_updates: list[dict] = field(default_factory=list)
    result: IngestResult = field(default_factory=IngestResult)


# ═══════════════════════════════════════════════════
# WIRE PARSING
# ═══════════════════════════════════════════════════

def _parse_player_data(body: Any) -> PlayerDataUpdate:
    if not isinstance(body, dict):
        raise InvalidUpdateError("playerData must be an object")
    return PlayerDataUpdate(
        name=body.get("name", ""),
        data=body.get("data"),
        extra_data=body.get("extraData"),
    )


def _parse_chat(body: Any) -> ChatMessageUpdate:
    if not isinstance(body, dict):
        raise InvalidUpdateError("chatMessage must be an object")
    return ChatMessageUpdate(name=body.get("name"), message=body.get("message"))


def _parse_slot_batch(raw: dict) -> SlotBatchUpdate:
    payloads = raw["playerPayload"]
    if not isinstance(payloads, list):
        raise InvalidUpdateError("playerPayload must be a list")
    player_data = raw.get("playerData")
    return SlotBatchUpdate(
        payloads=list(payloads),
        player_data=_parse_player_data(player_data) if player_data is not None else None,
    )


_SIMPLE_PARSERS = {
    ChatMessageUpdate.KIND: _parse_chat,
    PlayerDataUpdate.KIND: _parse_player_data,
    PlayerJoined.KIND: lambda body: PlayerJoined(slot=body),
    PlayerLeft.KIND: lambda body: PlayerLeft(name=body),
    PlayerMoved.KIND: lambda body: PlayerMoved(from_slot=body["from"], to_slot=body["to"], name=body["name"]),
    PlayersSwapped.KIND: lambda body: PlayersSwapped(slots=tuple(body["slots"]), players=tuple(body["players"])),
    SlotOpened.KIND: lambda body: SlotOpened(slot=body),
    SlotClosed.KIND: lambda body: SlotClosed(slot=body),
    Stale.KIND: lambda body: Stale(),
    LeftLobby.KIND: lambda body: LeftLobby(),
    NewLobby.KIND: lambda body: NewLobby(snapshot=body),
    LobbyReady.KIND: lambda body: LobbyReady(),
}


def parse_update(raw: dict) -> LobbyUpdate:
    """
    Wire dict → LobbyUpdate variant.

    Raises:
        InvalidUpdateError: not an object, no known key, several keys,
            or a body of the wrong shape
    """
    if not isinstance(raw, dict):
        raise InvalidUpdateError("Lobby update must be an object")

    if SlotBatchUpdate.KIND in raw:
        extra_keys = set(raw) - {SlotBatchUpdate.KIND, PlayerDataUpdate.KIND}
        if extra_keys & set(_SIMPLE_PARSERS):
            raise InvalidUpdateError("playerPayload can only carry a playerData patch", {"keys": sorted(raw)})
        return _parse_slot_batch(raw)

    kinds = [key for key in raw if key in _SIMPLE_PARSERS]
    if len(kinds) != 1:
        raise InvalidUpdateError("Lobby update must carry exactly one kind", {"keys": sorted(raw)})

    kind = kinds[0]
    try:
        return _SIMPLE_PARSERS[kind](raw[kind])
    except (KeyError, TypeError) as exc:
        raise InvalidUpdateError(f"Malformed {kind} body", {"error": str(exc)}) from exc
