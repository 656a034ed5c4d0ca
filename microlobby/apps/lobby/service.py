"""
service.py — Lobby State Synchronizer
======================================
MicroLobby mirrors one remote game lobby from the payloads the game
client sends, and turns every raw change into domain events.

RESPONSIBILITIES:
-----------------
- Build the mirror from a first client payload or from an exported snapshot
- Ingest slot batches, chat messages and stats patches
- Classify slot changes into playerJoined / playersSwapped / playerMoved / playerLeft
- Keep rosters and the player record cache in step with the slots

USAGE:
------
    lobby = MicroLobby(region="us", payload=first_payload)

    result = lobby.ingest_update({"playerPayload": slots})
    for event in result.events:
        print(event.to_wire())

    saved = lobby.export_snapshot()
    restored = MicroLobby.from_snapshot(saved)

One instance serves one update stream. Callers that share an instance
between tasks must serialize the mutating calls themselves.
"""

from __future__ import annotations

import copy
import logging
import re
import time
from collections.abc import Callable
from typing import Any

from microlobby.apps.lobby import schema
from microlobby.apps.lobby.map_names import clean_map_path, normalize_map_name
from microlobby.apps.lobby.models import (
    MAX_SLOTS,
    ChatMessage,
    LobbySnapshot,
    PlayerRecord,
    TeamInfo,
    TeamSlotView,
    TeamType,
    is_identity_bound,
    slot_display_name,
    slot_player_name,
)
from microlobby.apps.lobby.teams import classify_team
from microlobby.apps.lobby.updates import (
    ChatMessageUpdate,
    IngestResult,
    LobbyUpdate,
    PlayerDataUpdate,
    PlayerJoined,
    PlayerLeft,
    PlayerMoved,
    PlayersSwapped,
    SlotBatchUpdate,
    SlotUpdateResult,
    parse_update,
)
from microlobby.core.config import get_settings
from microlobby.core.errors import (
    InvalidPayloadError,
    InvalidRegionError,
    InvalidSnapshotError,
    MissingInputError,
    NotSelfPresentError,
)
from microlobby.core.validator import Violation, validate, validated

logger = logging.getLogger(__name__)

# Client payload keys that describe the moment, not the lobby.
TRANSIENT_PAYLOAD_KEYS = ("teamData", "availableTeamColors", "players", "availableColors")

MAX_TEAM_INDEX = 24
MAX_PLAYER_NAME = 32


def _now_ms() -> int:
    return int(time.time() * 1000)


def _parse_index(key: Any, high: int) -> int | None:
    """Canonical integer key in [0, high], from an int or its exact decimal string."""
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        index = key
    elif isinstance(key, str):
        try:
            index = int(key)
        except ValueError:
            return None
        if str(index) != key:
            return None
    else:
        return None
    return index if 0 <= index <= high else None


def _log_violations(violations: list[Violation]) -> None:
    for violation in violations:
        logger.error(f"{violation.path}: {violation.message}")


def _valid_patch_envelope(patch: PlayerDataUpdate) -> bool:
    violations = validate(
        schema.PlayerDataPatch,
        {"name": patch.name, "data": patch.data, "extraData": patch.extra_data},
    )
    _log_violations(violations)
    return not violations


class MicroLobby:
    """
    In-memory mirror of one lobby.

    Exactly one of `payload` (first client payload, needs `region`) or
    `full_data` (a dict from export_snapshot()) must be given.

    Args:
        region: us | eu | usw | kr, payload mode only
        payload: first-contact client payload
        full_data: previously exported snapshot
        stats_available_override: forces stats_available when not None
        verbose_logging: info-level event logs; None → Settings.VERBOSE_LOGGING
        clock: returns "now" in epoch milliseconds

    Raises:
        MissingInputError, InvalidRegionError, InvalidPayloadError,
        NotSelfPresentError, InvalidSnapshotError
    """

    def __init__(
        self,
        region: str | None = None,
        payload: dict | None = None,
        full_data: dict | None = None,
        stats_available_override: bool | None = None,
        verbose_logging: bool | None = None,
        clock: Callable[[], int | float] | None = None,
    ):
        settings = get_settings()
        self.log = settings.VERBOSE_LOGGING if verbose_logging is None else verbose_logging
        self._clock = clock or _now_ms
        self._regions = list(settings.SUPPORTED_REGIONS)
        self._dedupe_window_ms = settings.CHAT_DEDUPE_WINDOW_MS

        if payload is not None and full_data is not None:
            raise MissingInputError("Exactly one of payload or full_data must be supplied.")
        if payload is not None:
            self._state = self._build_from_payload(region, payload)
            stored_stats = None
        elif full_data is not None:
            self._state = self._build_from_snapshot(full_data)
            stored_stats = full_data.get("statsAvailable")
            # Rebuild rosters and reconcile records; events are discarded.
            self.ingest_update(SlotBatchUpdate(payloads=list(self._state.slots.values())))
        else:
            raise MissingInputError()

        self._apply_map_lookup(stats_available_override, stored_stats)
        self._state.all_players = self.get_all_players(True)
        self._state.non_spec_players = self.get_all_players(False)

        if self.log:
            logger.info(
                f"🎮 Lobby mirrored: {self.lobby_static.get('lobbyName')} "
                f"[{self.region}] map={self.lookup_name} players={len(self.all_players)}"
            )

    @classmethod
    def from_payload(cls, region: str, payload: dict, **kwargs) -> MicroLobby:
        return cls(region=region, payload=payload, **kwargs)

    @classmethod
    def from_snapshot(cls, full_data: dict, **kwargs) -> MicroLobby:
        return cls(full_data=full_data, **kwargs)

    # ═══════════════════════════════════════════════════
    # CONSTRUCTION
    # ═══════════════════════════════════════════════════

    def _build_from_payload(self, region: str | None, payload: dict) -> LobbySnapshot:
        if region not in self._regions:
            raise InvalidRegionError(region)

        violations = validate(schema.GameClientLobbyPayload, payload)
        if violations:
            _log_violations(violations)
            first = violations[0]
            raise InvalidPayloadError(first.path, first.message, violations)

        players = payload["players"]
        if not any(slot["isSelf"] for slot in players):
            raise NotSelfPresentError()

        lobby_static = {
            key: copy.deepcopy(value)
            for key, value in payload.items()
            if key not in TRANSIENT_PAYLOAD_KEYS
        }
        state = LobbySnapshot(region=region, lobby_static=lobby_static)

        for team in payload["teamData"]["teams"]:
            members = [slot for slot in players if slot["team"] == team["team"]]
            team_type = classify_team(team["name"], lobby_static["isHost"], members)
            state.team_list_lookup[team["team"]] = TeamInfo(type=team_type, name=team["name"])

        now = self._clock()
        for slot in players:
            state.slots[slot["slot"]] = copy.deepcopy(slot)
            name = slot_player_name(slot)
            if name is not None:
                state.player_data[name] = PlayerRecord(joined_at=now)

        return state

    def _build_from_snapshot(self, full_data: dict) -> LobbySnapshot:
        if not isinstance(full_data, dict):
            raise InvalidSnapshotError([Violation("", "Snapshot must be an object")])

        region = full_data.get("region")
        if region not in self._regions:
            raise InvalidRegionError(region)

        violations = self._check_snapshot(full_data)
        if violations:
            _log_violations(violations)
            raise InvalidSnapshotError(violations)

        return LobbySnapshot(
            region=region,
            lobby_static=copy.deepcopy(full_data["lobbyStatic"]),
            slots={
                _parse_index(key, MAX_SLOTS - 1): copy.deepcopy(slot)
                for key, slot in full_data["slots"].items()
            },
            team_list_lookup={
                _parse_index(key, MAX_TEAM_INDEX): TeamInfo.from_dict(entry)
                for key, entry in (full_data.get("teamListLookup") or {}).items()
            },
            chat_messages=[ChatMessage.from_dict(chat) for chat in full_data.get("chatMessages") or []],
            player_data={
                name: PlayerRecord.from_dict(record)
                for name, record in (full_data.get("playerData") or {}).items()
            },
        )

    def _check_snapshot(self, full_data: dict) -> list[Violation]:
        """Every violation in a snapshot; an empty list means it can be loaded."""
        violations: list[Violation] = []

        slots = full_data.get("slots")
        if not isinstance(slots, dict):
            violations.append(Violation("slots", "Slots Invalid type or missing"))
            slots = {}
        elif len(slots) > MAX_SLOTS:
            violations.append(Violation("slots", f"Slots Over {MAX_SLOTS}"))

        for key, slot in slots.items():
            index = _parse_index(key, MAX_SLOTS - 1)
            if index is None:
                violations.append(Violation(f"slots.{key}", "Invalid Slot Number"))
                continue
            slot_violations = validate(schema.PlayerPayload, slot)
            violations.extend(v.prefixed(f"slots.{key}") for v in slot_violations)
            if not slot_violations and slot["slot"] != index:
                violations.append(Violation(f"slots.{key}.slot", "Slot index does not match its key"))

        violations.extend(
            v.prefixed("lobbyStatic") for v in validate(schema.LobbyStatic, full_data.get("lobbyStatic"))
        )

        chats = full_data.get("chatMessages") or []
        if not isinstance(chats, list):
            violations.append(Violation("chatMessages", "Chat messages must be a list"))
            chats = []
        for position, chat in enumerate(chats):
            chat_violations = validate(schema.ChatMessage, chat)
            violations.extend(v.prefixed(f"chatMessages.{position}") for v in chat_violations)
            if chat_violations:
                continue
            parsed = validated(schema.ChatMessage, chat)
            if parsed is None or parsed.message != chat["message"]:
                violations.append(Violation(f"chatMessages.{position}.message", "Message altered by validation"))

        teams = full_data.get("teamListLookup") or {}
        if not isinstance(teams, dict):
            violations.append(Violation("teamListLookup", "Team lookup must be an object"))
            teams = {}
        for key, entry in teams.items():
            if _parse_index(key, MAX_TEAM_INDEX) is None:
                violations.append(Violation(f"teamListLookup.{key}", "Invalid Team Number"))
                continue
            violations.extend(
                v.prefixed(f"teamListLookup.{key}") for v in validate(schema.TeamLookupEntry, entry)
            )

        players = full_data.get("playerData") or {}
        if not isinstance(players, dict):
            violations.append(Violation("playerData", "Player data must be an object"))
            players = {}
        for name, record in players.items():
            if not isinstance(name, str) or len(name) > MAX_PLAYER_NAME:
                violations.append(Violation(f"playerData.{name}", "Player name too long"))
                continue
            violations.extend(
                v.prefixed(f"playerData.{name}") for v in validate(schema.PlayerRecordEntry, record)
            )

        stats = full_data.get("statsAvailable")
        if stats is not None and not isinstance(stats, bool):
            violations.append(Violation("statsAvailable", "Input should be a valid boolean"))

        return violations

    def _apply_map_lookup(self, override: bool | None, stored: bool | None) -> None:
        map_data = self._state.lobby_static["mapData"]
        map_data["mapPath"] = clean_map_path(map_data["mapPath"])

        lookup = normalize_map_name(map_data["mapName"])
        self._state.lookup_name = lookup.map_name
        if override is not None:
            self._state.stats_available = override
        elif stored is not None:
            self._state.stats_available = stored
        else:
            self._state.stats_available = lookup.stats_available

    # ═══════════════════════════════════════════════════
    # INGESTION
    # ═══════════════════════════════════════════════════

    def ingest_update(self, update: LobbyUpdate | dict) -> IngestResult:
        """
        Apply one update and return the events it produced.

        Accepts a LobbyUpdate variant or its wire dict. Variants this
        engine does not consume (slotOpened, stale, newLobby, ...) come
        back unchanged as the only event, with is_updated False.

        Raises:
            InvalidUpdateError: only for a wire dict that is not an update
        """
        if isinstance(update, dict):
            update = parse_update(update)

        if isinstance(update, ChatMessageUpdate):
            return self._ingest_chat(update)
        if isinstance(update, SlotBatchUpdate):
            return self._ingest_slots(update)
        if isinstance(update, PlayerDataUpdate):
            return self._ingest_player_data(update)
        return IngestResult(is_updated=False, events=[update])

    def _ingest_chat(self, update: ChatMessageUpdate) -> IngestResult:
        return IngestResult(is_updated=self.new_chat(update.name, update.message))

    def _ingest_slots(self, update: SlotBatchUpdate) -> IngestResult:
        state = self._state
        result = IngestResult()

        # Pass 1: classify. Stops at the first invalid payload.
        swapped = False
        for payload in update.payloads:
            violations = validate(schema.PlayerPayload, payload)
            if violations:
                _log_violations(violations)
                logger.warning("⚠️  Invalid slot payload, no more events for this batch")
                break

            index = payload["slot"]
            current = state.slots.get(index)
            if current == payload:
                continue
            result.is_updated = True

            name = slot_player_name(payload)
            if name is None:
                continue
            displaced = slot_player_name(current) if current is not None else None

            if name not in state.all_players and name not in state.player_data:
                if self.log:
                    logger.info(f"👤 New Player: {name}")
                result.events.append(PlayerJoined(slot=copy.deepcopy(payload)))
                state.player_data[name] = PlayerRecord(joined_at=self._clock())
            elif displaced is not None:
                if displaced == name:
                    continue  # same occupant, seat settings changed
                if not swapped:
                    swapped = True
                    other = self.player_name_to_slot_index(name)
                    if self.log:
                        logger.info(f"🔀 Players swapped: {name} {displaced} Slots: {index} {other}")
                    result.events.append(PlayersSwapped(slots=(index, other), players=(name, displaced)))
            else:
                origin = self.player_name_to_slot_index(name)
                if self.log:
                    logger.info(f"➡️  Player Moved: {name} {origin} → {index}")
                result.events.append(PlayerMoved(from_slot=origin, to_slot=index, name=name))

        if update.player_data is not None:
            self._apply_stats_patch(update.player_data, result)

        # Pass 2: apply. Every keyable payload is written, valid or not.
        for payload in update.payloads:
            index = payload.get("slot") if isinstance(payload, dict) else None
            if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < MAX_SLOTS:
                logger.error(f"❌ Slot payload without a usable slot index dropped: {payload!r}")
                continue
            if state.slots.get(index) != payload:
                result.is_updated = True
            state.slots[index] = copy.deepcopy(payload)

        roster = self.get_all_players(True)
        for name in dict.fromkeys(state.all_players):
            if name not in roster:
                result.is_updated = True
                if self.log:
                    logger.info(f"👋 Player left: {name}")
                result.events.append(PlayerLeft(name=name))
                state.player_data.pop(name, None)

        self._reconcile_player_data(roster)
        state.all_players = roster
        state.non_spec_players = self.get_all_players(False)
        return result

    def _apply_stats_patch(self, patch: PlayerDataUpdate, result: IngestResult) -> None:
        """Stats patch that rides along with a slot batch."""
        if patch.extra_data is None:
            return
        if not _valid_patch_envelope(patch):
            return
        violations = validate(schema.ExtraData, patch.extra_data)
        if violations:
            _log_violations(violations)
            return

        record = self._state.player_data.get(patch.name)
        if record is not None:
            changed = record.extra != patch.extra_data
            record.extra = copy.deepcopy(patch.extra_data)
        elif patch.name in self.get_all_players(True):
            logger.warning(f"⚠️  Player Data Update for non-existent player, but they are in lobby: {patch.name}")
            self._state.player_data[patch.name] = PlayerRecord(
                joined_at=self._clock(),
                extra=copy.deepcopy(patch.extra_data),
            )
            changed = True
        else:
            return

        if changed:
            result.is_updated = True
            result.events.append(patch)

    def _ingest_player_data(self, patch: PlayerDataUpdate) -> IngestResult:
        if not _valid_patch_envelope(patch):
            return IngestResult()

        record = self._state.player_data.get(patch.name)
        if record is None:
            return IngestResult()

        if patch.extra_data is not None:
            violations = validate(schema.ExtraData, patch.extra_data)
            if violations:
                _log_violations(violations)
                return IngestResult()

        updated = False
        if patch.extra_data is not None:
            record.extra = copy.deepcopy(patch.extra_data)
            updated = True

        if patch.data:
            merged = record.to_dict()
            known = {key: value for key, value in patch.data.items() if key in PlayerRecord.SCALAR_FIELDS}
            merged.update(known)
            violations = validate(schema.PlayerRecordEntry, merged)
            if violations:
                _log_violations(violations)
            else:
                for key, value in known.items():
                    attribute = PlayerRecord.SCALAR_FIELDS[key]
                    if getattr(record, attribute) != value:
                        setattr(record, attribute, value)
                        updated = True

        return IngestResult(is_updated=updated, events=[patch] if updated else [])

    def _reconcile_player_data(self, roster: list[str]) -> None:
        """player_data keys become exactly the identity-bound names in the slots."""
        present = set(roster)
        player_data = self._state.player_data
        for name in [name for name in player_data if name not in present]:
            logger.debug(f"Dropping record of absent player {name}")
            del player_data[name]
        for name in roster:
            if name not in player_data:
                logger.debug(f"Tracking untracked player {name}")
                player_data[name] = PlayerRecord(joined_at=self._clock())

    def update_lobby_slots(self, slots: list[dict]) -> SlotUpdateResult:
        """
        Forward only real slot changes to ingest_update.

        Drops invalid payloads, payloads identical to the stored slot and
        identity-bound payloads that do not carry a name yet.
        """
        player_updates: list[dict] = []
        for payload in slots:
            if validate(schema.PlayerPayload, payload):
                logger.warning(f"⚠️  Invalid Player Payload: {payload!r}")
                continue
            if self._state.slots.get(payload["slot"]) == payload:
                continue
            if is_identity_bound(payload) and not payload.get("name"):
                continue
            player_updates.append(payload)

        if not player_updates:
            if self.log:
                logger.info("No player updates")
            return SlotUpdateResult()

        return SlotUpdateResult(
            player_updates=player_updates,
            result=self.ingest_update(SlotBatchUpdate(payloads=player_updates)),
        )

    def new_chat(self, name: str, message: str) -> bool:
        """
        Append a chat line unless it is malformed or the same text was
        logged within the dedupe window.
        """
        violations = validate(schema.ChatMessage, {"name": name, "message": message})
        if violations:
            _log_violations(violations)
            return False

        now = self._clock()
        for chat in self._state.chat_messages:
            if chat.message == message and abs(chat.time - now) < self._dedupe_window_ms:
                return False
        self._state.chat_messages.append(ChatMessage(name=name, message=message, time=now))
        if self.log:
            logger.info(f"💬 {name}: {message}")
        return True

    # ═══════════════════════════════════════════════════
    # QUERIES & EXPORT
    # ═══════════════════════════════════════════════════

    def get_all_players(self, include_non_player_teams: bool = False) -> list[str]:
        """Identity-bound names in slot order, optionally only those on player teams."""
        names = []
        for index in sorted(self._state.slots):
            slot = self._state.slots[index]
            name = slot_player_name(slot)
            if name is None:
                continue
            if not include_non_player_teams and self._team_type(slot) is not TeamType.PLAYER_TEAMS:
                continue
            names.append(name)
        return names

    def _team_type(self, slot: dict) -> TeamType:
        team = slot.get("team")
        info = self._state.team_list_lookup.get(team) if isinstance(team, int) else None
        # teams created after construction are never classified
        return info.type if info is not None else TeamType.OTHER_TEAMS

    def player_name_to_slot_index(self, name: str) -> int:
        for index in sorted(self._state.slots):
            if self._state.slots[index].get("name") == name:
                return index
        logger.warning(f"⚠️  Player not found in slot list: {name}")
        return -1

    def search_players(self, pattern: str) -> list[str]:
        """Case-insensitive regex search over all_players; invalid regex → substring."""
        try:
            matcher = re.compile(pattern, re.I)
        except re.error:
            matcher = re.compile(re.escape(pattern), re.I)
        return [name for name in self._state.all_players if matcher.search(name)]

    def get_self(self) -> str:
        for index in sorted(self._state.slots):
            slot = self._state.slots[index]
            if slot.get("isSelf") is True:
                return slot_player_name(slot) or ""
        return ""

    def get_all_player_data(self) -> dict[str, PlayerRecord]:
        return dict(self._state.player_data)

    def export_snapshot(self) -> dict:
        return self._state.to_dict()

    def export_team_structure(self, player_teams_only: bool = True) -> dict[str, list[TeamSlotView]]:
        """
        Per-team seat listing, keyed by team name.

        Each row carries the display name (player name, "CLOSED" or
        "OPEN"), the slot index and the PlayerRecord, or -1 when the
        slot has no tracked record.
        """
        structure: dict[str, list[TeamSlotView]] = {}
        for team_index, info in self._state.team_list_lookup.items():
            if player_teams_only and info.type is not TeamType.PLAYER_TEAMS:
                continue
            rows = []
            for index in sorted(self._state.slots):
                slot = self._state.slots[index]
                if slot.get("team") != team_index:
                    continue
                name = slot_player_name(slot)
                record = self._state.player_data.get(name) if name is not None else None
                rows.append(
                    TeamSlotView(
                        display_name=slot_display_name(slot),
                        real_player=bool(slot.get("playerRegion")),
                        slot_status=slot.get("slotStatus"),
                        slot_index=index,
                        record=record if record is not None else -1,
                    )
                )
            structure[info.name] = rows
        return structure

    # ── read-only views ──────────────────────────────

    @property
    def region(self) -> str:
        return self._state.region

    @property
    def lobby_static(self) -> dict:
        return self._state.lobby_static

    @property
    def slots(self) -> dict[int, dict]:
        return self._state.slots

    @property
    def team_list_lookup(self) -> dict[int, TeamInfo]:
        return self._state.team_list_lookup

    @property
    def chat_messages(self) -> list[ChatMessage]:
        return self._state.chat_messages

    @property
    def all_players(self) -> list[str]:
        return self._state.all_players

    @property
    def non_spec_players(self) -> list[str]:
        return self._state.non_spec_players

    @property
    def stats_available(self) -> bool:
        return self._state.stats_available

    @property
    def lookup_name(self) -> str:
        return self._state.lookup_name
