import logging

import pytest

from microlobby.apps.lobby.models import ChatMessage, PlayerRecord, slot_player_name
from microlobby.apps.lobby.updates import (
    IngestResult,
    PlayerDataUpdate,
    PlayerJoined,
    PlayerLeft,
    PlayerMoved,
    PlayersSwapped,
    SlotBatchUpdate,
    SlotClosed,
    Stale,
)

from conftest import START_MS


def slots_update(*payloads, player_data=None):
    update = {"playerPayload": list(payloads)}
    if player_data is not None:
        update["playerData"] = player_data
    return update


# ═══════════════════════════════════════════════════
# SLOT BATCHES
# ═══════════════════════════════════════════════════

def test_player_joined(lobby, clock, make_slot, check_consistent):
    clock.advance(5_000)
    new = make_slot(3, "New#4321", "us", team=1)
    result = lobby.ingest_update(slots_update(new))

    assert result.is_updated is True
    assert result.events == [PlayerJoined(slot=new)]
    assert lobby.all_players == ["Me#1111", "Foo#1234", "New#4321", "Bar#5678"]
    assert lobby.get_all_player_data()["New#4321"] == PlayerRecord(joined_at=START_MS + 5_000)
    check_consistent(lobby)


def test_joined_event_does_not_alias_state(lobby, make_slot):
    new = make_slot(3, "New#4321", "us", team=1)
    result = lobby.ingest_update(slots_update(new))
    result.events[0].slot["name"] = "Changed#0000"
    assert lobby.slots[3]["name"] == "New#4321"


def test_player_moved(lobby, make_slot, check_consistent):
    joined_at = lobby.get_all_player_data()["Foo#1234"].joined_at
    result = lobby.ingest_update(slots_update(
        make_slot(1, "Foo#1234", "us", team=0),
        make_slot(2, team=0),
    ))

    assert result.events == [PlayerMoved(from_slot=2, to_slot=1, name="Foo#1234")]
    assert lobby.slots[1]["name"] == "Foo#1234"
    assert lobby.slots[2]["name"] == ""
    assert lobby.get_all_player_data()["Foo#1234"].joined_at == joined_at
    check_consistent(lobby)


def test_player_left(lobby, make_slot, check_consistent):
    result = lobby.ingest_update(slots_update(make_slot(2, team=0)))

    assert result.is_updated is True
    assert result.events == [PlayerLeft(name="Foo#1234")]
    assert "Foo#1234" not in lobby.all_players
    assert "Foo#1234" not in lobby.get_all_player_data()
    check_consistent(lobby)


def test_swap_emits_one_event(lobby, make_slot, check_consistent):
    result = lobby.ingest_update(slots_update(
        make_slot(2, "Bar#5678", "eu", team=0),
        make_slot(5, "Foo#1234", "us", team=1),
    ))

    assert result.events == [PlayersSwapped(slots=(2, 5), players=("Bar#5678", "Foo#1234"))]
    assert lobby.all_players == ["Me#1111", "Bar#5678", "Foo#1234"]
    check_consistent(lobby)


def test_invalid_payload_stops_events_but_batch_is_applied(lobby, make_slot, check_consistent):
    broken = make_slot(3, team=1, slotStatus="filled")
    new = make_slot(1, "New#4321", "us", team=0)
    result = lobby.ingest_update(slots_update(broken, new))

    assert result.events == []
    assert result.is_updated is True
    assert lobby.slots[3] == broken
    assert lobby.slots[1] == new
    assert "New#4321" in lobby.all_players
    check_consistent(lobby)


@pytest.mark.parametrize("bad_name", [["x"], 123, {"a": 1}])
def test_bound_seat_with_non_string_name_is_applied_but_not_rostered(lobby, make_slot, check_consistent, bad_name):
    broken = make_slot(3, team=1, region="us", status=2, name=bad_name)
    result = lobby.ingest_update(slots_update(broken))

    assert result.events == []
    assert result.is_updated is True
    assert lobby.slots[3] == broken
    assert lobby.all_players == ["Me#1111", "Foo#1234", "Bar#5678"]
    assert lobby.search_players("foo") == ["Foo#1234"]
    assert lobby.export_team_structure()["Team 2"][0].display_name == ""
    check_consistent(lobby)


def test_invalid_bound_seat_is_tracked_without_events(lobby, make_slot, check_consistent):
    broken = make_slot(3, "New#4321", "us", team=1, handicap=0)
    result = lobby.ingest_update(slots_update(broken))

    assert result.events == []
    assert "New#4321" in lobby.all_players
    assert "New#4321" in lobby.get_all_player_data()
    check_consistent(lobby)


def test_slot_player_name():
    assert slot_player_name({"playerRegion": "us", "name": "Foo#1234"}) == "Foo#1234"
    assert slot_player_name({"isSelf": True}) == ""
    assert slot_player_name({"playerRegion": "us", "name": ["x"]}) is None
    assert slot_player_name({"playerRegion": "", "name": "Computer"}) is None


def test_payload_without_usable_slot_index_is_skipped(lobby, make_slot):
    before = lobby.export_snapshot()
    result = lobby.ingest_update(slots_update(make_slot(30, "Far#9999", "us"), make_slot("2")))

    assert result == IngestResult()
    assert 30 not in lobby.slots
    assert lobby.export_snapshot() == before


def test_repeated_batch_is_idempotent(lobby, make_slot):
    new = make_slot(3, "New#4321", "us", team=1)
    lobby.ingest_update(slots_update(new))
    snapshot = lobby.export_snapshot()

    result = lobby.ingest_update(slots_update(new))
    assert result == IngestResult()
    assert lobby.export_snapshot() == snapshot


def test_unchanged_slots_produce_nothing(lobby):
    result = lobby.ingest_update(SlotBatchUpdate(payloads=list(lobby.slots.values())))
    assert result == IngestResult()


def test_same_occupant_setting_change(lobby, make_slot):
    result = lobby.ingest_update(slots_update(make_slot(2, "Foo#1234", "us", team=0, race=2)))
    assert result.is_updated is True
    assert result.events == []
    assert lobby.slots[2]["race"] == 2


def test_observer_seat_is_not_a_player_team(lobby, make_slot):
    result = lobby.ingest_update(slots_update(make_slot(6, "Obs#2222", "eu", team=2, isObserver=True)))

    assert [type(event) for event in result.events] == [PlayerJoined]
    assert "Obs#2222" in lobby.all_players
    assert "Obs#2222" not in lobby.non_spec_players


def test_unclassified_team_counts_as_other(lobby, make_slot):
    lobby.ingest_update(slots_update(make_slot(7, "Late#3333", "us", team=9)))
    assert "Late#3333" in lobby.all_players
    assert "Late#3333" not in lobby.non_spec_players


def test_batch_sequence_keeps_records_in_step(lobby, make_slot, check_consistent):
    lobby.ingest_update(slots_update(make_slot(3, "New#4321", "us", team=1)))
    lobby.ingest_update(slots_update(make_slot(5, team=1), make_slot(1, "Bar#5678", "eu", team=0)))
    lobby.ingest_update(slots_update(make_slot(2, team=0)))

    assert lobby.all_players == ["Me#1111", "Bar#5678", "New#4321"]
    check_consistent(lobby)


# ═══════════════════════════════════════════════════
# STATS PATCHES
# ═══════════════════════════════════════════════════

def test_attached_stats_patch(lobby):
    patch = {"name": "Foo#1234", "extraData": {"wins": 3, "losses": 1}}
    result = lobby.ingest_update(slots_update(player_data=patch))

    assert result.is_updated is True
    assert result.events == [PlayerDataUpdate(name="Foo#1234", extra_data={"wins": 3, "losses": 1})]
    assert lobby.get_all_player_data()["Foo#1234"].extra == {"wins": 3, "losses": 1}

    assert lobby.ingest_update(slots_update(player_data=patch)) == IngestResult()


def test_attached_stats_patch_recreates_missing_record(lobby, caplog):
    lobby._state.player_data.pop("Foo#1234")

    with caplog.at_level(logging.WARNING):
        result = lobby.ingest_update(slots_update(player_data={"name": "Foo#1234", "extraData": {"wins": 1}}))

    assert result.is_updated is True
    assert lobby.get_all_player_data()["Foo#1234"].extra == {"wins": 1}
    assert "non-existent player" in caplog.text


def test_attached_stats_patch_for_stranger_is_ignored(lobby):
    result = lobby.ingest_update(slots_update(player_data={"name": "Ghost#0000", "extraData": {"wins": 1}}))
    assert result == IngestResult()
    assert "Ghost#0000" not in lobby.get_all_player_data()


def test_invalid_extra_data_is_ignored(lobby):
    result = lobby.ingest_update(slots_update(player_data={"name": "Foo#1234", "extraData": {"wins": "many"}}))
    assert result == IngestResult()
    assert lobby.get_all_player_data()["Foo#1234"].extra is None


def test_standalone_player_data_patch(lobby):
    patch = {"name": "Bar#5678", "data": {"cleared": True}, "extraData": {"rating": 1500}}
    result = lobby.ingest_update({"playerData": patch})

    record = lobby.get_all_player_data()["Bar#5678"]
    assert result.is_updated is True
    assert result.events == [
        PlayerDataUpdate(name="Bar#5678", data={"cleared": True}, extra_data={"rating": 1500})
    ]
    assert record.cleared is True
    assert record.extra == {"rating": 1500}


def test_standalone_patch_ignores_unknown_and_invalid_fields(lobby):
    assert lobby.ingest_update({"playerData": {"name": "Bar#5678", "data": {"bogus": 1}}}) == IngestResult()
    assert lobby.ingest_update({"playerData": {"name": "Bar#5678", "data": {"cleared": "yes"}}}) == IngestResult()
    assert lobby.get_all_player_data()["Bar#5678"].cleared is False


@pytest.mark.parametrize(
    "patch",
    [
        {"name": ["Foo#1234"], "extraData": {"wins": 1}},
        {"name": {"a": 1}, "data": {"cleared": True}},
        {"name": "Bar#5678", "data": [1, 2]},
        {"name": "Bar#5678", "extraData": "lots"},
        {"name": "X" * 33, "extraData": {"wins": 1}},
    ],
)
def test_malformed_player_data_envelope_is_dropped(lobby, patch):
    before = lobby.export_snapshot()
    assert lobby.ingest_update({"playerData": patch}) == IngestResult()
    assert lobby.export_snapshot() == before


@pytest.mark.parametrize(
    "patch",
    [
        {"name": {"a": 1}, "extraData": {"wins": 1}},
        {"name": ["Foo#1234"], "extraData": {"wins": 1}},
        {"name": "Foo#1234", "extraData": [1]},
    ],
)
def test_malformed_attached_patch_is_dropped(lobby, patch):
    assert lobby.ingest_update(slots_update(player_data=patch)) == IngestResult()
    assert lobby.get_all_player_data()["Foo#1234"].extra is None


def test_standalone_patch_for_unknown_player(lobby):
    assert lobby.ingest_update({"playerData": {"name": "Ghost#0000", "extraData": {}}}) == IngestResult()


# ═══════════════════════════════════════════════════
# CHAT
# ═══════════════════════════════════════════════════

def test_chat_message_is_logged(lobby):
    result = lobby.ingest_update({"chatMessage": {"name": "Foo#1234", "message": "gl hf"}})

    assert result == IngestResult(is_updated=True)
    assert lobby.chat_messages == [ChatMessage(name="Foo#1234", message="gl hf", time=START_MS)]


@pytest.mark.parametrize(
    "chat",
    [
        {"name": "not a tag", "message": "hi"},
        {"name": "Foo#1234", "message": ""},
        {"name": "Foo#1234", "message": "x" * 256},
        {"name": "Foo#1234", "message": 42},
    ],
)
def test_invalid_chat_is_dropped(lobby, chat):
    assert lobby.ingest_update({"chatMessage": chat}) == IngestResult()
    assert lobby.chat_messages == []


def test_chat_dedupe_window(lobby, clock):
    assert lobby.new_chat("Foo#1234", "go") is True
    clock.advance(500)
    assert lobby.new_chat("Bar#5678", "go") is False
    clock.advance(500)
    assert lobby.new_chat("Bar#5678", "go") is True
    assert lobby.new_chat("Bar#5678", "other") is True
    assert [chat.time for chat in lobby.chat_messages] == [START_MS, START_MS + 1_000, START_MS + 1_000]


def test_new_chat_rejects_malformed_lines(lobby):
    assert lobby.new_chat("not a tag", "hi") is False
    assert lobby.new_chat("Foo#1234", "") is False
    assert lobby.chat_messages == []

    assert lobby.new_chat("Foo#1234", "hi") is True
    restored = type(lobby).from_snapshot(lobby.export_snapshot())
    assert restored.chat_messages == lobby.chat_messages


# ═══════════════════════════════════════════════════
# PASS-THROUGH & FILTERING
# ═══════════════════════════════════════════════════

def test_reserved_updates_pass_through(lobby):
    assert lobby.ingest_update(Stale()) == IngestResult(is_updated=False, events=[Stale()])
    assert lobby.ingest_update({"slotClosed": 4}).events == [SlotClosed(slot=4)]
    assert lobby.ingest_update(PlayerLeft(name="Foo#1234")).events == [PlayerLeft(name="Foo#1234")]
    assert "Foo#1234" in lobby.all_players


def test_update_lobby_slots_filters_noise(lobby, make_slot):
    unchanged = lobby.slots[2]
    invalid = make_slot(3, team=1, handicap=0)
    unnamed = make_slot(4, "", "us", team=1, status=2)
    new = make_slot(1, "New#4321", "us", team=0)

    outcome = lobby.update_lobby_slots([unchanged, invalid, unnamed, new])

    assert outcome.player_updates == [new]
    assert outcome.result.events == [PlayerJoined(slot=new)]
    assert lobby.slots[3]["handicap"] == 100


def test_update_lobby_slots_with_nothing_new(lobby):
    outcome = lobby.update_lobby_slots(list(lobby.slots.values()))
    assert outcome.player_updates == []
    assert outcome.result == IngestResult()
