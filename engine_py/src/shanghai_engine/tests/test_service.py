import random

from shanghai_engine.constants import PHASE_FINISHED, PHASE_ROUND_END, TURN_DISCARD, TURN_DRAW
from shanghai_engine.errors import INVALID_PHASE, INVALID_SETTINGS, NOT_AUTHORIZED, NOT_FOUND, NOT_YOUR_TURN
from shanghai_engine.lobby import LobbyDirectory
from shanghai_engine.service import GameService

from conftest import FakeTimerService, build_state, hand_ids


def events_for(outcome, player_id):
    return [event.type for recipient, event in outcome.events if recipient == player_id]


def open_lobby(service, *guests):
    created = service.create_lobby("p1", "Alice")
    code = created.events[0][1].data["lobby"]["code"]
    for guest in guests:
        service.join_lobby(guest, code)
    return code


def started_game(service, players=("p2", "p3"), settings=None):
    code = open_lobby(service, *players)
    outcome = service.start_game("p1", settings, seed=4)
    assert outcome.success
    return code, service.store.get_by_code(code)


def test_create_and_join_lobby(service):
    created = service.create_lobby("p1", "Alice")
    assert created.success
    assert events_for(created, "p1") == ["lobby-created"]
    code = created.events[0][1].data["lobby"]["code"]

    joined = service.join_lobby("p2", code.lower(), "Bob")
    assert events_for(joined, "p2") == ["lobby-joined"]
    assert events_for(joined, "p1") == ["player-joined-lobby", "lobby-updated"]
    names = [p["name"] for p in joined.events[0][1].data["lobby"]["players"]]
    assert names == ["Alice", "Bob"]


def test_join_missing_lobby(service):
    outcome = service.join_lobby("p2", "ZZZZZZ")
    assert not outcome.success
    assert outcome.error_code == NOT_FOUND
    assert outcome.requester_id == "p2"
    assert outcome.events == []


def test_host_leaving_notifies_members(service):
    code = open_lobby(service, "p2", "p3")
    outcome = service.leave_lobby("p1")
    assert events_for(outcome, "p2") == ["lobby-disbanded"]
    assert events_for(outcome, "p3") == ["lobby-disbanded"]
    assert service.lobbies.get_lobby(code) is None


def test_kick_player(service):
    open_lobby(service, "p2", "p3")
    assert service.kick_player("p2", "p3").error_code == NOT_AUTHORIZED

    outcome = service.kick_player("p1", "p3")
    assert events_for(outcome, "p3") == ["player-kicked"]
    assert events_for(outcome, "p2") == ["player-left-lobby", "lobby-updated"]


def test_disband_lobby(service):
    open_lobby(service, "p2")
    assert service.disband_lobby("p2").error_code == NOT_AUTHORIZED
    outcome = service.disband_lobby("p1")
    assert set(outcome.recipients) == {"p1", "p2"}


def test_start_game_checks(service):
    open_lobby(service)
    assert service.start_game("p1").error_code == INVALID_PHASE

    code = open_lobby(service, "p2")
    assert service.start_game("p2").error_code == NOT_AUTHORIZED
    assert service.start_game("p9").error_code == NOT_FOUND

    bad = service.start_game("p1", {"buy_mode": "auction"})
    assert bad.error_code == INVALID_SETTINGS
    assert service.store.get_by_code(code) is None


def test_start_game_broadcasts_snapshots(service, timers):
    code = open_lobby(service, "p2", "p3")
    outcome = service.start_game("p1", {"buy_mode": "simultaneous", "buy_time_limit": 15}, seed=4)

    assert outcome.success
    assert set(outcome.snapshots) == {"p1", "p2", "p3"}
    for player_id, snapshot in outcome.snapshots.items():
        visible = [p["id"] for p in snapshot["players"] if p["hand"]]
        assert visible == [player_id]
        assert snapshot["settings"]["buy_mode"] == "simultaneous"
    assert events_for(outcome, "p2")[:2] == ["game-starting", "game-started"]

    state = service.store.get_by_code(code)
    assert state.host_id == "p1"
    assert len(timers.active) == 1
    assert timers.active[0].delay == 15

    assert service.start_game("p1").error_code == INVALID_PHASE


def test_rejected_command_goes_to_requester_only(service):
    _, state = started_game(service)
    outcome = service.draw_from_deck("p3")

    assert not outcome.success
    assert outcome.error_code == INVALID_PHASE
    assert outcome.requester_id == "p3"
    assert outcome.snapshots == {}
    assert outcome.events == []
    assert service.store.get(state.id) is state


def test_command_without_game(service):
    open_lobby(service, "p2")
    assert service.draw_from_deck("p2").error_code == NOT_FOUND
    assert service.request_state("p2").error_code == NOT_FOUND


def test_buy_deadline_resolves_window(service, timers):
    notified = []
    service.add_listener(notified.append)
    _, state = started_game(service)

    timers.active[0].fire()

    assert len(notified) == 1
    assert set(notified[0].snapshots) == {"p1", "p2", "p3"}
    resolved = service.store.get(state.id)
    assert resolved.turn_phase == TURN_DRAW
    assert resolved.current_player_id == "p2"
    assert timers.active == []


def test_player_action_cancels_deadline(service, timers):
    notified = []
    service.add_listener(notified.append)
    _, state = started_game(service)
    deadline = timers.active[0]

    outcome = service.take_discard("p2")
    assert outcome.success
    assert deadline.cancelled

    # A late firing of the cancelled deadline changes nothing
    before = service.store.get(state.id)
    deadline.fire()
    assert notified == []
    assert service.store.get(state.id) is before


def test_each_discard_gets_a_new_deadline(service, timers):
    _, state = started_game(service)
    service.take_discard("p2")
    current = service.store.get(state.id)
    service.discard_card("p2", current.players[1].hand[0].id)

    assert len(timers.active) == 1
    assert len(timers.timers) == 2


def test_turn_commands_through_service(service):
    _, state = started_game(service, players=("p2",))
    service.decline_buy("p2")
    outcome = service.draw_from_deck("p2")
    assert outcome.success
    assert events_for(outcome, "p1") == ["card-drawn"]

    assert service.draw_from_deck("p1").error_code == INVALID_PHASE
    card_id = service.store.get(state.id).players[1].hand[0].id
    assert service.discard_card("p1", card_id).error_code == NOT_YOUR_TURN
    assert service.discard_card("p2", card_id).success


def test_request_state_is_private(service):
    started_game(service)
    outcome = service.request_state("p3")
    assert list(outcome.snapshots) == ["p3"]
    assert outcome.events == []


def test_end_game_early_is_host_only(service, timers):
    _, state = started_game(service)
    assert service.end_game_early("p2").error_code == NOT_AUTHORIZED

    outcome = service.end_game_early("p1")
    assert outcome.success
    assert service.store.get(state.id).phase == PHASE_FINISHED
    assert events_for(outcome, "p3") == ["game-ended"]
    assert timers.active == []


def test_disbanding_discards_the_game(service, timers):
    code, state = started_game(service)
    assert len(timers.active) == 1

    assert service.disband_lobby("p1").success
    assert service.store.get(state.id) is None
    assert service.store.get_by_code(code) is None
    assert timers.active == []
    assert code not in service.game_locks
    assert service.draw_from_deck("p2").error_code == NOT_FOUND


def test_host_leaving_discards_the_game(service, timers):
    code, state = started_game(service)
    outcome = service.disconnect("p1")

    assert events_for(outcome, "p2") == ["lobby-disbanded"]
    assert service.store.all() == []
    assert timers.active == []
    assert code not in service.game_locks


def test_guest_leaving_keeps_the_game(service):
    code, state = started_game(service)
    service.leave_lobby("p3")
    assert service.store.get_by_code(code) is state


def test_new_game_after_finish(service):
    code, first = started_game(service)
    service.end_game_early("p1")
    assert service.start_game("p1").success

    second = service.store.get_by_code(code)
    assert second.id != first.id
    assert service.store.get(first.id) is None


def test_round_auto_advance():
    timers = FakeTimerService()
    service = GameService(timers, lobbies=LobbyDirectory(random.Random(7)), round_advance_delay=3)
    notified = []
    service.add_listener(notified.append)
    code, started = started_game(service, players=("p2",))

    rigged = build_state([["5H"], ["KH", "KD", "JK"]], discard=["9H"], turn_phase=TURN_DISCARD)
    rigged.id = started.id
    rigged.game_code = code
    service.store.put(rigged)
    for timer in timers.active:
        timer.cancel()
    service.buy_timers.clear()

    outcome = service.discard_card("p1", hand_ids(rigged, 0, "5H")[0])
    assert outcome.success
    assert service.store.get(started.id).phase == PHASE_ROUND_END
    assert [t.delay for t in timers.active] == [3]

    timers.active[0].fire()
    advanced = service.store.get(started.id)
    assert advanced.round == 2
    assert advanced.dealer_index == 1
    assert [p.total_score for p in advanced.players] == [0, 70]
    assert "next-round-starting" in [e.type for _, e in notified[0].events]


def test_manual_next_round_beats_auto_advance():
    timers = FakeTimerService()
    service = GameService(timers, lobbies=LobbyDirectory(random.Random(7)), round_advance_delay=3)
    code, started = started_game(service, players=("p2",))

    rigged = build_state([["5H"], ["KH"]], discard=["9H"], turn_phase=TURN_DISCARD)
    rigged.id = started.id
    rigged.game_code = code
    service.store.put(rigged)
    service.discard_card("p1", hand_ids(rigged, 0, "5H")[0])
    round_timer = timers.active[-1]

    assert service.next_round("p2").success
    assert round_timer.cancelled
    assert service.store.get(started.id).round == 2
