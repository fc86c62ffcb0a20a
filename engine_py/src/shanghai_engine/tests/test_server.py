import asyncio
import random

import orjson
import pytest
from fastapi.testclient import TestClient

from shanghai_engine.lobby import LobbyDirectory
from shanghai_engine.service import GameService
from shanghai_engine.ws.events import parse_inbound_event, PlaceContractEvent, StartGameEvent
from shanghai_engine.ws.server import ConnectionManager, create_app

from conftest import FakeTimerService


@pytest.fixture
def client():
    service = GameService(FakeTimerService(), lobbies=LobbyDirectory(random.Random(7)))
    return TestClient(create_app(service=service))


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "lobbies": 0, "games": 0, "connections": 0}


def test_parse_inbound_event():
    event = parse_inbound_event({"type": "place_contract", "groups": [["card-1", "card-2", "card-3"]]})
    assert isinstance(event, PlaceContractEvent)

    start = parse_inbound_event({"type": "start_game", "settings": {"buy_mode": "simultaneous"}})
    assert isinstance(start, StartGameEvent)
    assert start.settings.model_dump(exclude_none=True) == {"buy_mode": "simultaneous"}

    with pytest.raises(ValueError):
        parse_inbound_event({"type": "fly"})
    with pytest.raises(ValueError):
        parse_inbound_event({"groups": []})
    with pytest.raises(ValueError):
        parse_inbound_event({"type": "set_dealers_choice", "choice": "pairs"})
    with pytest.raises(ValueError):
        parse_inbound_event(["draw_from_deck"])


def test_malformed_messages_get_invalid_event(client):
    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json()["type"] == "connected"

        ws.send_text("not json")
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["code"] == "INVALID_EVENT"

        ws.send_json({"type": "fly"})
        assert ws.receive_json()["code"] == "INVALID_EVENT"

        ws.send_json({"type": "discard_card"})
        assert ws.receive_json()["code"] == "INVALID_EVENT"

        # The connection stays usable
        ws.send_json({"type": "request_state"})
        error = ws.receive_json()
        assert error["code"] == "NOT_FOUND"


class RecordingWebSocket:
    def __init__(self, broken=False):
        self.accepted = False
        self.broken = broken
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, payload):
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(orjson.loads(payload))


def test_lobby_and_game_flow(client):
    service = client.app.state.service
    with client.websocket_connect("/ws") as host:
        host.receive_json()
        host.send_json({"type": "create_lobby", "username": "Alice"})
        created = host.receive_json()
        assert created["event"] == "lobby-created"
        code = created["data"]["lobby"]["code"]

        # A second seat filled without a socket, so only the host hears traffic
        service.join_lobby("offline-guest", code, "Bob")

        host.send_json({"type": "start_game", "settings": {"buy_mode": "sequential"}, "seed": 3})
        state = host.receive_json()
        assert state["type"] == "state_full"
        snapshot = state["state"]
        assert snapshot["phase"] == "playing"
        assert snapshot["turn_phase"] == "buy"
        hands = {p["id"]: p["hand"] for p in snapshot["players"]}
        assert len(hands["offline-guest"]) == 0
        assert len([h for h in hands.values() if h]) == 1

        names = [host.receive_json()["event"] for _ in range(4)]
        assert names == ["game-starting", "game-started", "buy-phase-started", "turn-update"]

        # The dealer is not offered the flipped card
        host.send_json({"type": "draw_from_deck"})
        error = host.receive_json()
        assert error["type"] == "error"
        assert error["code"] == "INVALID_PHASE"

        host.send_json({"type": "request_state"})
        private = host.receive_json()
        assert private["type"] == "state_full"
        assert private["state"]["current_player_id"] == snapshot["current_player_id"]


def test_guest_cannot_start_game(client):
    service = client.app.state.service
    created = service.create_lobby("offline-host", "Alice")
    code = created.events[0][1].data["lobby"]["code"]

    with client.websocket_connect("/ws") as guest:
        guest.receive_json()
        guest.send_json({"type": "join_lobby", "code": code, "username": "Bob"})
        joined = guest.receive_json()
        assert joined["event"] == "lobby-joined"
        assert [p["name"] for p in joined["data"]["lobby"]["players"]] == ["Alice", "Bob"]

        guest.send_json({"type": "start_game"})
        error = guest.receive_json()
        assert error["type"] == "error"
        assert error["code"] == "NOT_AUTHORIZED"


def test_deliver_broadcasts_to_every_participant():
    service = GameService(FakeTimerService(), lobbies=LobbyDirectory(random.Random(7)))
    manager = ConnectionManager()
    host_ws, guest_ws = RecordingWebSocket(), RecordingWebSocket()

    async def scenario():
        host_id = await manager.connect(host_ws)
        guest_id = await manager.connect(guest_ws)
        await manager.deliver(service.create_lobby(host_id, "Alice"))
        code = service.lobbies.get_lobby_by_player_id(host_id).code
        await manager.deliver(service.join_lobby(guest_id, code, "Bob"))
        await manager.deliver(service.start_game(host_id, {"buy_mode": "sequential"}, seed=3))
        host_ws.sent.clear()
        guest_ws.sent.clear()

        await manager.deliver(service.take_discard(guest_id))
        return host_id, guest_id

    host_id, guest_id = asyncio.run(scenario())

    assert host_ws.accepted and guest_ws.accepted
    for ws, own_id in ((host_ws, host_id), (guest_ws, guest_id)):
        assert ws.sent[0]["type"] == "state_full"
        snapshot = ws.sent[0]["state"]
        assert snapshot["current_player_id"] == guest_id
        assert snapshot["turn_phase"] == "place"
        hands = {p["id"]: p["hand"] for p in snapshot["players"]}
        assert len(hands[own_id]) > 0
        assert all(hand == [] for pid, hand in hands.items() if pid != own_id)
        assert [m["event"] for m in ws.sent[1:]] == ["discard-taken", "buy-phase-ended", "turn-update"]


def test_deliver_sends_errors_to_requester_only():
    service = GameService(FakeTimerService(), lobbies=LobbyDirectory(random.Random(7)))
    manager = ConnectionManager()
    host_ws, guest_ws = RecordingWebSocket(), RecordingWebSocket()

    async def scenario():
        host_id = await manager.connect(host_ws)
        guest_id = await manager.connect(guest_ws)
        service.create_lobby(host_id)
        service.join_lobby(guest_id, service.lobbies.get_lobby_by_player_id(host_id).code)
        await manager.deliver(service.start_game(guest_id))

    asyncio.run(scenario())
    assert host_ws.sent == []
    assert [m["code"] for m in guest_ws.sent] == ["NOT_AUTHORIZED"]


def test_guest_disconnect_reaches_host():
    service = GameService(FakeTimerService(), lobbies=LobbyDirectory(random.Random(7)))
    manager = ConnectionManager()
    host_ws, guest_ws = RecordingWebSocket(), RecordingWebSocket()

    async def scenario():
        host_id = await manager.connect(host_ws)
        guest_id = await manager.connect(guest_ws)
        service.create_lobby(host_id)
        service.join_lobby(guest_id, service.lobbies.get_lobby_by_player_id(host_id).code)
        manager.disconnect(guest_id)
        await manager.deliver(service.disconnect(guest_id))

    asyncio.run(scenario())
    assert [m["event"] for m in host_ws.sent] == ["player-left-lobby", "lobby-updated"]
    assert manager.count == 1


def test_broken_connection_is_dropped():
    manager = ConnectionManager()
    broken = RecordingWebSocket(broken=True)

    async def scenario():
        player_id = await manager.connect(broken)
        await manager.send(player_id, "{}")

    asyncio.run(scenario())
    assert manager.count == 0
