"""
FastAPI WebSocket server for the Shanghai Rummy game.
"""

import asyncio
import logging
import uuid
from typing import Dict, List, Optional, Set

import orjson
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from ..service import GameService, Outcome
from ..timers import AsyncioTimerService
from .events import (
    parse_inbound_event, create_connected_event, create_error_event,
    create_game_event, create_state_full_event, ErrorCode,
    CreateLobbyEvent, JoinLobbyEvent, LeaveLobbyEvent, KickPlayerEvent,
    DisbandLobbyEvent, StartGameEvent, WantToBuyEvent, TakeDiscardEvent,
    DeclineBuyEvent, DrawFromDeckEvent, DrawFromDiscardEvent, PlaceContractEvent,
    AddToMeldEvent, DiscardCardEvent, SetDealersChoiceEvent, EndGameEarlyEvent,
    NextRoundEvent, RequestStateEvent,
)

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages WebSocket connections keyed by participant id."""

    def __init__(self):
        self.connections: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket) -> str:
        await websocket.accept()
        player_id = str(uuid.uuid4())
        self.connections[player_id] = websocket
        logger.info(f"Player {player_id} connected")
        return player_id

    def disconnect(self, player_id: str):
        self.connections.pop(player_id, None)
        logger.info(f"Player {player_id} disconnected")

    async def send(self, player_id: str, payload: str):
        websocket = self.connections.get(player_id)
        if websocket is None:
            return
        try:
            await websocket.send_text(payload)
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.warning(f"Error sending to {player_id}: {e}")
            self.disconnect(player_id)

    async def deliver(self, outcome: Outcome):
        """Send an outcome: errors to the requester, snapshots and events to their recipients."""
        if not outcome.success:
            if outcome.requester_id:
                error_event = create_error_event(outcome.error_code, outcome.error_message)
                await self.send(outcome.requester_id, error_event.model_dump_json())
            return

        for player_id, snapshot in outcome.snapshots.items():
            await self.send(player_id, create_state_full_event(snapshot).model_dump_json())
        for player_id, event in outcome.events:
            await self.send(player_id, create_game_event(event.type, event.data).model_dump_json())

    @property
    def count(self) -> int:
        return len(self.connections)


def dispatch(service: GameService, player_id: str, event) -> Outcome:
    """Route a parsed inbound event to the matching service command."""
    if isinstance(event, CreateLobbyEvent):
        return service.create_lobby(player_id, event.username)
    elif isinstance(event, JoinLobbyEvent):
        return service.join_lobby(player_id, event.code, event.username)
    elif isinstance(event, LeaveLobbyEvent):
        return service.leave_lobby(player_id)
    elif isinstance(event, KickPlayerEvent):
        return service.kick_player(player_id, event.player_id)
    elif isinstance(event, DisbandLobbyEvent):
        return service.disband_lobby(player_id)
    elif isinstance(event, StartGameEvent):
        settings = event.settings.model_dump(exclude_none=True) if event.settings else None
        return service.start_game(player_id, settings, seed=event.seed)
    elif isinstance(event, WantToBuyEvent):
        return service.want_to_buy(player_id)
    elif isinstance(event, TakeDiscardEvent):
        return service.take_discard(player_id)
    elif isinstance(event, DeclineBuyEvent):
        return service.decline_buy(player_id)
    elif isinstance(event, DrawFromDeckEvent):
        return service.draw_from_deck(player_id)
    elif isinstance(event, DrawFromDiscardEvent):
        return service.draw_from_discard(player_id)
    elif isinstance(event, PlaceContractEvent):
        return service.place_contract(player_id, event.groups)
    elif isinstance(event, AddToMeldEvent):
        return service.add_to_meld(player_id, event.target_player_id, event.meld_index, event.card_id)
    elif isinstance(event, DiscardCardEvent):
        return service.discard_card(player_id, event.card_id)
    elif isinstance(event, SetDealersChoiceEvent):
        return service.set_dealers_choice(player_id, event.choice)
    elif isinstance(event, EndGameEarlyEvent):
        return service.end_game_early(player_id)
    elif isinstance(event, NextRoundEvent):
        return service.next_round(player_id)
    elif isinstance(event, RequestStateEvent):
        return service.request_state(player_id)
    else:
        raise ValueError(f"Unhandled event type: {type(event)}")


def create_app(
    service: Optional[GameService] = None,
    round_advance_delay: Optional[float] = 3.0,
    cors_origins: Optional[List[str]] = None,
) -> FastAPI:
    """Build the FastAPI app around one GameService."""
    app = FastAPI(title="Shanghai Rummy Game Engine", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if service is None:
        service = GameService(AsyncioTimerService(), round_advance_delay=round_advance_delay)
    manager = ConnectionManager()
    pending: Set[asyncio.Task] = set()

    def on_timer_outcome(outcome: Outcome):
        # Timer callbacks run on the event loop; delivery is async
        task = asyncio.get_running_loop().create_task(manager.deliver(outcome))
        pending.add(task)
        task.add_done_callback(pending.discard)

    service.add_listener(on_timer_outcome)
    app.state.service = service
    app.state.connections = manager

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "lobbies": len(service.lobbies.lobbies),
            "games": len(service.store.all()),
            "connections": manager.count,
        }

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Main WebSocket endpoint."""
        player_id = await manager.connect(websocket)
        await manager.send(player_id, create_connected_event(player_id).model_dump_json())

        try:
            while True:
                raw_data = await websocket.receive_text()

                try:
                    event = parse_inbound_event(orjson.loads(raw_data))
                except ValueError as e:
                    error_event = create_error_event(ErrorCode.INVALID_EVENT, str(e))
                    await manager.send(player_id, error_event.model_dump_json())
                    continue

                try:
                    outcome = dispatch(service, player_id, event)
                except Exception:
                    logger.exception(f"Error handling event from {player_id}")
                    error_event = create_error_event(ErrorCode.INTERNAL, "Internal server error")
                    await manager.send(player_id, error_event.model_dump_json())
                    continue

                await manager.deliver(outcome)

        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected for {player_id}")
        finally:
            manager.disconnect(player_id)
            await manager.deliver(service.disconnect(player_id))

    return app
