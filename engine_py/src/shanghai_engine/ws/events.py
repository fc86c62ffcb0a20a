"""
WebSocket event models and validation.
"""

import time
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError


class EventType(str, Enum):
    """Inbound event types."""
    CREATE_LOBBY = "create_lobby"
    JOIN_LOBBY = "join_lobby"
    LEAVE_LOBBY = "leave_lobby"
    KICK_PLAYER = "kick_player"
    DISBAND_LOBBY = "disband_lobby"
    START_GAME = "start_game"
    WANT_TO_BUY = "want_to_buy"
    TAKE_DISCARD = "take_discard"
    DECLINE_BUY = "decline_buy"
    DRAW_FROM_DECK = "draw_from_deck"
    DRAW_FROM_DISCARD = "draw_from_discard"
    PLACE_CONTRACT = "place_contract"
    ADD_TO_MELD = "add_to_meld"
    DISCARD_CARD = "discard_card"
    SET_DEALERS_CHOICE = "set_dealers_choice"
    END_GAME_EARLY = "end_game_early"
    NEXT_ROUND = "next_round"
    REQUEST_STATE = "request_state"


class OutboundEventType(str, Enum):
    """Outbound event types."""
    CONNECTED = "connected"
    STATE_FULL = "state_full"
    GAME_EVENT = "game_event"
    ERROR = "error"


class ErrorCode(str, Enum):
    """Error codes for client events."""
    INVALID_EVENT = "INVALID_EVENT"
    INVALID_PHASE = "INVALID_PHASE"
    NOT_YOUR_TURN = "NOT_YOUR_TURN"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    INVALID_MELD = "INVALID_MELD"
    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_SETTINGS = "INVALID_SETTINGS"
    INTERNAL = "INTERNAL"


# Inbound event models
class BaseEvent(BaseModel):
    """Base event model."""
    type: EventType


class CreateLobbyEvent(BaseEvent):
    type: EventType = EventType.CREATE_LOBBY
    username: Optional[str] = Field(None, min_length=1, max_length=30)


class JoinLobbyEvent(BaseEvent):
    type: EventType = EventType.JOIN_LOBBY
    code: str = Field(..., min_length=1, max_length=12)
    username: Optional[str] = Field(None, min_length=1, max_length=30)


class LeaveLobbyEvent(BaseEvent):
    type: EventType = EventType.LEAVE_LOBBY


class KickPlayerEvent(BaseEvent):
    type: EventType = EventType.KICK_PLAYER
    player_id: str = Field(..., min_length=1)


class DisbandLobbyEvent(BaseEvent):
    type: EventType = EventType.DISBAND_LOBBY


class StartGameSettings(BaseModel):
    """Settings block sent by the host; validated again by the engine."""
    buy_mode: Optional[str] = None
    buy_time_limit: Optional[int] = None


class StartGameEvent(BaseEvent):
    """Host starts the game for everyone in the lobby."""
    type: EventType = EventType.START_GAME
    settings: Optional[StartGameSettings] = None
    seed: Optional[int] = None


class WantToBuyEvent(BaseEvent):
    type: EventType = EventType.WANT_TO_BUY


class TakeDiscardEvent(BaseEvent):
    type: EventType = EventType.TAKE_DISCARD


class DeclineBuyEvent(BaseEvent):
    type: EventType = EventType.DECLINE_BUY


class DrawFromDeckEvent(BaseEvent):
    type: EventType = EventType.DRAW_FROM_DECK


class DrawFromDiscardEvent(BaseEvent):
    type: EventType = EventType.DRAW_FROM_DISCARD


class PlaceContractEvent(BaseEvent):
    """Place the round contract; each group is a list of card ids."""
    type: EventType = EventType.PLACE_CONTRACT
    groups: List[List[str]] = Field(..., min_length=1, max_length=4)


class AddToMeldEvent(BaseEvent):
    type: EventType = EventType.ADD_TO_MELD
    target_player_id: str = Field(..., min_length=1)
    meld_index: int = Field(..., ge=0)
    card_id: str = Field(..., min_length=1)


class DiscardCardEvent(BaseEvent):
    type: EventType = EventType.DISCARD_CARD
    card_id: str = Field(..., min_length=1)


class SetDealersChoiceEvent(BaseEvent):
    type: EventType = EventType.SET_DEALERS_CHOICE
    choice: Literal['books', 'runs']


class EndGameEarlyEvent(BaseEvent):
    type: EventType = EventType.END_GAME_EARLY


class NextRoundEvent(BaseEvent):
    type: EventType = EventType.NEXT_ROUND


class RequestStateEvent(BaseEvent):
    """Request full state event."""
    type: EventType = EventType.REQUEST_STATE


# Union type for all inbound events
InboundEvent = Union[
    CreateLobbyEvent,
    JoinLobbyEvent,
    LeaveLobbyEvent,
    KickPlayerEvent,
    DisbandLobbyEvent,
    StartGameEvent,
    WantToBuyEvent,
    TakeDiscardEvent,
    DeclineBuyEvent,
    DrawFromDeckEvent,
    DrawFromDiscardEvent,
    PlaceContractEvent,
    AddToMeldEvent,
    DiscardCardEvent,
    SetDealersChoiceEvent,
    EndGameEarlyEvent,
    NextRoundEvent,
    RequestStateEvent,
]


EVENT_MAP = {
    EventType.CREATE_LOBBY: CreateLobbyEvent,
    EventType.JOIN_LOBBY: JoinLobbyEvent,
    EventType.LEAVE_LOBBY: LeaveLobbyEvent,
    EventType.KICK_PLAYER: KickPlayerEvent,
    EventType.DISBAND_LOBBY: DisbandLobbyEvent,
    EventType.START_GAME: StartGameEvent,
    EventType.WANT_TO_BUY: WantToBuyEvent,
    EventType.TAKE_DISCARD: TakeDiscardEvent,
    EventType.DECLINE_BUY: DeclineBuyEvent,
    EventType.DRAW_FROM_DECK: DrawFromDeckEvent,
    EventType.DRAW_FROM_DISCARD: DrawFromDiscardEvent,
    EventType.PLACE_CONTRACT: PlaceContractEvent,
    EventType.ADD_TO_MELD: AddToMeldEvent,
    EventType.DISCARD_CARD: DiscardCardEvent,
    EventType.SET_DEALERS_CHOICE: SetDealersChoiceEvent,
    EventType.END_GAME_EARLY: EndGameEarlyEvent,
    EventType.NEXT_ROUND: NextRoundEvent,
    EventType.REQUEST_STATE: RequestStateEvent,
}


# Outbound event models
class ConnectedEvent(BaseModel):
    """Sent once when a socket is accepted; carries the participant id."""
    type: OutboundEventType = OutboundEventType.CONNECTED
    player_id: str
    timestamp: float


class StateFullEvent(BaseModel):
    """Full state event."""
    type: OutboundEventType = OutboundEventType.STATE_FULL
    state: Dict[str, Any]
    timestamp: float


class GameEventMessage(BaseModel):
    """A named game or lobby notification."""
    type: OutboundEventType = OutboundEventType.GAME_EVENT
    event: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: float


class ErrorEvent(BaseModel):
    """Error event."""
    type: OutboundEventType = OutboundEventType.ERROR
    code: ErrorCode
    message: str
    timestamp: float


OutboundEvent = Union[
    ConnectedEvent,
    StateFullEvent,
    GameEventMessage,
    ErrorEvent,
]


def parse_inbound_event(data: Dict[str, Any]) -> InboundEvent:
    """
    Parse raw event data into appropriate event model.

    Args:
        data: Raw event data from WebSocket

    Returns:
        Parsed event model

    Raises:
        ValueError: If event type is invalid or data is malformed
    """
    if not isinstance(data, dict):
        raise ValueError("Event must be a JSON object")

    event_type = data.get("type")
    if not event_type:
        raise ValueError("Missing event type")

    try:
        event_type = EventType(event_type)
    except ValueError:
        raise ValueError(f"Invalid event type: {event_type}")

    event_class = EVENT_MAP[event_type]
    try:
        return event_class(**data)
    except ValidationError as e:
        raise ValueError(f"Invalid event data: {e.errors()[0]['msg']}")


def create_connected_event(player_id: str) -> ConnectedEvent:
    return ConnectedEvent(player_id=player_id, timestamp=time.time())


def create_state_full_event(state: Dict[str, Any]) -> StateFullEvent:
    """Create a full state event."""
    return StateFullEvent(state=state, timestamp=time.time())


def create_game_event(event: str, data: Optional[Dict[str, Any]] = None) -> GameEventMessage:
    return GameEventMessage(event=event, data=data or {}, timestamp=time.time())


def create_error_event(code: str, message: str) -> ErrorEvent:
    """Create an error event; unknown codes are reported as INTERNAL."""
    try:
        error_code = ErrorCode(code)
    except ValueError:
        error_code = ErrorCode.INTERNAL
    return ErrorEvent(code=error_code, message=message, timestamp=time.time())
