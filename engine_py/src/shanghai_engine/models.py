"""Game models and data structures"""

import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .constants import (
    JOKER, PHASE_STARTING, TURN_DRAW, MELD_BOOK,
)
from .rounds import RoundConfig, get_round_config
from .rules import GameSettings


@dataclass(frozen=True)
class Card:
    suit: str  # hearts|diamonds|clubs|spades|joker
    rank: str  # A,2-10,J,Q,K or JOKER
    point: int
    id: str

    @property
    def is_joker(self) -> bool:
        return self.rank == JOKER

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'suit': self.suit, 'rank': self.rank, 'point': self.point}


@dataclass
class Meld:
    kind: str = MELD_BOOK  # book|run
    cards: List[Card] = field(default_factory=list)


@dataclass
class Player:
    id: str
    name: str
    hand: List[Card] = field(default_factory=list)
    total_score: int = 0  # running total across all rounds
    round_score: int = 0
    has_placed_contract: bool = False
    placed_cards: List[Meld] = field(default_factory=list)
    buys_used: int = 0

    @property
    def card_count(self) -> int:
        return len(self.hand)

    def find_card(self, card_id: str) -> Optional[Card]:
        for card in self.hand:
            if card.id == card_id:
                return card
        return None


@dataclass
class BuyPhaseState:
    asked_player_index: int  # sequential mode: whose turn to decide
    start_time: float
    serial: int
    responded_players: List[str] = field(default_factory=list)  # arrival order
    buyer_player_id: Optional[str] = None
    next_player_has_passed: bool = False


@dataclass
class GameEvent:
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'data': self.data}


@dataclass
class GameState:
    id: str
    game_code: str
    host_id: Optional[str] = None
    players: List[Player] = field(default_factory=list)
    current_player_index: int = 0
    round: int = 1
    dealer_index: int = 0
    deck: List[Card] = field(default_factory=list)
    discard_pile: List[Card] = field(default_factory=list)
    phase: str = PHASE_STARTING  # starting|playing|round-end|finished
    turn_phase: str = TURN_DRAW  # buy|draw|place|discard
    round_config: RoundConfig = field(default_factory=lambda: get_round_config(1))
    dealers_choice: Optional[str] = None  # books|runs, round 7 only
    settings: GameSettings = field(default_factory=GameSettings)
    buy_phase: Optional[BuyPhaseState] = None
    discard_is_dead: bool = False
    buy_phase_serial: int = 0
    last_round_winner: Optional[str] = None
    version: int = 0
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    @property
    def current_player(self) -> Player:
        return self.players[self.current_player_index]

    @property
    def current_player_id(self) -> str:
        return self.current_player.id

    @property
    def next_player_index(self) -> int:
        return (self.current_player_index + 1) % len(self.players)

    @property
    def dealer(self) -> Player:
        return self.players[self.dealer_index]

    @property
    def top_discard(self) -> Optional[Card]:
        return self.discard_pile[-1] if self.discard_pile else None

    @property
    def deck_count(self) -> int:
        return len(self.deck)

    def player_index(self, player_id: str) -> int:
        for i, player in enumerate(self.players):
            if player.id == player_id:
                return i
        return -1

    def get_player(self, player_id: str) -> Optional[Player]:
        index = self.player_index(player_id)
        return self.players[index] if index >= 0 else None

    def total_cards(self) -> int:
        """Cards across deck, discard pile, hands and placed melds."""
        total = len(self.deck) + len(self.discard_pile)
        for player in self.players:
            total += len(player.hand)
            total += sum(len(meld.cards) for meld in player.placed_cards)
        return total

    def increment_version(self):
        self.version += 1


@dataclass
class ActionResult:
    """Outcome of applying one command to a game state."""
    success: bool
    state: Optional[GameState] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    events: List[GameEvent] = field(default_factory=list)
    changed: bool = True

    @classmethod
    def ok(cls, state: GameState, events: List[GameEvent]) -> 'ActionResult':
        return cls(success=True, state=state, events=events)

    @classmethod
    def noop(cls, state: GameState) -> 'ActionResult':
        return cls(success=True, state=state, changed=False)

    @classmethod
    def error(cls, state: Optional[GameState], error_code: str, error_message: str) -> 'ActionResult':
        return cls(success=False, state=state, error_code=error_code,
                   error_message=error_message, changed=False)
