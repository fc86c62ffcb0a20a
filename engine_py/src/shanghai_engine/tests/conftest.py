import random
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from shanghai_engine.buy import open_buy_phase
from shanghai_engine.constants import parse_card_spec, PHASE_PLAYING, TURN_DRAW
from shanghai_engine.lobby import LobbyDirectory
from shanghai_engine.models import Card, GameState, Meld, Player
from shanghai_engine.rounds import get_round_config
from shanghai_engine.rules import GameSettings
from shanghai_engine.service import GameService
from shanghai_engine.shuffle import create_deck
from shanghai_engine.timers import TimerHandle, TimerService

NAMES = ["Alice", "Bob", "Charlie", "Dana", "Eve", "Frank"]


class CardPool:
    """A fresh 108-card deck that hands out cards by short spec ('7H', 'JK')."""

    def __init__(self):
        self.remaining = create_deck()

    def take(self, spec: str) -> Card:
        rank, suit = parse_card_spec(spec)
        for i, card in enumerate(self.remaining):
            if card.rank == rank and card.suit == suit:
                return self.remaining.pop(i)
        raise ValueError(f"No {spec} left in the pool")

    def take_all(self, specs: Sequence[str]) -> List[Card]:
        return [self.take(spec) for spec in specs]


def make_cards(*specs: str) -> List[Card]:
    return CardPool().take_all(specs)


def build_state(
    hands: Sequence[Sequence[str]],
    discard: Sequence[str] = (),
    deck_top: Sequence[str] = (),
    deck_size: Optional[int] = None,
    current: int = 0,
    dealer: int = 0,
    turn_phase: str = TURN_DRAW,
    round_number: int = 1,
    settings: Optional[GameSettings] = None,
    placed: Optional[Dict[int, List[Tuple[str, Sequence[str]]]]] = None,
    seed: int = 1,
) -> GameState:
    """
    Build a rigged mid-round game holding all 108 cards.

    Cards not named in hands, melds or the discard pile go to the deck,
    after deck_top. With deck_size set, the deck keeps only that many and
    the rest are buried under the discard pile.
    """
    pool = CardPool()
    players = [
        Player(id=f"p{i + 1}", name=NAMES[i], hand=pool.take_all(hand))
        for i, hand in enumerate(hands)
    ]
    for index, melds in (placed or {}).items():
        players[index].placed_cards = [Meld(kind=kind, cards=pool.take_all(specs)) for kind, specs in melds]
        players[index].has_placed_contract = True

    discard_cards = pool.take_all(discard)
    deck = pool.take_all(deck_top)
    rest = pool.remaining
    if deck_size is not None:
        keep = max(deck_size - len(deck), 0)
        discard_cards = rest[keep:] + discard_cards
        rest = rest[:keep]

    return GameState(
        id="game-test",
        game_code="TEST01",
        host_id="p1",
        players=players,
        current_player_index=current,
        round=round_number,
        dealer_index=dealer,
        deck=deck + rest,
        discard_pile=discard_cards,
        phase=PHASE_PLAYING,
        turn_phase=turn_phase,
        round_config=get_round_config(round_number),
        settings=settings or GameSettings(),
        rng=random.Random(seed),
    )


def build_buy_state(*args, **kwargs) -> GameState:
    """Rigged state with a buy window open on the top discard."""
    state = build_state(*args, **kwargs)
    open_buy_phase(state)
    return state


def hand_ids(state: GameState, player_index: int, *specs: str) -> List[str]:
    """Ids of cards in a player's hand matching the specs, one card per spec."""
    ids = []
    for spec in specs:
        rank, suit = parse_card_spec(spec)
        card = next(
            c for c in state.players[player_index].hand
            if c.rank == rank and c.suit == suit and c.id not in ids
        )
        ids.append(card.id)
    return ids


class FakeTimer(TimerHandle):
    def __init__(self, delay: float, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self):
        self.fired = True
        self.callback()


class FakeTimerService(TimerService):
    """Records scheduled callbacks; tests fire them by hand."""

    def __init__(self):
        self.timers: List[FakeTimer] = []

    def schedule(self, delay: float, callback) -> TimerHandle:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> List[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def fire_all(self):
        for timer in self.active:
            timer.fire()


@pytest.fixture
def timers():
    return FakeTimerService()


@pytest.fixture
def service(timers):
    return GameService(timers, lobbies=LobbyDirectory(random.Random(7)))
