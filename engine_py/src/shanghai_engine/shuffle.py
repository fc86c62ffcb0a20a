"""
Card shuffling and dealing utilities.
"""

import logging
import random
from typing import List, Optional, TypeVar

from .constants import (
    SUITS, RANKS, JOKER, JOKER_SUIT, DECKS_PER_GAME, JOKERS_PER_GAME, card_points,
)
from .errors import GameError, RESOURCE_EXHAUSTED
from .models import Card, GameState

logger = logging.getLogger(__name__)

T = TypeVar('T')


def create_deck() -> List[Card]:
    """Create two standard 52-card decks plus four jokers (108 cards)."""
    cards = []
    card_id = 0

    for _ in range(DECKS_PER_GAME):
        for suit in SUITS:
            for rank in RANKS:
                cards.append(Card(suit=suit, rank=rank, point=card_points(rank), id=f"card-{card_id}"))
                card_id += 1

    for _ in range(JOKERS_PER_GAME):
        cards.append(Card(suit=JOKER_SUIT, rank=JOKER, point=card_points(JOKER), id=f"card-{card_id}"))
        card_id += 1

    return cards


def shuffle_deck(cards: List[T], rng: Optional[random.Random] = None, seed: Optional[int] = None) -> List[T]:
    """
    Shuffle cards with a Fisher-Yates pass.

    Args:
        cards: Cards to shuffle
        rng: Random source to draw from
        seed: Optional seed for deterministic shuffling when no rng is given

    Returns:
        Shuffled copy of the cards
    """
    if rng is None:
        rng = random.Random(seed) if seed is not None else random.Random()

    shuffled = list(cards)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def recycle_discard_pile(state: GameState) -> int:
    """
    Shuffle every discard beneath the top card back into the deck.

    Returns:
        Number of cards returned to the deck
    """
    if len(state.discard_pile) <= 1:
        return 0

    top = state.discard_pile[-1]
    recycled = shuffle_deck(state.discard_pile[:-1], state.rng)
    state.deck.extend(recycled)
    state.discard_pile = [top]
    logger.info(f"Deck ran low in game {state.id}, recycled {len(recycled)} discards")
    return len(recycled)


def draw_cards(state: GameState, count: int) -> List[Card]:
    """
    Remove cards from the front of the deck.

    Raises:
        GameError: If the deck cannot supply the cards even after recycling
    """
    if len(state.deck) < count:
        recycle_discard_pile(state)
    if len(state.deck) < count:
        raise GameError(RESOURCE_EXHAUSTED, "Not enough cards left in the deck")

    drawn = state.deck[:count]
    del state.deck[:count]
    return drawn


def can_draw(state: GameState, count: int) -> bool:
    """Check whether the deck (plus recyclable discards) can supply cards."""
    return len(state.deck) + max(len(state.discard_pile) - 1, 0) >= count
