"""Game constants and utilities"""

from typing import Dict, List

SUITS = ['hearts', 'diamonds', 'clubs', 'spades']
JOKER_SUIT = 'joker'
JOKER = 'JOKER'
RANKS = ['A', '2', '3', '4', '5', '6', '7', '8', '9', '10', 'J', 'Q', 'K']

DECKS_PER_GAME = 2
JOKERS_PER_GAME = 4
DECK_SIZE = len(SUITS) * len(RANKS) * DECKS_PER_GAME + JOKERS_PER_GAME  # 108

CARD_POINTS: Dict[str, int] = {
    '2': 5, '3': 5, '4': 5, '5': 5, '6': 5, '7': 5, '8': 5, '9': 5, '10': 5,
    'J': 10, 'Q': 10, 'K': 10,
    'A': 15,
    JOKER: 50,
}

# Ace is low only, no wraparound
RANK_VALUES: Dict[str, int] = {rank: i + 1 for i, rank in enumerate(RANKS)}

MIN_BOOK_SIZE = 3
MIN_RUN_SIZE = 4

# Buy rules
MAX_BUYS_PER_ROUND = 3
MAX_HAND_SIZE = 18
BUY_PENALTY_CARDS = 2

MIN_PLAYERS = 2
MAX_PLAYERS = 6
TOTAL_ROUNDS = 7

# Game phases
PHASE_STARTING = 'starting'
PHASE_PLAYING = 'playing'
PHASE_ROUND_END = 'round-end'
PHASE_FINISHED = 'finished'

# Turn phases
TURN_BUY = 'buy'
TURN_DRAW = 'draw'
TURN_PLACE = 'place'
TURN_DISCARD = 'discard'

BUY_MODE_SEQUENTIAL = 'sequential'
BUY_MODE_SIMULTANEOUS = 'simultaneous'

MELD_BOOK = 'book'
MELD_RUN = 'run'

DEALERS_CHOICE_BOOKS = 'books'
DEALERS_CHOICE_RUNS = 'runs'

# Event names
EVENT_GAME_STARTED = 'game-started'
EVENT_TURN_UPDATE = 'turn-update'
EVENT_BUY_PHASE_STARTED = 'buy-phase-started'
EVENT_BUY_REQUEST = 'buy-request'
EVENT_BUY_DECLINED = 'buy-declined'
EVENT_BUY_COMPLETED = 'buy-completed'
EVENT_DISCARD_TAKEN = 'discard-taken'
EVENT_BUY_PHASE_ENDED = 'buy-phase-ended'
EVENT_CARD_DRAWN = 'card-drawn'
EVENT_CARD_DISCARDED = 'card-discarded'
EVENT_CONTRACT_PLACED = 'contract-placed'
EVENT_CARD_ADDED_TO_MELD = 'card-added-to-meld'
EVENT_DEALERS_CHOICE_SET = 'dealers-choice-set'
EVENT_ROUND_ENDED = 'round-ended'
EVENT_NEXT_ROUND_STARTING = 'next-round-starting'
EVENT_GAME_ENDED = 'game-ended'


def card_points(rank: str) -> int:
    return CARD_POINTS[rank]


def parse_card_spec(spec: str) -> List[str]:
    """Parse a short card spec like '10H' or 'JK' into [rank, suit]."""
    if spec.upper() in ('JK', JOKER):
        return [JOKER, JOKER_SUIT]
    suit_letter = spec[-1].upper()
    suit = {'H': 'hearts', 'D': 'diamonds', 'C': 'clubs', 'S': 'spades'}[suit_letter]
    return [spec[:-1].upper(), suit]
