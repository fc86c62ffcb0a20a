"""
Round configuration table for the seven rounds of a game.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .constants import (
    MELD_BOOK, MELD_RUN, DEALERS_CHOICE_BOOKS, DEALERS_CHOICE_RUNS, TOTAL_ROUNDS,
)


@dataclass(frozen=True)
class Contract:
    type: str  # book|run
    count: int


@dataclass(frozen=True)
class RoundConfig:
    round_number: int
    cards_dealt: int
    contracts: Tuple[Contract, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict:
        return {
            'round_number': self.round_number,
            'cards_dealt': self.cards_dealt,
            'contracts': [{'type': c.type, 'count': c.count} for c in self.contracts],
        }


ROUND_CONFIGS: List[RoundConfig] = [
    RoundConfig(1, 6, (Contract(MELD_BOOK, 2),)),
    RoundConfig(2, 7, (Contract(MELD_BOOK, 1), Contract(MELD_RUN, 1))),
    RoundConfig(3, 8, (Contract(MELD_RUN, 2),)),
    RoundConfig(4, 9, (Contract(MELD_BOOK, 3),)),
    RoundConfig(5, 10, (Contract(MELD_BOOK, 2), Contract(MELD_RUN, 1))),
    RoundConfig(6, 11, (Contract(MELD_RUN, 2), Contract(MELD_BOOK, 1))),
    # Dealer's choice: 4 books or 3 runs
    RoundConfig(7, 12, ()),
]

DEALERS_CHOICE_SHAPES: Dict[str, Tuple[int, int]] = {
    DEALERS_CHOICE_BOOKS: (4, 0),
    DEALERS_CHOICE_RUNS: (0, 3),
}


def get_round_config(round_number: int) -> RoundConfig:
    if not 1 <= round_number <= TOTAL_ROUNDS:
        raise ValueError(f"Unsupported round number: {round_number}")
    return ROUND_CONFIGS[round_number - 1]


def required_counts(config: RoundConfig, dealers_choice: Optional[str] = None) -> Tuple[int, int]:
    """
    Get the (books, runs) a contract must contain.

    Rounds without static contracts use the dealer's choice shape.
    """
    if not config.contracts:
        if dealers_choice not in DEALERS_CHOICE_SHAPES:
            raise ValueError("Dealer's choice has not been made")
        return DEALERS_CHOICE_SHAPES[dealers_choice]

    books = sum(c.count for c in config.contracts if c.type == MELD_BOOK)
    runs = sum(c.count for c in config.contracts if c.type == MELD_RUN)
    return books, runs


def describe_contract(books: int, runs: int) -> str:
    parts = []
    if books:
        parts.append(f"{books} book{'s' if books != 1 else ''}")
    if runs:
        parts.append(f"{runs} run{'s' if runs != 1 else ''}")
    return ' and '.join(parts)
