"""
Meld validation for books, runs and contracts.
"""

from typing import List, Optional, Sequence, Tuple

from .constants import (
    MIN_BOOK_SIZE, MIN_RUN_SIZE, RANK_VALUES, MELD_BOOK, MELD_RUN,
)
from .models import Card
from .rounds import describe_contract


class ValidationResult:
    """Result of contract validation."""

    def __init__(
        self,
        valid: bool,
        error_message: Optional[str] = None,
        kinds: Optional[List[str]] = None
    ):
        self.valid = valid
        self.error_message = error_message
        self.kinds = kinds or []

    @classmethod
    def success(cls, kinds: List[str]) -> 'ValidationResult':
        """Create a successful validation result."""
        return cls(valid=True, kinds=kinds)

    @classmethod
    def error(cls, error_message: str) -> 'ValidationResult':
        """Create an error validation result."""
        return cls(valid=False, error_message=error_message)


def _split_jokers(cards: Sequence[Card]) -> Tuple[List[Card], int]:
    non_jokers = [c for c in cards if not c.is_joker]
    return non_jokers, len(cards) - len(non_jokers)


def is_valid_book(cards: Sequence[Card]) -> bool:
    """Check for 3+ cards sharing one rank, jokers wild."""
    if len(cards) < MIN_BOOK_SIZE:
        return False

    non_jokers, _ = _split_jokers(cards)
    if not non_jokers:
        return False

    rank = non_jokers[0].rank
    return all(c.rank == rank for c in non_jokers)


def is_valid_run(cards: Sequence[Card]) -> bool:
    """
    Check for 4+ cards of one suit in rank sequence, jokers filling gaps.

    Non-joker ranks are sorted (A=1 .. K=13, no wraparound). Every gap
    between neighbours needs gap-1 jokers, and the total across all gaps
    must not exceed the jokers in the group.
    """
    if len(cards) < MIN_RUN_SIZE:
        return False

    non_jokers, joker_count = _split_jokers(cards)
    if not non_jokers:
        return False

    suit = non_jokers[0].suit
    if not all(c.suit == suit for c in non_jokers):
        return False

    values = sorted(RANK_VALUES[c.rank] for c in non_jokers)
    jokers_used = 0
    for prev, cur in zip(values, values[1:]):
        gap = cur - prev
        if gap < 1:
            # Duplicate rank
            return False
        jokers_used += gap - 1
        if jokers_used > joker_count:
            return False

    return True


def classify_group(cards: Sequence[Card]) -> List[str]:
    """Return every meld kind the group satisfies (book first)."""
    kinds = []
    if is_valid_book(cards):
        kinds.append(MELD_BOOK)
    if is_valid_run(cards):
        kinds.append(MELD_RUN)
    return kinds


def is_valid_meld(kind: str, cards: Sequence[Card]) -> bool:
    if kind == MELD_BOOK:
        return is_valid_book(cards)
    if kind == MELD_RUN:
        return is_valid_run(cards)
    return False


def can_extend_meld(kind: str, meld_cards: Sequence[Card], card: Card) -> bool:
    """Re-validate a placed meld with one more card added."""
    return is_valid_meld(kind, list(meld_cards) + [card])


def validate_contract(groups: Sequence[Sequence[Card]], required_books: int, required_runs: int) -> ValidationResult:
    """
    Validate submitted groups against a contract requirement.

    Groups that qualify as both a book and a run count toward whichever
    requirement still needs filling.

    Returns:
        ValidationResult whose kinds line up with the submitted groups
    """
    if not groups:
        return ValidationResult.error("No groups submitted")

    classified = []
    for group in groups:
        kinds = classify_group(group)
        if not kinds:
            return ValidationResult.error("Invalid book or run")
        classified.append(kinds)

    books = sum(1 for kinds in classified if kinds == [MELD_BOOK])
    runs = sum(1 for kinds in classified if kinds == [MELD_RUN])
    either = len(classified) - books - runs

    books_from_either = required_books - books
    runs_from_either = required_runs - runs
    if books_from_either < 0 or runs_from_either < 0 or books_from_either + runs_from_either != either:
        return ValidationResult.error(f"Must place {describe_contract(required_books, required_runs)}")

    result_kinds = []
    for kinds in classified:
        if len(kinds) == 1:
            result_kinds.append(kinds[0])
        elif books_from_either > 0:
            result_kinds.append(MELD_BOOK)
            books_from_either -= 1
        else:
            result_kinds.append(MELD_RUN)
    return ValidationResult.success(result_kinds)
