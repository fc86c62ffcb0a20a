"""Main game engine: the turn and round state machine"""

import copy
import logging
import random
import uuid
from typing import Callable, List, Optional, Sequence

from . import buy
from .constants import (
    MIN_PLAYERS, MAX_PLAYERS, TOTAL_ROUNDS,
    PHASE_STARTING, PHASE_PLAYING, PHASE_ROUND_END, PHASE_FINISHED,
    TURN_BUY, TURN_DRAW, TURN_PLACE, TURN_DISCARD,
    DEALERS_CHOICE_BOOKS, DEALERS_CHOICE_RUNS,
    EVENT_GAME_STARTED, EVENT_CARD_DRAWN, EVENT_CARD_DISCARDED, EVENT_CONTRACT_PLACED,
    EVENT_CARD_ADDED_TO_MELD, EVENT_DEALERS_CHOICE_SET, EVENT_ROUND_ENDED,
    EVENT_NEXT_ROUND_STARTING, EVENT_GAME_ENDED,
)
from .errors import (
    GameError, INVALID_PHASE, NOT_YOUR_TURN, NOT_AUTHORIZED, INVALID_MELD,
    NOT_FOUND, INVALID_SETTINGS,
)
from .models import ActionResult, Card, GameEvent, GameState, Meld, Player
from .ranking import final_standings
from .rounds import get_round_config, required_counts
from .rules import GameSettings
from .shuffle import create_deck, shuffle_deck, draw_cards
from .validate import validate_contract, can_extend_meld

logger = logging.getLogger(__name__)


def _run(state: GameState, action: Callable, *args) -> ActionResult:
    """
    Apply an action to a copy of the state.

    The input state is never touched, so a rejected action leaves it
    exactly as it was.
    """
    new_state = copy.deepcopy(state)
    try:
        events = action(new_state, *args)
    except GameError as e:
        logger.debug(f"Rejected {action.__name__} in game {state.id}: {e}")
        return ActionResult.error(state, e.code, e.message)

    if events is None:
        return ActionResult.noop(state)

    new_state.increment_version()
    return ActionResult.ok(new_state, events)


def _require_phase(state: GameState, phase: str = PHASE_PLAYING):
    if state.phase != phase:
        raise GameError(INVALID_PHASE, f"Game is not {phase}")


def _require_player(state: GameState, player_id: str) -> Player:
    player = state.get_player(player_id)
    if player is None:
        raise GameError(NOT_FOUND, "Player not in this game")
    return player


def _require_turn(state: GameState, player_id: str, *turn_phases: str) -> Player:
    """Check the player is current and the turn is in one of the phases."""
    _require_phase(state)
    player = _require_player(state, player_id)
    if state.turn_phase not in turn_phases:
        raise GameError(INVALID_PHASE, f"Not in {' or '.join(turn_phases)} phase")
    if state.current_player_id != player_id:
        raise GameError(NOT_YOUR_TURN, "Not your turn")
    return player


def create_game(
    game_code: str,
    player_ids: Sequence[str],
    player_names: Sequence[str],
    settings: Optional[GameSettings] = None,
    host_id: Optional[str] = None,
    seed: Optional[int] = None,
    game_id: Optional[str] = None,
) -> GameState:
    """
    Create a game in the starting phase.

    Raises:
        GameError: If the player list is unusable
    """
    if len(player_ids) != len(player_names):
        raise GameError(INVALID_SETTINGS, "Every player needs a name")
    if not MIN_PLAYERS <= len(player_ids) <= MAX_PLAYERS:
        raise GameError(INVALID_SETTINGS, f"Need {MIN_PLAYERS}-{MAX_PLAYERS} players to start")
    if len(set(player_ids)) != len(player_ids):
        raise GameError(INVALID_SETTINGS, "Duplicate player ids")

    return GameState(
        id=game_id or f"game-{uuid.uuid4().hex[:12]}",
        game_code=game_code,
        host_id=host_id,
        players=[Player(id=pid, name=name) for pid, name in zip(player_ids, player_names)],
        current_player_index=0,
        round=1,
        dealer_index=0,
        round_config=get_round_config(1),
        settings=settings or GameSettings(),
        rng=random.Random(seed) if seed is not None else random.Random(),
    )


def _start_round(state: GameState) -> List[GameEvent]:
    config = get_round_config(state.round)
    state.round_config = config

    deck = shuffle_deck(create_deck(), state.rng)
    for player in state.players:
        player.hand = deck[:config.cards_dealt]
        del deck[:config.cards_dealt]
        player.has_placed_contract = False
        player.placed_cards = []
        player.round_score = 0
        player.buys_used = 0

    # Dealer flips the top card, which opens the first buy window
    state.discard_pile = [deck.pop(0)]
    state.deck = deck
    state.current_player_index = state.dealer_index
    state.phase = PHASE_PLAYING
    state.discard_is_dead = False

    top = state.top_discard
    logger.info(
        f"Round {state.round} started in game {state.id}. Dealer {state.dealer.name} "
        f"flipped {top.rank} of {top.suit}"
    )
    return buy.open_buy_phase(state)


def start_round(state: GameState) -> ActionResult:
    """Deal a fresh round for the state's current round number."""
    return _run(state, _start_round)


def _start_game(state: GameState) -> List[GameEvent]:
    _require_phase(state, PHASE_STARTING)
    events = [GameEvent(EVENT_GAME_STARTED, {
        'game_id': state.id,
        'game_code': state.game_code,
        'player_ids': [p.id for p in state.players],
        'settings': state.settings.model_dump(),
    })]
    return events + _start_round(state)


def start_game(state: GameState) -> ActionResult:
    """Start the first round of a newly created game."""
    return _run(state, _start_game)


def _draw_from_deck(state: GameState, player_id: str) -> List[GameEvent]:
    player = _require_turn(state, player_id, TURN_DRAW)
    card = draw_cards(state, 1)[0]
    player.hand.append(card)
    state.turn_phase = TURN_PLACE
    state.discard_is_dead = False
    return [GameEvent(EVENT_CARD_DRAWN, {'player_id': player_id, 'from_deck': True})]


def draw_from_deck(state: GameState, player_id: str) -> ActionResult:
    return _run(state, _draw_from_deck, player_id)


def _draw_from_discard(state: GameState, player_id: str) -> List[GameEvent]:
    if state.phase == PHASE_PLAYING and state.turn_phase == TURN_BUY:
        # During the buy window this is the next player's free take
        return buy.take_discard(state, player_id)

    player = _require_turn(state, player_id, TURN_DRAW)
    if state.discard_is_dead:
        raise GameError(INVALID_PHASE, "The discard is dead, draw from the deck")
    if not state.discard_pile:
        raise GameError(NOT_FOUND, "Discard pile is empty")

    card = state.discard_pile.pop()
    player.hand.append(card)
    state.turn_phase = TURN_PLACE
    state.discard_is_dead = False
    return [GameEvent(EVENT_CARD_DRAWN, {
        'player_id': player_id, 'from_deck': False, 'card': card.to_dict(),
    })]


def draw_from_discard(state: GameState, player_id: str) -> ActionResult:
    return _run(state, _draw_from_discard, player_id)


def _resolve_groups(player: Player, groups: Sequence[Sequence[str]]) -> List[List[Card]]:
    seen = set()
    resolved = []
    for group in groups:
        cards = []
        for card_id in group:
            if card_id in seen:
                raise GameError(INVALID_MELD, "A card can only be placed once")
            seen.add(card_id)
            card = player.find_card(card_id)
            if card is None:
                raise GameError(NOT_FOUND, f"Card {card_id} is not in your hand")
            cards.append(card)
        resolved.append(cards)
    return resolved


def _place_contract(state: GameState, player_id: str, groups: Sequence[Sequence[str]]) -> List[GameEvent]:
    player = _require_turn(state, player_id, TURN_PLACE)
    if player.has_placed_contract:
        raise GameError(INVALID_PHASE, "Already placed contract this round")

    try:
        books, runs = required_counts(state.round_config, state.dealers_choice)
    except ValueError:
        raise GameError(INVALID_PHASE, "Waiting for the dealer to choose the contract")

    card_groups = _resolve_groups(player, groups)
    result = validate_contract(card_groups, books, runs)
    if not result.valid:
        raise GameError(INVALID_MELD, result.error_message)

    placed_ids = {card.id for cards in card_groups for card in cards}
    player.hand = [c for c in player.hand if c.id not in placed_ids]
    player.has_placed_contract = True
    player.placed_cards = [Meld(kind=kind, cards=cards) for kind, cards in zip(result.kinds, card_groups)]

    logger.info(f"{player.name} placed contract in game {state.id}: {result.kinds}")
    # Placing never ends the round; a discard is still required
    return [GameEvent(EVENT_CONTRACT_PLACED, {
        'player_id': player_id,
        'melds': [
            {'kind': meld.kind, 'cards': [c.to_dict() for c in meld.cards]}
            for meld in player.placed_cards
        ],
    })]


def place_contract(state: GameState, player_id: str, groups: Sequence[Sequence[str]]) -> ActionResult:
    """Place the round's contract from card ids in the player's hand."""
    return _run(state, _place_contract, player_id, groups)


def _add_to_meld(state: GameState, player_id: str, target_player_id: str, meld_index: int, card_id: str) -> List[GameEvent]:
    _require_phase(state)
    player = _require_player(state, player_id)
    target = _require_player(state, target_player_id)

    if not player.has_placed_contract:
        raise GameError(NOT_AUTHORIZED, "You must place your contract first")
    if not 0 <= meld_index < len(target.placed_cards):
        raise GameError(NOT_FOUND, "Invalid meld")

    card = player.find_card(card_id)
    if card is None:
        raise GameError(NOT_FOUND, "Card not in hand")

    meld = target.placed_cards[meld_index]
    if not can_extend_meld(meld.kind, meld.cards, card):
        raise GameError(INVALID_MELD, "Card doesn't fit in this meld")

    meld.cards.append(card)
    player.hand = [c for c in player.hand if c.id != card_id]

    logger.info(f"{player.name} added a card to {target.name}'s {meld.kind} in game {state.id}")
    return [GameEvent(EVENT_CARD_ADDED_TO_MELD, {
        'player_id': player_id,
        'target_player_id': target_player_id,
        'meld_index': meld_index,
        'card': card.to_dict(),
    })]


def add_to_meld(state: GameState, player_id: str, target_player_id: str, meld_index: int, card_id: str) -> ActionResult:
    return _run(state, _add_to_meld, player_id, target_player_id, meld_index, card_id)


def calculate_hand_points(hand: Sequence[Card]) -> int:
    return sum(card.point for card in hand)


def _end_round(state: GameState, winner_id: str) -> List[GameEvent]:
    for player in state.players:
        player.round_score = calculate_hand_points(player.hand)
        player.total_score += player.round_score

    state.phase = PHASE_ROUND_END
    state.buy_phase = None
    state.last_round_winner = winner_id

    logger.info(f"Round {state.round} ended in game {state.id}. Winner: {winner_id}")
    for p in state.players:
        logger.info(f"  {p.name}: +{p.round_score} points (total: {p.total_score})")

    return [GameEvent(EVENT_ROUND_ENDED, {
        'round': state.round,
        'winner_id': winner_id,
        'scores': [
            {'player_id': p.id, 'round_score': p.round_score, 'total_score': p.total_score}
            for p in state.players
        ],
    })]


def _discard_card(state: GameState, player_id: str, card_id: str) -> List[GameEvent]:
    player = _require_turn(state, player_id, TURN_PLACE, TURN_DISCARD)
    card = player.find_card(card_id)
    if card is None:
        raise GameError(NOT_FOUND, "Card not in hand")

    player.hand = [c for c in player.hand if c.id != card_id]
    state.discard_pile.append(card)
    events = [GameEvent(EVENT_CARD_DISCARDED, {'player_id': player_id, 'card': card.to_dict()})]

    if not player.hand:
        return events + _end_round(state, player_id)
    return events + buy.open_buy_phase(state)


def discard_card(state: GameState, player_id: str, card_id: str) -> ActionResult:
    return _run(state, _discard_card, player_id, card_id)


def _game_ended_event(state: GameState, early: bool) -> GameEvent:
    return GameEvent(EVENT_GAME_ENDED, {
        'final_scores': final_standings(state),
        'early': early,
    })


def _next_round(state: GameState) -> List[GameEvent]:
    _require_phase(state, PHASE_ROUND_END)

    if state.round >= TOTAL_ROUNDS:
        state.phase = PHASE_FINISHED
        logger.info(f"Game {state.id} finished after round {state.round}")
        return [_game_ended_event(state, early=False)]

    state.round += 1
    state.dealer_index = (state.dealer_index + 1) % len(state.players)
    state.dealers_choice = None
    events = [GameEvent(EVENT_NEXT_ROUND_STARTING, {
        'round': state.round,
        'dealer_index': state.dealer_index,
    })]
    return events + _start_round(state)


def next_round(state: GameState) -> ActionResult:
    """Deal the next round, or finish the game after the last one."""
    return _run(state, _next_round)


def _end_game_early(state: GameState) -> List[GameEvent]:
    state.phase = PHASE_FINISHED
    state.buy_phase = None
    logger.info(f"Game {state.id} ended early by host")
    return [_game_ended_event(state, early=True)]


def end_game_early(state: GameState) -> ActionResult:
    return _run(state, _end_game_early)


def _set_dealers_choice(state: GameState, player_id: str, choice: str) -> List[GameEvent]:
    _require_phase(state)
    _require_player(state, player_id)
    if state.round != TOTAL_ROUNDS:
        raise GameError(INVALID_PHASE, "Dealer's choice is only made in the last round")
    if state.dealer.id != player_id:
        raise GameError(NOT_AUTHORIZED, "Only the dealer can make this choice")
    if choice not in (DEALERS_CHOICE_BOOKS, DEALERS_CHOICE_RUNS):
        raise GameError(INVALID_MELD, f"Unknown contract choice: {choice}")
    if any(p.has_placed_contract for p in state.players):
        raise GameError(INVALID_PHASE, "A contract has already been placed this round")

    state.dealers_choice = choice
    logger.info(f"Dealer chose {choice} in game {state.id}")
    return [GameEvent(EVENT_DEALERS_CHOICE_SET, {'player_id': player_id, 'choice': choice})]


def set_dealers_choice(state: GameState, player_id: str, choice: str) -> ActionResult:
    return _run(state, _set_dealers_choice, player_id, choice)


def _buy_action(action: Callable) -> Callable:
    def run_buy_action(state: GameState, player_id: str) -> List[GameEvent]:
        _require_phase(state)
        return action(state, player_id)
    run_buy_action.__name__ = action.__name__
    return run_buy_action


def want_to_buy(state: GameState, player_id: str) -> ActionResult:
    return _run(state, _buy_action(buy.want_to_buy), player_id)


def take_discard(state: GameState, player_id: str) -> ActionResult:
    return _run(state, _buy_action(buy.take_discard), player_id)


def decline_buy(state: GameState, player_id: str) -> ActionResult:
    return _run(state, _buy_action(buy.decline_buy), player_id)


def resolve_buy_phase(state: GameState, serial: Optional[int] = None) -> ActionResult:
    """
    Resolve the buy window on deadline.

    Safe to call more than once: a window that already closed, or a stale
    serial, is a no-op.
    """
    if state.phase != PHASE_PLAYING:
        return ActionResult.noop(state)
    return _run(state, buy.resolve_buy_phase, serial)
