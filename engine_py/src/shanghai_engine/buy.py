"""
Buy phase logic: claiming a discard before the next player's draw.

Every discard (including the dealer's opening flip) opens a buy window.
The player after the discarder has free first refusal; once they pass,
everyone else may buy the card for the price of two extra deck cards.
"""

import logging
import time
from typing import List, Optional

from .constants import (
    BUY_PENALTY_CARDS, MAX_BUYS_PER_ROUND, MAX_HAND_SIZE,
    TURN_BUY, TURN_DRAW, TURN_PLACE,
    EVENT_BUY_PHASE_STARTED, EVENT_BUY_REQUEST, EVENT_BUY_DECLINED,
    EVENT_BUY_COMPLETED, EVENT_DISCARD_TAKEN, EVENT_BUY_PHASE_ENDED, EVENT_TURN_UPDATE,
)
from .errors import GameError, INVALID_PHASE, NOT_AUTHORIZED, NOT_FOUND, RESOURCE_EXHAUSTED
from .models import BuyPhaseState, GameEvent, GameState, Player
from .shuffle import can_draw, draw_cards

logger = logging.getLogger(__name__)


def turn_update_event(state: GameState) -> GameEvent:
    return GameEvent(EVENT_TURN_UPDATE, {
        'current_player_id': state.current_player_id,
        'turn_phase': state.turn_phase,
    })


def open_buy_phase(state: GameState) -> List[GameEvent]:
    """
    Open a buy window on the top discard.

    The current player stays on the discarder until the window closes.
    """
    next_index = state.next_player_index
    state.buy_phase_serial += 1
    state.turn_phase = TURN_BUY
    state.buy_phase = BuyPhaseState(
        asked_player_index=next_index,
        start_time=time.time(),
        serial=state.buy_phase_serial,
    )
    state.discard_is_dead = False

    logger.info(
        f"Buy phase {state.buy_phase_serial} opened in game {state.id}; "
        f"{state.players[next_index].name} has first refusal"
    )
    return [
        GameEvent(EVENT_BUY_PHASE_STARTED, {
            'discarder_id': state.current_player_id,
            'asking_player_id': state.players[next_index].id,
            'buy_mode': state.settings.buy_mode,
            'time_limit': state.settings.buy_time_limit,
            'serial': state.buy_phase_serial,
        }),
        turn_update_event(state),
    ]


def _require_buy_phase(state: GameState) -> BuyPhaseState:
    if state.turn_phase != TURN_BUY or state.buy_phase is None:
        raise GameError(INVALID_PHASE, "Not in buy phase")
    return state.buy_phase


def _require_participant(state: GameState, player_id: str) -> int:
    index = state.player_index(player_id)
    if index < 0:
        raise GameError(NOT_FOUND, "Player not in this game")
    if index == state.current_player_index:
        raise GameError(NOT_AUTHORIZED, "You cannot buy your own discard")
    return index


def _eligible_buyers(state: GameState) -> List[str]:
    """Players who may act once first refusal has been passed."""
    skip = {state.current_player_index, state.next_player_index}
    return [p.id for i, p in enumerate(state.players) if i not in skip]


def check_can_buy(state: GameState, player: Player):
    """Raise if the player cannot afford a buy right now."""
    if player.buys_used >= MAX_BUYS_PER_ROUND:
        raise GameError(RESOURCE_EXHAUSTED, f"No buys remaining (max {MAX_BUYS_PER_ROUND} per round)")
    if len(player.hand) >= MAX_HAND_SIZE:
        raise GameError(RESOURCE_EXHAUSTED, f"Too many cards (max {MAX_HAND_SIZE})")
    if not can_draw(state, BUY_PENALTY_CARDS):
        raise GameError(RESOURCE_EXHAUSTED, "Not enough cards left in the deck to buy")


def take_discard(state: GameState, player_id: str) -> List[GameEvent]:
    """Free take of the discard by the player with first refusal."""
    buy_phase = _require_buy_phase(state)
    index = _require_participant(state, player_id)
    if index != state.next_player_index:
        raise GameError(NOT_AUTHORIZED, "Only the next player can take the discard for free")
    if buy_phase.next_player_has_passed:
        raise GameError(NOT_AUTHORIZED, "You already passed on this discard")
    if not state.discard_pile:
        raise GameError(NOT_FOUND, "Discard pile is empty")

    player = state.players[index]
    card = state.discard_pile.pop()
    player.hand.append(card)

    # Skip draw, straight to place/discard
    state.current_player_index = index
    state.turn_phase = TURN_PLACE
    state.buy_phase = None
    state.discard_is_dead = False

    logger.info(f"{player.name} took the discard for free in game {state.id}")
    return [
        GameEvent(EVENT_DISCARD_TAKEN, {'player_id': player.id, 'card': card.to_dict()}),
        GameEvent(EVENT_BUY_PHASE_ENDED, {'buyer_id': None, 'taken_by': player.id}),
        turn_update_event(state),
    ]


def want_to_buy(state: GameState, player_id: str) -> List[GameEvent]:
    """
    A player asks for the discard.

    For the next player this is the free take; anyone else must wait until
    first refusal is passed and then pays the buy penalty.
    """
    buy_phase = _require_buy_phase(state)
    index = _require_participant(state, player_id)

    if index == state.next_player_index:
        return take_discard(state, player_id)
    if not buy_phase.next_player_has_passed:
        raise GameError(NOT_AUTHORIZED, "Waiting for next player to decide first")

    player = state.players[index]

    if state.settings.is_simultaneous:
        if player_id in buy_phase.responded_players:
            raise GameError(NOT_AUTHORIZED, "You already responded to this discard")
        check_can_buy(state, player)
        buy_phase.responded_players.append(player_id)
        if buy_phase.buyer_player_id is None:
            buy_phase.buyer_player_id = player_id
        logger.info(f"{player.name} wants to buy in game {state.id} (simultaneous)")
        events = [GameEvent(EVENT_BUY_REQUEST, {'player_id': player_id})]
        if _all_responded(state, buy_phase):
            events.extend(end_buy_phase(state, buy_phase.buyer_player_id))
        return events

    if buy_phase.asked_player_index != index:
        raise GameError(NOT_AUTHORIZED, "Not your turn to buy yet")
    check_can_buy(state, player)
    buy_phase.buyer_player_id = player_id
    logger.info(f"{player.name} wants to buy in game {state.id}")
    return [GameEvent(EVENT_BUY_REQUEST, {'player_id': player_id})] + end_buy_phase(state, player_id)


def decline_buy(state: GameState, player_id: str) -> List[GameEvent]:
    """A player passes on the discard."""
    buy_phase = _require_buy_phase(state)
    index = _require_participant(state, player_id)
    next_index = state.next_player_index
    events = [GameEvent(EVENT_BUY_DECLINED, {'player_id': player_id})]

    if index == next_index:
        if buy_phase.next_player_has_passed:
            raise GameError(NOT_AUTHORIZED, "You already passed on this discard")
        buy_phase.next_player_has_passed = True
        logger.info(f"Next player passed in game {state.id}; others can now buy")
    elif not buy_phase.next_player_has_passed:
        raise GameError(NOT_AUTHORIZED, "Waiting for next player to decide first")
    elif state.settings.is_simultaneous:
        if player_id in buy_phase.responded_players:
            raise GameError(NOT_AUTHORIZED, "You already responded to this discard")
        buy_phase.responded_players.append(player_id)
    elif buy_phase.asked_player_index != index:
        raise GameError(NOT_AUTHORIZED, "Not your turn to decide yet")

    if state.settings.is_simultaneous:
        if _all_responded(state, buy_phase):
            events.extend(end_buy_phase(state, buy_phase.buyer_player_id))
        return events

    # Sequential: move the cursor on, never asking the discarder
    next_ask = (buy_phase.asked_player_index + 1) % len(state.players)
    if next_ask == state.current_player_index:
        next_ask = (next_ask + 1) % len(state.players)

    if next_ask == next_index:
        logger.info(f"Everyone passed in game {state.id}, ending buy phase")
        events.extend(end_buy_phase(state, None))
        return events

    buy_phase.asked_player_index = next_ask
    return events


def _all_responded(state: GameState, buy_phase: BuyPhaseState) -> bool:
    return all(pid in buy_phase.responded_players for pid in _eligible_buyers(state))


def complete_buy(state: GameState, buyer_id: str) -> List[GameEvent]:
    """Give the buyer the discard plus the penalty cards and kill the discard."""
    buyer = state.get_player(buyer_id)
    if buyer is None:
        raise GameError(NOT_FOUND, "Buyer not in this game")
    if not state.discard_pile:
        raise GameError(NOT_FOUND, "Discard pile is empty")

    # Draw first so recycling keeps the bought card on top
    extra_cards = draw_cards(state, BUY_PENALTY_CARDS)
    card = state.discard_pile.pop()
    buyer.hand.append(card)
    buyer.hand.extend(extra_cards)
    buyer.buys_used += 1
    state.discard_is_dead = True

    logger.info(
        f"{buyer.name} bought {card.rank} of {card.suit} in game {state.id} "
        f"({buyer.buys_used}/{MAX_BUYS_PER_ROUND} buys, {len(buyer.hand)} cards)"
    )
    return [GameEvent(EVENT_BUY_COMPLETED, {
        'player_id': buyer_id,
        'card': card.to_dict(),
        'extra_cards': len(extra_cards),
    })]


def end_buy_phase(state: GameState, buyer_id: Optional[str]) -> List[GameEvent]:
    """Close the buy window and hand the turn to the next player's draw."""
    events = []
    if buyer_id:
        events.extend(complete_buy(state, buyer_id))

    # No buyer leaves the discard live as a second chance for the drawer
    state.current_player_index = state.next_player_index
    state.turn_phase = TURN_DRAW
    state.buy_phase = None

    logger.info(f"Buy phase ended in game {state.id}; {state.current_player.name} to draw")
    events.append(GameEvent(EVENT_BUY_PHASE_ENDED, {'buyer_id': buyer_id, 'taken_by': None}))
    events.append(turn_update_event(state))
    return events


def resolve_buy_phase(state: GameState, serial: Optional[int] = None) -> Optional[List[GameEvent]]:
    """
    Resolve the buy window when its deadline passes.

    Returns None when there is nothing to resolve: the window already
    closed or the serial belongs to an earlier window.
    """
    if state.turn_phase != TURN_BUY or state.buy_phase is None:
        return None
    if serial is not None and state.buy_phase.serial != serial:
        return None

    buyer_id = state.buy_phase.buyer_player_id
    logger.info(f"Buy phase {state.buy_phase.serial} timed out in game {state.id}")
    try:
        return end_buy_phase(state, buyer_id)
    except GameError as e:
        if not buyer_id:
            raise
        logger.warning(f"Buy by {buyer_id} could not complete in game {state.id}: {e.message}")
        return end_buy_phase(state, None)
