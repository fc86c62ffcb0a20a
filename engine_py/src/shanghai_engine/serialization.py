"""
State serialization and sanitization utilities.
"""

from typing import Any, Dict, List, Optional

from .models import BuyPhaseState, Card, GameState, Player
from .ranking import leader_ids


def _cards(cards: List[Card]) -> List[Dict[str, Any]]:
    return [card.to_dict() for card in cards]


def sanitize_state(state: GameState, viewer_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Sanitize game state for transmission to one participant.

    Args:
        state: Game state to sanitize
        viewer_id: ID of the player viewing the state (to show their cards)

    Returns:
        Sanitized state dictionary safe for JSON transmission. Every hand
        except the viewer's is empty; only its card_count is real.
    """
    top = state.top_discard
    sanitized = {
        "id": state.id,
        "game_code": state.game_code,
        "host_id": state.host_id,
        "version": state.version,
        "phase": state.phase,
        "turn_phase": state.turn_phase,
        "round": state.round,
        "dealer_index": state.dealer_index,
        "current_player_index": state.current_player_index,
        "current_player_id": state.current_player_id if state.players else None,
        "deck_count": state.deck_count,
        "top_discard": top.to_dict() if top else None,
        "discard_pile": _cards(state.discard_pile),
        "discard_is_dead": state.discard_is_dead,
        "round_config": state.round_config.to_dict(),
        "dealers_choice": state.dealers_choice,
        "settings": state.settings.model_dump(),
        "buy_phase": _serialize_buy_phase(state, state.buy_phase) if state.buy_phase else None,
        "last_round_winner": state.last_round_winner,
        "leaders": leader_ids(state),
        "players": [
            _serialize_player(state, index, player, viewer_id)
            for index, player in enumerate(state.players)
        ],
    }
    return sanitized


def _serialize_player(state: GameState, index: int, player: Player, viewer_id: Optional[str]) -> Dict[str, Any]:
    return {
        "id": player.id,
        "name": player.name,
        # Show full hand only to the viewer
        "hand": _cards(player.hand) if player.id == viewer_id else [],
        "card_count": player.card_count,
        "total_score": player.total_score,
        "round_score": player.round_score,
        "has_placed_contract": player.has_placed_contract,
        "placed_cards": [
            {"kind": meld.kind, "cards": _cards(meld.cards)}
            for meld in player.placed_cards
        ],
        "buys_used": player.buys_used,
        "is_dealer": index == state.dealer_index,
        "is_current": index == state.current_player_index,
    }


def _serialize_buy_phase(state: GameState, buy_phase: BuyPhaseState) -> Dict[str, Any]:
    asked = state.players[buy_phase.asked_player_index]
    return {
        "serial": buy_phase.serial,
        "asked_player_index": buy_phase.asked_player_index,
        "asked_player_id": asked.id,
        "next_player_id": state.players[state.next_player_index].id,
        "responded_players": list(buy_phase.responded_players),
        "buyer_player_id": buy_phase.buyer_player_id,
        "start_time": buy_phase.start_time,
        "time_limit": state.settings.buy_time_limit,
        "next_player_has_passed": buy_phase.next_player_has_passed,
    }


def sanitize_for_all(state: GameState) -> Dict[str, Dict[str, Any]]:
    """Build one redacted snapshot per participant."""
    return {player.id: sanitize_state(state, player.id) for player in state.players}


def serialize_lobby(lobby) -> Dict[str, Any]:
    """Serialize a lobby for its members."""
    return {
        "code": lobby.code,
        "host_id": lobby.host_id,
        "created_at": lobby.created_at,
        "max_players": lobby.max_players,
        "players": [
            {"id": p.id, "name": p.name, "is_host": p.id == lobby.host_id}
            for p in lobby.players
        ],
    }
