# engine_py/src/shanghai_engine/ranking.py

from typing import Dict, List

from .models import GameState


def final_standings(state: GameState) -> List[Dict]:
    """
    Rank players by total score for the end of the game.

    Lowest total wins. Ties keep seat order and share no position; each
    player gets the next 1-based position.

    Args:
        state: The game state, normally in the finished phase.
    """
    ordered = sorted(
        enumerate(state.players),
        key=lambda item: (item[1].total_score, item[0])
    )
    return [
        {
            'player_id': player.id,
            'name': player.name,
            'total_score': player.total_score,
            'position': position,
        }
        for position, (_, player) in enumerate(ordered, start=1)
    ]


def leader_ids(state: GameState) -> List[str]:
    """Players currently sharing the lowest total score."""
    if not state.players:
        return []
    best = min(p.total_score for p in state.players)
    return [p.id for p in state.players if p.total_score == best]
