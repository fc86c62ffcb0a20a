"""
Game repository: where game states live between commands.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .models import GameState


class GameStore(ABC):
    """Keyed storage of game states by game id."""

    @abstractmethod
    def get(self, game_id: str) -> Optional[GameState]:
        ...

    @abstractmethod
    def put(self, state: GameState) -> None:
        ...

    @abstractmethod
    def remove(self, game_id: str) -> Optional[GameState]:
        ...

    @abstractmethod
    def get_by_code(self, game_code: str) -> Optional[GameState]:
        ...

    @abstractmethod
    def all(self) -> List[GameState]:
        ...


class InMemoryGameStore(GameStore):
    """Process-local store; every game is lost on restart."""

    def __init__(self):
        self.games: Dict[str, GameState] = {}
        self.codes: Dict[str, str] = {}  # game_code -> game_id

    def get(self, game_id: str) -> Optional[GameState]:
        return self.games.get(game_id)

    def put(self, state: GameState) -> None:
        self.games[state.id] = state
        self.codes[state.game_code] = state.id

    def remove(self, game_id: str) -> Optional[GameState]:
        state = self.games.pop(game_id, None)
        if state and self.codes.get(state.game_code) == game_id:
            del self.codes[state.game_code]
        return state

    def get_by_code(self, game_code: str) -> Optional[GameState]:
        game_id = self.codes.get(game_code)
        return self.games.get(game_id) if game_id else None

    def all(self) -> List[GameState]:
        return list(self.games.values())

    def __len__(self) -> int:
        return len(self.games)
