"""Lobby directory: room codes and who is waiting in each room"""

import logging
import random
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .constants import MAX_PLAYERS

logger = logging.getLogger(__name__)

CODE_LENGTH = 6
CODE_ALPHABET = string.ascii_uppercase + string.digits

ADJECTIVES = ['Swift', 'Clever', 'Lucky', 'Brave', 'Wise', 'Bold', 'Quick', 'Sharp']
NOUNS = ['Fox', 'Eagle', 'Tiger', 'Wolf', 'Bear', 'Hawk', 'Lion', 'Panda']


@dataclass
class LobbyPlayer:
    id: str
    name: str


@dataclass
class Lobby:
    code: str
    host_id: str
    players: List[LobbyPlayer] = field(default_factory=list)
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    max_players: int = MAX_PLAYERS

    def has_player(self, player_id: str) -> bool:
        return any(p.id == player_id for p in self.players)

    @property
    def player_ids(self) -> List[str]:
        return [p.id for p in self.players]


@dataclass
class LeaveResult:
    code: Optional[str] = None
    lobby: Optional[Lobby] = None
    was_host: bool = False


def generate_lobby_code(rng: random.Random) -> str:
    return ''.join(rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def generate_username(rng: random.Random) -> str:
    return f"{rng.choice(ADJECTIVES)}{rng.choice(NOUNS)}{rng.randint(0, 99)}"


class LobbyDirectory:
    def __init__(self, rng: Optional[random.Random] = None):
        self.lobbies: Dict[str, Lobby] = {}
        self.player_to_lobby: Dict[str, str] = {}  # player_id -> lobby code
        self.rng = rng or random.Random()

    def create_lobby(self, host_id: str, username: Optional[str] = None) -> Lobby:
        # A player sits in at most one lobby
        self.leave_lobby(host_id)

        code = generate_lobby_code(self.rng)
        while code in self.lobbies:
            code = generate_lobby_code(self.rng)

        host = LobbyPlayer(id=host_id, name=username or generate_username(self.rng))
        lobby = Lobby(code=code, host_id=host_id, players=[host])
        self.lobbies[code] = lobby
        self.player_to_lobby[host_id] = code
        logger.info(f"Lobby created: {code} by {host.name}")
        return lobby

    def join_lobby(self, code: str, player_id: str, username: Optional[str] = None) -> Optional[Lobby]:
        lobby = self.lobbies.get(code.upper())
        if not lobby:
            logger.info(f"Lobby not found: {code}")
            return None
        if lobby.has_player(player_id):
            return lobby
        if len(lobby.players) >= lobby.max_players:
            logger.info(f"Lobby full: {code}")
            return None

        self.leave_lobby(player_id)
        lobby.players.append(LobbyPlayer(id=player_id, name=username or generate_username(self.rng)))
        self.player_to_lobby[player_id] = lobby.code
        logger.info(f"Player {player_id} joined lobby {lobby.code}")
        return lobby

    def leave_lobby(self, player_id: str) -> LeaveResult:
        """Remove a player; the host leaving disbands the lobby."""
        code = self.player_to_lobby.pop(player_id, None)
        if not code or code not in self.lobbies:
            return LeaveResult()

        lobby = self.lobbies[code]
        if lobby.host_id == player_id:
            self._remove_lobby(code)
            logger.info(f"Host left, lobby {code} disbanded")
            return LeaveResult(code=code, was_host=True)

        lobby.players = [p for p in lobby.players if p.id != player_id]
        return LeaveResult(code=code, lobby=lobby)

    def kick_player(self, host_id: str, player_id: str) -> Optional[Lobby]:
        lobby = self.get_lobby_by_player_id(host_id)
        if not lobby or lobby.host_id != host_id or player_id == host_id:
            return None
        if not lobby.has_player(player_id):
            return None

        lobby.players = [p for p in lobby.players if p.id != player_id]
        self.player_to_lobby.pop(player_id, None)
        logger.info(f"Player {player_id} kicked from lobby {lobby.code}")
        return lobby

    def disband_lobby(self, host_id: str) -> Optional[str]:
        lobby = self.get_lobby_by_player_id(host_id)
        if not lobby or lobby.host_id != host_id:
            return None
        self._remove_lobby(lobby.code)
        logger.info(f"Lobby {lobby.code} disbanded by host")
        return lobby.code

    def _remove_lobby(self, code: str):
        lobby = self.lobbies.pop(code)
        for player in lobby.players:
            if self.player_to_lobby.get(player.id) == code:
                del self.player_to_lobby[player.id]

    def get_lobby(self, code: str) -> Optional[Lobby]:
        return self.lobbies.get(code.upper())

    def get_lobby_by_player_id(self, player_id: str) -> Optional[Lobby]:
        code = self.player_to_lobby.get(player_id)
        return self.lobbies.get(code) if code else None
