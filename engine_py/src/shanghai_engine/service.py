"""
Command dispatcher tying the engine to the lobby, the game store and timers.

The service never performs I/O. Each command returns an Outcome naming
who should receive which snapshot and events; the transport delivers it.
Timer-driven outcomes are pushed to registered listeners.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from . import engine
from .constants import PHASE_FINISHED, PHASE_ROUND_END, TURN_BUY, MIN_PLAYERS
from .errors import GameError, INVALID_PHASE, NOT_AUTHORIZED, NOT_FOUND, INVALID_SETTINGS
from .lobby import LobbyDirectory
from .models import ActionResult, GameEvent, GameState
from .rules import create_settings
from .serialization import sanitize_for_all, sanitize_state, serialize_lobby
from .store import GameStore, InMemoryGameStore
from .timers import TimerHandle, TimerService

logger = logging.getLogger(__name__)


@dataclass
class Outcome:
    """What a command produced and who should hear about it."""
    success: bool = True
    requester_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    game_id: Optional[str] = None
    snapshots: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    events: List[Tuple[str, GameEvent]] = field(default_factory=list)  # (recipient, event)

    @classmethod
    def failure(cls, requester_id: Optional[str], error_code: str, error_message: str) -> 'Outcome':
        return cls(success=False, requester_id=requester_id,
                   error_code=error_code, error_message=error_message)

    def send(self, recipients: Iterable[str], event: GameEvent) -> 'Outcome':
        for recipient in recipients:
            self.events.append((recipient, event))
        return self

    @property
    def recipients(self) -> List[str]:
        seen = list(self.snapshots)
        for recipient, _ in self.events:
            if recipient not in seen:
                seen.append(recipient)
        return seen


@dataclass
class _ScheduledTimer:
    key: Any
    handle: TimerHandle


class GameService:
    def __init__(
        self,
        timers: TimerService,
        store: Optional[GameStore] = None,
        lobbies: Optional[LobbyDirectory] = None,
        round_advance_delay: Optional[float] = None,
    ):
        self.timers = timers
        self.store = store or InMemoryGameStore()
        self.lobbies = lobbies or LobbyDirectory()
        self.round_advance_delay = round_advance_delay
        self.game_locks = defaultdict(threading.RLock)
        self.buy_timers: Dict[str, _ScheduledTimer] = {}
        self.round_timers: Dict[str, _ScheduledTimer] = {}
        self.listeners: List[Callable[[Outcome], None]] = []

    def add_listener(self, listener: Callable[[Outcome], None]):
        """Register a callback for outcomes that no request produced (timers)."""
        self.listeners.append(listener)

    def _notify(self, outcome: Outcome):
        for listener in self.listeners:
            listener(outcome)

    # ---- lobby -------------------------------------------------------

    def create_lobby(self, player_id: str, username: Optional[str] = None) -> Outcome:
        outcome = self._leave(player_id)
        lobby = self.lobbies.create_lobby(player_id, username)
        outcome.requester_id = player_id
        return outcome.send([player_id], GameEvent('lobby-created', {'lobby': serialize_lobby(lobby)}))

    def join_lobby(self, player_id: str, code: str, username: Optional[str] = None) -> Outcome:
        current = self.lobbies.get_lobby_by_player_id(player_id)
        if current and current.code == code.upper():
            return Outcome(requester_id=player_id).send(
                [player_id], GameEvent('lobby-joined', {'lobby': serialize_lobby(current)}))

        target = self.lobbies.get_lobby(code)
        if not target or len(target.players) >= target.max_players:
            return Outcome.failure(player_id, NOT_FOUND, "Lobby not found or full")

        outcome = self._leave(player_id)
        lobby = self.lobbies.join_lobby(code, player_id, username)
        outcome.requester_id = player_id
        snapshot = serialize_lobby(lobby)
        joined = next(p for p in lobby.players if p.id == player_id)
        others = [pid for pid in lobby.player_ids if pid != player_id]
        outcome.send([player_id], GameEvent('lobby-joined', {'lobby': snapshot}))
        outcome.send(others, GameEvent('player-joined-lobby', {'player': {'id': joined.id, 'name': joined.name}}))
        return outcome.send(others, GameEvent('lobby-updated', {'lobby': snapshot}))

    def leave_lobby(self, player_id: str) -> Outcome:
        outcome = self._leave(player_id)
        outcome.requester_id = player_id
        return outcome

    def _leave(self, player_id: str) -> Outcome:
        former = self.lobbies.get_lobby_by_player_id(player_id)
        members = former.player_ids if former else []
        result = self.lobbies.leave_lobby(player_id)
        outcome = Outcome()
        if result.was_host:
            self._abandon_game(former.code)
            outcome.send([pid for pid in members if pid != player_id], GameEvent('lobby-disbanded'))
        elif result.lobby:
            remaining = result.lobby.player_ids
            outcome.send(remaining, GameEvent('player-left-lobby', {'player_id': player_id}))
            outcome.send(remaining, GameEvent('lobby-updated', {'lobby': serialize_lobby(result.lobby)}))
        return outcome

    def kick_player(self, player_id: str, target_id: str) -> Outcome:
        lobby = self.lobbies.kick_player(player_id, target_id)
        if not lobby:
            return Outcome.failure(player_id, NOT_AUTHORIZED, "Only host can kick players")

        outcome = Outcome(requester_id=player_id)
        outcome.send([target_id], GameEvent('player-kicked', {'reason': 'Kicked by host'}))
        outcome.send(lobby.player_ids, GameEvent('player-left-lobby', {'player_id': target_id}))
        return outcome.send(lobby.player_ids, GameEvent('lobby-updated', {'lobby': serialize_lobby(lobby)}))

    def disband_lobby(self, player_id: str) -> Outcome:
        lobby = self.lobbies.get_lobby_by_player_id(player_id)
        members = lobby.player_ids if lobby else []
        code = self.lobbies.disband_lobby(player_id)
        if not code:
            return Outcome.failure(player_id, NOT_AUTHORIZED, "Only host can disband lobby")
        self._abandon_game(code)
        return Outcome(requester_id=player_id).send(members, GameEvent('lobby-disbanded'))

    def disconnect(self, player_id: str) -> Outcome:
        """A participant's connection dropped; they leave their lobby."""
        logger.info(f"Player {player_id} disconnected")
        return self.leave_lobby(player_id)

    # ---- game lifecycle ----------------------------------------------

    def start_game(self, player_id: str, settings: Optional[Dict[str, Any]] = None,
                   seed: Optional[int] = None) -> Outcome:
        lobby = self.lobbies.get_lobby_by_player_id(player_id)
        if not lobby:
            return Outcome.failure(player_id, NOT_FOUND, "Not in a lobby")
        if lobby.host_id != player_id:
            return Outcome.failure(player_id, NOT_AUTHORIZED, "Only host can start game")
        if len(lobby.players) < MIN_PLAYERS:
            return Outcome.failure(player_id, INVALID_PHASE, f"Need at least {MIN_PLAYERS} players to start")

        with self.game_locks[lobby.code]:
            existing = self.store.get_by_code(lobby.code)
            if existing and existing.phase != PHASE_FINISHED:
                return Outcome.failure(player_id, INVALID_PHASE, "A game is already in progress")
            if existing:
                self._forget_game(existing.id)

            try:
                game_settings = create_settings(settings)
                state = engine.create_game(
                    lobby.code,
                    [p.id for p in lobby.players],
                    [p.name for p in lobby.players],
                    settings=game_settings,
                    host_id=lobby.host_id,
                    seed=seed,
                )
            except ValidationError as e:
                return Outcome.failure(player_id, INVALID_SETTINGS, f"Invalid settings: {e.errors()[0]['msg']}")
            except GameError as e:
                return Outcome.failure(player_id, e.code, e.message)

            result = engine.start_game(state)
            logger.info(f"Game {state.id} started for lobby {lobby.code}")
            outcome = self._commit(player_id, result)
            # Lobby members hear the game is coming before its first state
            outcome.events.insert(0, (player_id, GameEvent('game-starting')))
            for pid in lobby.player_ids:
                if pid != player_id:
                    outcome.events.insert(0, (pid, GameEvent('game-starting')))
            return outcome

    def _game_for(self, player_id: str) -> Optional[GameState]:
        lobby = self.lobbies.get_lobby_by_player_id(player_id)
        if not lobby:
            return None
        return self.store.get_by_code(lobby.code)

    def _apply(self, player_id: str, command: Callable[..., ActionResult], *args,
               check: Optional[Callable[[GameState], Optional[Outcome]]] = None) -> Outcome:
        state = self._game_for(player_id)
        if state is None:
            return Outcome.failure(player_id, NOT_FOUND, "No game in progress")

        with self.game_locks[state.game_code]:
            # Re-read under the lock; an earlier command may have replaced it
            state = self.store.get(state.id)
            if state is None:
                return Outcome.failure(player_id, NOT_FOUND, "No game in progress")
            if check:
                rejected = check(state)
                if rejected:
                    return rejected
            return self._commit(player_id, command(state, *args))

    def _commit(self, requester_id: Optional[str], result: ActionResult) -> Outcome:
        """Store an accepted result, sync timers, and build the broadcast."""
        if not result.success:
            logger.info(f"Rejected command from {requester_id}: {result.error_message}")
            return Outcome.failure(requester_id, result.error_code, result.error_message)

        state = result.state
        outcome = Outcome(requester_id=requester_id, game_id=state.id)
        if not result.changed:
            return outcome

        self.store.put(state)
        self._sync_timers(state)
        outcome.snapshots = sanitize_for_all(state)
        player_ids = [p.id for p in state.players]
        for event in result.events:
            outcome.send(player_ids, event)
        return outcome

    # ---- turn commands -----------------------------------------------

    def draw_from_deck(self, player_id: str) -> Outcome:
        return self._apply(player_id, engine.draw_from_deck, player_id)

    def draw_from_discard(self, player_id: str) -> Outcome:
        return self._apply(player_id, engine.draw_from_discard, player_id)

    def want_to_buy(self, player_id: str) -> Outcome:
        return self._apply(player_id, engine.want_to_buy, player_id)

    def take_discard(self, player_id: str) -> Outcome:
        return self._apply(player_id, engine.take_discard, player_id)

    def decline_buy(self, player_id: str) -> Outcome:
        return self._apply(player_id, engine.decline_buy, player_id)

    def place_contract(self, player_id: str, groups: Sequence[Sequence[str]]) -> Outcome:
        return self._apply(player_id, engine.place_contract, player_id, groups)

    def add_to_meld(self, player_id: str, target_player_id: str, meld_index: int, card_id: str) -> Outcome:
        return self._apply(player_id, engine.add_to_meld, player_id, target_player_id, meld_index, card_id)

    def discard_card(self, player_id: str, card_id: str) -> Outcome:
        return self._apply(player_id, engine.discard_card, player_id, card_id)

    def set_dealers_choice(self, player_id: str, choice: str) -> Outcome:
        return self._apply(player_id, engine.set_dealers_choice, player_id, choice)

    def next_round(self, player_id: str) -> Outcome:
        return self._apply(player_id, engine.next_round)

    def end_game_early(self, player_id: str) -> Outcome:
        def host_only(state: GameState) -> Optional[Outcome]:
            if state.host_id != player_id:
                return Outcome.failure(player_id, NOT_AUTHORIZED, "Only the host can end the game early")
            return None
        return self._apply(player_id, engine.end_game_early, check=host_only)

    def request_state(self, player_id: str) -> Outcome:
        state = self._game_for(player_id)
        if state is None:
            return Outcome.failure(player_id, NOT_FOUND, "No game in progress")
        return Outcome(requester_id=player_id, game_id=state.id,
                       snapshots={player_id: sanitize_state(state, player_id)})

    # ---- timers ------------------------------------------------------

    def _sync_timers(self, state: GameState):
        """Keep exactly one deadline per open buy window and per finished round."""
        buy_key = state.buy_phase.serial if state.turn_phase == TURN_BUY and state.buy_phase else None
        self._reschedule(self.buy_timers, state.id, buy_key,
                         state.settings.buy_time_limit, self._on_buy_deadline)

        round_key = None
        if state.phase == PHASE_ROUND_END and self.round_advance_delay is not None:
            round_key = state.round
        self._reschedule(self.round_timers, state.id, round_key,
                         self.round_advance_delay, self._on_round_advance)

    def _reschedule(self, timers: Dict[str, _ScheduledTimer], game_id: str, key: Any,
                    delay: Optional[float], fire: Callable[[str, Any], None]):
        scheduled = timers.get(game_id)
        if scheduled and scheduled.key == key:
            return
        if scheduled:
            scheduled.handle.cancel()
            del timers[game_id]
        if key is not None:
            handle = self.timers.schedule(delay, lambda: fire(game_id, key))
            timers[game_id] = _ScheduledTimer(key=key, handle=handle)

    def _on_buy_deadline(self, game_id: str, serial: int):
        self._fire_timer(self.buy_timers, game_id, serial,
                         lambda state: engine.resolve_buy_phase(state, serial))

    def _on_round_advance(self, game_id: str, round_number: int):
        def advance(state: GameState) -> ActionResult:
            if state.phase != PHASE_ROUND_END or state.round != round_number:
                return ActionResult.noop(state)
            return engine.next_round(state)
        self._fire_timer(self.round_timers, game_id, round_number, advance)

    def _fire_timer(self, timers: Dict[str, _ScheduledTimer], game_id: str, key: Any,
                    command: Callable[[GameState], ActionResult]):
        state = self.store.get(game_id)
        if state is None:
            return
        with self.game_locks[state.game_code]:
            scheduled = timers.get(game_id)
            if scheduled and scheduled.key == key:
                del timers[game_id]
            state = self.store.get(game_id)
            if state is None:
                return
            outcome = self._commit(None, command(state))
        if outcome.snapshots:
            self._notify(outcome)

    def _abandon_game(self, code: str):
        """Drop the game of a lobby that no longer exists."""
        with self.game_locks[code]:
            state = self.store.get_by_code(code)
            if state:
                logger.info(f"Discarding game {state.id} of closed lobby {code}")
                self._forget_game(state.id)
        self.game_locks.pop(code, None)

    def _forget_game(self, game_id: str):
        for timers in (self.buy_timers, self.round_timers):
            scheduled = timers.pop(game_id, None)
            if scheduled:
                scheduled.handle.cancel()
        self.store.remove(game_id)
