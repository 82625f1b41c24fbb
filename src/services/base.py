"""
Shared plumbing for the services: fetching with not-found errors, compare-and-swap writes and change notifications.
"""

import logging
from typing import Any, Callable, Optional, Protocol

from src.core.exceptions import NotFoundError, StoreUnavailableError
from src.core.models import GameStateModel, LobbyModel, Rejected
from src.core.shared_types import ChangeEvent, GameStatus, LobbyStatus, Table
from src.db.repository import GameRepository

logger = logging.getLogger(__name__)

# A losing writer re-reads and re-validates; this many lost races in a row means something is wrong with the store
MAX_WRITE_ATTEMPTS = 5

# Lobby status that follows from the status of its current game (pending games only exist in waiting lobbies)
LOBBY_STATUS_FOR_GAME: dict[GameStatus, LobbyStatus] = {
    GameStatus.WAITING: LobbyStatus.WAITING,
    GameStatus.PLAYING: LobbyStatus.PLAYING,
    GameStatus.FINISHED: LobbyStatus.FINISHED,
}

GameMutation = Callable[[GameStateModel], GameStateModel | Rejected]


class ChangePublisher(Protocol):
    """Anything that fans stored changes out to subscribers (see `src.sync.feed.ChangeFeed`)."""

    def publish(
        self, table: Table, event: ChangeEvent, new: Any, old: Any = None
    ) -> None:
        ...


class StoreWriter:
    """Base class of the services that write to the store."""

    def __init__(
        self, repository: GameRepository, feed: Optional[ChangePublisher] = None
    ) -> None:
        self.repo = repository
        self.feed = feed

    # --- reads ---
    def _fetch_lobby(self, lobby_id: str) -> LobbyModel:
        lobby = self.repo.get_lobby(lobby_id)
        if lobby is None:
            raise NotFoundError(f"Lobby with {lobby_id=} not found.")
        return lobby

    def _fetch_game_state(self, game_id: str) -> GameStateModel:
        state = self.repo.get_game_state(game_id)
        if state is None:
            raise NotFoundError(f"Game with {game_id=} not found.")
        return state

    def _fetch_latest_game_state(self, lobby_id: str) -> GameStateModel:
        state = self.repo.get_latest_game_state(lobby_id)
        if state is None:
            raise NotFoundError(f"Lobby with {lobby_id=} has no game.")
        return state

    # --- writes ---
    def _mutate_game_state(
        self, game_id: str, mutate: GameMutation
    ) -> GameStateModel | Rejected:
        """
        Read-validate-write loop around one GameState.
        ----

        `mutate` gets the freshly read state and returns either a new state, the very same object (nothing to do)
        or a `Rejected`. The write is a compare-and-swap on the version read: when another writer got there
        first, the whole cycle runs again on the newer state, so the loser is validated against what the winner wrote.
        """
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            current = self._fetch_game_state(game_id)
            outcome = mutate(current)
            if isinstance(outcome, Rejected) or outcome is current:
                return outcome

            stored = self.repo.update_game_state(outcome, expected_version=current.version)
            if stored is not None:
                self._after_game_write(current, stored)
                return stored
            logger.debug("Lost write race on game %s (attempt %d)", game_id, attempt)

        raise StoreUnavailableError(
            f"Could not write game {game_id} after {MAX_WRITE_ATTEMPTS} attempts."
        )

    def _after_game_write(
        self, old: Optional[GameStateModel], new: GameStateModel
    ) -> None:
        event = ChangeEvent.INSERT if old is None else ChangeEvent.UPDATE
        self._publish(Table.GAME_STATES, event, new, old)
        self._sync_lobby_status(new)

    def _sync_lobby_status(self, state: GameStateModel) -> None:
        """Keep the lobby status in step with its current game."""
        target = LOBBY_STATUS_FOR_GAME.get(state.status)
        if target is None:
            return
        lobby = self.repo.get_lobby(state.lobby_id)
        if lobby is None or lobby.status == target:
            return

        old_status = lobby.status
        lobby.status = target
        updated = self.repo.update_lobby(lobby)
        if updated is not None:
            logger.info("Lobby %s: %s -> %s", lobby.id, old_status, target)
            self._publish(Table.LOBBIES, ChangeEvent.UPDATE, updated, None)

    def _publish(
        self, table: Table, event: ChangeEvent, new: Any, old: Any = None
    ) -> None:
        if self.feed is not None:
            self.feed.publish(table, event, new, old)
