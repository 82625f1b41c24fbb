"""
Synchronization Layer (client side).

Two paths keep the local view of a game in line with the store:
1. polling: the current snapshot is fetched every `poll_interval` seconds (backstop for missed pushes)
2. push: the change feed delivers inserted / updated rows as they happen (primary path)

Both paths REPLACE the local copy wholesale; a snapshot older (lower version) than the one held is dropped.
The diff against the previous board is only computed for presentation.

Watchers are async context managers: leaving the view (the `async with` block) cancels the polling task and
unsubscribes from the feed, also when the block is left with an error.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from src.core.exceptions import NotFoundError, RemoteCallError
from src.core.models import GameStateModel, Move, PlayAgainRequestModel, PlayerId, Rejected
from src.core.shared_types import GameKind, GameStatus, Table
from src.games.grid import Coordinate, changed_cells, dimensions
from src.games.rules import RULES, SECRET_EXTRAS, RulesRegistry, apply_move
from src.games.turns import PRE_PLAY_STATUSES
from src.sync.backend import GameBackend
from src.sync.feed import ChangeMessage, Subscription

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 3.0

SnapshotListener = Callable[[GameStateModel, list[Coordinate]], None]


class Navigator(Protocol):
    """The view layer: moves the player to another page."""

    def navigate(self, path: str) -> None:
        ...


@dataclass(frozen=True)
class RemoteFailure:
    """Tagged failure for a call that never produced an answer (network / store outage)."""

    message: str


def game_path(game_id: str) -> str:
    return f"/game/{game_id}"


class Watcher:
    """Polling + push around one kind of row. Subclasses say what to fetch and what to do with a row."""

    table: Table

    def __init__(
        self, backend: GameBackend, poll_interval: float = DEFAULT_POLL_INTERVAL
    ) -> None:
        self.backend = backend
        self.poll_interval = poll_interval
        self._subscription: Optional[Subscription] = None
        self._poll_task: Optional[asyncio.Task[None]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # --- to be provided by subclasses ---
    def row_filter(self) -> dict[str, Any]:
        raise NotImplementedError

    async def fetch(self) -> Any:
        raise NotImplementedError

    def observe(self, row: Any) -> bool:
        """Handle one snapshot (from either path). True if it was taken."""
        raise NotImplementedError

    # --- lifecycle ---
    async def __aenter__(self) -> "Watcher":
        self._loop = asyncio.get_running_loop()
        self._subscription = await self.backend.subscribe(
            self.table, self.row_filter(), self._on_push
        )
        try:
            await self.refresh()
        except BaseException:
            await self._teardown()
            raise
        self._poll_task = asyncio.create_task(self._poll_loop())
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self._teardown()

    @property
    def active(self) -> bool:
        return self._subscription is not None

    async def refresh(self) -> bool:
        """Pull the current snapshot now. A failed call keeps the last known state."""
        try:
            row = await self.fetch()
        except RemoteCallError as exc:
            logger.warning("Refresh failed, keeping last known state: %s", exc)
            return False
        if row is None:
            return False
        return self.observe(row)

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.refresh()
            except NotFoundError as exc:
                logger.warning("Stopped polling: %s", exc)
                return

    def _on_push(self, message: ChangeMessage) -> None:
        """Feed callback. May run on another thread: hand the row over to our loop."""
        if message.new is None or self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._observe_pushed, message.new)

    def _observe_pushed(self, row: Any) -> None:
        if self.active:
            self.observe(row)

    async def _teardown(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._poll_task
            self._poll_task = None
        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            await self.backend.unsubscribe(subscription)


class SnapshotSync(Watcher):
    """
    Local copy of one game.
    ----

    With a navigator, the first time a game is seen reaching `playing` from a pre-play status (or already playing
    when first seen) the player is sent to the game view, exactly once per game.
    """

    table = Table.GAME_STATES

    def __init__(
        self,
        backend: GameBackend,
        game_id: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_snapshot: Optional[SnapshotListener] = None,
        navigator: Optional[Navigator] = None,
    ) -> None:
        super().__init__(backend, poll_interval)
        self.game_id = game_id
        self.state: Optional[GameStateModel] = None
        self.last_changed: list[Coordinate] = []
        self.on_snapshot = on_snapshot
        self.navigator = navigator
        self._redirected: set[str] = set()

    def row_filter(self) -> dict[str, Any]:
        return {"id": self.game_id}

    async def fetch(self) -> GameStateModel:
        return await self.backend.get_game_state(self.game_id)

    def is_newer_game(self, snapshot: GameStateModel) -> bool:
        return False

    def observe(self, row: Any) -> bool:
        snapshot: GameStateModel = row
        previous = self.state
        if previous is not None and snapshot.id != previous.id:
            if not self.is_newer_game(snapshot):
                return False
            previous = None
        elif previous is not None and snapshot.version < previous.version:
            logger.debug(
                "Dropped stale snapshot of game %s (v%d < v%d)",
                snapshot.id,
                snapshot.version,
                previous.version,
            )
            return False

        self._replace(previous, snapshot)
        self._maybe_redirect(previous, snapshot)
        return True

    def _replace(
        self, previous: Optional[GameStateModel], snapshot: GameStateModel
    ) -> None:
        self.state = snapshot
        if previous is not None and dimensions(previous.board) == dimensions(snapshot.board):
            self.last_changed = changed_cells(previous.board, snapshot.board)
        else:
            self.last_changed = []
        if self.on_snapshot is not None:
            self.on_snapshot(snapshot, self.last_changed)

    def _maybe_redirect(
        self, previous: Optional[GameStateModel], snapshot: GameStateModel
    ) -> None:
        if self.navigator is None or snapshot.status != GameStatus.PLAYING:
            return
        if snapshot.id in self._redirected:
            return
        if previous is not None and previous.status not in PRE_PLAY_STATUSES:
            return
        self._redirected.add(snapshot.id)
        logger.info("Game %s is playing: redirecting", snapshot.id)
        self.navigator.navigate(game_path(snapshot.id))


class LobbySync(SnapshotSync):
    """Follows whatever the current game of a lobby is (a rematch replaces it)."""

    def __init__(
        self,
        backend: GameBackend,
        lobby_id: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_snapshot: Optional[SnapshotListener] = None,
        navigator: Optional[Navigator] = None,
    ) -> None:
        super().__init__(backend, "", poll_interval, on_snapshot, navigator)
        self.lobby_id = lobby_id

    def row_filter(self) -> dict[str, Any]:
        return {"lobby_id": self.lobby_id}

    async def fetch(self) -> GameStateModel:
        return await self.backend.get_lobby_game_state(self.lobby_id)

    def is_newer_game(self, snapshot: GameStateModel) -> bool:
        current = self.state
        if current is None or current.created_at is None or snapshot.created_at is None:
            return True
        return snapshot.created_at >= current.created_at

    def _replace(
        self, previous: Optional[GameStateModel], snapshot: GameStateModel
    ) -> None:
        self.game_id = snapshot.id
        super()._replace(previous, snapshot)


class GameSync(SnapshotSync):
    """SnapshotSync that can also submit moves, optimistically."""

    def __init__(
        self,
        backend: GameBackend,
        game_id: str,
        player: PlayerId,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_snapshot: Optional[SnapshotListener] = None,
        rules: RulesRegistry = RULES,
    ) -> None:
        super().__init__(backend, game_id, poll_interval, on_snapshot)
        self.player = player
        self.rules = rules

    async def submit_move(self, move: Move) -> GameStateModel | Rejected | RemoteFailure:
        """
        Two-phase optimistic move.
        ----

        1. check the move against the local copy: a local rejection never reaches the store
        2. show the optimistic result right away
        3. submit it; on a rejection or a failed call the optimistic copy is thrown away and the authoritative
           snapshot fetched again (the move itself is never retried)
        """
        if self.state is None:
            await self.refresh()
        if self.state is None:
            return RemoteFailure("The game could not be loaded, try again.")

        confirmed = self.state
        if self.can_predict(confirmed):
            local = apply_move(confirmed, move, self.player, self.rules)
            if isinstance(local, Rejected):
                logger.info("Move %s rejected locally (%s)", move, local)
                return local
            self._replace(confirmed, local)

        try:
            outcome = await self.backend.make_move(self.game_id, move, self.player)
        except RemoteCallError as exc:
            logger.warning("Move %s failed: %s", move, exc)
            await self._resync(confirmed)
            return RemoteFailure("Failed to make the move, try again.")

        if isinstance(outcome, Rejected):
            logger.info("Move %s rejected by the store (%s)", move, outcome)
            await self._resync(confirmed)
            return outcome

        self.observe(outcome)
        return self.state if self.state is not None else outcome

    @staticmethod
    def can_predict(state: GameStateModel) -> bool:
        """A copy served through a player's view lacks the hidden extras the rules need (answer, mines, ships)."""
        if state.game_kind == GameKind.BATTLESHIP:
            return False
        return all(key in state.extras for key in SECRET_EXTRAS.get(state.game_kind, ()))

    async def _resync(self, confirmed: GameStateModel) -> None:
        """Throw the optimistic copy away: re-fetch, or fall back to the last confirmed snapshot."""
        if await self.refresh():
            return
        # a newer snapshot pushed while the call was in flight already replaced the optimistic copy
        if self.state is None or self.state.version <= confirmed.version:
            self._replace(self.state, confirmed)


class RematchWatcher(Watcher):
    """
    Watches the play-again request of a finished game.
    ----

    Once the request names the new game and this player is one of the requesters, the player is sent to the new
    game, once.
    """

    table = Table.PLAY_AGAIN_REQUESTS

    def __init__(
        self,
        backend: GameBackend,
        original_game_id: str,
        player: PlayerId,
        navigator: Navigator,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        super().__init__(backend, poll_interval)
        self.original_game_id = original_game_id
        self.player = player
        self.navigator = navigator
        self.request: Optional[PlayAgainRequestModel] = None
        self.navigated_to: Optional[str] = None

    def row_filter(self) -> dict[str, Any]:
        return {"original_game_id": self.original_game_id}

    async def fetch(self) -> Optional[PlayAgainRequestModel]:
        return await self.backend.get_play_again_request(self.original_game_id)

    def observe(self, row: Any) -> bool:
        request: PlayAgainRequestModel = row
        if self.request is not None and request.version < self.request.version:
            return False
        self.request = request
        if (
            request.new_game_id is not None
            and self.player in request.requested_by
            and self.navigated_to is None
        ):
            self.navigated_to = request.new_game_id
            logger.info("Rematch ready: %s -> %s", self.original_game_id, request.new_game_id)
            self.navigator.navigate(game_path(request.new_game_id))
        return True

    async def request_rematch(self, lobby_id: str) -> PlayAgainRequestModel | Rejected | RemoteFailure:
        try:
            outcome = await self.backend.request_rematch(self.original_game_id, lobby_id, self.player)
        except RemoteCallError as exc:
            logger.warning("Rematch request failed: %s", exc)
            return RemoteFailure("Failed to request a rematch, try again.")
        if not isinstance(outcome, Rejected):
            self.observe(outcome)
        return outcome
