"""
What the client side sees of the authoritative store: async game / rematch calls plus the change feed.

`ServiceBackend` serves those calls from the services of this process; every blocking call runs in a worker thread
so the client's event loop keeps polling, receiving pushes and handling input while a call is in flight.
"""

import asyncio
import logging
import threading
from typing import Any, Callable, Optional, Protocol, TypeVar

from src.core.exceptions import NotFoundError, RemoteCallError, StoreUnavailableError
from src.core.models import GameStateModel, Move, PlayAgainRequestModel, PlayerId, Rejected
from src.core.shared_types import Table
from src.services.game_service import GameService
from src.services.rematch_service import RematchService
from src.sync.feed import ChangeFeed, ChangeHandler, Subscription

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GameBackend(Protocol):
    async def get_game_state(self, game_id: str) -> GameStateModel:
        ...

    async def get_lobby_game_state(self, lobby_id: str) -> GameStateModel:
        ...

    async def get_play_again_request(
        self, original_game_id: str
    ) -> Optional[PlayAgainRequestModel]:
        ...

    async def make_move(
        self, game_id: str, move: Move, player: PlayerId
    ) -> GameStateModel | Rejected:
        ...

    async def request_rematch(
        self, original_game_id: str, lobby_id: str, player: PlayerId
    ) -> PlayAgainRequestModel | Rejected:
        ...

    async def subscribe(
        self, table: Table, row_filter: dict[str, Any], on_event: ChangeHandler
    ) -> Subscription:
        ...

    async def unsubscribe(self, subscription: Subscription) -> None:
        ...


class ServiceBackend:
    """GameBackend served by the in-process services."""

    def __init__(
        self,
        game_service: GameService,
        rematch_service: RematchService,
        feed: ChangeFeed,
    ) -> None:
        self.games = game_service
        self.rematches = rematch_service
        self.feed = feed
        # The services share one database session, which must not be used by two threads at once
        self._lock = threading.Lock()

    async def get_game_state(self, game_id: str) -> GameStateModel:
        return await self._call(self.games.get_game_state, game_id)

    async def get_lobby_game_state(self, lobby_id: str) -> GameStateModel:
        return await self._call(self.games.get_lobby_game_state, lobby_id)

    async def get_play_again_request(
        self, original_game_id: str
    ) -> Optional[PlayAgainRequestModel]:
        try:
            return await self._call(self.rematches.get_play_again_request, original_game_id)
        except NotFoundError:
            return None

    async def make_move(
        self, game_id: str, move: Move, player: PlayerId
    ) -> GameStateModel | Rejected:
        return await self._call(self.games.make_move, game_id, move, player)

    async def request_rematch(
        self, original_game_id: str, lobby_id: str, player: PlayerId
    ) -> PlayAgainRequestModel | Rejected:
        return await self._call(
            self.rematches.request_rematch, original_game_id, lobby_id, player
        )

    async def subscribe(
        self, table: Table, row_filter: dict[str, Any], on_event: ChangeHandler
    ) -> Subscription:
        return self.feed.subscribe(table, row_filter, on_event)

    async def unsubscribe(self, subscription: Subscription) -> None:
        self.feed.unsubscribe(subscription)

    async def _call(self, func: Callable[..., T], *args: Any) -> T:
        def locked() -> T:
            with self._lock:
                return func(*args)

        try:
            return await asyncio.to_thread(locked)
        except StoreUnavailableError as exc:
            logger.warning("%s failed: %s", func.__name__, exc)
            raise RemoteCallError(f"{func.__name__} failed, try again.") from exc
