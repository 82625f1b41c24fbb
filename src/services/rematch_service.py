"""
Rematch Negotiator.

Both players of a finished game ask for a rematch; the second request creates the new game. The request row is
written with compare-and-swap on its version and the new GameState is inserted in the same transaction, so
`new_game_id` is set exactly once however the two requests interleave.
"""

import logging
import random
from typing import Optional

from src.core.config import Settings, get_settings
from src.core.exceptions import NotFoundError, StoreUnavailableError
from src.core.models import GameStateModel, PlayAgainRequestModel, PlayerId, Rejected
from src.core.shared_types import (
    AI_PLAYER_ID,
    TWO_PLAYER_KINDS,
    ChangeEvent,
    GameStatus,
    RejectionReason,
    Table,
)
from src.db.repository import GameRepository
from src.games import ai
from src.games.rules import RULES, RulesRegistry, new_game_state
from src.services.base import MAX_WRITE_ATTEMPTS, ChangePublisher, StoreWriter

logger = logging.getLogger(__name__)


def rematch_seats(finished: GameStateModel) -> tuple[PlayerId, PlayerId]:
    """
    (player1, player2) of the rematch.
    ----

    The loser of the previous game (the previous player2 on a draw) becomes player1 and moves first.
    The computer always keeps the player2 seat.
    """
    assert finished.player2 is not None
    if AI_PLAYER_ID in (finished.player1, finished.player2):
        human = finished.player1 if finished.player2 == AI_PLAYER_ID else finished.player2
        return human, AI_PLAYER_ID
    if finished.winner == finished.player2:
        return finished.player1, finished.player2
    return finished.player2, finished.player1


def required_players(finished: GameStateModel) -> set[PlayerId]:
    """Players who have to agree. The computer always agrees."""
    return {p for p in finished.players if p != AI_PLAYER_ID}


class RematchService(StoreWriter):
    """Orchestration of play-again requests."""

    def __init__(
        self,
        repository: GameRepository,
        settings: Optional[Settings] = None,
        feed: Optional[ChangePublisher] = None,
        rules: RulesRegistry = RULES,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(repository, feed)
        self.settings = settings or get_settings()
        self.rules = rules
        self.rng = rng or random.Random()

    def get_play_again_request(self, original_game_id: str) -> PlayAgainRequestModel:
        request = self.repo.get_play_again_request(original_game_id)
        if request is None:
            raise NotFoundError(f"No rematch requested for game {original_game_id}.")
        return request

    def request_rematch(
        self, original_game_id: str, lobby_id: str, player: PlayerId
    ) -> PlayAgainRequestModel | Rejected:
        """
        requestRematch(originalGameStateId, lobbyId, playerId)
        ----

        * first request: a PlayAgainRequest is created with `requested_by = [player]`
        * a player already in `requested_by`: no-op, the stored request is returned as is
        * the request that completes the set of players: the new game is created and `new_game_id` recorded
        """
        finished = self._fetch_game_state(original_game_id)
        rejected = self._check_eligible(finished, lobby_id, player)
        if rejected:
            logger.info("Game %s: rematch by %s rejected (%s)", original_game_id, player, rejected)
            return rejected

        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            current = self.repo.get_play_again_request(original_game_id)
            if current is not None and (
                player in current.requested_by or current.new_game_id is not None
            ):
                return current

            request = PlayAgainRequestModel(
                original_game_id=original_game_id,
                lobby_id=lobby_id,
                requested_by=[*(current.requested_by if current else []), player],
            )
            new_game = None
            if required_players(finished) <= set(request.requested_by):
                new_game = self._new_game(finished)
                request.new_game_id = new_game.id

            stored = self.repo.save_play_again_request(
                request,
                expected_version=current.version if current else None,
                new_game=new_game,
            )
            if stored is None:
                logger.debug(
                    "Lost rematch race on game %s (attempt %d)", original_game_id, attempt
                )
                continue

            self._publish(
                Table.PLAY_AGAIN_REQUESTS,
                ChangeEvent.INSERT if current is None else ChangeEvent.UPDATE,
                stored,
                current,
            )
            if new_game is not None:
                logger.info(
                    "Rematch of game %s agreed: new game %s", original_game_id, new_game.id
                )
                self._after_game_write(
                    None, self.repo.get_game_state(new_game.id) or new_game
                )
            return stored

        raise StoreUnavailableError(
            f"Could not record rematch for game {original_game_id} after {MAX_WRITE_ATTEMPTS} attempts."
        )

    # --- internal helpers ---
    def _check_eligible(
        self, finished: GameStateModel, lobby_id: str, player: PlayerId
    ) -> Optional[Rejected]:
        if finished.game_kind not in TWO_PLAYER_KINDS or finished.player2 is None:
            return Rejected(RejectionReason.INVALID_MOVE, "Rematches are for two player games.")
        if finished.status != GameStatus.FINISHED:
            return Rejected(RejectionReason.GAME_NOT_FINISHED, "The game is still running.")
        if player not in required_players(finished):
            return Rejected(RejectionReason.NOT_A_PLAYER, "Only the players can ask for a rematch.")
        if finished.lobby_id != lobby_id:
            return Rejected(
                RejectionReason.INVALID_MOVE, "The game does not belong to this lobby."
            )
        return None

    def _new_game(self, finished: GameStateModel) -> GameStateModel:
        """Fresh board in the same lobby. Battleship starts over in its setup phase."""
        player1, player2 = rematch_seats(finished)
        if player2 == AI_PLAYER_ID:
            state = new_game_state(
                finished.game_kind,
                finished.lobby_id,
                player1,
                self.settings,
                rng=self.rng,
                rules=self.rules,
            )
            return ai.seat_ai_opponent(state, self.rng)
        return new_game_state(
            finished.game_kind,
            finished.lobby_id,
            player1,
            self.settings,
            player2=player2,
            rng=self.rng,
            rules=self.rules,
        )
