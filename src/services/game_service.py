"""Orchestration of game play: reading game states, applying moves (human and AI) and battleship fleet setup."""

import logging
import random
from typing import Optional

from src.core.exceptions import InvalidRequestError
from src.core.models import GameStateModel, Move, PlayerId, Rejected, ShipPlacement
from src.core.shared_types import AI_PLAYER_ID, GameKind, GameStatus
from src.db.repository import GameRepository
from src.games import ai, battleship
from src.games.rules import RULES, RulesRegistry, apply_move
from src.services.base import ChangePublisher, StoreWriter

logger = logging.getLogger(__name__)


class GameService(StoreWriter):
    """Move application against the authoritative GameState."""

    def __init__(
        self,
        repository: GameRepository,
        feed: Optional[ChangePublisher] = None,
        rules: RulesRegistry = RULES,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(repository, feed)
        self.rules = rules
        self.rng = rng or random.Random()

    def get_game_state(self, game_id: str) -> GameStateModel:
        """
        Retrieve current game state.
        ----
        Used by the polling loop of the clients as well as by the API.
        """
        return self._fetch_game_state(game_id)

    def get_lobby_game_state(self, lobby_id: str) -> GameStateModel:
        """Most recent game of a lobby (after a rematch that is the new one)."""
        return self._fetch_latest_game_state(lobby_id)

    def make_move(
        self, game_id: str, move: Move, player: PlayerId
    ) -> GameStateModel | Rejected:
        """
        Make a move attempt.
        ----

        Validation and the write form one compare-and-swap cycle, so of two simultaneous moves only the one made by
        the current player at write time is stored; the other is re-validated and comes back as not-your-turn.
        When the computer is to move next, its reply is played straight away.
        """
        outcome = self._mutate_game_state(
            game_id, lambda current: apply_move(current, move, player, self.rules)
        )
        if isinstance(outcome, Rejected):
            logger.info("Game %s: move by %s rejected (%s)", game_id, player, outcome)
            return outcome

        logger.debug("Game %s: %s played %s (version %d)", game_id, player, move, outcome.version)
        return self._play_ai_turns(outcome)

    def submit_fleet(
        self, game_id: str, player: PlayerId, placements: list[ShipPlacement]
    ) -> GameStateModel | Rejected:
        """Battleship setup: lock in a fleet. The game starts once both fleets are in."""
        outcome = self._mutate_game_state(
            game_id, lambda current: self._submit_fleet(current, player, placements)
        )
        if isinstance(outcome, Rejected):
            logger.info("Game %s: fleet of %s rejected (%s)", game_id, player, outcome)
            return outcome
        logger.info("Game %s: %s is ready", game_id, player)
        return outcome

    def random_fleet(self) -> list[ShipPlacement]:
        """Valid random placements, for the 'randomize' button."""
        return battleship.random_fleet(self.rng)

    # --- internal helpers ---
    def _submit_fleet(
        self, state: GameStateModel, player: PlayerId, placements: list[ShipPlacement]
    ) -> GameStateModel | Rejected:
        if state.game_kind != GameKind.BATTLESHIP:
            raise InvalidRequestError(f"Game {state.id} is {state.game_kind}, not battleship.")
        return battleship.submit_fleet(state, player, placements)

    def _play_ai_turns(self, state: GameStateModel) -> GameStateModel:
        """Let the computer answer for as long as it holds the turn."""
        while state.status == GameStatus.PLAYING and state.current_player == AI_PLAYER_ID:
            reply = ai.choose_move(state, self.rng)
            if reply is None:
                logger.warning("Game %s: AI has no move to play", state.id)
                return state

            outcome = self._mutate_game_state(
                state.id, lambda current: apply_move(current, reply, AI_PLAYER_ID, self.rules)
            )
            if isinstance(outcome, Rejected):
                logger.warning("Game %s: AI move %s rejected (%s)", state.id, reply, outcome)
                return state
            state = outcome
        return state
