"""
Move Validator / Resolver entrypoint.

Every game kind implements the same `GameRules` protocol; `apply_move` runs the preconditions shared by all games
(in order: game not finished, game started, acting player's turn) and then hands a COPY of the state to the rules of
that kind. The input state is never mutated, so a rejection leaves the caller's board exactly as it was.
"""

import random
from copy import deepcopy
from typing import Any, Optional, Protocol
from uuid import uuid4

from src.core.config import Settings
from src.core.models import GameStateModel, Grid, Move, PlayerId, Rejected
from src.core.shared_types import GameKind, GameStatus, RejectionReason
from src.games import battleship, turns
from src.games.battleship import BattleshipRules
from src.games.connect_four import ConnectFourRules
from src.games.minesweeper import MinesweeperRules
from src.games.tic_tac_toe import TicTacToeRules
from src.games.wordle import WordleRules, load_word_list


class GameRules(Protocol):
    """What each game variant provides."""

    kind: GameKind

    def new_board(
        self, settings: Settings, rng: random.Random
    ) -> tuple[Grid, dict[str, Any]]:
        """Fresh board + extension fields for a new game."""
        ...

    def resolve(
        self, state: GameStateModel, move: Move, player: PlayerId
    ) -> Optional[Rejected]:
        """Mutate `state` (already a private copy) with an accepted move, or explain why not."""
        ...


RulesRegistry = dict[GameKind, GameRules]

RULES: RulesRegistry = {
    GameKind.TIC_TAC_TOE: TicTacToeRules(),
    GameKind.CONNECT_FOUR: ConnectFourRules(),
    GameKind.BATTLESHIP: BattleshipRules(),
    GameKind.MINESWEEPER: MinesweeperRules(),
    GameKind.WORDLE: WordleRules(),
}


def build_rules(settings: Settings) -> RulesRegistry:
    """Registry with the configured word list plugged into Wordle."""
    registry = dict(RULES)
    if settings.word_list_path:
        registry[GameKind.WORDLE] = WordleRules(load_word_list(settings.word_list_path))
    return registry


def new_game_state(
    kind: GameKind,
    lobby_id: str,
    player1: PlayerId,
    settings: Settings,
    player2: Optional[PlayerId] = None,
    rng: Optional[random.Random] = None,
    rules: RulesRegistry = RULES,
) -> GameStateModel:
    """A brand-new GameState. player1 moves first; status is as far along as the players allow."""
    board, extras = rules[kind].new_board(settings, rng or random.Random())
    state = GameStateModel(
        id=str(uuid4()),
        lobby_id=lobby_id,
        game_kind=kind,
        board=board,
        player1=player1,
        player2=player2,
        current_player=player1,
        status=GameStatus.PENDING,
        extras=extras,
    )
    turns.start_if_ready(state)
    return state


def check_preconditions(state: GameStateModel, player: PlayerId) -> Optional[Rejected]:
    if state.status == GameStatus.FINISHED:
        return Rejected(RejectionReason.GAME_OVER, "The game is over.")
    if state.status != GameStatus.PLAYING:
        return Rejected(RejectionReason.NOT_STARTED, "The game has not started yet.")
    if player != state.current_player:
        return Rejected(
            RejectionReason.NOT_YOUR_TURN,
            f"Waiting for {state.current_player} to make a move first.",
        )
    return None


def apply_move(
    state: GameStateModel,
    move: Move,
    player: PlayerId,
    rules: RulesRegistry = RULES,
) -> GameStateModel | Rejected:
    """applyMove(gameState, move, actingPlayer) -> new GameState | Rejected"""
    rejected = check_preconditions(state, player)
    if rejected:
        return rejected

    new_state = deepcopy(state)
    rejected = rules[state.game_kind].resolve(new_state, move, player)
    if rejected:
        return rejected
    return new_state


# Extras a player must not see while the game is running
SECRET_EXTRAS: dict[GameKind, tuple[str, ...]] = {
    GameKind.MINESWEEPER: ("mines", "seed"),
    GameKind.WORDLE: ("answer",),
}


def view_for(state: GameStateModel, viewer: Optional[PlayerId]) -> GameStateModel:
    """What `viewer` may see of a game: opponent ships and secrets are hidden until the game is finished."""
    if state.game_kind == GameKind.BATTLESHIP and state.status != GameStatus.FINISHED:
        return battleship.mask_for_viewer(state, viewer)
    secrets = SECRET_EXTRAS.get(state.game_kind, ())
    if state.status == GameStatus.FINISHED or not secrets:
        return state
    view = deepcopy(state)
    for key in secrets:
        view.extras.pop(key, None)
    return view
