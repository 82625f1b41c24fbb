"""
Turn Coordinator: lifecycle of a GameState and whose turn it is.

pending (waiting for the second player) -> waiting (pre-play setup, e.g. battleship fleets) -> playing -> finished.
Within `playing` only an accepted move changes `current_player`. `finished` is terminal: a rematch creates a brand-new GameState.
"""

from typing import Optional

from src.core.exceptions import GameStateError
from src.core.models import GameStateModel, PlayerId
from src.core.shared_types import TWO_PLAYER_KINDS, GameKind, GameStatus

ALLOWED_TRANSITIONS: dict[GameStatus, frozenset[GameStatus]] = {
    GameStatus.PENDING: frozenset({GameStatus.WAITING, GameStatus.PLAYING}),
    GameStatus.WAITING: frozenset({GameStatus.PLAYING}),
    GameStatus.PLAYING: frozenset({GameStatus.FINISHED}),
    GameStatus.FINISHED: frozenset(),
}

# Games with a setup phase that must complete before the first move
SETUP_KINDS = frozenset({GameKind.BATTLESHIP})

PRE_PLAY_STATUSES = frozenset({GameStatus.PENDING, GameStatus.WAITING})


def change_status(state: GameStateModel, new_status: GameStatus) -> None:
    if new_status == state.status:
        return
    if new_status not in ALLOWED_TRANSITIONS[state.status]:
        raise GameStateError(
            f"Cannot move game {state.id} from {state.status!r} to {new_status!r}."
        )
    state.status = new_status


def other_player(state: GameStateModel, player: PlayerId) -> PlayerId:
    if player == state.player1:
        if state.player2 is None:
            raise GameStateError(f"Game {state.id} has no second player yet.")
        return state.player2
    if player == state.player2:
        return state.player1
    raise GameStateError(f"{player!r} is not a player in game {state.id}.")


def pass_turn(state: GameStateModel) -> None:
    """Hand the turn to the opponent. Single player games keep their only player."""
    if state.game_kind not in TWO_PLAYER_KINDS:
        return
    state.current_player = other_player(state, state.current_player)


def finish(state: GameStateModel, winner: Optional[PlayerId]) -> None:
    """Terminal: winner is None for a draw (or a lost single player game)."""
    change_status(state, GameStatus.FINISHED)
    state.winner = winner


def setup_complete(state: GameStateModel) -> bool:
    if state.game_kind == GameKind.BATTLESHIP:
        ready = state.extras.get("ready", {})
        return bool(ready.get("player1")) and bool(ready.get("player2"))
    return True


def start_if_ready(state: GameStateModel) -> bool:
    """
    Move a pre-play game forward as far as it can go.
    ----

    * single player games start right away
    * two player games need a second player, and setup games (battleship) also need both players ready
    * player1 always makes the first move

    Returns True if the game is (now) playing.
    """
    if state.status not in PRE_PLAY_STATUSES:
        return state.status == GameStatus.PLAYING

    if state.game_kind not in TWO_PLAYER_KINDS:
        change_status(state, GameStatus.PLAYING)
        return True

    if state.player2 is None:
        return False

    if state.game_kind in SETUP_KINDS and not setup_complete(state):
        change_status(state, GameStatus.WAITING)
        return False

    state.current_player = state.player1
    change_status(state, GameStatus.PLAYING)
    return True
