"""Unit tests for the shared entrypoint in src/games/rules.py"""

from copy import deepcopy
from pathlib import Path
from typing import Callable

from src.core.config import Settings
from src.core.models import GameStateModel, Move, Rejected
from src.core.shared_types import GameKind, GameStatus, MoveAction, RejectionReason
from src.games import turns
from src.games.battleship import EMPTY, SHIP, ocean, submit_fleet
from src.games.rules import RULES, apply_move, build_rules, view_for
from src.games.wordle import WordleRules

NewGame = Callable[..., GameStateModel]


def test_every_kind_has_rules() -> None:
    assert set(RULES) == set(GameKind)
    for kind, rules in RULES.items():
        assert rules.kind == kind


def test_apply_move_never_mutates_its_input(new_game: NewGame) -> None:
    state = new_game(GameKind.CONNECT_FOUR)
    before = deepcopy(state)
    outcome = apply_move(state, Move(MoveAction.DROP, col=3), "alice")
    assert isinstance(outcome, GameStateModel)
    assert outcome.board != state.board
    assert state == before


def test_not_your_turn(new_game: NewGame) -> None:
    state = new_game(GameKind.TIC_TAC_TOE)
    outcome = apply_move(state, Move(MoveAction.MARK, row=0, col=0), "bob")
    assert isinstance(outcome, Rejected)
    assert outcome.reason == RejectionReason.NOT_YOUR_TURN


def test_game_over_is_checked_before_the_turn(new_game: NewGame) -> None:
    state = new_game(GameKind.TIC_TAC_TOE)
    turns.finish(state, "alice")
    outcome = apply_move(state, Move(MoveAction.MARK, row=0, col=0), "bob")
    assert isinstance(outcome, Rejected)
    assert outcome.reason == RejectionReason.GAME_OVER


def test_pending_game_has_not_started(new_game: NewGame) -> None:
    state = new_game(GameKind.TIC_TAC_TOE, player2=None)
    outcome = apply_move(state, Move(MoveAction.MARK, row=0, col=0), "alice")
    assert isinstance(outcome, Rejected)
    assert outcome.reason == RejectionReason.NOT_STARTED


def test_build_rules_loads_the_configured_word_list(tmp_path: Path) -> None:
    path = tmp_path / "words.txt"
    path.write_text("crane\n", encoding="utf-8")
    registry = build_rules(Settings(word_list_path=str(path)))
    wordle = registry[GameKind.WORDLE]
    assert isinstance(wordle, WordleRules)
    assert wordle.words == frozenset({"crane"})
    assert registry[GameKind.TIC_TAC_TOE] is RULES[GameKind.TIC_TAC_TOE]

    assert build_rules(Settings()) == RULES


# -- VIEWS --
def test_wordle_answer_is_hidden_until_the_end(new_game: NewGame) -> None:
    state = new_game(GameKind.WORDLE, player2=None)
    view = view_for(state, "alice")
    assert "answer" not in view.extras
    assert "answer" in state.extras

    turns.finish(state, None)
    assert view_for(state, "alice").extras["answer"] == state.extras["answer"]


def test_minesweeper_mines_are_hidden_while_playing(new_game: NewGame) -> None:
    state = new_game(GameKind.MINESWEEPER, player2=None)
    state = apply_move(state, Move(MoveAction.REVEAL, row=4, col=4), "alice")
    assert isinstance(state, GameStateModel)
    view = view_for(state, "alice")
    assert "mines" not in view.extras and "seed" not in view.extras
    assert view.board == state.board


def test_games_without_secrets_are_returned_as_is(new_game: NewGame) -> None:
    state = new_game(GameKind.TIC_TAC_TOE)
    assert view_for(state, None) is state


def test_battleship_fleets_are_masked_for_the_opponent(
    new_game: NewGame, spread_fleet: list
) -> None:
    state = new_game(GameKind.BATTLESHIP)
    state = submit_fleet(state, "alice", spread_fleet)
    assert isinstance(state, GameStateModel)

    assert view_for(state, "alice").board[0][0] == SHIP
    assert view_for(state, "bob").board[0][0] == EMPTY
    assert view_for(state, None).board[0][0] == EMPTY

    state.status = GameStatus.FINISHED
    assert ocean(view_for(state, "bob"), "player1")[0][0] == SHIP
