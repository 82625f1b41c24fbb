"""
Type definitions used across layers
"""

from enum import StrEnum


class GameKind(StrEnum):
    TIC_TAC_TOE = "tic_tac_toe"
    CONNECT_FOUR = "connect_four"
    BATTLESHIP = "battleship"
    MINESWEEPER = "minesweeper"
    WORDLE = "wordle"


TWO_PLAYER_KINDS = frozenset(
    {GameKind.TIC_TAC_TOE, GameKind.CONNECT_FOUR, GameKind.BATTLESHIP}
)


class LobbyStatus(StrEnum):
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class GameStatus(StrEnum):
    PENDING = "pending"
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class MoveAction(StrEnum):
    MARK = "mark"  # tic-tac-toe
    DROP = "drop"  # connect four
    FLIP_GRAVITY = "flip_gravity"  # connect four, single-use per player
    FIRE = "fire"  # battleship
    REVEAL = "reveal"  # minesweeper
    FLAG = "flag"  # minesweeper
    GUESS = "guess"  # wordle


class RejectionReason(StrEnum):
    # --- moves
    NOT_YOUR_TURN = "not-your-turn"
    GAME_OVER = "game-over"
    CELL_OCCUPIED = "cell-occupied"
    OUT_OF_BOUNDS = "out-of-bounds"
    COLUMN_FULL = "column-full"
    NOT_STARTED = "not-started"
    INVALID_MOVE = "invalid-move"
    ABILITY_USED = "ability-used"
    INVALID_PLACEMENT = "invalid-placement"
    INVALID_WORD = "invalid-word"
    # --- lobby / invites
    LOBBY_FULL = "lobby-full"
    SELF_JOIN = "self-join"
    NOT_CREATOR = "not-creator"
    LOBBY_NOT_WAITING = "lobby-not-waiting"
    INVITE_EXPIRED = "invite-expired"
    INVITE_INACTIVE = "invite-inactive"
    INVITE_USED = "invite-used"
    # --- rematch
    NOT_A_PLAYER = "not-a-player"
    GAME_NOT_FINISHED = "game-not-finished"


class ChangeEvent(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class Table(StrEnum):
    """Change feed channels (one per stored table)."""

    LOBBIES = "lobbies"
    GAME_STATES = "game_states"
    PLAY_AGAIN_REQUESTS = "play_again_requests"


# Stand-in identifier for the computer opponent. Never a real user id.
AI_PLAYER_ID = "ai-opponent"
