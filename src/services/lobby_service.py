"""Lobby / Matchmaking Controller: lobbies, joining, the AI opponent and invite codes."""

import logging
import random
import secrets
from copy import deepcopy
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

from src.core.config import Settings, get_settings
from src.core.exceptions import InvalidRequestError, NotFoundError
from src.core.models import (
    GameStateModel,
    InviteCodeModel,
    LobbyModel,
    PlayerId,
    Rejected,
)
from src.core.shared_types import (
    TWO_PLAYER_KINDS,
    ChangeEvent,
    GameKind,
    GameStatus,
    LobbyStatus,
    RejectionReason,
    Table,
)
from src.db.repository import GameRepository
from src.games import ai, turns
from src.games.rules import RULES, RulesRegistry, new_game_state
from src.services.base import ChangePublisher, StoreWriter

logger = logging.getLogger(__name__)

GAME_TITLES: dict[GameKind, str] = {
    GameKind.TIC_TAC_TOE: "Tic-Tac-Toe",
    GameKind.CONNECT_FOUR: "Connect Four",
    GameKind.BATTLESHIP: "Battleship",
    GameKind.MINESWEEPER: "Minesweeper",
    GameKind.WORDLE: "Wordle",
}


@dataclass(frozen=True)
class InviteLink:
    code: str
    full_url: str
    lobby_url: str


@dataclass(frozen=True)
class RedeemedInvite:
    lobby_id: str
    lobby_name: str
    lobby_url: str


class LobbyService(StoreWriter):
    """Orchestration of lobbies and matchmaking."""

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

    # --- lobbies ---
    def create_lobby(
        self, creator_id: PlayerId, game_kind: GameKind
    ) -> tuple[LobbyModel, GameStateModel]:
        """Lobby + its first GameState, stored together. Single player games are playing right away."""
        lobby_id = str(uuid4())
        state = new_game_state(
            game_kind,
            lobby_id,
            creator_id,
            self.settings,
            rng=self.rng,
            rules=self.rules,
        )
        lobby = LobbyModel(
            id=lobby_id,
            creator_id=creator_id,
            game_kind=game_kind,
            status=(
                LobbyStatus.PLAYING
                if state.status == GameStatus.PLAYING
                else LobbyStatus.WAITING
            ),
        )

        lobby, state = self.repo.create_lobby(lobby, state)
        self._publish(Table.LOBBIES, ChangeEvent.INSERT, lobby)
        self._publish(Table.GAME_STATES, ChangeEvent.INSERT, state)
        logger.info("Lobby %s (%s) created by %s", lobby.id, game_kind, creator_id)
        return lobby, state

    def get_lobby(self, lobby_id: str) -> LobbyModel:
        return self._fetch_lobby(lobby_id)

    def join_lobby(
        self, lobby_id: str, joiner_id: PlayerId
    ) -> GameStateModel | Rejected:
        """
        Take the player2 seat of the lobby's current game.
        ----

        Joining again as the player already seated there is a no-op success.
        """
        lobby = self._fetch_lobby(lobby_id)
        if lobby.game_kind not in TWO_PLAYER_KINDS:
            return self._rejected(
                lobby_id,
                RejectionReason.LOBBY_FULL,
                f"{GAME_TITLES[lobby.game_kind]} is a single player game.",
            )
        game = self._fetch_latest_game_state(lobby_id)

        def seat(current: GameStateModel) -> GameStateModel | Rejected:
            if current.player2 == joiner_id:
                return current
            if current.player1 == joiner_id:
                return Rejected(RejectionReason.SELF_JOIN, "You cannot join your own lobby.")
            if current.player2 is not None:
                return Rejected(RejectionReason.LOBBY_FULL, "This lobby already has two players.")
            joined = deepcopy(current)
            joined.player2 = joiner_id
            turns.start_if_ready(joined)
            return joined

        outcome = self._mutate_game_state(game.id, seat)
        if isinstance(outcome, Rejected):
            return self._rejected(lobby_id, outcome.reason, outcome.message)
        logger.info("%s joined lobby %s", joiner_id, lobby_id)
        return outcome

    def setup_ai_opponent(
        self, lobby_id: str, requester_id: PlayerId
    ) -> GameStateModel | Rejected:
        """Seat the computer as player2. Only the creator may ask, and only while the lobby is still waiting."""
        lobby = self._fetch_lobby(lobby_id)
        if requester_id != lobby.creator_id:
            return self._rejected(
                lobby_id,
                RejectionReason.NOT_CREATOR,
                "Only the lobby creator can add an AI opponent.",
            )
        if lobby.game_kind not in TWO_PLAYER_KINDS:
            return self._rejected(
                lobby_id,
                RejectionReason.LOBBY_FULL,
                f"{GAME_TITLES[lobby.game_kind]} is a single player game.",
            )
        if lobby.status != LobbyStatus.WAITING:
            return self._rejected(
                lobby_id, RejectionReason.LOBBY_NOT_WAITING, "The lobby is no longer waiting."
            )
        game = self._fetch_latest_game_state(lobby_id)

        def seat_ai(current: GameStateModel) -> GameStateModel | Rejected:
            if current.player2 is not None:
                return Rejected(RejectionReason.LOBBY_FULL, "This lobby already has two players.")
            return ai.seat_ai_opponent(current, self.rng)

        outcome = self._mutate_game_state(game.id, seat_ai)
        if isinstance(outcome, Rejected):
            return self._rejected(lobby_id, outcome.reason, outcome.message)
        logger.info("AI opponent seated in lobby %s", lobby_id)
        return outcome

    # --- invite codes ---
    def generate_invite_code(self, lobby_id: str) -> InviteLink:
        """A short code for the lobby, valid for `invite_ttl_hours`. Every call makes a new code."""
        lobby = self._fetch_lobby(lobby_id)
        invite = self.repo.create_invite_code(
            InviteCodeModel(
                code=secrets.token_hex(self.settings.invite_code_bytes).upper(),
                lobby_id=lobby.id,
                expires_at=datetime.now(timezone.utc)
                + timedelta(hours=self.settings.invite_ttl_hours),
            )
        )
        logger.info("Invite code %s generated for lobby %s", invite.code, lobby.id)
        return InviteLink(
            code=invite.code,
            full_url=f"{self.settings.base_url}/join/{invite.code}",
            lobby_url=self._lobby_url(lobby.id),
        )

    def redeem_invite_code(
        self, code: str, joiner_id: PlayerId
    ) -> RedeemedInvite | Rejected:
        """
        Join a lobby through an invite code.
        ----

        A code is checked in this order: well formed (else InvalidRequestError), known (else NotFoundError), active,
        not expired (an expired code is deactivated on the spot), not already redeemed by this joiner. The join itself goes through `join_lobby`.
        """
        code = code.strip().upper()
        if len(code) != 2 * self.settings.invite_code_bytes:
            raise InvalidRequestError(f"{code!r} is not an invitation code.")
        invite = self.repo.get_invite_code(code)
        if invite is None:
            raise NotFoundError(f"Invite code {code!r} not found.")

        if not invite.is_active:
            return self._rejected(
                invite.lobby_id,
                RejectionReason.INVITE_INACTIVE,
                "Invitation code is no longer active.",
            )
        if _as_utc(invite.expires_at) < datetime.now(timezone.utc):
            invite.is_active = False
            self.repo.update_invite_code(invite)
            return self._rejected(
                invite.lobby_id, RejectionReason.INVITE_EXPIRED, "Invitation code has expired."
            )
        if joiner_id in invite.used_by:
            return self._rejected(
                invite.lobby_id,
                RejectionReason.INVITE_USED,
                "You already used this invitation code.",
            )

        lobby = self._fetch_lobby(invite.lobby_id)
        joined = self.join_lobby(lobby.id, joiner_id)
        if isinstance(joined, Rejected):
            return joined

        invite.used_by.append(joiner_id)
        self.repo.update_invite_code(invite)
        return RedeemedInvite(
            lobby_id=lobby.id,
            lobby_name=f"{GAME_TITLES[lobby.game_kind]} Lobby",
            lobby_url=self._lobby_url(lobby.id),
        )

    # --- internal helpers ---
    def _lobby_url(self, lobby_id: str) -> str:
        return f"{self.settings.base_url}/lobby/{lobby_id}"

    def _rejected(
        self, lobby_id: str, reason: RejectionReason, message: str
    ) -> Rejected:
        logger.info("Lobby %s: rejected (%s) %s", lobby_id, reason, message)
        return Rejected(reason, message)


def _as_utc(moment: datetime) -> datetime:
    """SQLite hands back naive datetimes; those were stored as UTC."""
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)
