"""Implementation of (Game)Repository using SQLAlchemy"""

import logging
from collections import Counter
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.core.exceptions import StoreUnavailableError
from src.core.models import (
    GameStateModel,
    InviteCodeModel,
    LeaderboardEntry,
    LobbyModel,
    PlayAgainRequestModel,
    ProfileModel,
)
from src.core.shared_types import GameKind, GameStatus, LobbyStatus
from src.db.schema import (
    DBGameState,
    DBInviteCode,
    DBLobby,
    DBPlayAgainRequest,
    DBProfile,
    utc_now,
)

logger = logging.getLogger(__name__)


class SQLGameRepository:
    """Data stored using SQL / methods implemented using SQLAlchemy"""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    # --- lobbies ---
    def create_lobby(
        self, lobby: LobbyModel, game_state: GameStateModel
    ) -> tuple[LobbyModel, GameStateModel]:
        lobby_db = DBLobby(
            id=lobby.id,
            creator_id=lobby.creator_id,
            game_kind=lobby.game_kind,
            status=lobby.status,
        )
        state_db = self._new_game_state_row(game_state)
        with self._transaction():
            self.db.add(lobby_db)
            self.db.flush()
            self.db.add(state_db)
        self.db.refresh(lobby_db)
        self.db.refresh(state_db)
        return self._lobby_to_model(lobby_db), self._game_state_to_model(state_db)

    def get_lobby(self, lobby_id: str) -> LobbyModel | None:
        lobby_db = self.db.get(DBLobby, lobby_id)
        return self._lobby_to_model(lobby_db) if lobby_db else None

    def update_lobby(self, lobby: LobbyModel) -> LobbyModel | None:
        lobby_db = self.db.get(DBLobby, lobby.id)
        if not lobby_db:
            return None
        with self._transaction():
            lobby_db.status = lobby.status
        self.db.refresh(lobby_db)
        return self._lobby_to_model(lobby_db)

    # --- game states ---
    def get_game_state(self, game_id: str) -> GameStateModel | None:
        state_db = self.db.get(DBGameState, game_id, populate_existing=True)
        return self._game_state_to_model(state_db) if state_db else None

    def get_latest_game_state(self, lobby_id: str) -> GameStateModel | None:
        query = (
            select(DBGameState)
            .where(DBGameState.lobby_id == lobby_id)
            .order_by(DBGameState.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        state_db = self.db.scalar(query)
        return self._game_state_to_model(state_db) if state_db else None

    def update_game_state(
        self, game_state: GameStateModel, expected_version: int
    ) -> GameStateModel | None:
        statement = (
            update(DBGameState)
            .where(
                DBGameState.id == game_state.id,
                DBGameState.version == expected_version,
            )
            .values(
                board=game_state.board,
                player1=game_state.player1,
                player2=game_state.player2,
                current_player=game_state.current_player,
                status=game_state.status,
                winner=game_state.winner,
                extras=game_state.extras,
                version=expected_version + 1,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        with self._transaction():
            result = self.db.execute(statement)
        if result.rowcount != 1:
            logger.debug(
                "Stale write on game %s (expected version %d)",
                game_state.id,
                expected_version,
            )
            return None
        return self.get_game_state(game_state.id)

    # --- rematch ---
    def get_play_again_request(
        self, original_game_id: str
    ) -> PlayAgainRequestModel | None:
        request_db = self.db.get(
            DBPlayAgainRequest, original_game_id, populate_existing=True
        )
        return self._play_again_to_model(request_db) if request_db else None

    def save_play_again_request(
        self,
        request: PlayAgainRequestModel,
        expected_version: Optional[int],
        new_game: Optional[GameStateModel] = None,
    ) -> PlayAgainRequestModel | None:
        try:
            with self._transaction():
                if expected_version is None:
                    if self.db.get(DBPlayAgainRequest, request.original_game_id) is not None:
                        raise _StaleWrite()
                    self.db.add(
                        DBPlayAgainRequest(
                            original_game_id=request.original_game_id,
                            lobby_id=request.lobby_id,
                            requested_by=list(request.requested_by),
                            new_game_id=request.new_game_id,
                            version=0,
                        )
                    )
                    self.db.flush()
                else:
                    result = self.db.execute(
                        update(DBPlayAgainRequest)
                        .where(
                            DBPlayAgainRequest.original_game_id
                            == request.original_game_id,
                            DBPlayAgainRequest.version == expected_version,
                            DBPlayAgainRequest.new_game_id.is_(None),
                        )
                        .values(
                            requested_by=list(request.requested_by),
                            new_game_id=request.new_game_id,
                            version=expected_version + 1,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        raise _StaleWrite()
                if new_game is not None:
                    self.db.add(self._new_game_state_row(new_game))
        except (_StaleWrite, IntegrityError):
            logger.debug(
                "Concurrent play-again update for game %s", request.original_game_id
            )
            return None
        return self.get_play_again_request(request.original_game_id)

    # --- invite codes ---
    def create_invite_code(self, invite: InviteCodeModel) -> InviteCodeModel:
        invite_db = DBInviteCode(
            code=invite.code,
            lobby_id=invite.lobby_id,
            expires_at=invite.expires_at,
            is_active=invite.is_active,
            used_by=list(invite.used_by),
        )
        with self._transaction():
            self.db.add(invite_db)
        self.db.refresh(invite_db)
        return self._invite_to_model(invite_db)

    def get_invite_code(self, code: str) -> InviteCodeModel | None:
        invite_db = self.db.get(DBInviteCode, code)
        return self._invite_to_model(invite_db) if invite_db else None

    def update_invite_code(self, invite: InviteCodeModel) -> InviteCodeModel | None:
        invite_db = self.db.get(DBInviteCode, invite.code)
        if not invite_db:
            return None
        with self._transaction():
            invite_db.is_active = invite.is_active
            invite_db.used_by = list(invite.used_by)
        self.db.refresh(invite_db)
        return self._invite_to_model(invite_db)

    # --- profiles / leaderboard ---
    def get_profiles(self, player_ids: list[str]) -> list[ProfileModel]:
        query = select(DBProfile).where(DBProfile.id.in_(player_ids))
        return [ProfileModel(p.id, p.username) for p in self.db.scalars(query)]

    def save_profile(self, profile: ProfileModel) -> ProfileModel:
        with self._transaction():
            self.db.merge(DBProfile(id=profile.id, username=profile.username))
        return profile

    def leaderboard(self, since: Optional[datetime]) -> list[LeaderboardEntry]:
        query = select(
            DBGameState.player1, DBGameState.player2, DBGameState.winner
        ).where(DBGameState.status == GameStatus.FINISHED)
        if since is not None:
            query = query.where(DBGameState.created_at >= since)

        played: Counter[str] = Counter()
        wins: Counter[str] = Counter()
        for player1, player2, winner in self.db.execute(query):
            for player in (player1, player2):
                if player:
                    played[player] += 1
            if winner:
                wins[winner] += 1

        return [
            LeaderboardEntry(
                id=profile.id,
                username=profile.username,
                wins=wins[profile.id],
                games_played=played[profile.id],
                win_percentage=(
                    round(100 * wins[profile.id] / played[profile.id], 1)
                    if played[profile.id]
                    else 0.0
                ),
            )
            for profile in self.db.scalars(select(DBProfile))
        ]

    # --- internal helpers ---
    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Commit on success, roll back on any failure. Store errors surface as StoreUnavailableError."""
        try:
            yield
            self.db.commit()
        except (_StaleWrite, IntegrityError):
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Database operation failed")
            raise StoreUnavailableError("Database operation failed.") from exc

    def _new_game_state_row(self, game_state: GameStateModel) -> DBGameState:
        return DBGameState(
            id=game_state.id,
            lobby_id=game_state.lobby_id,
            game_kind=game_state.game_kind,
            board=game_state.board,
            player1=game_state.player1,
            player2=game_state.player2,
            current_player=game_state.current_player,
            status=game_state.status,
            winner=game_state.winner,
            extras=game_state.extras,
            version=game_state.version,
        )

    def _lobby_to_model(self, lobby_db: DBLobby) -> LobbyModel:
        return LobbyModel(
            id=lobby_db.id,
            creator_id=lobby_db.creator_id,
            game_kind=GameKind(lobby_db.game_kind),
            status=LobbyStatus(lobby_db.status),
            created_at=lobby_db.created_at,
        )

    def _game_state_to_model(self, state_db: DBGameState) -> GameStateModel:
        """Convert SQLAlchemy model to data transfer model."""
        return GameStateModel(
            id=state_db.id,
            lobby_id=state_db.lobby_id,
            game_kind=GameKind(state_db.game_kind),
            board=state_db.board,
            player1=state_db.player1,
            player2=state_db.player2,
            current_player=state_db.current_player,
            status=GameStatus(state_db.status),
            winner=state_db.winner,
            extras=state_db.extras,
            version=state_db.version,
            created_at=state_db.created_at,
        )

    def _play_again_to_model(
        self, request_db: DBPlayAgainRequest
    ) -> PlayAgainRequestModel:
        return PlayAgainRequestModel(
            original_game_id=request_db.original_game_id,
            lobby_id=request_db.lobby_id,
            requested_by=list(request_db.requested_by),
            new_game_id=request_db.new_game_id,
            version=request_db.version,
        )

    def _invite_to_model(self, invite_db: DBInviteCode) -> InviteCodeModel:
        return InviteCodeModel(
            code=invite_db.code,
            lobby_id=invite_db.lobby_id,
            expires_at=invite_db.expires_at,
            is_active=invite_db.is_active,
            used_by=list(invite_db.used_by),
            created_at=invite_db.created_at,
        )


class _StaleWrite(Exception):
    """Internal signal: a compare-and-swap matched no row, roll the transaction back."""
