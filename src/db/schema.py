"""Database tables / schema"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class DBProfile(Base):
    __tablename__ = "profiles"
    id: Mapped[str] = mapped_column(primary_key=True)
    username: Mapped[str]
    created_at: Mapped[datetime] = mapped_column(default=utc_now)


class DBLobby(Base):
    __tablename__ = "lobbies"
    id: Mapped[str] = mapped_column(primary_key=True)
    creator_id: Mapped[str]
    game_kind: Mapped[str]
    status: Mapped[str]
    created_at: Mapped[datetime] = mapped_column(default=utc_now)


class DBGameState(Base):
    __tablename__ = "game_states"
    id: Mapped[str] = mapped_column(primary_key=True)
    lobby_id: Mapped[str] = mapped_column(ForeignKey("lobbies.id"), index=True)
    game_kind: Mapped[str]
    board: Mapped[list[list[Any]]] = mapped_column(JSON)
    player1: Mapped[str]
    player2: Mapped[Optional[str]]
    current_player: Mapped[str]
    status: Mapped[str]
    winner: Mapped[Optional[str]]
    extras: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    version: Mapped[int] = mapped_column(default=0)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)


class DBPlayAgainRequest(Base):
    __tablename__ = "play_again_requests"
    original_game_id: Mapped[str] = mapped_column(
        ForeignKey("game_states.id"), primary_key=True
    )
    lobby_id: Mapped[str] = mapped_column(ForeignKey("lobbies.id"))
    requested_by: Mapped[list[str]] = mapped_column(JSON, default=list)
    new_game_id: Mapped[Optional[str]]
    version: Mapped[int] = mapped_column(default=0)


class DBInviteCode(Base):
    __tablename__ = "invite_codes"
    code: Mapped[str] = mapped_column(primary_key=True)
    lobby_id: Mapped[str] = mapped_column(ForeignKey("lobbies.id"))
    expires_at: Mapped[datetime]
    is_active: Mapped[bool] = mapped_column(default=True)
    used_by: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
