"""HTTP routes. Thin glue: parse the request, call a service, turn its answer into a response."""

import asyncio
import logging
from typing import Annotated, Optional, cast

from fastapi import APIRouter, Depends, Header, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from src.api.models import (
    ChangeEventResponse,
    CreateLobbyRequest,
    CreateLobbyResponse,
    FleetRequest,
    GameStateResponse,
    InviteRequest,
    InviteResponse,
    JoinCodeRequest,
    JoinCodeResponse,
    LeaderboardEntryResponse,
    LobbyResponse,
    MoveRequest,
    PlayAgainResponse,
    RejectionResponse,
    RematchRequest,
    WordleValidateRequest,
    WordleValidateResponse,
)
from src.core.config import Settings, get_settings
from src.core.exceptions import NotFoundError
from src.core.models import GameStateModel, PlayerId, Rejected
from src.core.shared_types import GameKind, Table
from src.db.database import get_db
from src.db.repository import GameRepository
from src.db.sql_repository import SQLGameRepository
from src.games.rules import RulesRegistry, view_for
from src.games.wordle import WordleRules
from src.services.game_service import GameService
from src.services.leaderboard_service import LeaderboardCache, LeaderboardService
from src.services.lobby_service import LobbyService
from src.services.rematch_service import RematchService
from src.sync.feed import ChangeFeed, ChangeMessage

logger = logging.getLogger(__name__)

router = APIRouter()


# --- dependencies ---
def get_repository(db: Session = Depends(get_db)) -> GameRepository:
    return SQLGameRepository(db)


def get_feed(request: Request) -> ChangeFeed:
    return request.app.state.feed


def get_rules(request: Request) -> RulesRegistry:
    return request.app.state.rules


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_leaderboard_cache(request: Request) -> LeaderboardCache:
    return request.app.state.leaderboard_cache


def current_user(x_user_id: Annotated[Optional[str], Header()] = None) -> PlayerId:
    """Identity comes from the external provider as an opaque id."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Sign in to play.")
    return x_user_id


RepositoryDep = Annotated[GameRepository, Depends(get_repository)]
FeedDep = Annotated[ChangeFeed, Depends(get_feed)]
RulesDep = Annotated[RulesRegistry, Depends(get_rules)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
UserDep = Annotated[PlayerId, Depends(current_user)]


def rejection(rejected: Rejected) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content=RejectionResponse(reason=rejected.reason, message=rejected.message).model_dump(
            mode="json"
        ),
    )


def game_response(state: GameStateModel, viewer: Optional[PlayerId]) -> GameStateResponse:
    return GameStateResponse.model_validate(view_for(state, viewer))


# --- lobbies ---
@router.post("/lobbies", response_model=CreateLobbyResponse, status_code=201)
def create_lobby(
    request: CreateLobbyRequest,
    user: UserDep,
    repo: RepositoryDep,
    feed: FeedDep,
    rules: RulesDep,
    settings: SettingsDep,
) -> CreateLobbyResponse:
    service = LobbyService(repo, settings, feed, rules)
    lobby, game = service.create_lobby(user, request.game_kind)
    return CreateLobbyResponse(
        lobby=LobbyResponse.model_validate(lobby), game=game_response(game, user)
    )


@router.get("/lobbies/{lobby_id}", response_model=LobbyResponse)
def get_lobby(lobby_id: str, repo: RepositoryDep, settings: SettingsDep) -> LobbyResponse:
    return LobbyResponse.model_validate(LobbyService(repo, settings).get_lobby(lobby_id))


@router.post("/lobbies/{lobby_id}/join", response_model=GameStateResponse)
def join_lobby(
    lobby_id: str,
    user: UserDep,
    repo: RepositoryDep,
    feed: FeedDep,
    rules: RulesDep,
    settings: SettingsDep,
):
    outcome = LobbyService(repo, settings, feed, rules).join_lobby(lobby_id, user)
    if isinstance(outcome, Rejected):
        return rejection(outcome)
    return game_response(outcome, user)


@router.post("/lobbies/{lobby_id}/ai", response_model=GameStateResponse)
def setup_ai_opponent(
    lobby_id: str,
    user: UserDep,
    repo: RepositoryDep,
    feed: FeedDep,
    rules: RulesDep,
    settings: SettingsDep,
):
    outcome = LobbyService(repo, settings, feed, rules).setup_ai_opponent(lobby_id, user)
    if isinstance(outcome, Rejected):
        return rejection(outcome)
    return game_response(outcome, user)


@router.get("/lobbies/{lobby_id}/game", response_model=GameStateResponse)
def get_lobby_game(
    lobby_id: str,
    repo: RepositoryDep,
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> GameStateResponse:
    return game_response(GameService(repo).get_lobby_game_state(lobby_id), x_user_id)


# --- games ---
@router.get("/games/{game_id}", response_model=GameStateResponse)
def get_game(
    game_id: str,
    repo: RepositoryDep,
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> GameStateResponse:
    return game_response(GameService(repo).get_game_state(game_id), x_user_id)


@router.post("/games/{game_id}/moves", response_model=GameStateResponse)
def make_move(
    game_id: str,
    request: MoveRequest,
    user: UserDep,
    repo: RepositoryDep,
    feed: FeedDep,
    rules: RulesDep,
):
    outcome = GameService(repo, feed, rules).make_move(game_id, request.to_move(), user)
    if isinstance(outcome, Rejected):
        return rejection(outcome)
    return game_response(outcome, user)


@router.post("/games/{game_id}/fleet", response_model=GameStateResponse)
def submit_fleet(
    game_id: str,
    request: FleetRequest,
    user: UserDep,
    repo: RepositoryDep,
    feed: FeedDep,
    rules: RulesDep,
):
    service = GameService(repo, feed, rules)
    placements = service.random_fleet() if request.randomize else request.to_placements()
    outcome = service.submit_fleet(game_id, user, placements)
    if isinstance(outcome, Rejected):
        return rejection(outcome)
    return game_response(outcome, user)


# --- rematch ---
@router.post("/games/{game_id}/rematch", response_model=PlayAgainResponse)
def request_rematch(
    game_id: str,
    request: RematchRequest,
    user: UserDep,
    repo: RepositoryDep,
    feed: FeedDep,
    rules: RulesDep,
    settings: SettingsDep,
):
    service = RematchService(repo, settings, feed, rules)
    outcome = service.request_rematch(game_id, request.lobby_id, user)
    if isinstance(outcome, Rejected):
        return rejection(outcome)
    return PlayAgainResponse.model_validate(outcome)


@router.get("/games/{game_id}/rematch", response_model=PlayAgainResponse)
def get_rematch(game_id: str, repo: RepositoryDep, settings: SettingsDep) -> PlayAgainResponse:
    request = RematchService(repo, settings).get_play_again_request(game_id)
    return PlayAgainResponse.model_validate(request)


# --- leaderboard ---
@router.get("/leaderboard")
def get_leaderboard(
    repo: RepositoryDep,
    settings: SettingsDep,
    cache: Annotated[LeaderboardCache, Depends(get_leaderboard_cache)],
    timeframe: str = "all",
    sort: str = "wins",
    user_id: Optional[str] = None,
) -> list[LeaderboardEntryResponse] | LeaderboardEntryResponse:
    service = LeaderboardService(repo, cache, settings)
    if user_id:
        return LeaderboardEntryResponse.model_validate(
            service.player_rank(user_id, timeframe, sort)
        )
    return [
        LeaderboardEntryResponse.model_validate(entry)
        for entry in service.get_leaderboard(timeframe, sort)
    ]


# --- invite codes / word check ---
@router.post("/api/invite", response_model=InviteResponse)
def create_invite(
    request: InviteRequest, repo: RepositoryDep, feed: FeedDep, settings: SettingsDep
) -> InviteResponse:
    link = LobbyService(repo, settings, feed).generate_invite_code(request.lobby_id)
    return InviteResponse(code=link.code, full_url=link.full_url, lobby_url=link.lobby_url)


@router.post("/api/join-code", response_model=JoinCodeResponse)
def join_with_code(
    request: JoinCodeRequest,
    user: UserDep,
    repo: RepositoryDep,
    feed: FeedDep,
    rules: RulesDep,
    settings: SettingsDep,
):
    outcome = LobbyService(repo, settings, feed, rules).redeem_invite_code(request.code, user)
    if isinstance(outcome, Rejected):
        return rejection(outcome)
    return JoinCodeResponse(
        lobby_id=outcome.lobby_id,
        lobby_name=outcome.lobby_name,
        lobby_url=outcome.lobby_url,
    )


@router.post("/api/wordle-validate", response_model=WordleValidateResponse)
def wordle_validate(request: WordleValidateRequest, rules: RulesDep) -> WordleValidateResponse:
    wordle = cast(WordleRules, rules[GameKind.WORDLE])
    return WordleValidateResponse(valid=wordle.is_valid_word(request.word.strip()))


# --- realtime ---
@router.websocket("/ws/games/{game_id}")
async def game_updates(
    websocket: WebSocket,
    game_id: str,
    repo: RepositoryDep,
    user_id: Optional[str] = None,
) -> None:
    """
    Push channel for one game.
    ----

    Sends the current state on connect, then every stored change of the game, each as the viewer may see it.
    """
    feed: ChangeFeed = websocket.app.state.feed
    try:
        state = GameService(repo).get_game_state(game_id)
    except NotFoundError:
        await websocket.close(code=1008)
        return
    await websocket.accept()

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[ChangeMessage] = asyncio.Queue()
    subscription = feed.subscribe(
        Table.GAME_STATES,
        {"id": game_id},
        lambda message: loop.call_soon_threadsafe(queue.put_nowait, message),
    )

    async def forward() -> None:
        await websocket.send_json(_change_message("SNAPSHOT", state, user_id))
        while True:
            message = await queue.get()
            await websocket.send_json(_change_message(message.event, message.new, user_id))

    sender = asyncio.create_task(forward())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Websocket for game %s closed", game_id)
    finally:
        feed.unsubscribe(subscription)
        await _stop_sender(sender, game_id)


async def _stop_sender(sender: asyncio.Task[None], game_id: str) -> None:
    """Cancel the forwarding task and collect its outcome (a send on a closed socket fails)."""
    sender.cancel()
    try:
        await sender
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("Websocket sender for game %s stopped with an error", game_id, exc_info=True)


def _change_message(event: str, state: GameStateModel, viewer: Optional[PlayerId]) -> dict:
    return ChangeEventResponse(event=event, new=game_response(state, viewer)).model_dump(
        mode="json"
    )
