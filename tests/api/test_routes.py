"""Tests for the HTTP / websocket routes in src/api/routes.py (through the app from src/api/app.py)"""

import asyncio
from typing import Any, Generator

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from src.api.app import create_app
from src.api.routes import _stop_sender
from src.core.config import Settings
from src.core.models import ProfileModel
from src.db.database import get_db
from src.db.sql_repository import SQLGameRepository
from src.games.battleship import SHIP

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}
CAROL = {"X-User-Id": "carol"}


@pytest.fixture
def client(db_session_repo: Session, settings: Settings) -> Generator[TestClient, None, None]:
    app = create_app(settings, init_database=False)

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session_repo

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)


def create_lobby(client: TestClient, kind: str, headers: dict = ALICE) -> dict[str, Any]:
    response = client.post("/lobbies", json={"game_kind": kind}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def started_game(client: TestClient, kind: str = "tic_tac_toe") -> dict[str, Any]:
    created = create_lobby(client, kind)
    response = client.post(f"/lobbies/{created['lobby']['id']}/join", headers=BOB)
    assert response.status_code == 200, response.text
    return response.json()


def mark(client: TestClient, game_id: str, row: int, col: int, headers: dict) -> Any:
    return client.post(
        f"/games/{game_id}/moves", json={"action": "mark", "row": row, "col": col}, headers=headers
    )


# --- LOBBIES ---
def test_identity_is_required(client: TestClient) -> None:
    response = client.post("/lobbies", json={"game_kind": "tic_tac_toe"})
    assert response.status_code == 401


def test_create_and_get_lobby(client: TestClient) -> None:
    created = create_lobby(client, "connect_four")
    assert created["lobby"]["status"] == "waiting"
    assert created["lobby"]["creator_id"] == "alice"
    assert created["game"]["status"] == "pending"
    assert created["game"]["player2"] is None

    lobby_id = created["lobby"]["id"]
    assert client.get(f"/lobbies/{lobby_id}").json()["id"] == lobby_id
    assert client.get(f"/lobbies/{lobby_id}/game").json()["id"] == created["game"]["id"]


def test_unknown_lobby_and_game(client: TestClient) -> None:
    assert client.get("/lobbies/nope").status_code == 404
    assert client.get("/games/nope").status_code == 404


def test_join_and_rejections(client: TestClient) -> None:
    game = started_game(client)
    assert game["status"] == "playing"
    assert game["player2"] == "bob"

    response = client.post(f"/lobbies/{game['lobby_id']}/join", headers=CAROL)
    assert response.status_code == 409
    assert response.json()["reason"] == "lobby-full"

    assert client.get(f"/lobbies/{game['lobby_id']}").json()["status"] == "playing"


def test_ai_opponent(client: TestClient) -> None:
    created = create_lobby(client, "tic_tac_toe")
    lobby_id = created["lobby"]["id"]
    response = client.post(f"/lobbies/{lobby_id}/ai", headers=BOB)
    assert response.status_code == 409
    assert response.json()["reason"] == "not-creator"

    response = client.post(f"/lobbies/{lobby_id}/ai", headers=ALICE)
    assert response.status_code == 200
    assert response.json()["player2"] == "ai-opponent"

    game_id = response.json()["id"]
    state = mark(client, game_id, 0, 0, ALICE).json()
    assert state["current_player"] == "alice"
    assert state["board"][1][1] == "O"


# --- MOVES ---
def test_moves(client: TestClient) -> None:
    game = started_game(client)
    response = mark(client, game["id"], 0, 0, ALICE)
    assert response.status_code == 200
    assert response.json()["board"][0][0] == "X"
    assert response.json()["version"] == game["version"] + 1

    response = mark(client, game["id"], 1, 1, ALICE)
    assert response.status_code == 409
    assert response.json()["reason"] == "not-your-turn"

    response = client.post(f"/games/{game['id']}/moves", json={"action": "mark", "row": 1}, headers=BOB)
    assert response.status_code == 400


def test_battleship_fleets_are_private(client: TestClient) -> None:
    game = started_game(client, "battleship")
    assert game["status"] == "waiting"
    for headers in (ALICE, BOB):
        response = client.post(f"/games/{game['id']}/fleet", json={"randomize": True}, headers=headers)
        assert response.status_code == 200, response.text
    assert response.json()["status"] == "playing"

    as_alice = client.get(f"/games/{game['id']}", headers=ALICE).json()
    as_bob = client.get(f"/games/{game['id']}", headers=BOB).json()
    assert any(SHIP in row for row in as_alice["board"])
    assert not any(SHIP in row for row in as_bob["board"])
    assert as_bob["extras"]["ship_cells"]["player1"] == {}

    response = client.post(f"/games/{game['id']}/fleet", json={"randomize": True}, headers=ALICE)
    assert response.status_code == 409
    assert response.json()["reason"] == "invalid-placement"


def test_wordle_answer_is_not_sent(client: TestClient) -> None:
    created = create_lobby(client, "wordle")
    assert created["game"]["status"] == "playing"
    assert "answer" not in created["game"]["extras"]

    response = client.post(
        f"/games/{created['game']['id']}/moves", json={"action": "guess", "word": "zzzzz"}, headers=ALICE
    )
    assert response.status_code == 409
    assert response.json()["reason"] == "invalid-word"


def test_wordle_validate(client: TestClient) -> None:
    assert client.post("/api/wordle-validate", json={"word": "apple"}).json() == {"valid": True}
    assert client.post("/api/wordle-validate", json={"word": "zzzzz"}).json() == {"valid": False}


# --- REMATCH ---
def test_rematch(client: TestClient) -> None:
    game = started_game(client)
    for cell, headers in [((0, 0), ALICE), ((1, 0), BOB), ((0, 1), ALICE), ((1, 1), BOB), ((0, 2), ALICE)]:
        response = mark(client, game["id"], *cell, headers)
    assert response.json()["winner"] == "alice"

    body = {"lobby_id": game["lobby_id"]}
    first = client.post(f"/games/{game['id']}/rematch", json=body, headers=ALICE).json()
    assert first["requested_by"] == ["alice"] and first["new_game_id"] is None

    second = client.post(f"/games/{game['id']}/rematch", json=body, headers=BOB).json()
    assert second["new_game_id"] is not None
    assert client.get(f"/games/{game['id']}/rematch").json() == second

    new_game = client.get(f"/lobbies/{game['lobby_id']}/game").json()
    assert new_game["id"] == second["new_game_id"]
    assert new_game["player1"] == "bob"

    response = client.post(f"/games/{game['id']}/rematch", json=body, headers=CAROL)
    assert response.status_code == 409
    assert response.json()["reason"] == "not-a-player"


def test_no_rematch_requested_yet(client: TestClient) -> None:
    game = started_game(client)
    assert client.get(f"/games/{game['id']}/rematch").status_code == 404


# --- INVITES ---
def test_invite_and_join_with_code(client: TestClient) -> None:
    created = create_lobby(client, "tic_tac_toe")
    lobby_id = created["lobby"]["id"]

    invite = client.post("/api/invite", json={"lobbyId": lobby_id}).json()
    assert len(invite["code"]) == 6
    assert invite["fullUrl"].endswith(f"/join/{invite['code']}")
    assert invite["lobbyUrl"].endswith(f"/lobby/{lobby_id}")

    joined = client.post("/api/join-code", json={"code": invite["code"].lower()}, headers=BOB)
    assert joined.status_code == 200, joined.text
    assert joined.json() == {
        "lobbyId": lobby_id,
        "lobbyName": "Tic-Tac-Toe Lobby",
        "lobbyUrl": invite["lobbyUrl"],
    }

    again = client.post("/api/join-code", json={"code": invite["code"]}, headers=BOB)
    assert again.status_code == 409
    assert again.json()["reason"] == "invite-used"


def test_bad_invite_codes(client: TestClient) -> None:
    assert client.post("/api/join-code", json={"code": "xyz"}, headers=BOB).status_code == 400
    assert client.post("/api/join-code", json={"code": "A1B2C"}, headers=BOB).status_code == 400
    assert client.post("/api/join-code", json={"code": "ABCDEF"}, headers=BOB).status_code == 404
    assert client.post("/api/invite", json={"lobbyId": "nope"}).status_code == 404


# --- LEADERBOARD ---
def test_leaderboard(client: TestClient, db_session_repo: Session) -> None:
    repo = SQLGameRepository(db_session_repo)
    repo.save_profile(ProfileModel("alice", "Alice"))
    repo.save_profile(ProfileModel("bob", "Bob"))
    game = started_game(client)
    for cell, headers in [((0, 0), ALICE), ((1, 0), BOB), ((0, 1), ALICE), ((1, 1), BOB), ((0, 2), ALICE)]:
        mark(client, game["id"], *cell, headers)

    entries = client.get("/leaderboard", params={"timeframe": "week"}).json()
    assert [(e["id"], e["wins"], e["rank"]) for e in entries] == [("alice", 1, 1), ("bob", 0, 2)]

    mine = client.get("/leaderboard", params={"user_id": "bob"}).json()
    assert mine["rank"] == 2

    assert client.get("/leaderboard", params={"sort": "losses"}).status_code == 400
    assert client.get("/leaderboard", params={"user_id": "nobody"}).status_code == 404


# --- REALTIME ---
def test_websocket_sends_the_snapshot_first(client: TestClient) -> None:
    game = started_game(client)
    with client.websocket_connect(f"/ws/games/{game['id']}?user_id=bob") as websocket:
        message = websocket.receive_json()
    assert message["event"] == "SNAPSHOT"
    assert message["new"]["id"] == game["id"]
    assert message["new"]["status"] == "playing"


def test_websocket_for_an_unknown_game_is_closed(client: TestClient) -> None:
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/games/nope"):
            pass


def test_websocket_sender_outcome_is_collected() -> None:
    async def scenario() -> tuple[asyncio.Task[None], asyncio.Task[None]]:
        async def send_on_closed_socket() -> None:
            raise RuntimeError("Cannot call send once a close message has been sent.")

        async def still_waiting() -> None:
            await asyncio.sleep(60)

        failed = asyncio.create_task(send_on_closed_socket())
        waiting = asyncio.create_task(still_waiting())
        await asyncio.sleep(0)
        await _stop_sender(failed, "g1")
        await _stop_sender(waiting, "g1")
        return failed, waiting

    failed, waiting = asyncio.run(scenario())
    assert failed.done() and isinstance(failed.exception(), RuntimeError)
    assert waiting.cancelled()
