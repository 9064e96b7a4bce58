# tests/test_scores.py
"""Pruebas automatizadas para el envío de puntuaciones y el ranking."""

import pytest
from datetime import datetime, timedelta

from sqlalchemy import event, func, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from game_service.models import Score, User
from game_service.stores import ScoreStore, UserStore

from .conftest import login_headers, make_settings, register_user


# --- Función Auxiliar ---
def get_highest_score(session_factory, user_id: int) -> int:
    with session_factory() as db:
        return db.get(User, user_id).highest_score


def submit(client, headers, score):
    return client.post("/api/scores", json={"score": score}, headers=headers)


def test_submit_score(client, auth_headers, test_user):
    r = submit(client, auth_headers, 42)
    assert r.status_code == 201, r.text

    body = r.json()
    assert body["message"]
    score = body["score"]
    assert score["user"] == test_user["id"]
    assert score["username"] == test_user["username"]
    assert score["score"] == 42
    assert "createdAt" in score
    assert "id" in score


def test_submit_numeric_string_is_coerced(client, auth_headers):
    r = submit(client, auth_headers, "42")
    assert r.status_code == 201
    assert r.json()["score"]["score"] == 42


def test_submit_zero_is_accepted(client, auth_headers):
    assert submit(client, auth_headers, 0).status_code == 201


def test_submit_missing_score(client, auth_headers):
    r = client.post("/api/scores", json={}, headers=auth_headers)
    assert r.status_code == 400
    assert "message" in r.json()


@pytest.mark.parametrize("bad_score", [-1, 1.5, "abc", True, [10], 2_000_000_000])
def test_submit_invalid_score(client, auth_headers, session_factory, bad_score):
    r = submit(client, auth_headers, bad_score)
    assert r.status_code == 400, f"Esperado 400 para {bad_score!r} pero se obtuvo {r.status_code}"
    assert "score" in r.json()["errors"]

    with session_factory() as db:
        assert db.scalar(select(func.count()).select_from(Score)) == 0


def test_unauthenticated_submission_writes_nothing(client, session_factory):
    r = client.post("/api/scores", json={"score": 99})
    assert r.status_code == 401

    with session_factory() as db:
        assert db.scalar(select(func.count()).select_from(Score)) == 0


def test_submit_then_leaderboard_includes_entry(client, auth_headers, test_user):
    submit(client, auth_headers, 77)

    r = client.get("/api/scores/leaderboard")
    assert r.status_code == 200
    entries = r.json()
    assert len(entries) == 1
    entry = entries[0]
    assert entry["score"] == 77
    assert entry["username"] == test_user["username"]
    assert entry["user"] == {
        "id": test_user["id"],
        "username": test_user["username"],
        "avatar": test_user["avatar"],
    }
    assert "createdAt" in entry


def test_leaderboard_ties_keep_older_first(client, auth_headers):
    first = submit(client, auth_headers, 50).json()["score"]["id"]
    second = submit(client, auth_headers, 80).json()["score"]["id"]
    third = submit(client, auth_headers, 50).json()["score"]["id"]

    entries = client.get("/api/scores/leaderboard").json()
    assert [e["id"] for e in entries] == [second, first, third]
    assert [e["score"] for e in entries] == [80, 50, 50]


def test_leaderboard_pagination(client, auth_headers):
    for value in (70, 50, 90, 60, 80):
        submit(client, auth_headers, value)

    r = client.get("/api/scores/leaderboard", params={"limit": 2, "offset": 1})
    assert [e["score"] for e in r.json()] == [80, 70]

    r = client.get("/api/scores/leaderboard", params={"offset": 4})
    assert [e["score"] for e in r.json()] == [50]


@pytest.mark.parametrize("params", [
    {"limit": "abc"},
    {"limit": "-5"},
    {"limit": "0"},
    {"offset": "-3"},
    {"offset": "xyz"},
    {"limit": "", "offset": ""},
])
def test_leaderboard_invalid_pagination_uses_defaults(client, auth_headers, params):
    for value in range(12):
        submit(client, auth_headers, value)

    r = client.get("/api/scores/leaderboard", params=params)
    assert r.status_code == 200
    scores = [e["score"] for e in r.json()]
    assert scores == list(range(11, 1, -1))


def test_leaderboard_limit_is_capped():
    from fastapi.testclient import TestClient
    from game_service.main import create_app

    app = create_app(make_settings(leaderboard_max_limit=3))
    client = TestClient(app)
    email = register_user(client).json()["user"]["email"]
    headers = login_headers(client, email)
    for value in range(5):
        submit(client, headers, value)

    r = client.get("/api/scores/leaderboard", params={"limit": 1000})
    assert len(r.json()) == 3
    app.state.engine.dispose()


def test_leaderboard_is_idempotent(client, auth_headers):
    for value in (5, 5, 9, 1):
        submit(client, auth_headers, value)

    first = client.get("/api/scores/leaderboard").json()
    second = client.get("/api/scores/leaderboard").json()
    assert first == second


def test_leaderboard_empty(client):
    r = client.get("/api/scores/leaderboard")
    assert r.status_code == 200
    assert r.json() == []


def test_username_is_denormalized_at_submission(client, auth_headers, test_user, session_factory):
    submit(client, auth_headers, 10)

    with session_factory() as db:
        user = db.get(User, test_user["id"])
        user.username = "renamed_player"
        db.commit()

    entry = client.get("/api/scores/leaderboard").json()[0]
    assert entry["username"] == test_user["username"]
    assert entry["user"]["username"] == "renamed_player"


# --- Récord personal (highestScore) ---

def test_highest_score_only_increases(client, auth_headers, test_user, session_factory):
    submit(client, auth_headers, 20)
    assert get_highest_score(session_factory, test_user["id"]) == 20

    submit(client, auth_headers, 10)
    assert get_highest_score(session_factory, test_user["id"]) == 20

    submit(client, auth_headers, 35)
    assert get_highest_score(session_factory, test_user["id"]) == 35


@pytest.mark.parametrize("order", [(10, 20), (20, 10)])
def test_highest_score_independent_of_arrival_order(client, auth_headers, test_user, session_factory, order):
    for value in order:
        submit(client, auth_headers, value)
    assert get_highest_score(session_factory, test_user["id"]) == 20


def test_highest_score_failure_does_not_fail_submission(client, auth_headers, test_user, session_factory, monkeypatch):
    def boom(self, user_id, candidate_score):
        raise SQLAlchemyError("simulated failure")

    monkeypatch.setattr(UserStore, "update_highest_score", boom)

    r = submit(client, auth_headers, 500)
    assert r.status_code == 201
    assert get_highest_score(session_factory, test_user["id"]) == 0
    assert client.get("/api/scores/leaderboard").json()[0]["score"] == 500


def test_store_failure_returns_generic_error(client, auth_headers, monkeypatch):
    def boom(self, *args, **kwargs):
        raise SQLAlchemyError("connection refused at 10.0.0.5")

    monkeypatch.setattr(ScoreStore, "top_scores", boom)
    monkeypatch.setattr(ScoreStore, "append", boom)

    r = client.get("/api/scores/leaderboard")
    assert r.status_code == 500
    assert "10.0.0.5" not in r.text

    r = submit(client, auth_headers, 1)
    assert r.status_code == 500
    assert "10.0.0.5" not in r.text


def test_submission_survives_database_outage_after_insert(app, client, auth_headers, test_user, session_factory, monkeypatch):
    """Si la base de datos cae justo después de guardar la puntuación, el envío sigue siendo 201."""
    engine = app.state.engine

    def database_down(conn, cursor, statement, parameters, context, executemany):
        raise OperationalError(statement, parameters, Exception("database is down"))

    def outage(self, user_id, candidate_score):
        event.listen(engine, "before_cursor_execute", database_down)
        raise OperationalError("UPDATE users", {}, Exception("database is down"))

    monkeypatch.setattr(UserStore, "update_highest_score", outage)
    try:
        r = submit(client, auth_headers, 500)
    finally:
        if event.contains(engine, "before_cursor_execute", database_down):
            event.remove(engine, "before_cursor_execute", database_down)

    assert r.status_code == 201, r.text
    assert r.json()["score"]["score"] == 500
    assert r.json()["score"]["user"] == test_user["id"]

    with session_factory() as db:
        assert db.scalar(select(func.count()).select_from(Score)) == 1
    assert get_highest_score(session_factory, test_user["id"]) == 0


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def test_created_at_carries_utc_offset(client, auth_headers):
    created = submit(client, auth_headers, 12).json()["score"]["createdAt"]
    assert _parse_timestamp(created).utcoffset() == timedelta(0), created

    entry = client.get("/api/scores/leaderboard").json()[0]
    assert _parse_timestamp(entry["createdAt"]).utcoffset() == timedelta(0), entry["createdAt"]


# --- Modo estricto del token ---

def _delete_user(session_factory, user_id):
    with session_factory() as db:
        db.delete(db.get(User, user_id))
        db.commit()


def test_token_outlives_deleted_user_by_default(client, auth_headers, test_user, session_factory):
    _delete_user(session_factory, test_user["id"])

    r = submit(client, auth_headers, 5)
    assert r.status_code == 201

    entry = client.get("/api/scores/leaderboard").json()[0]
    assert entry["user"] is None
    assert entry["username"] == test_user["username"]


@pytest.mark.parametrize("settings", [make_settings(strict_token_check=True)])
def test_strict_mode_rejects_deleted_user(client, auth_headers, test_user, session_factory, settings):
    assert submit(client, auth_headers, 5).status_code == 201

    _delete_user(session_factory, test_user["id"])

    r = submit(client, auth_headers, 6)
    assert r.status_code == 401
