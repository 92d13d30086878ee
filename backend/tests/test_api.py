from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from scoretracker.main import create_app
from scoretracker.store import InMemoryStore, StoreConflictError


@pytest.fixture()
def client() -> TestClient:
    return TestClient(create_app(InMemoryStore.create()))


def _record_catan(client: TestClient) -> None:
    assert client.post("/api/draft").status_code == 200
    client.patch("/api/draft", json={"gameName": "Catan"})
    client.patch("/api/draft/entries/0", json={"score": 10})
    client.patch("/api/draft/entries/1", json={"score": 4})
    client.patch("/api/draft/entries/2", json={"active": False})
    client.patch("/api/draft/entries/3", json={"score": 7})
    res = client.post("/api/draft/submit")
    assert res.status_code == 200


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_add_player(client):
    res = client.post("/api/players", json={"name": " Ann "})
    assert res.status_code == 200
    assert res.json()["players"] == ["Kyle", "Tom", "Sean", "Brian", "Ann"]

    assert client.post("/api/players", json={"name": "Ann"}).status_code == 422
    assert client.post("/api/players", json={"name": "  "}).status_code == 422


def test_submit_game_and_leaderboard(client):
    """記録したゲームがリーダーボードに反映される。"""

    _record_catan(client)

    games = client.get("/api/games").json()
    assert len(games) == 1
    assert games[0]["gameName"] == "Catan"
    assert [s["name"] for s in games[0]["scores"]] == ["Kyle", "Tom", "Brian"]

    rows = client.get("/api/leaderboard").json()
    assert [r["name"] for r in rows] == ["Kyle", "Brian", "Tom", "Sean"]
    assert rows[0]["wins"] == 1
    assert rows[0]["avgPlacement"] == 1.0
    assert rows[3]["gamesPlayed"] == 0
    assert rows[3]["avgPlacement"] is None


def test_leaderboard_sorting(client):
    _record_catan(client)

    params = {"sort": "gamesPlayed", "direction": "asc"}
    rows = client.get("/api/leaderboard", params=params).json()
    assert [r["name"] for r in rows] == ["Sean", "Kyle", "Brian", "Tom"]

    res = client.get("/api/leaderboard", params={"sort": "elo"})
    assert res.status_code == 422


def test_game_detail_and_edit(client):
    _record_catan(client)

    detail = client.get("/api/games/0").json()
    assert [r["name"] for r in detail["results"]] == ["Kyle", "Brian", "Tom"]
    assert [r["gameScore"] for r in detail["results"]] == [100, 50, 0]
    assert [r["dominance"] for r in detail["results"]] == [47.62, 33.33, 19.05]

    entered_at = detail["session"]["enteredAt"]
    res = client.put(
        "/api/games/0",
        json={
            "gameName": "  ",
            "scores": [{"name": "Kyle", "score": 1}, {"name": "Tom", "score": 9}],
        },
    )
    assert res.status_code == 200
    assert res.json()["gameName"] == "Catan"
    assert res.json()["enteredAt"] == entered_at

    bad_score = {"scores": [{"name": "Kyle", "score": "5"}, {"name": "Tom", "score": 9}]}
    assert client.put("/api/games/0", json=bad_score).status_code == 422

    assert client.get("/api/games/3").status_code == 404
    assert client.put("/api/games/3", json={"gameName": "x"}).status_code == 404


def test_draft_errors(client):
    assert client.post("/api/draft/submit").status_code == 409
    assert client.get("/api/draft").status_code == 409

    client.post("/api/draft")
    assert client.post("/api/draft/submit").status_code == 422
    assert client.patch("/api/draft/entries/9", json={"score": 1}).status_code == 404
    assert client.delete("/api/draft").json() == {"ok": True}
    assert client.delete("/api/draft").status_code == 409


def test_player_games(client):
    _record_catan(client)

    history = client.get("/api/players/Brian/games").json()
    assert history == [
        {
            "gameName": "Catan",
            "enteredAt": history[0]["enteredAt"],
            "score": 7,
            "team": None,
            "placement": 2,
            "gameScore": 50,
            "weightedGameScore": 50,
            "dominance": 33.33,
            "isWin": False,
        }
    ]
    assert client.get("/api/players/Nobody/games").status_code == 404


def test_log_export_and_import(client):
    """保存したログを読み込むとロースターも置き換わる。"""

    _record_catan(client)
    exported = client.get("/api/log")
    assert exported.status_code == 200
    log = exported.json()
    assert log[0]["gameName"] == "Catan"

    fresh = TestClient(create_app(InMemoryStore.create(("Zed",))))
    res = fresh.post("/api/log", json=log)
    assert res.status_code == 200
    assert res.json()["players"] == ["Kyle", "Tom", "Brian"]
    assert len(fresh.get("/api/games").json()) == 1


def test_log_import_is_all_or_nothing(client):
    bad = [
        {
            "gameName": "Azul",
            "enteredAt": "2024-05-01T20:00:00Z",
            "scores": [{"name": "Ann", "score": 3}],
        },
        {"gameName": "Broken", "scores": []},
    ]
    assert client.post("/api/log", json=bad).status_code == 400
    assert client.post("/api/log", json=[]).status_code == 400
    assert client.get("/api/players").json()["players"] == ["Kyle", "Tom", "Sean", "Brian"]
    assert client.get("/api/games").json() == []


def test_log_import_rejects_coerced_values(client):
    """文字列のスコアや数値の enteredAt は変換せずに拒否する。"""

    base = {"gameName": "Azul", "enteredAt": "2024-05-01T20:00:00Z"}
    for game in (
        {**base, "scores": [{"name": "Ann", "score": "5"}]},
        {**base, "enteredAt": 1714593600, "scores": [{"name": "Ann", "score": 5}]},
    ):
        assert client.post("/api/log", json=[game]).status_code == 400
    assert client.get("/api/games").json() == []


class _ConflictingStore(InMemoryStore):
    def update(self, action):
        raise StoreConflictError("state changed concurrently")


def test_concurrent_update_conflict_returns_409():
    """同時更新の競合が続いたら 409 を返し、状態は変えない。"""

    client = TestClient(create_app(_ConflictingStore.create()))
    res = client.post("/api/players", json={"name": "Ann"})
    assert res.status_code == 409
    assert client.get("/api/players").json()["players"] == ["Kyle", "Tom", "Sean", "Brian"]
