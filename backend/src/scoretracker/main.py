from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from mangum import Mangum

from .domain import (
    AddPlayerRequest,
    EditGameRequest,
    GameDetail,
    GameDraft,
    GameSession,
    LeaderboardRow,
    PlayerGameRow,
    PlayersResponse,
    SortDirection,
    StatColumn,
    UpdateDraftEntryRequest,
    UpdateDraftRequest,
)
from .leaderboard import build_leaderboard, game_results, player_games, sort_by
from .state import (
    InvalidLogError,
    add_player,
    cancel_game,
    dump_log,
    edit_game,
    load_log,
    start_game,
    submit_scores,
    update_draft,
    update_draft_entry,
)
from .store import Store, StoreConflictError, build_store

logger = logging.getLogger(__name__)


def _load_dotenv(repo_root: Path) -> None:
    env_path = repo_root / "config" / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=False)


def _configure_logging() -> None:
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


def create_app(store: Store | None = None) -> FastAPI:
    app = FastAPI(title="Score Tracker")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    repo_root = Path(__file__).resolve().parents[3]
    _load_dotenv(repo_root)
    _configure_logging()

    if store is None:
        store = build_store()

    @app.exception_handler(StoreConflictError)
    async def store_conflict(request: Request, exc: StoreConflictError):
        logger.warning("giving up on update: %s", exc)
        return JSONResponse(status_code=409, content={"detail": "please retry"})

    def require_draft(draft: GameDraft | None) -> GameDraft:
        if draft is None:
            raise HTTPException(status_code=409, detail="no game in progress")
        return draft

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/api/players", response_model=PlayersResponse)
    def list_players():
        return PlayersResponse(players=list(store.get_state().players))

    @app.post("/api/players", response_model=PlayersResponse)
    def create_player(req: AddPlayerRequest):
        try:
            state = store.update(lambda s: add_player(s, req.name))
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return PlayersResponse(players=list(state.players))

    @app.get("/api/players/{name}/games", response_model=list[PlayerGameRow])
    def get_player_games(name: str):
        state = store.get_state()
        if name not in state.players:
            raise HTTPException(status_code=404, detail="player not found")
        return player_games(state.sessions, name)

    @app.get("/api/draft", response_model=GameDraft)
    def get_draft():
        return require_draft(store.get_state().draft)

    @app.post("/api/draft", response_model=GameDraft)
    def create_draft():
        return store.update(start_game).draft

    @app.patch("/api/draft", response_model=GameDraft)
    def patch_draft(req: UpdateDraftRequest):
        try:
            state = store.update(
                lambda s: update_draft(s, game_name=req.game_name, is_team_game=req.is_team_game)
            )
        except LookupError:
            raise HTTPException(status_code=409, detail="no game in progress")
        return state.draft

    @app.patch("/api/draft/entries/{index}", response_model=GameDraft)
    def patch_draft_entry(index: int, req: UpdateDraftEntryRequest):
        try:
            state = store.update(
                lambda s: update_draft_entry(
                    s, index, score=req.score, active=req.active, team=req.team
                )
            )
        except IndexError:
            raise HTTPException(status_code=404, detail="draft entry not found")
        except LookupError:
            raise HTTPException(status_code=409, detail="no game in progress")
        return state.draft

    @app.delete("/api/draft")
    def delete_draft():
        try:
            store.update(cancel_game)
        except LookupError:
            raise HTTPException(status_code=409, detail="no game in progress")
        return {"ok": True}

    @app.post("/api/draft/submit", response_model=GameSession)
    def submit_draft():
        now = datetime.now(timezone.utc)
        try:
            state = store.update(lambda s: submit_scores(s, now=now))
        except LookupError:
            raise HTTPException(status_code=409, detail="no game in progress")
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return state.sessions[-1]

    @app.get("/api/games", response_model=list[GameSession])
    def list_games():
        return list(store.get_state().sessions)

    @app.get("/api/games/{index}", response_model=GameDetail)
    def get_game(index: int):
        sessions = store.get_state().sessions
        if not 0 <= index < len(sessions):
            raise HTTPException(status_code=404, detail="game not found")
        session = sessions[index]
        return GameDetail(index=index, session=session, results=game_results(session))

    @app.put("/api/games/{index}", response_model=GameSession)
    def put_game(index: int, req: EditGameRequest):
        try:
            state = store.update(
                lambda s: edit_game(s, index, scores=req.scores, game_name=req.game_name)
            )
        except IndexError:
            raise HTTPException(status_code=404, detail="game not found")
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return state.sessions[index]

    @app.get("/api/leaderboard", response_model=list[LeaderboardRow])
    def leaderboard(
        sort: StatColumn | None = Query(default=None),
        direction: SortDirection = Query(default="desc"),
    ):
        state = store.get_state()
        rows = build_leaderboard(state.sessions, state.players)
        if sort is not None:
            rows = sort_by(rows, sort, direction)
        return rows

    @app.get("/api/log")
    def export_log():
        return Response(
            content=dump_log(store.get_state()),
            media_type="application/json",
            headers={"Content-Disposition": 'attachment; filename="boardgame-log.json"'},
        )

    @app.post("/api/log", response_model=PlayersResponse)
    def import_log(payload: Any = Body(...)):
        try:
            state = store.update(lambda s: load_log(s, payload))
        except InvalidLogError as e:
            logger.warning("rejected log import: %s", e)
            raise HTTPException(status_code=400, detail=str(e))
        return PlayersResponse(players=list(state.players))

    return app


app = create_app()
handler = Mangum(app)
