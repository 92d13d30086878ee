from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from datetime import datetime

from pydantic import BaseModel, ConfigDict, ValidationError

from .domain import DraftEntry, EntrantScore, GameDraft, GameLog, GameSession

logger = logging.getLogger(__name__)

DEFAULT_PLAYERS = ("Kyle", "Tom", "Sean", "Brian")
DEFAULT_TEAM = 1


class InvalidLogError(ValueError):
    pass


class AppState(BaseModel):
    """ロースター・記録済みゲーム・入力中のゲーム。

    変更は必ず reducer で新しい AppState を作って置き換える。
    """

    model_config = ConfigDict(frozen=True)

    players: tuple[str, ...] = ()
    sessions: tuple[GameSession, ...] = ()
    draft: GameDraft | None = None


def initial_state(players: Iterable[str] = DEFAULT_PLAYERS) -> AppState:
    names = [p.strip() for p in players if p.strip()]
    return AppState(players=tuple(dict.fromkeys(names)))


def add_player(state: AppState, name: str) -> AppState:
    s = name.strip()
    if not s:
        raise ValueError("name must not be blank")
    if s in state.players:
        raise ValueError(f"player already exists: {s}")
    return state.model_copy(update={"players": (*state.players, s)})


def start_game(state: AppState) -> AppState:
    draft = GameDraft(entries=tuple(DraftEntry(name=name) for name in state.players))
    return state.model_copy(update={"draft": draft})


def _require_draft(state: AppState) -> GameDraft:
    if state.draft is None:
        raise LookupError("no game in progress")
    return state.draft


def update_draft(
    state: AppState, game_name: str | None = None, is_team_game: bool | None = None
) -> AppState:
    draft = _require_draft(state)
    update: dict[str, object] = {}
    if game_name is not None:
        update["game_name"] = game_name
    if is_team_game is not None:
        update["is_team_game"] = is_team_game
    return state.model_copy(update={"draft": draft.model_copy(update=update)})


def update_draft_entry(
    state: AppState,
    index: int,
    score: int | None = None,
    active: bool | None = None,
    team: int | None = None,
) -> AppState:
    draft = _require_draft(state)
    if not 0 <= index < len(draft.entries):
        raise IndexError(f"no draft entry at {index}")

    update: dict[str, object] = {}
    if score is not None:
        update["score"] = score
    if active is not None:
        update["active"] = active
    if team is not None:
        update["team"] = team

    entries = list(draft.entries)
    entries[index] = entries[index].model_copy(update=update)
    new_draft = draft.model_copy(update={"entries": tuple(entries)})
    return state.model_copy(update={"draft": new_draft})


def cancel_game(state: AppState) -> AppState:
    _require_draft(state)
    return state.model_copy(update={"draft": None})


def _team_scores(active: Sequence[DraftEntry]) -> list[EntrantScore]:
    teams: dict[int, list[DraftEntry]] = {}
    for entry in active:
        teams.setdefault(entry.team or DEFAULT_TEAM, []).append(entry)

    scores: list[EntrantScore] = []
    for team_id in sorted(teams):
        members = teams[team_id]
        # 先頭メンバーのスコアをチーム全員に適用する
        score = members[0].score
        scores.extend(EntrantScore(name=m.name, score=score, team=team_id) for m in members)
    return scores


def submit_scores(state: AppState, now: datetime) -> AppState:
    draft = _require_draft(state)
    game_name = draft.game_name.strip()
    if not game_name:
        raise ValueError("game name must not be blank")

    active = [e for e in draft.entries if e.active]
    if not active:
        raise ValueError("at least one player must be active")

    if draft.is_team_game:
        scores = _team_scores(active)
        assignments = tuple(e.team or DEFAULT_TEAM for e in draft.entries)
    else:
        scores = [EntrantScore(name=e.name, score=e.score) for e in active]
        assignments = None

    session = GameSession(
        game_name=game_name,
        entered_at=now,
        scores=tuple(scores),
        is_team_game=draft.is_team_game,
        team_assignments=assignments,
    )
    logger.info("recorded game %s with %d entrants", game_name, len(scores))
    return state.model_copy(update={"sessions": (*state.sessions, session), "draft": None})


def edit_game(
    state: AppState,
    index: int,
    scores: Sequence[EntrantScore] | None = None,
    game_name: str | None = None,
) -> AppState:
    """記録済みゲームを置き換える。enteredAt は変更しない。"""

    if not 0 <= index < len(state.sessions):
        raise IndexError(f"no game at {index}")
    current = state.sessions[index]

    data = current.model_dump()
    if scores is not None:
        data["scores"] = [s.model_dump() for s in scores]
    if game_name is not None and game_name.strip():
        data["game_name"] = game_name.strip()
    edited = GameSession.model_validate(data)

    sessions = list(state.sessions)
    sessions[index] = edited
    logger.info("edited game %d (%s)", index, edited.game_name)
    return state.model_copy(update={"sessions": tuple(sessions)})


def parse_log(payload: object) -> list[GameSession]:
    """保存ログを検証する。一件でも不正なら全体を拒否する。"""

    if not isinstance(payload, list):
        raise InvalidLogError("log must be a list of games")
    try:
        return GameLog(sessions=payload).sessions
    except ValidationError as e:
        raise InvalidLogError(f"invalid log: {e.error_count()} error(s)") from e


def load_log(state: AppState, payload: object) -> AppState:
    sessions = parse_log(payload)
    names = [s.name for session in sessions for s in session.scores]
    logger.info("loaded %d games", len(sessions))
    return AppState(players=tuple(dict.fromkeys(names)), sessions=tuple(sessions))


def load_log_text(state: AppState, text: str) -> AppState:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidLogError("log is not valid JSON") from e
    return load_log(state, payload)


def dump_log(state: AppState) -> str:
    payload = [s.model_dump(mode="json", by_alias=True) for s in state.sessions]
    return json.dumps(payload, indent=2, ensure_ascii=False)
