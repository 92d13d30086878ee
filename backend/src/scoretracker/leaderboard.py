from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence

from .domain import (
    NO_DATA,
    GameResultRow,
    GameSession,
    LeaderboardRow,
    PlayerGameRow,
    SortDirection,
)
from .ranking import (
    rank_team_aware,
    round_fixed,
    team_dominance,
    team_game_score,
    team_weighted_game_score,
)

logger = logging.getLogger(__name__)

# 平均値ごとの小数桁数
PRECISION: dict[str, int] = {
    "avg_placement": 2,
    "avg_game_score": 1,
    "avg_weighted_game_score": 2,
    "avg_dominance": 2,
}


def _mean(values: list[float], places: int) -> float | None:
    if not values:
        return None
    return round_fixed(sum(values) / len(values), places)


def format_stat(value: float | int | None, places: int = 0) -> str:
    if value is None:
        return NO_DATA
    return f"{value:.{places}f}"


def default_order(rows: Iterable[LeaderboardRow]) -> list[LeaderboardRow]:
    """勝利数の降順、同数なら平均順位の昇順。"""

    def key(row: LeaderboardRow) -> tuple[int, float]:
        placement = row.avg_placement if row.avg_placement is not None else math.inf
        return (-row.wins, placement)

    return sorted(rows, key=key)


def build_leaderboard(
    games: Sequence[GameSession], roster: Iterable[str]
) -> list[LeaderboardRow]:
    names = list(dict.fromkeys(roster))
    games_played = {name: 0 for name in names}
    wins = {name: 0 for name in names}
    placements: dict[str, list[float]] = {name: [] for name in names}
    game_scores: dict[str, list[float]] = {name: [] for name in names}
    weighted: dict[str, list[float]] = {name: [] for name in names}
    dominance: dict[str, list[float]] = {name: [] for name in names}

    for game in games:
        if not game.scores:
            continue
        place_map, g_scores, w_scores, d_scores, max_score = _game_maps(game)

        for entrant in game.scores:
            name = entrant.name
            if name not in games_played:
                logger.debug("skipping %s in %s: not on the roster", name, game.game_name)
                continue
            games_played[name] += 1
            placements[name].append(place_map[name])
            if name in g_scores:
                game_scores[name].append(g_scores[name])
            if name in w_scores:
                weighted[name].append(w_scores[name])
            if name in d_scores:
                dominance[name].append(d_scores[name])
            # 同点の最高得点は全員勝利
            if entrant.score == max_score:
                wins[name] += 1

    rows = [
        LeaderboardRow(
            name=name,
            games_played=games_played[name],
            wins=wins[name],
            avg_placement=_mean(placements[name], PRECISION["avg_placement"]),
            avg_game_score=_mean(game_scores[name], PRECISION["avg_game_score"]),
            avg_weighted_game_score=_mean(
                weighted[name], PRECISION["avg_weighted_game_score"]
            ),
            avg_dominance=_mean(dominance[name], PRECISION["avg_dominance"]),
        )
        for name in names
    ]
    return default_order(rows)


def _column_field(column: str) -> str:
    for field_name, info in LeaderboardRow.model_fields.items():
        if column in (field_name, info.alias):
            return field_name
    raise ValueError(f"unknown leaderboard column: {column}")


def _as_number(value: object) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def sort_by(
    rows: Sequence[LeaderboardRow], column: str, direction: SortDirection = "desc"
) -> list[LeaderboardRow]:
    """指定列で安定ソートする。

    数値として解釈できる値だけを昇順・降順に並べ、「データなし」などの
    数値でない値はどちらの向きでも末尾に入力順のまま置く。
    """

    if direction not in ("asc", "desc"):
        raise ValueError(f"unknown sort direction: {direction}")
    field_name = _column_field(column)
    sign = 1 if direction == "asc" else -1

    def key(row: LeaderboardRow) -> tuple[bool, float]:
        value = _as_number(getattr(row, field_name))
        if value is None or math.isnan(value):
            return (True, 0.0)
        return (False, sign * value)

    return sorted(rows, key=key)


def _game_maps(session: GameSession):
    scores = session.scores
    return (
        rank_team_aware(scores),
        team_game_score(scores),
        team_weighted_game_score(scores),
        team_dominance(scores),
        max((s.score for s in scores), default=None),
    )


def game_results(session: GameSession) -> list[GameResultRow]:
    place_map, g_scores, w_scores, d_scores, max_score = _game_maps(session)

    return [
        GameResultRow(
            name=s.name,
            score=s.score,
            team=s.team,
            placement=place_map[s.name],
            game_score=g_scores[s.name],
            weighted_game_score=w_scores[s.name],
            dominance=d_scores[s.name],
            is_win=s.score == max_score,
        )
        for s in sorted(session.scores, key=lambda x: -x.score)
    ]


def player_games(games: Sequence[GameSession], name: str) -> list[PlayerGameRow]:
    """プレイヤーが参加したゲームの履歴（入力順）。"""

    rows: list[PlayerGameRow] = []
    for game in games:
        entry = next((s for s in game.scores if s.name == name), None)
        if entry is None:
            continue
        place_map, g_scores, w_scores, d_scores, max_score = _game_maps(game)
        rows.append(
            PlayerGameRow(
                game_name=game.game_name,
                entered_at=game.entered_at,
                score=entry.score,
                team=entry.team,
                placement=place_map[name],
                game_score=g_scores[name],
                weighted_game_score=w_scores[name],
                dominance=d_scores[name],
                is_win=entry.score == max_score,
            )
        )
    return rows
