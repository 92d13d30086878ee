from __future__ import annotations

import math
from collections.abc import Hashable, Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import TypeVar

from .domain import EntrantScore

K = TypeVar("K", bound=Hashable)


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def round_fixed(value: float, places: int) -> float:
    """小数点以下 places 桁に四捨五入する（0.5 は切り上げ）。"""

    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


def _placement_groups(pairs: Sequence[tuple[K, int]]) -> list[tuple[int, list[K]]]:
    """スコア降順の競技順位（1,2,2,4）でグループ化する。

    同点は同順位、次の異なるスコアは index+1 の順位になる。
    """

    sorted_pairs = sorted(pairs, key=lambda x: -x[1])
    groups: list[tuple[int, list[K]]] = []
    last_score: int | None = None

    for i, (key, score) in enumerate(sorted_pairs):
        if last_score is None or score != last_score:
            groups.append((i + 1, []))
            last_score = score
        groups[-1][1].append(key)

    return groups


def _placements(pairs: Sequence[tuple[K, int]]) -> dict[K, int]:
    return {key: place for place, keys in _placement_groups(pairs) for key in keys}


def _game_scores(pairs: Sequence[tuple[K, int]]) -> dict[K, int]:
    n = len(pairs)
    if n == 1:
        return {pairs[0][0]: 100}

    slot_count = n - 1
    result: dict[K, int] = {}
    used_ranks = 0
    for _place, keys in _placement_groups(pairs):
        value = round_half_up((1 - used_ranks / slot_count) * 100)
        for key in keys:
            result[key] = value
        used_ranks += len(keys)
    return result


def _weighted_game_scores(pairs: Sequence[tuple[K, int]]) -> dict[K, int]:
    if not pairs:
        return {}
    values = [score for _, score in pairs]
    lo, hi = min(values), max(values)
    if hi == lo:
        return {key: 100 for key, _ in pairs}
    return {key: round_half_up((score - lo) / (hi - lo) * 100) for key, score in pairs}


def _dominance(pairs: Sequence[tuple[K, int]]) -> dict[K, float]:
    total = sum(score for _, score in pairs)
    if total == 0:
        return {key: 0.0 for key, _ in pairs}
    return {key: round_fixed(score / total * 100, 2) for key, score in pairs}


def _individual_pairs(entrants: Sequence[EntrantScore]) -> list[tuple[str, int]]:
    return [(e.name, e.score) for e in entrants]


def rank_individual(entrants: Sequence[EntrantScore]) -> dict[str, int]:
    return _placements(_individual_pairs(entrants))


def game_score(entrants: Sequence[EntrantScore]) -> dict[str, int]:
    """順位に基づく 0-100 のゲームスコア。最上位が100、最下位が0。"""

    return _game_scores(_individual_pairs(entrants))


def weighted_game_score(entrants: Sequence[EntrantScore]) -> dict[str, int]:
    """素点の min-max 正規化。全員同点なら全員100。"""

    return _weighted_game_scores(_individual_pairs(entrants))


def dominance(entrants: Sequence[EntrantScore]) -> dict[str, float]:
    """合計点に対する各自の割合（%、小数2桁）。合計0なら全員0。"""

    return _dominance(_individual_pairs(entrants))


def is_team_game(entrants: Sequence[EntrantScore]) -> bool:
    return any(e.team is not None for e in entrants)


def _group_teams(entrants: Sequence[EntrantScore]) -> dict[int | None, list[EntrantScore]]:
    teams: dict[int | None, list[EntrantScore]] = {}
    for e in entrants:
        teams.setdefault(e.team, []).append(e)
    return teams


def _team_pairs(teams: dict[int | None, list[EntrantScore]]) -> list[tuple[int | None, int]]:
    # チームの代表スコアは先頭メンバーのスコア
    return [(team, members[0].score) for team, members in teams.items()]


def _broadcast(
    teams: dict[int | None, list[EntrantScore]], by_team: dict[int | None, K]
) -> dict[str, K]:
    return {m.name: by_team[team] for team, members in teams.items() for m in members}


def rank_team_aware(entrants: Sequence[EntrantScore]) -> dict[str, int]:
    if not is_team_game(entrants):
        return rank_individual(entrants)
    teams = _group_teams(entrants)
    return _broadcast(teams, _placements(_team_pairs(teams)))


def team_game_score(entrants: Sequence[EntrantScore]) -> dict[str, int]:
    if not is_team_game(entrants):
        return game_score(entrants)
    teams = _group_teams(entrants)
    return _broadcast(teams, _game_scores(_team_pairs(teams)))


def team_weighted_game_score(entrants: Sequence[EntrantScore]) -> dict[str, int]:
    if not is_team_game(entrants):
        return weighted_game_score(entrants)
    teams = _group_teams(entrants)
    return _broadcast(teams, _weighted_game_scores(_team_pairs(teams)))


def team_dominance(entrants: Sequence[EntrantScore]) -> dict[str, float]:
    if not is_team_game(entrants):
        return dominance(entrants)
    teams = _group_teams(entrants)
    return _broadcast(teams, _dominance(_team_pairs(teams)))
