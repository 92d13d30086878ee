from __future__ import annotations

from scoretracker.domain import EntrantScore
from scoretracker.ranking import (
    dominance,
    game_score,
    rank_individual,
    rank_team_aware,
    round_fixed,
    round_half_up,
    team_dominance,
    team_game_score,
    team_weighted_game_score,
    weighted_game_score,
)


def _entrants(*items: tuple) -> list[EntrantScore]:
    out = []
    for item in items:
        name, score, *rest = item
        out.append(EntrantScore(name=name, score=score, team=rest[0] if rest else None))
    return out


def test_rank_individual_competition_ranking():
    """同点は同順位、次の順位はグループの大きさだけ飛ぶ(1,2,2,4)。"""

    entrants = _entrants(("A", 9), ("B", 7), ("C", 7), ("D", 1))
    assert rank_individual(entrants) == {"A": 1, "B": 2, "C": 2, "D": 4}


def test_game_score_with_tied_top_group():
    """上位同点は100、残りは使用済み枠に応じて縮む。"""

    entrants = _entrants(("A", 10), ("B", 10), ("C", 5))
    assert rank_individual(entrants) == {"A": 1, "B": 1, "C": 3}
    assert game_score(entrants) == {"A": 100, "B": 100, "C": 0}


def test_game_score_with_tied_middle_group():
    entrants = _entrants(("A", 9), ("B", 7), ("C", 7), ("D", 1))
    assert game_score(entrants) == {"A": 100, "B": 67, "C": 67, "D": 0}


def test_single_entrant():
    """1人だけのゲームは全指標が最大値。"""

    entrants = _entrants(("A", 7))
    assert rank_individual(entrants) == {"A": 1}
    assert game_score(entrants) == {"A": 100}
    assert weighted_game_score(entrants) == {"A": 100}
    assert dominance(entrants) == {"A": 100.0}


def test_all_equal_scores():
    """全員同点なら加重スコアは全員100、支配率は均等。"""

    entrants = _entrants(("A", 5), ("B", 5))
    assert weighted_game_score(entrants) == {"A": 100, "B": 100}
    assert dominance(entrants) == {"A": 50.0, "B": 50.0}


def test_zero_sum_dominance():
    """合計0点なら支配率は全員0。"""

    entrants = _entrants(("A", 0), ("B", 0))
    assert dominance(entrants) == {"A": 0.0, "B": 0.0}
    assert weighted_game_score(entrants) == {"A": 100, "B": 100}


def test_weighted_game_score_min_max():
    entrants = _entrants(("A", 4), ("B", 7), ("C", 10))
    assert weighted_game_score(entrants) == {"A": 0, "B": 50, "C": 100}


def test_dominance_rounds_to_two_places():
    entrants = _entrants(("A", 1), ("B", 2))
    assert dominance(entrants) == {"A": 33.33, "B": 66.67}


def test_empty_input():
    assert rank_individual([]) == {}
    assert game_score([]) == {}
    assert weighted_game_score([]) == {}
    assert dominance([]) == {}


def test_rounding_is_half_up():
    """0.5 は常に切り上げる。"""

    assert round_half_up(62.5) == 63
    assert round_half_up(2.5) == 3
    assert round_fixed(0.125, 2) == 0.13
    assert round_fixed(47.619047, 2) == 47.62


def test_team_results_are_broadcast_to_members():
    """チーム単位で順位付けし、全メンバーに同じ値を配る。"""

    entrants = _entrants(("A", 10, 1), ("B", 10, 1), ("C", 5, 2))
    assert rank_team_aware(entrants) == {"A": 1, "B": 1, "C": 2}
    assert team_game_score(entrants) == {"A": 100, "B": 100, "C": 0}
    assert team_weighted_game_score(entrants) == {"A": 100, "B": 100, "C": 0}
    assert team_dominance(entrants) == {"A": 66.67, "B": 66.67, "C": 33.33}


def test_team_size_does_not_change_granularity():
    """2人対2人のチーム戦は2人の個人戦と同じ分布になる。"""

    teams = _entrants(("A", 10, 1), ("B", 10, 1), ("C", 4, 2), ("D", 4, 2))
    solo = _entrants(("X", 10), ("Y", 4))

    assert team_game_score(teams) == {"A": 100, "B": 100, "C": 0, "D": 0}
    assert game_score(solo) == {"X": 100, "Y": 0}
    assert set(rank_team_aware(teams).values()) == set(rank_individual(solo).values())


def test_tied_teams_share_first_place():
    entrants = _entrants(("A", 5, 1), ("B", 5, 1), ("C", 5, 2), ("D", 5, 2))
    assert rank_team_aware(entrants) == {"A": 1, "B": 1, "C": 1, "D": 1}
    assert team_game_score(entrants) == {"A": 100, "B": 100, "C": 100, "D": 100}
    assert team_dominance(entrants) == {"A": 50.0, "B": 50.0, "C": 50.0, "D": 50.0}


def test_team_functions_fall_back_without_teams():
    """team が無ければ個人戦の計算と同じ。"""

    entrants = _entrants(("A", 9), ("B", 7), ("C", 7), ("D", 1))
    assert rank_team_aware(entrants) == rank_individual(entrants)
    assert team_game_score(entrants) == game_score(entrants)
    assert team_weighted_game_score(entrants) == weighted_game_score(entrants)
    assert team_dominance(entrants) == dominance(entrants)


def test_team_score_is_taken_from_first_member():
    """メンバー間のスコア不一致は検出せず、先頭メンバーのスコアを使う。"""

    entrants = _entrants(("A", 10, 1), ("B", 2, 1), ("C", 5, 2))
    assert rank_team_aware(entrants) == {"A": 1, "B": 1, "C": 2}
