from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

NO_DATA = "—"

StatColumn = Literal[
    "name",
    "gamesPlayed",
    "wins",
    "avgPlacement",
    "avgGameScore",
    "avgWeightedGameScore",
    "avgDominance",
]
SortDirection = Literal["asc", "desc"]


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _FrozenModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex}"


def _strip_required(v: object, field: str) -> str:
    if not isinstance(v, str):
        raise ValueError(f"{field} must be a string")
    s = v.strip()
    if not s:
        raise ValueError(f"{field} must not be blank")
    return s


def _is_int(v: object) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


class EntrantScore(_FrozenModel):
    name: str = Field(min_length=1)
    score: StrictInt
    team: int | None = Field(default=None, ge=1, strict=True)


class GameSession(_FrozenModel):
    game_name: str
    entered_at: datetime
    scores: tuple[EntrantScore, ...]
    is_team_game: bool = False
    team_assignments: tuple[int | None, ...] | None = None

    @field_validator("entered_at", mode="before")
    @classmethod
    def _require_iso_string(cls, v: object) -> object:
        if isinstance(v, datetime):
            return v
        if not isinstance(v, str):
            raise ValueError("enteredAt must be an ISO-8601 string")
        return v

    @model_validator(mode="before")
    @classmethod
    def _share_team_scores(cls, data: object) -> object:
        """同じチームのメンバーには先頭メンバーのスコアを揃える。

        整数でないスコアは書き換えず、そのまま型検証で弾く。
        """

        if not isinstance(data, dict) or not isinstance(data.get("scores"), (list, tuple)):
            return data

        first: dict[int, int] = {}
        scores: list[object] = []
        for item in data["scores"]:
            if isinstance(item, EntrantScore):
                item = item.model_dump()
            if isinstance(item, dict) and _is_int(item.get("team")) and _is_int(item.get("score")):
                team = item["team"]
                if team in first:
                    item = {**item, "score": first[team]}
                else:
                    first[team] = item["score"]
            scores.append(item)
        return {**data, "scores": scores}

    @model_validator(mode="after")
    def _check_unique_names(self) -> "GameSession":
        names = [s.name for s in self.scores]
        if len(names) != len(set(names)):
            raise ValueError("entrant names must be unique within a game")
        return self


class LeaderboardRow(_Model):
    name: str
    games_played: int = 0
    wins: int = 0
    avg_placement: float | None = None
    avg_game_score: float | None = None
    avg_weighted_game_score: float | None = None
    avg_dominance: float | None = None


class PlayerGameRow(_Model):
    game_name: str
    entered_at: datetime
    score: int
    team: int | None = None
    placement: int
    game_score: int
    weighted_game_score: int
    dominance: float
    is_win: bool


class GameResultRow(_Model):
    name: str
    score: int
    team: int | None = None
    placement: int
    game_score: int
    weighted_game_score: int
    dominance: float
    is_win: bool


class GameDetail(_Model):
    index: int
    session: GameSession
    results: list[GameResultRow]


class DraftEntry(_FrozenModel):
    name: str
    score: int = 0
    active: bool = True
    team: int | None = Field(default=None, ge=1)


class GameDraft(_FrozenModel):
    game_name: str = ""
    is_team_game: bool = False
    entries: tuple[DraftEntry, ...] = ()


class AddPlayerRequest(_Model):
    name: str = Field(min_length=1, max_length=30)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v: object) -> str:
        return _strip_required(v, "name")


class UpdateDraftRequest(_Model):
    game_name: str | None = Field(default=None, max_length=100)
    is_team_game: bool | None = None


class UpdateDraftEntryRequest(_Model):
    score: int | None = None
    active: bool | None = None
    team: int | None = Field(default=None, ge=1)


class EditGameRequest(_Model):
    game_name: str | None = Field(default=None, max_length=100)
    scores: list[EntrantScore] | None = None


class PlayersResponse(_Model):
    players: list[str]


class GameLog(BaseModel):
    """保存ログ全体。空配列は受け付けない。"""

    sessions: list[GameSession] = Field(min_length=1)
