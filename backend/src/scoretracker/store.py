from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from .domain import GameDraft, GameSession, new_id
from .state import DEFAULT_PLAYERS, AppState, initial_state

logger = logging.getLogger(__name__)

Action = Callable[[AppState], AppState]


class StoreConflictError(RuntimeError):
    pass


class Store(Protocol):
    def get_state(self) -> AppState: ...

    def update(self, action: Action) -> AppState: ...


@dataclass
class InMemoryStore(Store):
    state: AppState
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @classmethod
    def create(cls, players: tuple[str, ...] = DEFAULT_PLAYERS) -> "InMemoryStore":
        return cls(state=initial_state(players))

    def get_state(self) -> AppState:
        return self.state

    def update(self, action: Action) -> AppState:
        with self._lock:
            self.state = action(self.state)
            return self.state


@dataclass(frozen=True)
class _Snapshot:
    version: int
    state: AppState
    session_ids: tuple[str, ...]


@dataclass
class DynamoDBStore(Store):
    """ゲームは1件ずつ SESSION# アイテム、ロースターと順序は META アイテムに保存する。

    META の version を条件付き書き込みで進めることで、同時更新による
    取りこぼしを防ぐ。競合したら読み直して reducer をやり直す。
    """

    table_name: str
    tracker_id: str = "default"
    players: tuple[str, ...] = DEFAULT_PLAYERS
    max_attempts: int = 5

    @classmethod
    def from_env(cls, players: tuple[str, ...] = DEFAULT_PLAYERS) -> "DynamoDBStore":
        table_name = os.environ.get("DDB_TABLE_NAME", "")
        if not table_name:
            raise RuntimeError("DDB_TABLE_NAME is required for dynamodb store")
        tracker_id = os.environ.get("TRACKER_ID", "default").strip() or "default"
        return cls(table_name=table_name, tracker_id=tracker_id, players=players)

    @property
    def _table(self):
        ddb = boto3.resource("dynamodb")
        return ddb.Table(self.table_name)

    @property
    def _pk(self) -> str:
        return f"TRACKER#{self.tracker_id}"

    def get_state(self) -> AppState:
        return self._read().state

    def update(self, action: Action) -> AppState:
        for attempt in range(1, self.max_attempts + 1):
            snapshot = self._read()
            state = action(snapshot.state)
            try:
                self._write(snapshot, state)
            except StoreConflictError:
                logger.info("concurrent update, retrying (%d/%d)", attempt, self.max_attempts)
                continue
            return state
        raise StoreConflictError("state kept changing during update")

    def _read(self) -> _Snapshot:
        resp = self._table.get_item(Key={"pk": self._pk, "sk": "META"}, ConsistentRead=True)
        item = resp.get("Item")
        if not item:
            return _Snapshot(version=0, state=initial_state(self.players), session_ids=())

        session_ids = tuple(item.get("session_ids", []))
        bodies = self._session_bodies()
        draft = item.get("draft")
        state = AppState(
            players=tuple(item.get("players", [])),
            sessions=tuple(GameSession.model_validate_json(bodies[sid]) for sid in session_ids),
            draft=GameDraft.model_validate_json(draft) if draft else None,
        )
        return _Snapshot(version=int(item["version"]), state=state, session_ids=session_ids)

    def _session_bodies(self) -> dict[str, str]:
        query = {
            "KeyConditionExpression": Key("pk").eq(self._pk) & Key("sk").begins_with("SESSION#"),
            "ConsistentRead": True,
        }
        bodies: dict[str, str] = {}
        while True:
            resp = self._table.query(**query)
            for it in resp.get("Items", []):
                # sk: SESSION#{session_id}
                bodies[it["sk"].split("#", 1)[1]] = it["session"]
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return bodies
            query["ExclusiveStartKey"] = last_key

    def _write(self, snapshot: _Snapshot, state: AppState) -> None:
        # 変わっていないゲームは既存のアイテムを使い回す
        existing: dict[GameSession, list[str]] = {}
        for sid, session in zip(snapshot.session_ids, snapshot.state.sessions):
            existing.setdefault(session, []).append(sid)

        session_ids: list[str] = []
        created: dict[str, GameSession] = {}
        for session in state.sessions:
            reusable = existing.get(session)
            if reusable:
                session_ids.append(reusable.pop(0))
                continue
            sid = new_id("ses")
            created[sid] = session
            session_ids.append(sid)

        table = self._table
        with table.batch_writer() as batch:
            for sid, session in created.items():
                batch.put_item(
                    Item={
                        "pk": self._pk,
                        "sk": f"SESSION#{sid}",
                        "session": session.model_dump_json(by_alias=True),
                    }
                )

        meta = {
            "pk": self._pk,
            "sk": "META",
            "version": snapshot.version + 1,
            "players": list(state.players),
            "session_ids": session_ids,
            "updated_at": _now().isoformat(),
        }
        if state.draft is not None:
            meta["draft"] = state.draft.model_dump_json(by_alias=True)

        if snapshot.version == 0:
            condition = Attr("version").not_exists()
        else:
            condition = Attr("version").eq(snapshot.version)
        try:
            table.put_item(Item=meta, ConditionExpression=condition)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "ConditionalCheckFailedException":
                raise
            self._delete_sessions(created)
            raise StoreConflictError("state changed concurrently") from e

        kept = set(session_ids)
        self._delete_sessions(sid for sid in snapshot.session_ids if sid not in kept)

    def _delete_sessions(self, session_ids: Iterable[str]) -> None:
        with self._table.batch_writer() as batch:
            for sid in session_ids:
                batch.delete_item(Key={"pk": self._pk, "sk": f"SESSION#{sid}"})


def players_from_env() -> tuple[str, ...]:
    raw = os.environ.get("DEFAULT_PLAYERS")
    if raw is None:
        return DEFAULT_PLAYERS
    return tuple(p.strip() for p in raw.split(",") if p.strip())


def build_store() -> Store:
    kind = os.environ.get("STORE_BACKEND", "inmemory").strip().lower()
    players = players_from_env()
    logger.info("using %s store", kind)
    if kind == "dynamodb":
        return DynamoDBStore.from_env(players)
    return InMemoryStore.create(players)


def _now() -> datetime:
    return datetime.now(timezone.utc)
