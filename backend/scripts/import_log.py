from __future__ import annotations

import argparse
import logging
from pathlib import Path

from scoretracker.domain import LeaderboardRow
from scoretracker.leaderboard import PRECISION, build_leaderboard, format_stat
from scoretracker.state import InvalidLogError, load_log_text
from scoretracker.store import build_store


def _render(rows: list[LeaderboardRow]) -> str:
    lines = ["name\tgames\twins\tplace\tscore\tweighted\tdominance"]
    for r in rows:
        lines.append(
            "\t".join(
                [
                    r.name,
                    str(r.games_played),
                    str(r.wins),
                    format_stat(r.avg_placement, PRECISION["avg_placement"]),
                    format_stat(r.avg_game_score, PRECISION["avg_game_score"]),
                    format_stat(
                        r.avg_weighted_game_score, PRECISION["avg_weighted_game_score"]
                    ),
                    format_stat(r.avg_dominance, PRECISION["avg_dominance"]),
                ]
            )
        )
    return "\n".join(lines)


def main() -> None:
    parser = argparse.ArgumentParser(description="Load a saved game log into the store.")
    parser.add_argument("path", type=Path, help="boardgame-log.json exported from the app")
    parser.add_argument(
        "--dry-run", action="store_true", help="validate and print the leaderboard only"
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    text = args.path.read_text(encoding="utf-8")
    store = build_store()
    try:
        if args.dry_run:
            state = load_log_text(store.get_state(), text)
        else:
            state = store.update(lambda s: load_log_text(s, text))
    except InvalidLogError as e:
        raise SystemExit(f"Invalid log file: {e}")

    if not args.dry_run:
        print(f"Imported {len(state.sessions)} games for {len(state.players)} players")

    print(_render(build_leaderboard(state.sessions, state.players)))


if __name__ == "__main__":
    main()
