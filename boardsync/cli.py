#!/usr/bin/env python3
"""
boardsync command line
──────────────────────
Show a board, or move a column/task through the reconciliation engine and
wait for it to be persisted.

Usage:
    boardsync show 7
    boardsync move-column 7 12 0
    boardsync move-task 7 105 13 2

Exit codes: 0 ok, 1 load failure or rolled-back move, 2 configuration error.
"""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional, Sequence

from .config import Config, ConfigError, setup_logging
from .engine import MoveOutcome, Notification, open_board
from .errors import LoadError
from .gateway import BoardGateway, HttpBoardGateway
from .moves import MoveEvent, MoveKind
from .schema import Board, Column, TaskStatus

logger = logging.getLogger(__name__)

STATUS_MARK = {
    TaskStatus.TODO: "[ ]",
    TaskStatus.IN_PROGRESS: "[~]",
    TaskStatus.DONE: "[x]",
}


def format_board(columns: Sequence[Column], board: Optional[Board] = None) -> str:
    """Render columns and their tasks as plain text."""
    lines = []
    if board is not None:
        lines.append(f"{board.name} (#{board.id})")
    if not columns:
        lines.append("No columns.")
    for column in columns:
        lines.append(f"{column.position}. {column.title} (#{column.id}, {len(column.tasks)} tasks)")
        for task in column.tasks:
            mark = STATUS_MARK.get(task.status, "[?]")
            lines.append(f"    {task.position}. {mark} {task.title} (#{task.id})")
    return "\n".join(lines)


def make_gateway(cfg: Config) -> BoardGateway:
    return HttpBoardGateway(cfg.require_api(), token=cfg.api_token, timeout=cfg.request_timeout)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="boardsync",
        description="Kanban board ordering client",
    )
    ap.add_argument("--config", default=None, help="Path to boardsync.yaml")
    ap.add_argument("--api-url", default=None, help="Board API base URL (overrides config)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    show = sub.add_parser("show", help="Print a board")
    show.add_argument("board", type=int)

    mc = sub.add_parser("move-column", help="Move a column to a new index")
    mc.add_argument("board", type=int)
    mc.add_argument("column", type=int)
    mc.add_argument("to_index", type=int)

    mt = sub.add_parser("move-task", help="Move a task to a column and index")
    mt.add_argument("board", type=int)
    mt.add_argument("task", type=int)
    mt.add_argument("to_column", type=int)
    mt.add_argument("to_index", type=int)
    return ap


def _event_for(args, engine) -> Optional[MoveEvent]:
    if args.command == "move-column":
        for index, column in enumerate(engine.columns):
            if column.id == args.column:
                return MoveEvent(MoveKind.COLUMN, column.id, engine.board_id, index,
                                 engine.board_id, args.to_index)
        return None
    found = engine.find_task(args.task)
    if found is None or engine.column(args.to_column) is None:
        return None
    column, index = found
    return MoveEvent(MoveKind.TASK, args.task, column.id, index, args.to_column, args.to_index)


async def _run(args, cfg: Config, gateway: BoardGateway) -> int:
    try:
        engine = await open_board(gateway, args.board, close_gaps_on_delete=cfg.close_gaps_on_delete)
    except LoadError as e:
        print(f"Could not load board {args.board}: {e}", file=sys.stderr)
        return 1

    if args.command == "show":
        print(format_board(engine.columns, engine.board))
        return 0

    def on_notify(notification: Notification):
        print(f"{notification.title}: {notification.message}", file=sys.stderr)

    engine.subscribe("notify", on_notify)

    event = _event_for(args, engine)
    if event is None:
        print(f"Nothing to move: not found on board {args.board}", file=sys.stderr)
        return 1
    pending = engine.handle_move(event)
    if pending is None:
        print("Nothing to move.")
        print(format_board(engine.columns, engine.board))
        return 0

    outcome = await pending
    print(format_board(engine.columns, engine.board))
    print(f"Move {outcome.value}.")
    return 0 if outcome == MoveOutcome.PERSISTED else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = Config.load(args.config)
    if args.api_url:
        cfg.api_url = args.api_url
    setup_logging("DEBUG" if args.verbose else cfg.log_level)

    try:
        gateway = make_gateway(cfg)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2
    return asyncio.run(_run(args, cfg, gateway))


if __name__ == "__main__":
    sys.exit(main())
