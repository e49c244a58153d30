"""Shared fixtures: an in-memory board store that records every call."""

import threading
from collections import Counter
from dataclasses import replace
from typing import Any, Dict, List, Optional

import pytest

from boardsync.errors import LoadError, PersistenceError
from boardsync.schema import Board, Column, Member, MemberRole, Task

BOARD_ID = 1


def make_task(task_id: int, column_id: int, position: int, title: str = "") -> Task:
    return Task(id=task_id, title=title or f"t{task_id}", column_id=column_id, position=position)


def make_column(column_id: int, position: int, task_ids=(), title: str = "") -> Column:
    return Column(
        id=column_id,
        title=title or f"col{column_id}",
        board_id=BOARD_ID,
        position=position,
        tasks=[make_task(t, column_id, i) for i, t in enumerate(task_ids)],
    )


class RecordingGateway:
    """
    BoardGateway backed by dicts.

    Writes mutate the stored rows one at a time, so a failure partway through
    a move leaves the store in whatever half-written state a real one would
    be in. ``fail(method, nth)`` makes the nth call to ``method`` raise.
    ``hold()`` blocks writes until ``release()``.
    """

    def __init__(self, columns: List[Column], board: Optional[Board] = None):
        self.board = board or Board(id=BOARD_ID, name="Roadmap", owner_id=7)
        self.columns: Dict[int, Column] = {}
        self.tasks: Dict[int, Task] = {}
        for column in columns:
            self.columns[column.id] = replace(column, tasks=[])
            for task in column.tasks:
                self.tasks[task.id] = replace(task)
        self.members = [Member(id=1, board_id=BOARD_ID, user_id=7, role=MemberRole.OWNER)]
        self.calls: List[tuple] = []
        self.counts: Counter = Counter()
        self.failures: Dict[str, set] = {}
        self.fail_reads = False
        self.next_id = 1000
        self._gate: Optional[threading.Event] = None

    # ── test controls ────────────────────────────────────────────────────────

    def fail(self, method: str, nth: int = 1) -> None:
        self.failures.setdefault(method, set()).add(nth)

    def hold(self) -> None:
        self._gate = threading.Event()

    def release(self) -> None:
        if self._gate is not None:
            self._gate.set()

    def writes(self, method: Optional[str] = None) -> List[tuple]:
        reads = {"fetch_board", "fetch_columns", "fetch_board_members", "fetch_task"}
        return [c for c in self.calls
                if c[0] not in reads and (method is None or c[0] == method)]

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        self.counts[method] += 1
        if self.counts[method] in self.failures.get(method, set()):
            raise PersistenceError(f"{method} rejected", item_id=args[0] if args else None)

    def _write(self, method: str, *args) -> None:
        if self._gate is not None:
            self._gate.wait(timeout=5)
        self._record(method, *args)

    def _read(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        self.counts[method] += 1
        if self.fail_reads:
            raise LoadError(f"{method} unavailable")

    # ── reads ────────────────────────────────────────────────────────────────

    def fetch_board(self, board_id: int) -> Board:
        self._read("fetch_board", board_id)
        return replace(self.board)

    def fetch_columns(self, board_id: int) -> List[Column]:
        self._read("fetch_columns", board_id)
        return self.snapshot()

    def fetch_board_members(self, board_id: int) -> List[Member]:
        self._read("fetch_board_members", board_id)
        return list(self.members)

    def fetch_task(self, task_id: int) -> Task:
        self._read("fetch_task", task_id)
        if task_id not in self.tasks:
            raise LoadError(f"task {task_id} not found", status=404)
        return replace(self.tasks[task_id])

    def snapshot(self) -> List[Column]:
        """Stored state as the remote would return it, without recording a call."""
        result = []
        for column in sorted(self.columns.values(), key=lambda c: (c.position, c.id)):
            tasks = sorted(
                (replace(t) for t in self.tasks.values() if t.column_id == column.id),
                key=lambda t: (t.position, t.id),
            )
            result.append(replace(column, tasks=tasks))
        return result

    # ── writes ───────────────────────────────────────────────────────────────

    def update_column_position(self, column_id: int, position: int) -> None:
        self._write("update_column_position", column_id, position)
        if column_id not in self.columns:
            raise PersistenceError(f"column {column_id} not found", item_id=column_id, status=404)
        self.columns[column_id] = replace(self.columns[column_id], position=position)

    def update_column(self, column_id: int, title: str) -> None:
        self._write("update_column", column_id, title)
        self.columns[column_id] = replace(self.columns[column_id], title=title)

    def create_column(self, board_id: int, title: str, position: int) -> Column:
        self._write("create_column", board_id, title, position)
        self.next_id += 1
        column = Column(id=self.next_id, title=title, board_id=board_id, position=position)
        self.columns[column.id] = column
        return replace(column)

    def delete_column(self, column_id: int) -> None:
        self._write("delete_column", column_id)
        del self.columns[column_id]
        for task_id in [t.id for t in self.tasks.values() if t.column_id == column_id]:
            del self.tasks[task_id]

    def update_task(self, task_id: int, changes: Dict[str, Any]) -> None:
        self._write("update_task", task_id, dict(changes))
        if task_id not in self.tasks:
            raise PersistenceError(f"task {task_id} not found", item_id=task_id, status=404)
        self.tasks[task_id] = Task.from_dict({**self.tasks[task_id].to_dict(), **changes})

    def create_task(self, payload: Dict[str, Any]) -> Task:
        self._write("create_task", dict(payload))
        self.next_id += 1
        task = Task.from_dict({"id": self.next_id, **payload})
        self.tasks[task.id] = task
        return replace(task)

    def delete_task(self, task_id: int) -> None:
        self._write("delete_task", task_id)
        del self.tasks[task_id]


def positions(items) -> List[int]:
    return [item.position for item in items]


def ids(items) -> List[int]:
    return [item.id for item in items]


@pytest.fixture
def abc_columns():
    """Columns A(10), B(11), C(12) with no tasks."""
    return [make_column(10, 0, title="A"), make_column(11, 1, title="B"), make_column(12, 2, title="C")]


@pytest.fixture
def xy_columns():
    """Column X(20) holds t1, t2; column Y(21) holds t3."""
    return [make_column(20, 0, [1, 2], title="X"), make_column(21, 1, [3], title="Y")]
