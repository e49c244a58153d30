"""
Reconciliation engine: optimistic moves with persist-or-reload recovery.

One engine per open board. A drag gesture is planned and published to
subscribers synchronously, then its position writes run in the background,
one at a time. If any write fails the engine reloads the board from the
remote store and replaces the affected part of local state wholesale.

Cycles are serialized per board: a gesture that arrives while another cycle
is in flight waits in a queue and is planned against whatever state is
current when its turn comes.

Events emitted to subscribers:
    state_changed   (columns=List[Column])
    notify          (notification=Notification)
    move_persisted  (event=MoveEvent)
"""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Sequence, Tuple

from .errors import InvalidMoveRequest, LoadError, PersistenceError
from .gateway import BoardGateway
from .moves import MoveEvent, MoveKind, MovePlan, PositionWrite, plan_move, column_writes, task_writes
from .ordering import remove_at
from .schema import Board, Column, Task, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)

# Task fields a user can edit from the task dialog
EDITABLE_TASK_FIELDS = {"title", "description", "status", "priority", "assigned_user_id"}

MOVE_FAILED = {
    MoveKind.COLUMN: "Failed to move column.",
    MoveKind.TASK: "Failed to move task.",
}


class MoveOutcome(Enum):
    """How a move-and-persist cycle ended."""
    PERSISTED = "persisted"          # every write succeeded; optimistic state is final
    ROLLED_BACK = "rolled_back"      # a write failed; local state replaced by a reload
    RELOAD_FAILED = "reload_failed"  # a write failed and so did the reload; pre-move state restored
    DISCARDED = "discarded"          # queued gesture no longer applied when its turn came


@dataclass(frozen=True)
class Notification:
    """Transient user-facing message (toast)."""
    level: str      # "error" | "info"
    title: str
    message: str


def merge_reload(current: Sequence[Column], fresh: List[Column],
                 affected: Tuple[int, ...]) -> List[Column]:
    """
    Fold a fresh load into local state.

    With no affected columns (a column move) the fresh list wins outright.
    Otherwise only the affected columns' tasks are replaced, unless the
    column set itself has changed remotely.
    """
    if not affected or {c.id for c in current} != {c.id for c in fresh}:
        return list(fresh)
    by_id = {c.id: c for c in fresh}
    return [
        replace(c, tasks=list(by_id[c.id].tasks)) if c.id in affected else c
        for c in current
    ]


class ReconciliationEngine:
    """Owns one board's column/task order and keeps it in step with the remote store."""

    def __init__(
        self,
        board_id: int,
        gateway: BoardGateway,
        columns: Sequence[Column],
        board: Optional[Board] = None,
        close_gaps_on_delete: bool = True,
    ):
        self.board_id = board_id
        self.board = board
        self.gateway = gateway
        self.close_gaps_on_delete = close_gaps_on_delete
        self.subscribers: Dict[str, list] = {}  # event_type -> list of callbacks
        self._columns: List[Column] = list(columns)
        self._pending: Deque[Tuple[Callable[[], Awaitable], asyncio.Future]] = deque()
        self._worker: Optional[asyncio.Task] = None

    # ── state ────────────────────────────────────────────────────────────────

    @property
    def columns(self) -> List[Column]:
        return list(self._columns)

    def column(self, column_id: int) -> Optional[Column]:
        for column in self._columns:
            if column.id == column_id:
                return column
        return None

    def find_task(self, task_id: int) -> Optional[Tuple[Column, int]]:
        """Return (column, index) of a task, or None."""
        for column in self._columns:
            for index, task in enumerate(column.tasks):
                if task.id == task_id:
                    return column, index
        return None

    @property
    def busy(self) -> bool:
        """True while a cycle is running or queued."""
        return bool(self._pending) or (self._worker is not None and not self._worker.done())

    # ── subscribers ──────────────────────────────────────────────────────────

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """Register a callback for an event type."""
        self.subscribers.setdefault(event_type, []).append(callback)

    def _emit(self, event_type: str, **kwargs) -> None:
        for callback in self.subscribers.get(event_type, []):
            try:
                callback(**kwargs)
            except Exception:
                logger.exception(f"Error in {event_type} subscriber")

    def _publish(self, columns: Sequence[Column]) -> None:
        self._columns = list(columns)
        self._emit("state_changed", columns=self.columns)

    def _notify(self, message: str, title: str = "Error", level: str = "error") -> None:
        self._emit("notify", notification=Notification(level=level, title=title, message=message))

    # ── single-flight queue ──────────────────────────────────────────────────

    def _submit(self, step: Callable[[], Awaitable]) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending.append((step, future))
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain())
        return future

    async def _drain(self) -> None:
        while self._pending:
            step, future = self._pending.popleft()
            try:
                result = await step()
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)

    async def drain(self) -> None:
        """Wait until every queued cycle has finished."""
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)

    # ── moves ────────────────────────────────────────────────────────────────

    def handle_move(self, event: MoveEvent) -> Optional[asyncio.Future]:
        """
        Apply a drag gesture optimistically and persist it in the background.

        Must be called from a running event loop. Returns None when the
        gesture is a no-op or invalid (nothing changes, nothing is written);
        otherwise a future resolving to a MoveOutcome.
        """
        asyncio.get_running_loop()
        if event.is_noop:
            return None

        if self.busy:
            logger.debug(f"Board {self.board_id} busy, queueing {event}")
            return self._submit(lambda: self._run_queued_move(event))

        try:
            plan = plan_move(self.board_id, self._columns, event)
        except InvalidMoveRequest as e:
            logger.debug(f"Ignoring move on board {self.board_id}: {e}")
            return None
        if plan is None:
            return None

        self._publish(plan.after)
        return self._submit(lambda: self._persist_move(plan))

    async def _run_queued_move(self, event: MoveEvent) -> MoveOutcome:
        try:
            plan = plan_move(self.board_id, self._columns, event)
        except InvalidMoveRequest as e:
            logger.debug(f"Discarding queued move on board {self.board_id}: {e}")
            return MoveOutcome.DISCARDED
        if plan is None:
            return MoveOutcome.DISCARDED
        self._publish(plan.after)
        return await self._persist_move(plan)

    async def _persist_move(self, plan: MovePlan) -> MoveOutcome:
        event = plan.event
        try:
            await self._write_all(plan.writes)
        except PersistenceError as e:
            logger.warning(
                f"Persisting {event.kind.value} {event.item_id} failed: {e}; "
                f"reloading board {self.board_id}"
            )
            self._notify(MOVE_FAILED[event.kind])
            return await self._recover(plan.before, plan.affected_columns)

        logger.info(
            f"Moved {event.kind.value} {event.item_id} to "
            f"{event.destination_container}[{event.destination_index}] "
            f"({len(plan.writes)} writes)"
        )
        self._emit("move_persisted", event=event)
        return MoveOutcome.PERSISTED

    async def _write_all(self, writes: Sequence[PositionWrite]) -> None:
        """Issue writes one by one, in order; stop at the first failure."""
        for write in writes:
            if write.kind == MoveKind.COLUMN:
                await asyncio.to_thread(
                    self.gateway.update_column_position, write.item_id, write.position
                )
            else:
                await asyncio.to_thread(
                    self.gateway.update_task,
                    write.item_id,
                    {"position": write.position, "column_id": write.column_id},
                )

    async def _recover(self, fallback: Sequence[Column], affected: Tuple[int, ...]) -> MoveOutcome:
        """Replace local state with a fresh load; restore ``fallback`` if the load fails."""
        try:
            fresh = await asyncio.to_thread(self.gateway.fetch_columns, self.board_id)
        except LoadError as e:
            logger.error(f"Reloading board {self.board_id} failed: {e}")
            self._notify("Failed to reload board.")
            self._publish(fallback)
            return MoveOutcome.RELOAD_FAILED

        self._publish(merge_reload(self._columns, fresh, affected))
        return MoveOutcome.ROLLED_BACK

    async def reload(self) -> bool:
        """Replace all local state with the remote store's. Returns False on LoadError."""
        return await self._submit(self._reload)

    async def _reload(self) -> bool:
        try:
            fresh = await asyncio.to_thread(self.gateway.fetch_columns, self.board_id)
        except LoadError as e:
            logger.error(f"Loading board {self.board_id} failed: {e}")
            self._notify("Failed to reload board.")
            return False
        self._publish(fresh)
        return True

    # ── lifecycle ────────────────────────────────────────────────────────────

    async def create_column(self, title: str) -> Optional[Column]:
        """Create a column at the end of the board."""
        return await self._submit(lambda: self._create_column(title))

    async def _create_column(self, title: str) -> Optional[Column]:
        position = len(self._columns)
        try:
            column = await asyncio.to_thread(
                self.gateway.create_column, self.board_id, title, position
            )
        except PersistenceError as e:
            logger.warning(f"Creating column {title!r} on board {self.board_id} failed: {e}")
            self._notify("Failed to create column.")
            return None
        column = replace(column, position=position, tasks=list(column.tasks))
        self._publish(self._columns + [column])
        return column

    async def rename_column(self, column_id: int, title: str) -> Optional[Column]:
        return await self._submit(lambda: self._rename_column(column_id, title))

    async def _rename_column(self, column_id: int, title: str) -> Optional[Column]:
        if self.column(column_id) is None:
            logger.debug(f"Rename of unknown column {column_id} ignored")
            return None
        try:
            await asyncio.to_thread(self.gateway.update_column, column_id, title)
        except PersistenceError as e:
            logger.warning(f"Renaming column {column_id} failed: {e}")
            self._notify("Failed to update column.")
            return None
        columns = [replace(c, title=title) if c.id == column_id else c for c in self._columns]
        self._publish(columns)
        return self.column(column_id)

    async def create_task(
        self,
        column_id: int,
        title: str,
        description: str = "",
        priority: TaskPriority = TaskPriority.MEDIUM,
        assigned_user_id: Optional[int] = None,
    ) -> Optional[Task]:
        """Create a task at the end of a column."""
        payload = {
            "title": title,
            "description": description,
            "column_id": column_id,
            "status": TaskStatus.TODO.value,
            "priority": priority.value,
        }
        if assigned_user_id is not None:
            payload["assigned_user_id"] = assigned_user_id
        return await self._submit(lambda: self._create_task(payload))

    async def _create_task(self, payload: dict) -> Optional[Task]:
        column = self.column(payload["column_id"])
        if column is None:
            logger.debug(f"Task creation in unknown column {payload['column_id']} ignored")
            return None
        payload = {**payload, "position": len(column.tasks)}
        try:
            task = await asyncio.to_thread(self.gateway.create_task, payload)
        except PersistenceError as e:
            logger.warning(f"Creating task in column {column.id} failed: {e}")
            self._notify("Failed to create task.")
            return None
        task = replace(task, column_id=column.id, position=payload["position"])
        self._replace_column(replace(column, tasks=column.tasks + [task]))
        return task

    async def edit_task(self, task_id: int, **changes) -> Optional[Task]:
        """
        Update a task's details. Position and column are left alone; those
        only change through moves.

        Raises ValueError for fields that are not editable.
        """
        unknown = set(changes) - EDITABLE_TASK_FIELDS
        if unknown:
            raise ValueError(f"Not editable: {sorted(unknown)}")
        payload = {k: v.value if isinstance(v, Enum) else v for k, v in changes.items()}
        return await self._submit(lambda: self._edit_task(task_id, payload))

    async def _edit_task(self, task_id: int, payload: dict) -> Optional[Task]:
        if self.find_task(task_id) is None:
            logger.debug(f"Edit of unknown task {task_id} ignored")
            return None
        try:
            await asyncio.to_thread(self.gateway.update_task, task_id, payload)
        except PersistenceError as e:
            logger.warning(f"Updating task {task_id} failed: {e}")
            self._notify("Failed to update task.")
            return None
        column, index = self.find_task(task_id)
        task = Task.from_dict({**column.tasks[index].to_dict(), **payload})
        tasks = list(column.tasks)
        tasks[index] = task
        self._replace_column(replace(column, tasks=tasks))
        return task

    def _replace_column(self, column: Column) -> None:
        self._publish([column if c.id == column.id else c for c in self._columns])

    async def delete_task(self, task_id: int) -> bool:
        """Delete a task; with gap closing on, renumber and persist its later siblings."""
        return await self._submit(lambda: self._delete_task(task_id))

    async def _delete_task(self, task_id: int) -> bool:
        if self.find_task(task_id) is None:
            logger.debug(f"Delete of unknown task {task_id} ignored")
            return False
        try:
            await asyncio.to_thread(self.gateway.delete_task, task_id)
        except PersistenceError as e:
            logger.warning(f"Deleting task {task_id} failed: {e}")
            self._notify("Failed to delete task.")
            return False

        column, index = self.find_task(task_id)
        gapped = replace(column, tasks=[t for t in column.tasks if t.id != task_id])
        fallback = [gapped if c.id == column.id else c for c in self._columns]
        if not self.close_gaps_on_delete:
            self._publish(fallback)
            return True

        closed = replace(column, tasks=remove_at(column.tasks, index))
        writes = _changed_writes(gapped.tasks, task_writes(closed))
        after = [closed if c.id == column.id else c for c in self._columns]
        await self._close_gap(after, writes, fallback, affected=(column.id,))
        return True

    async def delete_column(self, column_id: int) -> bool:
        """Delete a column (and its tasks); with gap closing on, renumber later columns."""
        return await self._submit(lambda: self._delete_column(column_id))

    async def _delete_column(self, column_id: int) -> bool:
        if self.column(column_id) is None:
            logger.debug(f"Delete of unknown column {column_id} ignored")
            return False
        try:
            await asyncio.to_thread(self.gateway.delete_column, column_id)
        except PersistenceError as e:
            logger.warning(f"Deleting column {column_id} failed: {e}")
            self._notify("Failed to delete column.")
            return False

        index = next(i for i, c in enumerate(self._columns) if c.id == column_id)
        fallback = [c for c in self._columns if c.id != column_id]
        if not self.close_gaps_on_delete:
            self._publish(fallback)
            return True

        after = remove_at(self._columns, index)
        writes = _changed_writes(fallback, column_writes(after))
        await self._close_gap(after, writes, fallback, affected=())
        return True

    async def _close_gap(self, after: List[Column], writes: List[PositionWrite],
                         fallback: List[Column], affected: Tuple[int, ...]) -> None:
        self._publish(after)
        try:
            await self._write_all(writes)
        except PersistenceError as e:
            logger.warning(f"Renumbering after delete on board {self.board_id} failed: {e}")
            self._notify("Failed to update positions.")
            await self._recover(fallback, affected)


def _changed_writes(old_items: Sequence, writes: List[PositionWrite]) -> List[PositionWrite]:
    """Keep only the writes whose position differs from the item's old one."""
    old = {item.id: item.position for item in old_items}
    return [w for w in writes if old.get(w.item_id) != w.position]


async def open_board(gateway: BoardGateway, board_id: int,
                     close_gaps_on_delete: bool = True) -> ReconciliationEngine:
    """
    Load a board and its columns and return an engine bound to them.

    Raises LoadError if either read fails.
    """
    board = await asyncio.to_thread(gateway.fetch_board, board_id)
    columns = await asyncio.to_thread(gateway.fetch_columns, board_id)
    logger.info(f"Opened board {board_id} ({len(columns)} columns)")
    return ReconciliationEngine(
        board_id,
        gateway,
        columns,
        board=board,
        close_gaps_on_delete=close_gaps_on_delete,
    )
