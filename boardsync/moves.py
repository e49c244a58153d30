"""
Move computation: turn one drag gesture into the next column snapshot plus
the list of position writes needed to persist it.

Three shapes of move:
    column move             — reorder the board's single column list
    same-column task move   — reorder one column's tasks
    cross-column task move  — take a task out of one column, insert into another
"""
from enum import Enum
from dataclasses import dataclass, field, replace
from typing import Optional, List, Dict, Any, Sequence, Tuple

from .errors import InvalidMoveRequest
from .ordering import move_within_list, move_across_lists
from .schema import Column


class MoveKind(Enum):
    COLUMN = "column"
    TASK = "task"


@dataclass(frozen=True)
class MoveEvent:
    """One completed drag gesture. No destination means the drag was cancelled."""

    kind: MoveKind
    item_id: int
    source_container: int
    source_index: int
    destination_container: Optional[int] = None
    destination_index: Optional[int] = None

    @property
    def cancelled(self) -> bool:
        return self.destination_container is None or self.destination_index is None

    @property
    def is_noop(self) -> bool:
        return self.cancelled or (
            self.destination_container == self.source_container
            and self.destination_index == self.source_index
        )

    @classmethod
    def from_drag_result(cls, payload: Dict[str, Any], board_id: int) -> "MoveEvent":
        """
        Build an event from a drag-library result.

        Expected shape::

            {"type": "column" | "task",
             "draggableId": "12",
             "source": {"droppableId": "3", "index": 0},
             "destination": {"droppableId": "4", "index": 1} | None}

        Column drags always use ``board_id`` as their container, whatever
        droppable id the UI gave the column strip.

        Raises InvalidMoveRequest on a malformed payload.
        """
        try:
            kind = MoveKind(payload.get("type", "task"))
            item_id = int(payload["draggableId"])
            source = payload["source"]
            destination = payload.get("destination")
            source_index = int(source["index"])
            if kind == MoveKind.COLUMN:
                source_container = board_id
                dest_container = board_id if destination else None
            else:
                source_container = int(source["droppableId"])
                dest_container = int(destination["droppableId"]) if destination else None
            dest_index = int(destination["index"]) if destination else None
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidMoveRequest(f"Malformed drag result: {e}") from e

        return cls(
            kind=kind,
            item_id=item_id,
            source_container=source_container,
            source_index=source_index,
            destination_container=dest_container,
            destination_index=dest_index,
        )


@dataclass(frozen=True)
class PositionWrite:
    """One persistence call: an item and the position (and column) it now has."""

    kind: MoveKind
    item_id: int
    position: int
    column_id: Optional[int] = None   # tasks only


@dataclass
class MovePlan:
    """Result of planning a move: snapshots on both sides and the writes between them."""

    event: MoveEvent
    before: List[Column]
    after: List[Column]
    affected_columns: Tuple[int, ...] = ()   # empty for column moves
    writes: List[PositionWrite] = field(default_factory=list)


def _check_item(items: Sequence, index: int, item_id: int, what: str) -> None:
    if not 0 <= index < len(items):
        raise InvalidMoveRequest(f"{what} index {index} out of range (len={len(items)})")
    if items[index].id != item_id:
        raise InvalidMoveRequest(
            f"Stale gesture: {what} at index {index} is {items[index].id}, not {item_id}"
        )


def _find_column(columns: Sequence[Column], column_id: int) -> int:
    for index, column in enumerate(columns):
        if column.id == column_id:
            return index
    raise InvalidMoveRequest(f"Unknown column {column_id}")


def column_writes(columns: Sequence[Column]) -> List[PositionWrite]:
    return [PositionWrite(MoveKind.COLUMN, c.id, c.position) for c in columns]


def task_writes(column: Column) -> List[PositionWrite]:
    return [PositionWrite(MoveKind.TASK, t.id, t.position, t.column_id) for t in column.tasks]


def plan_move(board_id: int, columns: List[Column], event: MoveEvent) -> Optional[MovePlan]:
    """
    Compute the snapshot after ``event`` and the writes that persist it.

    Every item of every affected collection is written, in index order; for a
    cross-column move the source column's tasks go first.

    Returns None for a cancelled or same-place gesture.
    Raises InvalidMoveRequest for an unknown container, an out-of-range index,
    or when ``event.item_id`` is no longer at ``event.source_index``.
    """
    if event.is_noop:
        return None

    if event.kind == MoveKind.COLUMN:
        if event.source_container != board_id or event.destination_container != board_id:
            raise InvalidMoveRequest(
                f"Column move outside board {board_id}: "
                f"{event.source_container} -> {event.destination_container}"
            )
        _check_item(columns, event.source_index, event.item_id, "column")
        after = list(move_within_list(columns, event.source_index, event.destination_index))
        return MovePlan(event=event, before=columns, after=after, writes=column_writes(after))

    src_idx = _find_column(columns, event.source_container)
    dst_idx = _find_column(columns, event.destination_container)
    source = columns[src_idx]
    _check_item(source.tasks, event.source_index, event.item_id, "task")

    after = list(columns)
    if src_idx == dst_idx:
        tasks = move_within_list(source.tasks, event.source_index, event.destination_index)
        after[src_idx] = replace(source, tasks=list(tasks))
        return MovePlan(
            event=event,
            before=columns,
            after=after,
            affected_columns=(source.id,),
            writes=task_writes(after[src_idx]),
        )

    dest = columns[dst_idx]
    new_source_tasks, new_dest_tasks = move_across_lists(
        source.tasks, dest.tasks, event.source_index, event.destination_index, dest.id
    )
    after[src_idx] = replace(source, tasks=new_source_tasks)
    after[dst_idx] = replace(dest, tasks=new_dest_tasks)
    return MovePlan(
        event=event,
        before=columns,
        after=after,
        affected_columns=(source.id, dest.id),
        writes=task_writes(after[src_idx]) + task_writes(after[dst_idx]),
    )
