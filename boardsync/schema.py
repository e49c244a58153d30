"""
Board schema: boards, columns, tasks, members.

A board owns an ordered list of columns, a column owns an ordered list of
tasks. Every column/task carries an explicit ``position`` that equals its
index within its container, contiguous from 0.
"""
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any


class TaskStatus(Enum):
    """Workflow status shown on a task card."""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    @classmethod
    def from_str(cls, value: Optional[str]) -> "TaskStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.TODO


class TaskPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_str(cls, value: Optional[str]) -> "TaskPriority":
        try:
            return cls(value)
        except ValueError:
            return cls.MEDIUM


class MemberRole(Enum):
    OWNER = "owner"
    MEMBER = "member"

    @classmethod
    def from_str(cls, value: Optional[str]) -> "MemberRole":
        try:
            return cls(value)
        except ValueError:
            return cls.MEMBER


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        # Python < 3.11 does not accept a trailing "Z"
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return datetime.now(timezone.utc)


@dataclass
class Task:
    """A unit of work; lives in exactly one column at a time."""

    id: int
    title: str
    column_id: int                  # back-reference, reassigned on cross-column moves
    position: int = 0
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    assigned_user_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "column_id": self.column_id,
            "position": self.position,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "assigned_user_id": self.assigned_user_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        assigned = data.get("assigned_user_id")
        return cls(
            id=int(data["id"]),
            title=data.get("title", ""),
            column_id=int(data["column_id"]),
            position=int(data.get("position") or 0),
            description=data.get("description") or "",
            status=TaskStatus.from_str(data.get("status")),
            priority=TaskPriority.from_str(data.get("priority")),
            assigned_user_id=int(assigned) if assigned is not None else None,
        )


@dataclass
class Column:
    """Ordered container of tasks within a board."""

    id: int
    title: str
    board_id: int                   # back-reference only
    position: int = 0
    tasks: List[Task] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "board_id": self.board_id,
            "position": self.position,
            "tasks": [t.to_dict() for t in self.tasks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Column":
        """Deserialize from dict. Nested tasks are ordered by their position."""
        column_id = int(data["id"])
        tasks = []
        for raw in data.get("tasks") or []:
            # Nested tasks may omit the back-reference
            raw = {"column_id": column_id, **raw}
            tasks.append(Task.from_dict(raw))
        tasks.sort(key=lambda t: t.position)
        return cls(
            id=column_id,
            title=data.get("title", ""),
            board_id=int(data["board_id"]),
            position=int(data.get("position") or 0),
            tasks=tasks,
        )


@dataclass
class Board:
    """Top-level container; never reordered itself."""

    id: int
    name: str
    owner_id: int
    description: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "user_id": self.owner_id,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Board":
        owner = data.get("user_id", data.get("owner_id"))
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            owner_id=int(owner) if owner is not None else 0,
            description=data.get("description") or "",
            created_at=_parse_datetime(data.get("created_at")),
        )


@dataclass
class Member:
    """A user's membership on a board."""

    id: int
    board_id: int
    user_id: int
    role: MemberRole = MemberRole.MEMBER
    email: str = ""
    name: str = ""

    @property
    def is_owner(self) -> bool:
        return self.role == MemberRole.OWNER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "board_id": self.board_id,
            "user_id": self.user_id,
            "role": self.role.value,
            "email": self.email,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Member":
        return cls(
            id=int(data["id"]),
            board_id=int(data["board_id"]),
            user_id=int(data["user_id"]),
            role=MemberRole.from_str(data.get("role")),
            email=data.get("email") or "",
            name=data.get("name") or "",
        )
