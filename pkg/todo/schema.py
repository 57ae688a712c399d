"""
To-do list schema.

Documents live under a per-user namespace:
  users/{uid}/todoLists/{listId}                 → TodoList
  users/{uid}/todoLists/{listId}/tasks/{taskId}  → Task

Field names on the wire stay camelCase (name, createdBy, createdAt, title,
description, dueDate, priority) so existing data keeps loading.
"""
from enum import Enum
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Optional, List, Dict, Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Priority(Enum):
    """Task priority; each value is one lane of a list."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_str(cls, value: Optional[str]) -> "Priority":
        """Unknown or missing values land in the low lane."""
        if isinstance(value, Priority):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.LOW


# Lane order as displayed
LANES = (Priority.LOW, Priority.MEDIUM, Priority.HIGH)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


@dataclass(frozen=True)
class User:
    """A signed-in account as reported by the auth provider."""
    uid: str
    email: str
    id_token: str = field(default="", compare=False, repr=False)


@dataclass
class Task:
    """A single to-do item inside one list."""

    id: str
    title: str
    description: str = ""
    due_date: Optional[date] = None
    priority: Priority = Priority.LOW
    created_at: Optional[datetime] = None

    def to_fields(self) -> Dict[str, Any]:
        """Document fields as written to the store (id is the document name)."""
        return {
            "title": self.title,
            "description": self.description,
            "dueDate": self.due_date.isoformat() if self.due_date else "",
            "priority": self.priority.value,
            "createdAt": self.created_at or utc_now(),
        }

    @classmethod
    def from_document(cls, doc_id: str, fields: Dict[str, Any]) -> "Task":
        return cls(
            id=doc_id,
            title=str(fields.get("title") or ""),
            description=str(fields.get("description") or ""),
            due_date=_parse_date(fields.get("dueDate")),
            priority=Priority.from_str(fields.get("priority")),
            created_at=_parse_timestamp(fields.get("createdAt")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "dueDate": self.due_date.isoformat() if self.due_date else "",
            "priority": self.priority.value,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class TodoList:
    """A named list owned by one user, with its tasks nested after a load."""

    id: str
    name: str
    created_by: str = ""
    created_at: Optional[datetime] = None
    tasks: List[Task] = field(default_factory=list)

    def to_fields(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "createdBy": self.created_by,
            "createdAt": self.created_at or utc_now(),
        }

    @classmethod
    def from_document(
        cls, doc_id: str, fields: Dict[str, Any], tasks: Optional[List[Task]] = None
    ) -> "TodoList":
        return cls(
            id=doc_id,
            name=str(fields.get("name") or ""),
            created_by=str(fields.get("createdBy") or ""),
            created_at=_parse_timestamp(fields.get("createdAt")),
            tasks=list(tasks or []),
        )

    def find_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def lanes(self) -> Dict[Priority, List[Task]]:
        """Partition tasks into exactly three lanes, keeping store order."""
        lanes: Dict[Priority, List[Task]] = {p: [] for p in LANES}
        for task in self.tasks:
            lanes[task.priority].append(task)
        return lanes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "createdBy": self.created_by,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "lanes": {
                p.value: [t.to_dict() for t in tasks]
                for p, tasks in self.lanes().items()
            },
        }


DRAFT_FIELDS = ("title", "description", "dueDate", "priority")


@dataclass
class TaskDraft:
    """Per-list new-task input, kept as typed until the task is created."""
    title: str = ""
    description: str = ""
    due_date: str = ""
    priority: str = Priority.LOW.value

    @classmethod
    def empty(cls) -> "TaskDraft":
        return cls()

    def with_field(self, name: str, value: Any) -> "TaskDraft":
        """Return a copy with one input field changed (camelCase names accepted)."""
        if name not in DRAFT_FIELDS:
            raise ValueError(f"Unknown task field: {name}")
        attr = "due_date" if name == "dueDate" else name
        return replace(self, **{attr: "" if value is None else str(value)})

    def merged(self, overrides: Optional[Dict[str, Any]]) -> "TaskDraft":
        draft = self
        for name, value in (overrides or {}).items():
            draft = draft.with_field(name, value)
        return draft

    def to_task_fields(self, created_at: datetime) -> Dict[str, Any]:
        """Fields for a new task document; priority falls back to low."""
        due = _parse_date(self.due_date)
        return {
            "title": self.title,
            "description": self.description,
            "dueDate": due.isoformat() if due else "",
            "priority": Priority.from_str(self.priority or None).value,
            "createdAt": created_at,
        }

    def to_dict(self) -> Dict[str, str]:
        return {
            "title": self.title,
            "description": self.description,
            "dueDate": self.due_date,
            "priority": self.priority,
        }


@dataclass(frozen=True)
class DragRef:
    """The task currently being dragged and the list it came from."""
    task: Task
    source_list_id: str
