"""
List/task view state and drop reconciliation.

The store is the source of truth. Every mutation is followed by a full
re-fetch of the user's lists; the in-memory `lists` value is only ever
replaced wholesale by a completed load.

Drop rules (complete_drop):
    no drag pending                 → nothing
    bad priority or unloaded list   → nothing written, drag cleared
    same list, same priority        → nothing written
    same list, other priority       → update {priority} in place
    other list                      → create copy in target, then delete original

Loads may overlap; the last one to finish wins. A load started under an
earlier session never lands after that session has ended.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

from .backend import (
    AuthError,
    AuthProvider,
    DocumentStore,
    StoreError,
    lists_path,
    task_doc_path,
    tasks_path,
)
from .navigation import Navigator, Screen
from .schema import DragRef, Priority, Task, TaskDraft, TodoList, User, utc_now

logger = logging.getLogger(__name__)


class DropOutcome(Enum):
    IGNORED = "ignored"              # no drag pending
    UNCHANGED = "unchanged"          # dropped where it already was
    REPRIORITIZED = "reprioritized"
    MOVED = "moved"
    FAILED = "failed"


class TodoBoard:
    """Holds the signed-in user's lists and turns user actions into store writes."""

    def __init__(
        self,
        auth: AuthProvider,
        store: DocumentStore,
        navigator: Optional[Navigator] = None,
    ):
        self.auth = auth
        self.store = store
        self.navigator = navigator

        self.lists: List[TodoList] = []
        self.list_name_input: str = ""
        self.task_inputs: Dict[str, TaskDraft] = {}
        self.drag: Optional[DragRef] = None

        self._generation = 0
        self._pending: Set[asyncio.Task] = set()
        self._deferred_user: Optional[User] = None
        self._unsubscribe = None

    # ──────────────────────────────────────────
    # Session wiring
    # ──────────────────────────────────────────

    def mount(self) -> None:
        """Subscribe to session changes; picks up an already signed-in user."""
        if self._unsubscribe is None:
            self._unsubscribe = self.auth.on_session_change(self.on_session_change)
        if self.auth.current_user is not None:
            self.on_session_change(self.auth.current_user)

    def unmount(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_session_change(self, user: Optional[User]) -> None:
        self._generation += 1
        if user is not None:
            self._trigger_load(user)
            return
        # Session over: nothing from it stays visible
        self.lists = []
        self.task_inputs = {}
        self.list_name_input = ""
        self.drag = None
        self._deferred_user = None

    def _trigger_load(self, user: User) -> None:
        """Start load_all in the background, tracked so drain() can await it."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deferred_user = user
            return
        task = loop.create_task(self.load_all(user))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait until no background load is in flight."""
        if self._deferred_user is not None:
            user, self._deferred_user = self._deferred_user, None
            await self.load_all(user)
        while self._pending:
            await asyncio.gather(*list(self._pending))

    # ──────────────────────────────────────────
    # Loading
    # ──────────────────────────────────────────

    def _is_current(self, user: User, generation: int) -> bool:
        current = self.auth.current_user
        return (
            generation == self._generation
            and current is not None
            and current.uid == user.uid
        )

    async def load_all(self, user: Optional[User]) -> None:
        """Fetch every list and its tasks, then replace `lists` in one step."""
        if user is None:
            return
        generation = self._generation

        async def fetch_list(doc) -> TodoList:
            task_docs = await self.store.list_documents(tasks_path(user.uid, doc.id))
            tasks = [Task.from_document(t.id, t.fields) for t in task_docs]
            return TodoList.from_document(doc.id, doc.fields, tasks)

        try:
            list_docs = await self.store.list_documents(lists_path(user.uid))
            loaded = await asyncio.gather(*(fetch_list(doc) for doc in list_docs))
        except StoreError as e:
            logger.error(f"Error fetching to-do lists for {user.email}: {e}")
            return
        except Exception as e:
            logger.exception(f"Unexpected error fetching to-do lists for {user.email}: {e}")
            return

        if not self._is_current(user, generation):
            logger.info(f"Discarding lists loaded for ended session of {user.email}")
            return
        self.lists = list(loaded)

    # ──────────────────────────────────────────
    # Queries
    # ──────────────────────────────────────────

    def get_list(self, list_id: str) -> Optional[TodoList]:
        for todo_list in self.lists:
            if todo_list.id == list_id:
                return todo_list
        return None

    def find_task(self, list_id: str, task_id: str) -> Optional[Task]:
        todo_list = self.get_list(list_id)
        return todo_list.find_task(task_id) if todo_list else None

    @staticmethod
    def lanes(todo_list: TodoList) -> Dict[Priority, List[Task]]:
        return todo_list.lanes()

    def snapshot(self) -> Dict[str, Any]:
        """Render-ready view of the board."""
        drag = None
        if self.drag is not None:
            drag = {"taskId": self.drag.task.id, "listId": self.drag.source_list_id}
        return {
            "lists": [todo_list.to_dict() for todo_list in self.lists],
            "listNameInput": self.list_name_input,
            "taskInputs": {k: v.to_dict() for k, v in self.task_inputs.items()},
            "drag": drag,
        }

    # ──────────────────────────────────────────
    # Input buffers
    # ──────────────────────────────────────────

    def set_list_name(self, value: str) -> None:
        self.list_name_input = value or ""

    def set_task_input(self, list_id: str, field: str, value: Any) -> TaskDraft:
        """Change one field of a list's new-task input. Raises ValueError for unknown fields."""
        draft = self.task_inputs.get(list_id, TaskDraft.empty()).with_field(field, value)
        self.task_inputs[list_id] = draft
        return draft

    # ──────────────────────────────────────────
    # Creates
    # ──────────────────────────────────────────

    async def create_list(self, name: Optional[str] = None) -> Optional[str]:
        """Create a list from `name` (or the name input). Returns the new id."""
        name = self.list_name_input if name is None else name
        user = self.auth.current_user
        if not (name or "").strip() or user is None:
            return None
        try:
            list_id = await self.store.create(
                lists_path(user.uid),
                {"name": name, "createdBy": user.email, "createdAt": utc_now()},
            )
        except StoreError as e:
            logger.error(f"Error adding to-do list {name!r}: {e}")
            return None

        logger.info(f"List created: {list_id} ({name!r})")
        self._trigger_load(user)
        self.list_name_input = ""
        return list_id

    async def create_task(
        self, list_id: str, fields: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """Create a task from the list's input buffer, overlaid with `fields`."""
        draft = self.task_inputs.get(list_id, TaskDraft.empty()).merged(fields)
        user = self.auth.current_user
        if not draft.title.strip() or user is None:
            return None
        try:
            task_id = await self.store.create(
                tasks_path(user.uid, list_id), draft.to_task_fields(utc_now())
            )
        except StoreError as e:
            logger.error(f"Error adding task to list {list_id}: {e}")
            return None

        logger.info(f"Task created: {task_id} in list {list_id}")
        self._trigger_load(user)
        self.task_inputs[list_id] = TaskDraft.empty()
        return task_id

    # ──────────────────────────────────────────
    # Drag and drop
    # ──────────────────────────────────────────

    def begin_drag(self, task: Task, source_list_id: str) -> None:
        """Remember the dragged task; a new drag replaces any previous one."""
        self.drag = DragRef(task=task, source_list_id=source_list_id)

    async def complete_drop(
        self, target_list_id: str, target_priority: Union[Priority, str]
    ) -> DropOutcome:
        """Apply a drop onto a list's lane and re-sync from the store."""
        drag = self.drag
        if drag is None:
            return DropOutcome.IGNORED
        task = drag.task
        try:
            priority = Priority(target_priority)
        except ValueError:
            logger.error(f"Error moving task {task.id}: invalid priority {target_priority!r}")
            self.drag = None
            return DropOutcome.FAILED
        # Targets must be loaded lists
        if self.get_list(target_list_id) is None:
            logger.error(f"Error moving task {task.id}: unknown list {target_list_id!r}")
            self.drag = None
            return DropOutcome.FAILED
        same_list = drag.source_list_id == target_list_id

        if same_list and task.priority == priority:
            self.drag = None
            return DropOutcome.UNCHANGED

        user = self.auth.current_user
        if user is None:
            logger.error(f"Error moving task {task.id}: no signed-in user")
            self.drag = None
            return DropOutcome.FAILED

        outcome = DropOutcome.FAILED
        try:
            if same_list:
                await self.store.update(
                    task_doc_path(user.uid, target_list_id, task.id),
                    {"priority": priority.value},
                )
                outcome = DropOutcome.REPRIORITIZED
            else:
                fields = task.to_fields()
                fields["priority"] = priority.value
                # Create first: a failed delete leaves a duplicate, never a loss
                new_id = await self.store.create(tasks_path(user.uid, target_list_id), fields)
                await self.store.delete(task_doc_path(user.uid, drag.source_list_id, task.id))
                logger.info(
                    f"Task moved: {drag.source_list_id}/{task.id} → {target_list_id}/{new_id}"
                )
                outcome = DropOutcome.MOVED
        except StoreError as e:
            logger.error(f"Error moving task {task.id}: {e}")
        finally:
            try:
                await self.load_all(user)
            finally:
                self.drag = None
        return outcome

    # ──────────────────────────────────────────
    # Logout
    # ──────────────────────────────────────────

    async def logout(self) -> bool:
        """Sign out and return to sign-in. Stays on the list view if that fails."""
        try:
            await self.auth.sign_out()
        except AuthError as e:
            logger.error(f"Error signing out: {e}")
            return False
        if self.navigator is not None:
            self.navigator.go(Screen.LOGIN)
        return True
