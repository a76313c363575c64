"""Group state management - JSON document store for groups, expenses and balances."""

import json
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from .models import Balance, Expense, Group

M = TypeVar("M", bound=BaseModel)


def get_state_dir() -> Path:
    """Get the state directory, respecting GROUPTAB_STATE_DIR env var."""
    env_dir = os.environ.get("GROUPTAB_STATE_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".grouptab"


class GroupStore:
    """
    Stores groups, expenses and balances as JSON documents.

    State is persisted to ~/.grouptab/{groups,expenses,balances}.json

    Balances of a group are only ever replaced as a whole. Callers that
    recompute them hold ``group_lock(group_id)`` for the whole
    read-recompute-replace sequence.
    """

    def __init__(self, state_dir: str | Path | None = None):
        """
        Initialize GroupStore.

        Args:
            state_dir: Directory for state files (default: GROUPTAB_STATE_DIR or ~/.grouptab)
        """
        if state_dir is None:
            state_dir = get_state_dir()
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)

        self.groups_file = self.state_dir / "groups.json"
        self.expenses_file = self.state_dir / "expenses.json"
        self.balances_file = self.state_dir / "balances.json"

        self._groups: dict[str, Group] = {}
        self._expenses: dict[str, Expense] = {}
        self._balances: dict[str, list[Balance]] = {}  # group_id -> balances

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        # Guards the in-memory collections and their files across groups
        self._io_lock = threading.RLock()

        self._load()

    @staticmethod
    def _read_object(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        with open(path) as f:
            data = json.load(f)
        # Anything but a JSON object is treated as an empty collection
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _write_json(path: Path, data: Any) -> None:
        with open(path, "w") as f:
            json.dump(data, f, indent=2, default=str)

    def _load(self) -> None:
        """Load state from disk. Unreadable files load as empty collections."""
        try:
            data = self._read_object(self.groups_file)
            self._groups = {gid: Group.model_validate(g) for gid, g in data.items()}
        except (json.JSONDecodeError, ValidationError):
            self._groups = {}

        try:
            data = self._read_object(self.expenses_file)
            self._expenses = {eid: Expense.model_validate(e) for eid, e in data.items()}
        except (json.JSONDecodeError, ValidationError):
            self._expenses = {}

        try:
            data = self._read_object(self.balances_file)
            self._balances = {
                gid: [Balance.model_validate(b) for b in rows]
                for gid, rows in data.items()
                if isinstance(rows, list)
            }
        except (json.JSONDecodeError, ValidationError):
            self._balances = {}

    def _save_groups(self) -> None:
        self._write_json(
            self.groups_file,
            {gid: g.model_dump(mode="json") for gid, g in self._groups.items()},
        )

    def _save_expenses(self) -> None:
        self._write_json(
            self.expenses_file,
            {eid: e.model_dump(mode="json") for eid, e in self._expenses.items()},
        )

    def _save_balances(self) -> None:
        self._write_json(
            self.balances_file,
            {
                gid: [b.model_dump(mode="json") for b in rows]
                for gid, rows in self._balances.items()
            },
        )

    @staticmethod
    def _copy(model: M) -> M:
        return model.model_copy(deep=True)

    @contextmanager
    def group_lock(self, group_id: str) -> Iterator[None]:
        """Serialize writers of one group."""
        with self._locks_guard:
            lock = self._locks.setdefault(group_id, threading.Lock())
        with lock:
            yield

    # === Groups ===

    def create_group(self, group: Group) -> Group:
        """Store a new group."""
        with self._io_lock:
            self._groups[group.id] = self._copy(group)
            self._save_groups()
        return group

    def get_group(self, group_id: str) -> Group | None:
        """Get a group by id."""
        with self._io_lock:
            group = self._groups.get(group_id)
            return self._copy(group) if group else None

    def save_group(self, group: Group) -> None:
        """Save/update a group."""
        with self._io_lock:
            self._groups[group.id] = self._copy(group)
            self._save_groups()

    def list_groups(self) -> list[Group]:
        """List all groups."""
        with self._io_lock:
            return [self._copy(g) for g in self._groups.values()]

    def delete_group(self, group_id: str) -> bool:
        """Delete a group with its expenses and balances. Returns True if deleted."""
        with self._io_lock:
            if group_id not in self._groups:
                return False
            del self._groups[group_id]
            self._expenses = {
                eid: e for eid, e in self._expenses.items() if e.group_id != group_id
            }
            self._balances.pop(group_id, None)
            self._save_groups()
            self._save_expenses()
            self._save_balances()
            return True

    # === Expenses ===

    def add_expense(self, expense: Expense) -> Expense:
        """Store a new expense."""
        with self._io_lock:
            self._expenses[expense.id] = self._copy(expense)
            self._save_expenses()
        return expense

    def get_expense(self, expense_id: str) -> Expense | None:
        """Get an expense by id."""
        with self._io_lock:
            expense = self._expenses.get(expense_id)
            return self._copy(expense) if expense else None

    def save_expense(self, expense: Expense) -> None:
        """Save/update an expense."""
        with self._io_lock:
            self._expenses[expense.id] = self._copy(expense)
            self._save_expenses()

    def delete_expense(self, expense_id: str) -> bool:
        """Delete an expense. Returns True if deleted."""
        with self._io_lock:
            if expense_id not in self._expenses:
                return False
            del self._expenses[expense_id]
            self._save_expenses()
            return True

    def list_expenses(self, group_id: str) -> list[Expense]:
        """All expenses of a group, oldest first."""
        with self._io_lock:
            expenses = [self._copy(e) for e in self._expenses.values() if e.group_id == group_id]
        expenses.sort(key=lambda e: (e.date, e.created_at))
        return expenses

    # === Balances ===

    def get_balances(self, group_id: str) -> list[Balance]:
        """Current balances of a group."""
        with self._io_lock:
            return [self._copy(b) for b in self._balances.get(group_id, [])]

    def replace_balances(self, group_id: str, balances: list[Balance]) -> None:
        """Replace the whole balance set of a group."""
        rows = [self._copy(b) for b in balances]
        with self._io_lock:
            self._balances[group_id] = rows
            self._save_balances()
