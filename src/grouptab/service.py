"""Group service - orchestrates normalizer → store → balance recompute → audit.

Write operations (expenses, adjustments, membership) run under the group's
lock and are recorded in the audit log. Read operations (balances,
settlements, expense listing) execute directly.
"""

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from . import ledger
from .audit import log_event
from .models import (
    MAX_PARTICIPANTS,
    UNKNOWN_NAME,
    Balance,
    BalanceSummary,
    Expense,
    Group,
    Participant,
    SettlementSuggestion,
    Share,
    SplitMode,
    to_decimal,
)
from .state import GroupStore


class GroupTabError(Exception):
    """Base error for rejected group operations."""

    pass


class NotFoundError(GroupTabError):
    """Group or expense does not exist."""

    pass


class AccessDeniedError(GroupTabError):
    """Actor is not allowed to perform the operation."""

    pass


class GroupFullError(GroupTabError):
    """Group already has the maximum number of participants."""

    pass


ShareInput = Share | dict[str, Any]


class GroupService:
    """Entry point for every operation on groups, expenses and balances."""

    def __init__(self, store: GroupStore, log_path: Path | None = None):
        """
        Initialize GroupService.

        Args:
            store: Document store for groups, expenses and balances
            log_path: Audit log location (default: GROUPTAB_LOG_PATH or ~/.grouptab/audit.jsonl)
        """
        self.store = store
        self.log_path = log_path

    # === Helpers ===

    @contextmanager
    def _audited(
        self, action: str, group_id: str | None, actor_id: str
    ) -> Iterator[dict[str, Any]]:
        """Record the outcome of a write. Rejections are logged, then re-raised."""
        details: dict[str, Any] = {}
        try:
            yield details
        except (GroupTabError, ValueError, ValidationError) as e:
            log_event(
                action,
                group_id,
                actor_id,
                status="error",
                details=details,
                error_msg=str(e),
                log_path=self.log_path,
            )
            raise
        log_event(action, group_id, actor_id, details=details, log_path=self.log_path)

    def _get_group(self, group_id: str) -> Group:
        group = self.store.get_group(group_id)
        if group is None:
            raise NotFoundError(f"Group '{group_id}' not found")
        return group

    def _get_member_group(self, group_id: str, actor_id: str) -> Group:
        group = self._get_group(group_id)
        if not group.is_member(actor_id):
            raise AccessDeniedError("Access denied")
        return group

    def _get_owned_group(self, group_id: str, actor_id: str, action: str) -> Group:
        group = self._get_group(group_id)
        if actor_id != group.owner_id:
            raise AccessDeniedError(f"Only the group owner can {action}")
        return group

    def _find_expense(self, expense_id: str) -> Expense:
        expense = self.store.get_expense(expense_id)
        if expense is None:
            raise NotFoundError(f"Expense '{expense_id}' not found")
        return expense

    def _get_editable_expense(self, expense_id: str, actor_id: str) -> tuple[Group, Expense]:
        expense = self._find_expense(expense_id)
        group = self._get_group(expense.group_id)
        if actor_id not in (group.owner_id, expense.payer_id):
            raise AccessDeniedError("Only the group owner or the payer can change an expense")
        return group, expense

    @staticmethod
    def _resolve_shares(group: Group, shares: Sequence[ShareInput]) -> list[Share]:
        """Coerce raw shares and fill missing name snapshots from the group."""
        resolved = []
        for raw in shares:
            share = raw if isinstance(raw, Share) else Share.model_validate(raw)
            if share.name == UNKNOWN_NAME:
                share = share.model_copy(update={"name": group.participant_name(share.user_id)})
            resolved.append(share)
        return resolved

    def _recalculate(self, group: Group) -> list[Balance]:
        """Rebuild the group's balances and total from all of its expenses."""
        expenses = self.store.list_expenses(group.id)
        balances = ledger.calculate_balances(expenses, group.id)
        self.store.replace_balances(group.id, balances)

        group.total_spent = sum((e.amount for e in expenses), Decimal("0"))
        self.store.save_group(group)
        return balances

    # === Groups ===

    def create_group(
        self,
        name: str,
        owner_id: str,
        owner_name: str,
        description: str = "",
    ) -> Group:
        """Create a group. The owner becomes its first participant."""
        with self._audited("group_created", None, owner_id) as details:
            group = Group(
                name=name,
                owner_id=owner_id,
                description=description,
                participants=[Participant(user_id=owner_id, name=owner_name)],
            )
            self.store.create_group(group)
            details.update(group_id=group.id, name=group.name)
        return group

    def update_group(
        self,
        group_id: str,
        actor_id: str,
        name: str | None = None,
        description: str | None = None,
    ) -> Group:
        """Rename a group or change its description. Owner only."""
        with self._audited("group_updated", group_id, actor_id) as details:
            with self.store.group_lock(group_id):
                group = self._get_owned_group(group_id, actor_id, "update the group")
                changes: dict[str, Any] = {}
                if name is not None:
                    changes["name"] = name
                if description is not None:
                    changes["description"] = description
                details.update(changes)

                group = Group.model_validate({**group.model_dump(), **changes})
                self.store.save_group(group)
        return group

    def delete_group(self, group_id: str, actor_id: str) -> Group:
        """Delete a group together with its expenses and balances. Owner only."""
        with self._audited("group_deleted", group_id, actor_id) as details:
            with self.store.group_lock(group_id):
                group = self._get_owned_group(group_id, actor_id, "delete the group")
                details.update(name=group.name)
                self.store.delete_group(group_id)
        return group

    def add_participant(self, group_id: str, user_id: str, name: str, actor_id: str) -> Group:
        """Add a member to a group. Owner only."""
        with self._audited("participant_added", group_id, actor_id) as details:
            details.update(user_id=user_id, name=name)
            with self.store.group_lock(group_id):
                group = self._get_member_group(group_id, actor_id)
                if actor_id != group.owner_id:
                    raise AccessDeniedError("Only the group owner can add participants")
                if any(p.user_id == user_id for p in group.participants):
                    raise ValueError(f"'{user_id}' is already a member of this group")
                if len(group.participants) >= MAX_PARTICIPANTS:
                    raise GroupFullError(
                        f"A group can have at most {MAX_PARTICIPANTS} participants"
                    )
                group.participants.append(Participant(user_id=user_id, name=name))
                self.store.save_group(group)
        return group

    def remove_participant(self, group_id: str, user_id: str, actor_id: str) -> Group:
        """
        Remove a member from a group and recompute its balances. Owner only.

        The member's shares are dropped from every expense of the group.
        Equal splits are re-divided among the remaining sharers; other
        splits keep the remaining shares as entered. Expenses the member
        paid are kept.

        Raises:
            AccessDeniedError: If the actor is not the owner
            NotFoundError: If the user is not a participant
            ValueError: If asked to remove the owner
        """
        with self._audited("participant_removed", group_id, actor_id) as details:
            details.update(user_id=user_id)
            with self.store.group_lock(group_id):
                group = self._get_owned_group(group_id, actor_id, "remove participants")
                if user_id == group.owner_id:
                    raise ValueError("Cannot remove the group owner")
                if not any(p.user_id == user_id for p in group.participants):
                    raise NotFoundError(f"'{user_id}' is not a participant of this group")

                group.participants = [p for p in group.participants if p.user_id != user_id]
                self.store.save_group(group)

                for expense in self.store.list_expenses(group_id):
                    remaining = [s for s in expense.shares if s.user_id != user_id]
                    if len(remaining) == len(expense.shares):
                        continue
                    if expense.split_mode == SplitMode.EQUAL and remaining:
                        remaining = ledger.normalize_split(
                            remaining, expense.amount, SplitMode.EQUAL
                        )
                    self.store.save_expense(
                        expense.model_copy(
                            update={"shares": remaining, "updated_at": datetime.now()}
                        )
                    )

                self._recalculate(group)
        return group

    def update_participant(
        self,
        group_id: str,
        user_id: str,
        actor_id: str,
        name: str | None = None,
        color: str | None = None,
    ) -> Group:
        """
        Change a member's display name or color. Owner only.

        Name snapshots already stored on expenses and balances are kept.
        """
        with self._audited("participant_updated", group_id, actor_id) as details:
            details.update(user_id=user_id)
            with self.store.group_lock(group_id):
                group = self._get_owned_group(group_id, actor_id, "update participants")
                for i, p in enumerate(group.participants):
                    if p.user_id == user_id:
                        break
                else:
                    raise NotFoundError(f"'{user_id}' is not a participant of this group")

                changes: dict[str, Any] = {}
                if name is not None:
                    changes["name"] = name
                if color is not None:
                    changes["color"] = color
                details.update(changes)

                group.participants[i] = Participant.model_validate({**p.model_dump(), **changes})
                self.store.save_group(group)
        return group

    def list_groups(self, user_id: str) -> list[Group]:
        """Groups the user belongs to."""
        return [g for g in self.store.list_groups() if g.is_member(user_id)]

    def get_group(self, group_id: str, actor_id: str) -> Group:
        return self._get_member_group(group_id, actor_id)

    # === Expenses ===

    def create_expense(
        self,
        group_id: str,
        actor_id: str,
        amount: Decimal,
        description: str,
        shares: Sequence[ShareInput],
        split_mode: SplitMode | str = SplitMode.EQUAL,
        date: datetime | None = None,
        notes: str = "",
        payer_id: str | None = None,
    ) -> Expense:
        """
        Add an expense and recompute the group's balances.

        Args:
            group_id: Group the expense belongs to
            actor_id: User performing the action (must be a member)
            amount: Total amount
            description: What the expense was for
            shares: Participants of the expense with percentages or amounts
            split_mode: equal, percentage or custom
            date: When the expense happened (default: now)
            notes: Optional notes
            payer_id: Who paid (default: the actor)

        Returns:
            The stored Expense

        Raises:
            SplitValidationError: If the split doesn't add up; nothing is stored
        """
        with self._audited("expense_created", group_id, actor_id) as details:
            with self.store.group_lock(group_id):
                group = self._get_member_group(group_id, actor_id)
                payer = payer_id or actor_id
                total = ledger.round_amount(amount)

                normalized = ledger.normalize_split(
                    self._resolve_shares(group, shares), total, split_mode
                )
                expense = Expense(
                    group_id=group.id,
                    amount=total,
                    description=description,
                    date=date or datetime.now(),
                    payer_id=payer,
                    payer_name=group.participant_name(payer),
                    split_mode=split_mode,
                    shares=normalized,
                    notes=notes,
                )
                self.store.add_expense(expense)
                self._recalculate(group)
                details.update(expense_id=expense.id, amount=str(expense.amount))
        return expense

    def update_expense(
        self,
        expense_id: str,
        actor_id: str,
        amount: Decimal | None = None,
        description: str | None = None,
        shares: Sequence[ShareInput] | None = None,
        split_mode: SplitMode | str | None = None,
        date: datetime | None = None,
        notes: str | None = None,
    ) -> Expense:
        """
        Edit an expense in place and recompute the group's balances.

        Shares are renormalized whenever the shares, amount or split mode
        change, so the stored shares always add up to the stored amount.
        """
        with self._audited("expense_updated", None, actor_id) as details:
            details.update(expense_id=expense_id)
            with self.store.group_lock(self._find_expense(expense_id).group_id):
                group, expense = self._get_editable_expense(expense_id, actor_id)
                details.update(group_id=group.id)

                changes: dict[str, Any] = {"updated_at": datetime.now()}
                if amount is not None:
                    changes["amount"] = ledger.round_amount(amount)
                if description is not None:
                    changes["description"] = description
                if date is not None:
                    changes["date"] = date
                if notes is not None:
                    changes["notes"] = notes
                if split_mode is not None:
                    changes["split_mode"] = split_mode

                if shares is not None or amount is not None or split_mode is not None:
                    source = expense.shares
                    if shares is not None:
                        source = self._resolve_shares(group, shares)
                    changes["shares"] = ledger.normalize_split(
                        source,
                        changes.get("amount", expense.amount),
                        changes.get("split_mode", expense.split_mode),
                    )

                updated = Expense.model_validate({**expense.model_dump(), **changes})
                self.store.save_expense(updated)
                self._recalculate(group)
                details.update(amount=str(updated.amount))
        return updated

    def delete_expense(self, expense_id: str, actor_id: str) -> Expense:
        """Remove an expense and recompute the group's balances."""
        with self._audited("expense_deleted", None, actor_id) as details:
            details.update(expense_id=expense_id)
            with self.store.group_lock(self._find_expense(expense_id).group_id):
                group, expense = self._get_editable_expense(expense_id, actor_id)
                details.update(group_id=group.id, amount=str(expense.amount))
                self.store.delete_expense(expense_id)
                self._recalculate(group)
        return expense

    def list_expenses(
        self,
        group_id: str,
        actor_id: str,
        participant_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        min_amount: Decimal | None = None,
        max_amount: Decimal | None = None,
        search: str | None = None,
    ) -> list[Expense]:
        """Expenses of a group matching every given filter, newest first."""
        self._get_member_group(group_id, actor_id)
        expenses = self.store.list_expenses(group_id)

        if participant_id:
            expenses = [e for e in expenses if any(s.user_id == participant_id for s in e.shares)]
        if start:
            expenses = [e for e in expenses if e.date >= start]
        if end:
            expenses = [e for e in expenses if e.date <= end]
        if min_amount is not None:
            expenses = [e for e in expenses if e.amount >= to_decimal(min_amount)]
        if max_amount is not None:
            expenses = [e for e in expenses if e.amount <= to_decimal(max_amount)]
        if search:
            needle = search.lower()
            expenses = [
                e for e in expenses if needle in e.description.lower() or needle in e.notes.lower()
            ]

        return sorted(expenses, key=lambda e: e.date, reverse=True)

    # === Balances ===

    def adjust_balance(
        self,
        group_id: str,
        actor_id: str,
        from_id: str,
        to_id: str,
        amount: Decimal,
    ) -> Balance | None:
        """
        Manually record that ``from_id`` owes ``to_id`` an extra amount.

        The adjustment is applied to the stored balances only; the next
        expense change recomputes balances from expenses and drops it.

        Returns:
            The affected Balance, or None if the pair ended up settled
        """
        with self._audited("balance_adjusted", group_id, actor_id) as details:
            details.update(from_id=from_id, to_id=to_id, amount=str(amount))
            with self.store.group_lock(group_id):
                group = self._get_member_group(group_id, actor_id)
                balances, balance = ledger.apply_adjustment(
                    self.store.get_balances(group_id),
                    group_id,
                    debtor_id=from_id,
                    creditor_id=to_id,
                    amount=amount,
                    debtor_name=group.participant_name(from_id),
                    creditor_name=group.participant_name(to_id),
                )
                self.store.replace_balances(group_id, balances)
        return balance

    def get_balances(self, group_id: str, actor_id: str) -> BalanceSummary:
        """Group balances, largest first, with the actor's own totals."""
        self._get_member_group(group_id, actor_id)
        balances = sorted(self.store.get_balances(group_id), key=lambda b: b.amount, reverse=True)

        summary = BalanceSummary(balances=balances)
        for b in balances:
            if b.debtor_id == actor_id:
                summary.total_owes += b.amount
            if b.creditor_id == actor_id:
                summary.total_owed += b.amount
        return summary

    def get_settlements(
        self, group_id: str, actor_id: str
    ) -> tuple[list[SettlementSuggestion], Decimal]:
        """
        Suggested payments that settle the group.

        Returns:
            Tuple of (settlement suggestions, total outstanding amount)
        """
        self._get_member_group(group_id, actor_id)
        balances = self.store.get_balances(group_id)
        return ledger.compute_settlements(balances), ledger.total_outstanding(balances)
