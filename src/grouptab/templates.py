"""Response message templates - all user-facing text lives here."""

from collections.abc import Sequence
from decimal import Decimal

from .models import Balance, BalanceSummary, Expense, Group, SettlementSuggestion


def format_currency(amount: Decimal) -> str:
    """Format amount as dollars with two decimals."""
    return f"${amount.quantize(Decimal('0.01'))}"


def format_shares_summary(expense: Expense) -> str:
    """Format an expense's shares for display."""
    return ", ".join(f"{s.name} {format_currency(s.amount)}" for s in expense.shares)


def format_balances_list(balances: Sequence[Balance]) -> str:
    """Format list of balances for display."""
    if not balances:
        return ALL_SETTLED

    lines = []
    for b in balances:
        lines.append(f"• {b.debtor_name} owes {b.creditor_name}: {format_currency(b.amount)}")
    return "\n".join(lines)


def format_settlements_list(settlements: Sequence[SettlementSuggestion]) -> str:
    """Format list of settlement suggestions for display."""
    if not settlements:
        return ALL_SETTLED

    lines = []
    for s in settlements:
        lines.append(f"• {s.from_name} → {s.to_name}: {format_currency(s.amount)}")
    return "\n".join(lines)


def format_expense_line(expense: Expense) -> str:
    return (
        f"• [{expense.id}] {expense.date:%Y-%m-%d} {expense.description} "
        f"{format_currency(expense.amount)} "
        f"(paid by {expense.payer_name}, {expense.split_mode.value})"
    )


def format_group_line(group: Group) -> str:
    members = ", ".join(p.name for p in group.participants)
    return f"• {group.name} [{group.id}] - {members} - spent {format_currency(group.total_spent)}"


def format_summary(group: Group, summary: BalanceSummary) -> str:
    return BALANCES.format(
        group_name=group.name,
        balances=format_balances_list(summary.balances),
        total_owed=format_currency(summary.total_owed),
        total_owes=format_currency(summary.total_owes),
    )


# === SUCCESS TEMPLATES ===

GROUP_CREATED = "🎉 Group *{group_name}* created (id: {group_id})"

GROUP_UPDATED = "✏️ Group *{group_name}* updated"

GROUP_DELETED = "🗑️ Deleted group *{group_name}* with its expenses and balances"

MEMBER_ADDED = "👥 {name} joined *{group_name}*"

MEMBER_REMOVED = "👋 {name} was removed from *{group_name}*"

MEMBER_UPDATED = "✏️ Updated {name} in *{group_name}*"

EXPENSE_ADDED = (
    "✅ *{description}* {amount_display} (paid by {payer_name})\n"
    "{shares_summary}\n"
    "id: {expense_id}"
)

EXPENSE_UPDATED = "✏️ Updated *{description}* {amount_display}\n{shares_summary}"

EXPENSE_DELETED = "🗑️ Deleted *{description}* {amount_display}"

BALANCE_ADJUSTED = "✅ Balance adjusted: {debtor} owes {creditor} {amount_display}"

BALANCE_ADJUSTED_SETTLED = "✅ Balance adjusted: {debtor} and {creditor} are settled"


# === READ TEMPLATES ===

BALANCES = (
    "📊 *{group_name}* Balances\n\n"
    "{balances}\n\n"
    "You are owed {total_owed} · You owe {total_owes}"
)

SETTLEMENTS = "💸 *{group_name}* Settle up\n\n{settlements}\n\nTotal outstanding: {total}"

NO_GROUPS = "No groups found."

NO_EXPENSES = "No expenses found."


# === ERROR TEMPLATES ===

ERROR = "⚠️ {message}"


# === NOTHING TO DO ===

ALL_SETTLED = "✨ All settled up! No outstanding balances."
