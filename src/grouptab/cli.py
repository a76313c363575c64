"""Click CLI entrypoint for grouptab."""

import sys
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal, InvalidOperation
from functools import wraps
from typing import Any, TypeVar

import click

from . import __version__, templates
from .models import Share, SplitMode
from .service import GroupService, GroupTabError
from .state import GroupStore

F = TypeVar("F", bound=Callable[..., Any])

state_dir_option = click.option(
    "--state-dir", default=None, help="State directory (default: ~/.grouptab)"
)
actor_option = click.option(
    "--as", "actor", required=True, help="Id of the user performing the command"
)
mode_choice = click.Choice([m.value for m in SplitMode])


def _service(state_dir: str | None) -> GroupService:
    return GroupService(GroupStore(state_dir))


def handle_errors(func: F) -> F:
    """Print rejected operations as a message and exit 1."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (GroupTabError, ValueError) as e:
            click.echo(templates.ERROR.format(message=e))
            sys.exit(1)

    return wrapper  # type: ignore[return-value]


def parse_amount(value: str) -> Decimal:
    """Parse a money amount, accepting an optional leading $."""
    try:
        amount = Decimal(value.strip().lstrip("$"))
    except InvalidOperation as e:
        raise click.BadParameter(f"'{value}' is not a valid amount") from e
    if not amount.is_finite():
        raise click.BadParameter(f"'{value}' is not a valid amount")
    return amount


def parse_share(text: str, mode: SplitMode) -> Share:
    """
    Parse a --share option.

    USER for equal splits, USER:PERCENT for percentage splits and
    USER:AMOUNT for custom splits.
    """
    user_id, _, value = text.partition(":")
    if not user_id:
        raise click.BadParameter(f"'{text}' has no user id")
    if mode == SplitMode.EQUAL or not value:
        return Share(user_id=user_id)
    if mode == SplitMode.PERCENTAGE:
        return Share(user_id=user_id, percentage=parse_amount(value.rstrip("%")))
    return Share(user_id=user_id, amount=parse_amount(value))


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """grouptab - Shared expenses, net balances and settle-up plans."""
    pass


@cli.command("create-group")
@click.argument("name")
@click.option("--owner", required=True, help="Owner's user id")
@click.option("--owner-name", required=True, help="Owner's display name")
@click.option("--description", default="", help="Group description")
@state_dir_option
@handle_errors
def create_group(
    name: str, owner: str, owner_name: str, description: str, state_dir: str | None
) -> None:
    """Create a group owned by --owner."""
    group = _service(state_dir).create_group(name, owner, owner_name, description)
    click.echo(templates.GROUP_CREATED.format(group_name=group.name, group_id=group.id))


@cli.command()
@actor_option
@state_dir_option
def groups(actor: str, state_dir: str | None) -> None:
    """List the groups a user belongs to."""
    found = _service(state_dir).list_groups(actor)
    if not found:
        click.echo(templates.NO_GROUPS)
        return

    click.echo("Groups:")
    for group in found:
        click.echo(templates.format_group_line(group))


@cli.command("add-member")
@click.argument("group_id")
@click.argument("user_id")
@click.argument("name")
@actor_option
@state_dir_option
@handle_errors
def add_member(group_id: str, user_id: str, name: str, actor: str, state_dir: str | None) -> None:
    """Add USER_ID (shown as NAME) to a group."""
    group = _service(state_dir).add_participant(group_id, user_id, name, actor)
    click.echo(templates.MEMBER_ADDED.format(name=name, group_name=group.name))


@cli.command("remove-member")
@click.argument("group_id")
@click.argument("user_id")
@actor_option
@state_dir_option
@handle_errors
def remove_member(group_id: str, user_id: str, actor: str, state_dir: str | None) -> None:
    """Remove USER_ID from a group and drop their shares."""
    service = _service(state_dir)
    name = service.get_group(group_id, actor).participant_name(user_id)
    group = service.remove_participant(group_id, user_id, actor)
    click.echo(templates.MEMBER_REMOVED.format(name=name, group_name=group.name))


@cli.command("edit-member")
@click.argument("group_id")
@click.argument("user_id")
@actor_option
@click.option("--name", default=None, help="New display name")
@click.option("--color", default=None, help="New color, e.g. #10B981")
@state_dir_option
@handle_errors
def edit_member(
    group_id: str,
    user_id: str,
    actor: str,
    name: str | None,
    color: str | None,
    state_dir: str | None,
) -> None:
    """Change a member's display name or color."""
    group = _service(state_dir).update_participant(
        group_id, user_id, actor, name=name, color=color
    )
    click.echo(
        templates.MEMBER_UPDATED.format(
            name=group.participant_name(user_id), group_name=group.name
        )
    )


@cli.command("edit-group")
@click.argument("group_id")
@actor_option
@click.option("--name", default=None, help="New group name")
@click.option("--description", default=None, help="New description")
@state_dir_option
@handle_errors
def edit_group(
    group_id: str,
    actor: str,
    name: str | None,
    description: str | None,
    state_dir: str | None,
) -> None:
    """Rename a group or change its description."""
    group = _service(state_dir).update_group(
        group_id, actor, name=name, description=description
    )
    click.echo(templates.GROUP_UPDATED.format(group_name=group.name))


@cli.command("delete-group")
@click.argument("group_id")
@actor_option
@state_dir_option
@handle_errors
def delete_group(group_id: str, actor: str, state_dir: str | None) -> None:
    """Delete a group with all of its expenses and balances."""
    group = _service(state_dir).delete_group(group_id, actor)
    click.echo(templates.GROUP_DELETED.format(group_name=group.name))


@cli.command("add-expense")
@click.argument("group_id")
@click.argument("amount")
@click.argument("description")
@actor_option
@click.option(
    "--share",
    "share_specs",
    multiple=True,
    required=True,
    help="USER, USER:PERCENT or USER:AMOUNT (repeatable)",
)
@click.option("--mode", type=mode_choice, default=SplitMode.EQUAL.value, show_default=True)
@click.option("--paid-by", default=None, help="Payer's user id (default: --as)")
@click.option("--date", type=click.DateTime(), default=None, help="Expense date")
@click.option("--notes", default="", help="Optional notes")
@state_dir_option
@handle_errors
def add_expense(
    group_id: str,
    amount: str,
    description: str,
    actor: str,
    share_specs: tuple[str, ...],
    mode: str,
    paid_by: str | None,
    date: datetime | None,
    notes: str,
    state_dir: str | None,
) -> None:
    """Add an expense to a group and update balances."""
    split_mode = SplitMode(mode)
    expense = _service(state_dir).create_expense(
        group_id,
        actor,
        amount=parse_amount(amount),
        description=description,
        shares=[parse_share(s, split_mode) for s in share_specs],
        split_mode=split_mode,
        date=date,
        notes=notes,
        payer_id=paid_by,
    )
    click.echo(
        templates.EXPENSE_ADDED.format(
            description=expense.description,
            amount_display=templates.format_currency(expense.amount),
            payer_name=expense.payer_name,
            shares_summary=templates.format_shares_summary(expense),
            expense_id=expense.id,
        )
    )


@cli.command("edit-expense")
@click.argument("expense_id")
@actor_option
@click.option("--amount", default=None, help="New total amount")
@click.option("--description", default=None, help="New description")
@click.option("--share", "share_specs", multiple=True, help="Replacement shares (repeatable)")
@click.option("--mode", type=mode_choice, default=None, help="New split mode")
@click.option("--date", type=click.DateTime(), default=None, help="New expense date")
@click.option("--notes", default=None, help="New notes")
@state_dir_option
@handle_errors
def edit_expense(
    expense_id: str,
    actor: str,
    amount: str | None,
    description: str | None,
    share_specs: tuple[str, ...],
    mode: str | None,
    date: datetime | None,
    notes: str | None,
    state_dir: str | None,
) -> None:
    """Edit an expense. Only the group owner or the payer may do this."""
    service = _service(state_dir)
    split_mode = SplitMode(mode) if mode else None
    shares = None
    if share_specs:
        # Share values are read in the mode the expense will end up with
        existing = service.store.get_expense(expense_id)
        parse_mode = split_mode or (existing.split_mode if existing else SplitMode.EQUAL)
        shares = [parse_share(s, parse_mode) for s in share_specs]

    expense = service.update_expense(
        expense_id,
        actor,
        amount=parse_amount(amount) if amount else None,
        description=description,
        shares=shares,
        split_mode=split_mode,
        date=date,
        notes=notes,
    )
    click.echo(
        templates.EXPENSE_UPDATED.format(
            description=expense.description,
            amount_display=templates.format_currency(expense.amount),
            shares_summary=templates.format_shares_summary(expense),
        )
    )


@cli.command("delete-expense")
@click.argument("expense_id")
@actor_option
@state_dir_option
@handle_errors
def delete_expense(expense_id: str, actor: str, state_dir: str | None) -> None:
    """Delete an expense. Only the group owner or the payer may do this."""
    expense = _service(state_dir).delete_expense(expense_id, actor)
    click.echo(
        templates.EXPENSE_DELETED.format(
            description=expense.description,
            amount_display=templates.format_currency(expense.amount),
        )
    )


@cli.command()
@click.argument("group_id")
@actor_option
@click.option("--participant", default=None, help="Only expenses shared with this user id")
@click.option("--search", default=None, help="Text to look for in description or notes")
@click.option("--min-amount", default=None, help="Minimum amount")
@click.option("--max-amount", default=None, help="Maximum amount")
@state_dir_option
@handle_errors
def expenses(
    group_id: str,
    actor: str,
    participant: str | None,
    search: str | None,
    min_amount: str | None,
    max_amount: str | None,
    state_dir: str | None,
) -> None:
    """List a group's expenses, newest first."""
    found = _service(state_dir).list_expenses(
        group_id,
        actor,
        participant_id=participant,
        search=search,
        min_amount=parse_amount(min_amount) if min_amount else None,
        max_amount=parse_amount(max_amount) if max_amount else None,
    )
    if not found:
        click.echo(templates.NO_EXPENSES)
        return

    for expense in found:
        click.echo(templates.format_expense_line(expense))


@cli.command()
@click.argument("group_id")
@actor_option
@state_dir_option
@handle_errors
def balances(group_id: str, actor: str, state_dir: str | None) -> None:
    """Show who owes whom in a group."""
    service = _service(state_dir)
    group = service.get_group(group_id, actor)
    summary = service.get_balances(group_id, actor)
    click.echo(templates.format_summary(group, summary))


@cli.command()
@click.argument("group_id")
@actor_option
@state_dir_option
@handle_errors
def settle(group_id: str, actor: str, state_dir: str | None) -> None:
    """Suggest payments that settle a group."""
    service = _service(state_dir)
    group = service.get_group(group_id, actor)
    settlements, total = service.get_settlements(group_id, actor)

    if not settlements:
        click.echo(templates.ALL_SETTLED)
        return

    click.echo(
        templates.SETTLEMENTS.format(
            group_name=group.name,
            settlements=templates.format_settlements_list(settlements),
            total=templates.format_currency(total),
        )
    )


@cli.command()
@click.argument("group_id")
@click.argument("from_id")
@click.argument("to_id")
@click.argument("amount")
@actor_option
@state_dir_option
@handle_errors
def adjust(
    group_id: str, from_id: str, to_id: str, amount: str, actor: str, state_dir: str | None
) -> None:
    """Record that FROM_ID owes TO_ID an extra AMOUNT."""
    service = _service(state_dir)
    group = service.get_group(group_id, actor)
    balance = service.adjust_balance(group_id, actor, from_id, to_id, parse_amount(amount))

    if balance is None:
        click.echo(
            templates.BALANCE_ADJUSTED_SETTLED.format(
                debtor=group.participant_name(from_id),
                creditor=group.participant_name(to_id),
            )
        )
        return

    click.echo(
        templates.BALANCE_ADJUSTED.format(
            debtor=balance.debtor_name,
            creditor=balance.creditor_name,
            amount_display=templates.format_currency(balance.amount),
        )
    )


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
