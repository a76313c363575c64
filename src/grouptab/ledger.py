"""Pure balance and settlement logic for groups. No I/O, no side effects."""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from .models import (
    UNKNOWN_NAME,
    Balance,
    Expense,
    SettlementSuggestion,
    Share,
    SplitMode,
    to_decimal,
)

ZERO = Decimal("0")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")

# Amounts at or below one cent are treated as settled
TOLERANCE = CENT
# Residuals smaller than this are not worth correcting
RESIDUAL_EPSILON = Decimal("0.001")


class SplitValidationError(ValueError):
    """Split inputs are inconsistent with the expense total."""

    pass


def round_amount(amount: Any) -> Decimal:
    """Round a currency amount to 2 decimal places, halves away from zero."""
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def validate_splits(
    shares: Sequence[Share], total: Decimal, tolerance: Decimal = TOLERANCE
) -> None:
    """
    Validate that shares sum to the total expense amount.

    Args:
        shares: Shares to validate
        total: Expected total amount
        tolerance: Acceptable difference (default 0.01 for rounding)

    Raises:
        SplitValidationError: If shares don't sum to total within tolerance
    """
    shares_sum = sum((s.amount for s in shares), ZERO)
    diff = abs(shares_sum - total)
    if diff > tolerance:
        raise SplitValidationError(
            f"Custom amounts must sum to total expense ({total}). Current sum: {shares_sum}"
        )


def _apply_residual(shares: list[Share], total: Decimal) -> list[Share]:
    # The first participant absorbs the whole rounding remainder
    residual = total - sum((s.amount for s in shares), ZERO)
    if abs(residual) > RESIDUAL_EPSILON:
        first = shares[0]
        shares[0] = first.model_copy(update={"amount": round_amount(first.amount + residual)})
    return shares


def _check_non_negative(shares: list[Share]) -> list[Share]:
    # model_copy skips validation, so owed amounts are checked here
    for s in shares:
        if s.amount < 0 or s.percentage < 0:
            raise SplitValidationError(f"Share of {s.user_id} cannot be negative")
    return shares


def normalize_split(
    shares: Sequence[Share],
    total_amount: Decimal,
    mode: SplitMode | str,
) -> list[Share]:
    """
    Compute each participant's owed amount for an expense.

    Returned shares always sum to ``total_amount`` (within one cent) for the
    three known modes. Input shares are left untouched.

    Args:
        shares: Participants in input order; ``percentage`` is read for
            percentage splits and ``amount`` for custom splits
        total_amount: Total expense amount
        mode: equal, percentage or custom; anything else passes the shares
            through unchanged

    Returns:
        New list of shares with ``amount`` filled in

    Raises:
        SplitValidationError: If there are no shares, percentages don't sum
            to 100, or custom amounts don't sum to the total
    """
    if not shares:
        raise SplitValidationError("Cannot split among zero participants")

    total = to_decimal(total_amount)

    if mode == SplitMode.EQUAL:
        per_person = round_amount(total / len(shares))
        normalized = [s.model_copy(update={"amount": per_person}) for s in shares]
        return _check_non_negative(_apply_residual(normalized, total))

    if mode == SplitMode.PERCENTAGE:
        pct_total = sum((s.percentage for s in shares), ZERO)
        if abs(pct_total - HUNDRED) > TOLERANCE:
            raise SplitValidationError(f"Percentages must sum to 100 (got {pct_total})")
        normalized = [
            s.model_copy(update={"amount": round_amount(total * s.percentage / HUNDRED)})
            for s in shares
        ]
        return _check_non_negative(_apply_residual(normalized, total))

    if mode == SplitMode.CUSTOM:
        validate_splits(shares, total)
        return _check_non_negative(
            [s.model_copy(update={"amount": round_amount(s.amount)}) for s in shares]
        )

    return list(shares)


def calculate_balances(expenses: Iterable[Expense], group_id: str) -> list[Balance]:
    """
    Compute the net pairwise balances of a group from its expenses.

    Every share accrues toward the expense's payer; mutual debts between two
    people are then netted into a single direction. Pairs whose net is within
    one cent are dropped.

    Args:
        expenses: All expenses of the group
        group_id: Group the balances belong to

    Returns:
        Balance records, at most one per pair of people
    """
    owed: dict[tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
    names: dict[str, str] = {}

    for expense in expenses:
        names[expense.payer_id] = expense.payer_name
        for share in expense.shares:
            names[share.user_id] = share.name
            if share.user_id == expense.payer_id:
                continue
            owed[(share.user_id, expense.payer_id)] += share.amount

    balances: list[Balance] = []
    seen: set[frozenset[str]] = set()

    for (debtor, creditor), amount in list(owed.items()):
        pair = frozenset((debtor, creditor))
        if pair in seen:
            continue
        seen.add(pair)

        net = amount - owed.get((creditor, debtor), ZERO)
        if net < 0:
            debtor, creditor, net = creditor, debtor, -net
        if net <= TOLERANCE:
            continue

        balances.append(
            Balance(
                group_id=group_id,
                debtor_id=debtor,
                debtor_name=names.get(debtor, UNKNOWN_NAME),
                creditor_id=creditor,
                creditor_name=names.get(creditor, UNKNOWN_NAME),
                amount=round_amount(net),
            )
        )

    return balances


def _find_balance(balances: list[Balance], debtor_id: str, creditor_id: str) -> int | None:
    for i, b in enumerate(balances):
        if b.debtor_id == debtor_id and b.creditor_id == creditor_id:
            return i
    return None


def apply_adjustment(
    balances: Sequence[Balance],
    group_id: str,
    debtor_id: str,
    creditor_id: str,
    amount: Decimal,
    debtor_name: str = UNKNOWN_NAME,
    creditor_name: str = UNKNOWN_NAME,
) -> tuple[list[Balance], Balance | None]:
    """
    Record that debtor owes creditor an extra ``amount`` on top of the
    current balances, netting against any debt in the opposite direction.

    Args:
        balances: Current balances of the group
        group_id: Group being adjusted
        debtor_id: Person who owes more
        creditor_id: Person who is owed more
        amount: Positive adjustment amount
        debtor_name: Name snapshot for a newly created record
        creditor_name: Name snapshot for a newly created record

    Returns:
        Tuple of (new balance list, affected Balance or None if the pair
        ended up settled)
    """
    amount = to_decimal(amount)
    if amount <= 0:
        raise ValueError("Adjustment amount must be positive")
    if debtor_id == creditor_id:
        raise ValueError("Cannot adjust a balance between a person and themselves")

    updated = list(balances)

    i = _find_balance(updated, debtor_id, creditor_id)
    if i is not None:
        new_amount = round_amount(updated[i].amount + amount)
        updated[i] = updated[i].model_copy(update={"amount": new_amount})
        return updated, updated[i]

    remaining = amount
    j = _find_balance(updated, creditor_id, debtor_id)
    if j is not None:
        reverse = updated[j]
        if reverse.amount - amount > TOLERANCE:
            new_amount = round_amount(reverse.amount - amount)
            updated[j] = reverse.model_copy(update={"amount": new_amount})
            return updated, updated[j]
        del updated[j]
        remaining = amount - reverse.amount

    if remaining <= TOLERANCE:
        return updated, None

    balance = Balance(
        group_id=group_id,
        debtor_id=debtor_id,
        debtor_name=debtor_name,
        creditor_id=creditor_id,
        creditor_name=creditor_name,
        amount=round_amount(remaining),
    )
    updated.append(balance)
    return updated, balance


def total_outstanding(balances: Iterable[Balance]) -> Decimal:
    """Sum of all balance amounts."""
    return sum((b.amount for b in balances), ZERO)


def compute_settlements(balances: Iterable[Balance]) -> list[SettlementSuggestion]:
    """
    Compute a short list of payments that settles every balance.

    Greedy two-pointer matching of debtors against creditors in the order
    they are first seen in ``balances``. The result always conserves the
    outstanding total and drains every position to zero, but is not
    guaranteed to be the smallest possible number of payments.

    Args:
        balances: Net pairwise balances of a group

    Returns:
        Settlement suggestions, empty for a settled group
    """
    net: dict[str, Decimal] = {}
    names: dict[str, str] = {}

    for b in balances:
        for person_id, name in ((b.debtor_id, b.debtor_name), (b.creditor_id, b.creditor_name)):
            if person_id not in net:
                net[person_id] = ZERO
                names[person_id] = name
        net[b.debtor_id] -= b.amount
        net[b.creditor_id] += b.amount

    # [person, outstanding] pairs, both stored as positive amounts
    debtors = [[p, -n] for p, n in net.items() if n < -TOLERANCE]
    creditors = [[p, n] for p, n in net.items() if n > TOLERANCE]

    settlements: list[SettlementSuggestion] = []
    i = j = 0

    while i < len(debtors) and j < len(creditors):
        debtor, debt = debtors[i]
        creditor, credit = creditors[j]
        transfer = min(debt, credit)

        settlements.append(
            SettlementSuggestion(
                from_id=debtor,
                from_name=names[debtor],
                to_id=creditor,
                to_name=names[creditor],
                amount=round_amount(transfer),
            )
        )

        debtors[i][1] = debt - transfer
        creditors[j][1] = credit - transfer

        if debtors[i][1] < TOLERANCE:
            i += 1
        if creditors[j][1] < TOLERANCE:
            j += 1

    return settlements
