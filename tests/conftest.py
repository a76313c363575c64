"""Shared test fixtures for grouptab tests."""

from collections.abc import Generator
from decimal import Decimal
from pathlib import Path

import pytest

from grouptab.models import Balance, Expense, Group, Share, SplitMode
from grouptab.service import GroupService
from grouptab.state import GroupStore


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Keep state and audit files out of the home directory."""
    monkeypatch.setenv("GROUPTAB_STATE_DIR", str(tmp_path / "default-state"))
    monkeypatch.setenv("GROUPTAB_LOG_PATH", str(tmp_path / "default-audit.jsonl"))
    yield


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    """Temporary directory for state files."""
    return tmp_path / "state"


@pytest.fixture
def audit_path(tmp_path: Path) -> Path:
    """Temporary audit log path."""
    return tmp_path / "audit.jsonl"


@pytest.fixture
def store(temp_state_dir: Path) -> GroupStore:
    """Create a GroupStore with a temporary state directory."""
    return GroupStore(temp_state_dir)


@pytest.fixture
def service(store: GroupStore, audit_path: Path) -> GroupService:
    """Create a GroupService logging to a temporary audit file."""
    return GroupService(store, log_path=audit_path)


@pytest.fixture
def group(service: GroupService) -> Group:
    """A group of three: Ana (owner), Ben and Cai."""
    created = service.create_group("Lake House", "ana", "Ana")
    service.add_participant(created.id, "ben", "Ben", actor_id="ana")
    return service.add_participant(created.id, "cai", "Cai", actor_id="ana")


def make_expense(
    payer: str,
    amount: str,
    shares: dict[str, str],
    group_id: str = "g1",
    mode: SplitMode = SplitMode.CUSTOM,
) -> Expense:
    """Build an expense whose shares are already normalized."""
    return Expense(
        group_id=group_id,
        amount=Decimal(amount),
        description="test",
        payer_id=payer,
        payer_name=payer.upper(),
        split_mode=mode,
        shares=[
            Share(user_id=user, name=user.upper(), amount=Decimal(value))
            for user, value in shares.items()
        ],
    )


def make_balance(debtor: str, creditor: str, amount: str, group_id: str = "g1") -> Balance:
    """Build a balance record with upper-cased name snapshots."""
    return Balance(
        group_id=group_id,
        debtor_id=debtor,
        debtor_name=debtor.upper(),
        creditor_id=creditor,
        creditor_name=creditor.upper(),
        amount=Decimal(amount),
    )
