"""
Tests for the balance reconciliation engine.

The engine is pure, so these tests build records and account
snapshots directly and check the plan it returns.
"""

import pytest
from datetime import date
from decimal import Decimal

from ledgerbook.models.ledger import (
    Account,
    ExpenseRecord,
    IncomeRecord,
    TransferRecord,
)
from ledgerbook.reconciliation import (
    InsufficientFundsError,
    ValidationError,
    apply_plan,
    reconcile_create,
    reconcile_delete,
    reconcile_edit,
)


def snapshot(*accounts: Account) -> dict:
    return {account.id: account for account in accounts}


def balances(accounts: dict) -> dict:
    return {account_id: account.amount for account_id, account in accounts.items()}


def expense(account: Account, amount: str, **kwargs) -> ExpenseRecord:
    return ExpenseRecord(
        account_id=account.id,
        amount=Decimal(amount),
        date=date(2024, 3, 10),
        description="Groceries",
        category="Food",
        **kwargs,
    )


def income(account: Account, amount: str, **kwargs) -> IncomeRecord:
    return IncomeRecord(
        account_id=account.id,
        amount=Decimal(amount),
        date=date(2024, 3, 1),
        description="Salary",
        category="Salary",
        **kwargs,
    )


def transfer(source: Account, dest: Account, amount: str, **kwargs) -> TransferRecord:
    return TransferRecord(
        from_account_id=source.id,
        to_account_id=dest.id,
        amount=Decimal(amount),
        date=date(2024, 3, 5),
        description="Move money",
        **kwargs,
    )


def edited(record, **changes):
    return record.model_copy(update=changes)


@pytest.fixture
def a() -> Account:
    return Account(name="A", amount=Decimal("500.00"))


@pytest.fixture
def b() -> Account:
    return Account(name="B", amount=Decimal("50.00"))


@pytest.fixture
def c() -> Account:
    return Account(name="C", amount=Decimal("200.00"))


@pytest.fixture
def d() -> Account:
    return Account(name="D", amount=Decimal("10.00"))


class TestEditNonTransfer:
    """Income and expense edits."""

    def test_noop_edit_leaves_balances_unchanged(self, a):
        """Saving a record without changes moves nothing."""
        old = expense(a, "50.00")
        accounts = snapshot(a)

        plan = reconcile_edit(old, old.model_copy(), accounts)
        result = apply_plan(plan, accounts)

        assert balances(result) == balances(accounts)
        assert all(update.delta == 0 for update in plan.balance_updates)

    def test_expense_amount_increase(self, a):
        """Expense 50 -> 80 on A(500) leaves A at 470."""
        old = expense(a, "50.00")
        new = edited(old, amount=Decimal("80.00"))

        plan = reconcile_edit(old, new, snapshot(a))

        assert len(plan.balance_updates) == 1
        assert plan.balance_for(a.id) == Decimal("470.00")
        assert plan.balance_updates[0].previous_balance == Decimal("500.00")
        assert plan.balance_updates[0].delta == Decimal("-30.00")

    def test_income_moved_to_other_account(self):
        """Income 100 moved from A(200) to B(50) gives A=100, B=150."""
        a = Account(name="A", amount=Decimal("200.00"))
        b = Account(name="B", amount=Decimal("50.00"))
        old = income(a, "100.00")
        new = edited(old, account_id=b.id)

        plan = reconcile_edit(old, new, snapshot(a, b))

        assert [u.account_id for u in plan.balance_updates] == [a.id, b.id]
        assert plan.balance_for(a.id) == Decimal("100.00")
        assert plan.balance_for(b.id) == Decimal("150.00")

    def test_expense_to_income_same_account(self):
        """Expense 40 turned into income 40 on A(460) gives A=540."""
        a = Account(name="A", amount=Decimal("460.00"))
        old = expense(a, "40.00")
        new = IncomeRecord(
            id=old.id,
            account_id=a.id,
            amount=Decimal("40.00"),
            date=old.date,
            description=old.description,
            category="Refund",
            created_at=old.created_at,
        )

        plan = reconcile_edit(old, new, snapshot(a))

        assert plan.balance_for(a.id) == Decimal("540.00")

    def test_expense_can_overdraw_by_default(self, b):
        """Without the funds setting an expense may take an account negative."""
        old = expense(b, "10.00")
        new = edited(old, amount=Decimal("100.00"))

        plan = reconcile_edit(old, new, snapshot(b))

        assert plan.balance_for(b.id) == Decimal("-40.00")

    def test_expense_funds_enforced_when_enabled(self, b):
        """With enforce_expense_funds an expense beyond the balance is refused."""
        old = expense(b, "10.00")
        new = edited(old, amount=Decimal("100.00"))

        with pytest.raises(InsufficientFundsError) as exc_info:
            reconcile_edit(old, new, snapshot(b), enforce_expense_funds=True)

        # B holds 50 with the old 10 already taken, so 60 is available.
        assert exc_info.value.available == Decimal("60.00")
        assert exc_info.value.requested == Decimal("100.00")


class TestEditTransfer:
    """Transfer edits under full reverse-then-reapply."""

    def test_transfer_amount_change_and_back(self):
        """Transfer 30 A(300)->B(100) edited to 50, then back to 30."""
        a = Account(name="A", amount=Decimal("300.00"))
        b = Account(name="B", amount=Decimal("100.00"))
        old = transfer(a, b, "30.00")
        new = edited(old, amount=Decimal("50.00"))
        accounts = snapshot(a, b)

        after_first = apply_plan(reconcile_edit(old, new, accounts), accounts)
        assert after_first[a.id].amount == Decimal("280.00")
        assert after_first[b.id].amount == Decimal("120.00")

        after_second = apply_plan(reconcile_edit(new, old, after_first), after_first)
        assert after_second[a.id].amount == Decimal("300.00")
        assert after_second[b.id].amount == Decimal("100.00")

    def test_transfer_insufficient_funds(self):
        """The source must cover the new amount once the old transfer is undone."""
        a = Account(name="A", amount=Decimal("20.00"))
        b = Account(name="B", amount=Decimal("100.00"))
        old = transfer(a, b, "30.00")
        accounts = snapshot(a, b)

        with pytest.raises(InsufficientFundsError) as exc_info:
            reconcile_edit(old, edited(old, amount=Decimal("60.00")), accounts)

        assert exc_info.value.account_id == a.id
        assert exc_info.value.available == Decimal("50.00")
        assert balances(accounts) == {a.id: Decimal("20.00"), b.id: Decimal("100.00")}

    def test_transfer_may_drain_source_exactly(self):
        """Moving exactly the available amount is allowed."""
        a = Account(name="A", amount=Decimal("20.00"))
        b = Account(name="B", amount=Decimal("100.00"))
        old = transfer(a, b, "30.00")

        plan = reconcile_edit(old, edited(old, amount=Decimal("50.00")), snapshot(a, b))

        assert plan.balance_for(a.id) == Decimal("0.00")
        assert plan.balance_for(b.id) == Decimal("120.00")

    def test_transfer_to_completely_new_accounts(self, a, b, c, d):
        """A->B 30 changed to C->D 30 touches four accounts."""
        old = transfer(a, b, "30.00")
        new = edited(old, from_account_id=c.id, to_account_id=d.id)

        plan = reconcile_edit(old, new, snapshot(a, b, c, d))

        assert [u.account_id for u in plan.balance_updates] == [a.id, b.id, c.id, d.id]
        assert plan.balance_for(a.id) == Decimal("530.00")
        assert plan.balance_for(b.id) == Decimal("20.00")
        assert plan.balance_for(c.id) == Decimal("170.00")
        assert plan.balance_for(d.id) == Decimal("40.00")

    def test_transfer_direction_swapped(self):
        """A->B 30 reversed to B->A 30 moves 60 in total."""
        a = Account(name="A", amount=Decimal("270.00"))
        b = Account(name="B", amount=Decimal("130.00"))
        old = transfer(a, b, "30.00")
        new = edited(old, from_account_id=b.id, to_account_id=a.id)

        plan = reconcile_edit(old, new, snapshot(a, b))

        assert len(plan.balance_updates) == 2
        assert plan.balance_for(a.id) == Decimal("330.00")
        assert plan.balance_for(b.id) == Decimal("70.00")

    def test_swapped_source_checked_after_reversal(self):
        """B must cover the amount from what it holds without the old transfer."""
        a = Account(name="A", amount=Decimal("270.00"))
        b = Account(name="B", amount=Decimal("40.00"))
        old = transfer(a, b, "30.00")
        new = edited(old, from_account_id=b.id, to_account_id=a.id)

        with pytest.raises(InsufficientFundsError) as exc_info:
            reconcile_edit(old, new, snapshot(a, b))

        assert exc_info.value.account_id == b.id
        assert exc_info.value.available == Decimal("10.00")

    def test_destination_change_keeps_source(self, a, b, c):
        """Only the destination moves: A untouched in net, B loses, C gains."""
        old = transfer(a, b, "30.00")
        new = edited(old, to_account_id=c.id)

        plan = reconcile_edit(old, new, snapshot(a, b, c))

        assert plan.balance_for(a.id) == Decimal("500.00")
        assert plan.balance_for(b.id) == Decimal("20.00")
        assert plan.balance_for(c.id) == Decimal("230.00")

    def test_equal_accounts_rejected_by_model(self, a):
        """A transfer to its own source cannot be built."""
        with pytest.raises(ValueError):
            transfer(a, a, "10.00")

    def test_equal_accounts_rejected_by_engine(self, a, b):
        """Even an unvalidated record with from == to is refused before planning."""
        old = transfer(a, b, "30.00")
        bad = TransferRecord.model_construct(
            **{**old.model_dump(), "to_account_id": a.id}
        )
        accounts = snapshot(a, b)

        with pytest.raises(ValidationError):
            reconcile_edit(old, bad, accounts)

        assert accounts[a.id].amount == Decimal("500.00")


class TestPreconditions:
    """Errors are raised before anything is planned."""

    def test_id_mismatch(self, a):
        """old and new must be the same record."""
        with pytest.raises(ValidationError):
            reconcile_edit(expense(a, "10.00"), expense(a, "10.00"), snapshot(a))

    def test_missing_account(self, a, b):
        """Every referenced account must be in the snapshot."""
        old = income(a, "10.00")
        new = edited(old, account_id=b.id)

        with pytest.raises(ValidationError) as exc_info:
            reconcile_edit(old, new, snapshot(a))

        assert str(b.id) in str(exc_info.value)

    def test_missing_account_on_create(self, a):
        with pytest.raises(ValidationError):
            reconcile_create(income(a, "10.00"), {})


class TestCreateAndDelete:
    """Create and delete are the two halves of an edit."""

    def test_create_then_delete_restores_balances(self, a, b):
        """Applying a transfer and then removing it is a round trip."""
        accounts = snapshot(a, b)
        record = transfer(a, b, "75.25")

        created = apply_plan(reconcile_create(record, accounts), accounts)
        assert created[a.id].amount == Decimal("424.75")
        assert created[b.id].amount == Decimal("125.25")

        deleted = apply_plan(reconcile_delete(record, created), created)
        assert balances(deleted) == balances(accounts)

    def test_create_transfer_checks_funds(self, a, b):
        """A new transfer can't move more than the source holds."""
        with pytest.raises(InsufficientFundsError):
            reconcile_create(transfer(b, a, "50.01"), snapshot(a, b))

    def test_create_plan_carries_record(self, a):
        record = income(a, "12.00")

        plan = reconcile_create(record, snapshot(a))

        assert plan.persist == record
        assert plan.delete is None
        assert plan.idempotency_key == record.idempotency_key

    def test_delete_plan(self, a):
        """Deleting an expense refunds the account."""
        record = expense(a, "20.00")

        plan = reconcile_delete(record, snapshot(a))

        assert plan.persist is None
        assert plan.delete == record
        assert plan.idempotency_key == f"{record.id}:deleted"
        assert plan.balance_for(a.id) == Decimal("520.00")

    def test_apply_plan_does_not_mutate_input(self, a):
        accounts = snapshot(a)

        apply_plan(reconcile_create(expense(a, "20.00"), accounts), accounts)

        assert accounts[a.id].amount == Decimal("500.00")
