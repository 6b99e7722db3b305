"""
Balance Reconciliation Engine

Computes the account balance updates needed when a ledger record is
created, edited or deleted.

POLICY: full reverse-then-reapply.
The old record's effect is reversed on the accounts it touched and the
new record's effect is applied on the accounts it touches. Deltas that land
on the same account are collapsed into a single update. This holds for every
variant, including transfers whose source or destination changed.

The engine is pure: it reads an accounts snapshot and returns a plan.
It never talks to storage.
"""

from decimal import Decimal
from typing import Mapping, Optional
from uuid import UUID

from ledgerbook.models.ledger import (
    Account,
    BalanceUpdate,
    EntryType,
    LedgerRecordBase,
    ReconciliationPlan,
)
from ledgerbook.reconciliation.errors import (
    InsufficientFundsError,
    ValidationError,
)


def _net_deltas(
    old: Optional[LedgerRecordBase],
    new: Optional[LedgerRecordBase],
) -> dict[UUID, Decimal]:
    """effect(new) - effect(old), keyed in first-reference order."""
    deltas: dict[UUID, Decimal] = {}
    if old is not None:
        for account_id, change in old.effect().items():
            deltas[account_id] = deltas.get(account_id, Decimal("0")) - change
    if new is not None:
        for account_id, change in new.effect().items():
            deltas[account_id] = deltas.get(account_id, Decimal("0")) + change
    return deltas


def _require_accounts(
    records: list[Optional[LedgerRecordBase]],
    accounts: Mapping[UUID, Account],
) -> None:
    missing = []
    for record in records:
        if record is None:
            continue
        for account_id in record.account_ids:
            if account_id not in accounts and account_id not in missing:
                missing.append(account_id)
    if missing:
        raise ValidationError(
            "Account not found: " + ", ".join(str(a) for a in missing)
        )


def _check_transfer_accounts(record: LedgerRecordBase) -> None:
    if (
        record.type == EntryType.TRANSFER
        and record.from_account_id == record.to_account_id
    ):
        raise ValidationError(
            "Transfer source and destination accounts must differ"
        )


def _check_funds(
    old: Optional[LedgerRecordBase],
    new: LedgerRecordBase,
    accounts: Mapping[UUID, Account],
    enforce_expense_funds: bool,
) -> None:
    """
    The paying account must hold the amount once the old record is reversed.

    Transfers are always checked. Expenses only when enforce_expense_funds.
    """
    if new.type == EntryType.TRANSFER:
        source = new.from_account_id
    elif new.type == EntryType.EXPENSE and enforce_expense_funds:
        source = new.account_id
    else:
        return

    available = accounts[source].amount
    if old is not None:
        available -= old.effect().get(source, Decimal("0"))

    if new.amount > available:
        raise InsufficientFundsError(
            account_id=source,
            available=available,
            requested=new.amount,
        )


def _build_plan(
    old: Optional[LedgerRecordBase],
    new: Optional[LedgerRecordBase],
    accounts: Mapping[UUID, Account],
) -> list[BalanceUpdate]:
    updates = []
    for account_id, delta in _net_deltas(old, new).items():
        current = accounts[account_id].amount
        updates.append(BalanceUpdate(
            account_id=account_id,
            previous_balance=current,
            new_balance=current + delta,
        ))
    return updates


def reconcile_create(
    new: LedgerRecordBase,
    accounts: Mapping[UUID, Account],
    enforce_expense_funds: bool = False,
) -> ReconciliationPlan:
    """Plan for a brand-new record: apply its effect."""
    _check_transfer_accounts(new)
    _require_accounts([new], accounts)
    _check_funds(None, new, accounts, enforce_expense_funds)

    return ReconciliationPlan(
        balance_updates=_build_plan(None, new, accounts),
        persist=new,
        idempotency_key=new.idempotency_key,
    )


def reconcile_edit(
    old: LedgerRecordBase,
    new: LedgerRecordBase,
    accounts: Mapping[UUID, Account],
    enforce_expense_funds: bool = False,
) -> ReconciliationPlan:
    """
    Plan for replacing `old` with `new`.

    Args:
        old: The record as currently stored (its effect is already applied)
        new: The proposed replacement, same id
        accounts: Current balances for every account either record touches
        enforce_expense_funds: Also refuse expenses the account can't cover

    Returns:
        A ReconciliationPlan with one update per touched account

    Raises:
        ValidationError: id mismatch, missing account
        InsufficientFundsError: paying account can't cover new.amount
    """
    if old.id != new.id:
        raise ValidationError(
            f"Cannot reconcile different records: {old.id} != {new.id}"
        )

    _check_transfer_accounts(new)
    _require_accounts([old, new], accounts)
    _check_funds(old, new, accounts, enforce_expense_funds)

    return ReconciliationPlan(
        balance_updates=_build_plan(old, new, accounts),
        persist=new,
        idempotency_key=new.idempotency_key,
    )


def reconcile_delete(
    old: LedgerRecordBase,
    accounts: Mapping[UUID, Account],
) -> ReconciliationPlan:
    """Plan for removing a record: reverse its effect."""
    _require_accounts([old], accounts)

    return ReconciliationPlan(
        balance_updates=_build_plan(old, None, accounts),
        delete=old,
        idempotency_key=f"{old.id}:deleted",
    )


def apply_plan(
    plan: ReconciliationPlan,
    accounts: Mapping[UUID, Account],
) -> dict[UUID, Account]:
    """
    Return a copy of `accounts` with the plan's balances written.

    Useful for previews and for checking a plan without a store.
    """
    result = {account_id: account.model_copy() for account_id, account in accounts.items()}
    for update in plan.balance_updates:
        result[update.account_id] = result[update.account_id].model_copy(
            update={"amount": update.new_balance}
        )
    return result
