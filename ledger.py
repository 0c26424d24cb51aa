"""
ledger.py
---------
Running-balance maintenance for accounts.

Every mutation of a transaction, a transfer or an account writes its rows and
then moves the account's latest daily balance snapshot by the signed delta of
the change.  Snapshots are day-granular: the new balance is always upserted on
``(account_id, today)``, so several mutations on the same day collapse into one
row.  Backdated transactions therefore move the current balance but leave the
historical snapshots between their date and today untouched.

All functions work on a caller-owned ``Session`` and return a ``Result``.  They
never commit; the caller wraps them in ``database.atomic`` so that a failed
result rolls back every row written before the failure.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from database import Account, AccountBalance, Transaction
from results import Result

INFLOW = "inflow"
OUTFLOW = "outflow"


def to_minor(amount: float) -> int:
    """Scale a user-facing amount to integer minor units (cents)."""
    return int(round(amount * 100))


def to_major(amount: Optional[int]) -> float:
    return (amount or 0) / 100


def signed_impact(txn_type: str, amount: int) -> int:
    return amount if txn_type == INFLOW else -amount


def latest_snapshot(session: Session, account_id: int):
    """Return the ``(date, balance)`` row with the latest date, or ``None``."""
    stmt = (
        select(AccountBalance.date, AccountBalance.balance)
        .where(AccountBalance.account_id == account_id)
        .order_by(AccountBalance.date.desc())
        .limit(1)
    )
    return session.execute(stmt).first()


def upsert_snapshot(session: Session, account_id: int, day: date, balance: int) -> None:
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        insert = postgresql.insert
    elif dialect == "sqlite":
        insert = sqlite.insert
    else:
        raise NotImplementedError(f"Balance upsert is not supported on {dialect}")

    stmt = insert(AccountBalance).values(account_id=account_id, date=day, balance=balance)
    stmt = stmt.on_conflict_do_update(
        index_elements=[AccountBalance.account_id, AccountBalance.date],
        set_={"balance": balance},
    )
    session.execute(stmt)


def apply_delta(session: Session, account_id: int, delta: int, today: Optional[date] = None) -> Result:
    """Move the account's latest snapshot by ``delta`` and store it as today's row."""
    last = latest_snapshot(session, account_id)
    if last is None:
        return Result.fail(f"Account {account_id} has no balance snapshot")

    new_balance = last.balance + delta
    upsert_snapshot(session, account_id, today or date.today(), new_balance)
    return Result.success(new_balance)


def find_paired_leg(session: Session, txn: Transaction) -> Optional[Transaction]:
    if txn.transfer_id is not None:
        paired = session.get(Transaction, txn.transfer_id)
        if paired is not None:
            return paired
    return session.execute(
        select(Transaction).where(Transaction.transfer_id == txn.id, Transaction.id != txn.id).limit(1)
    ).scalar_one_or_none()


# --- Accounts ---

def create_account(
    session: Session,
    user_id: int,
    name: str,
    account_type: str,
    balance: int,
    currency: str = "EUR",
    subtype: Optional[str] = None,
    today: Optional[date] = None,
) -> Result:
    """Insert an account together with its opening balance snapshot."""
    account = Account(user_id=user_id, name=name, type=account_type, currency=currency, subtype=subtype)
    session.add(account)
    session.flush()

    session.add(AccountBalance(account_id=account.id, date=today or date.today(), balance=balance))
    session.flush()
    return Result.success(account)


def update_account(
    session: Session,
    account: Account,
    name: str,
    account_type: str,
    currency: str,
    is_active: bool,
    balance: int,
    today: Optional[date] = None,
) -> Result:
    """Edit an account and reconcile today's snapshot to the stated balance."""
    account.name = name
    account.type = account_type
    account.currency = currency
    account.is_active = is_active
    session.flush()

    upsert_snapshot(session, account.id, today or date.today(), balance)
    return Result.success(account)


# --- Transactions ---

def create_transaction(
    session: Session,
    account_id: int,
    amount: int,
    txn_type: str,
    txn_date: date,
    title: str,
    description: str = "",
    category_id: Optional[int] = None,
    today: Optional[date] = None,
) -> Result:
    if amount <= 0:
        return Result.fail("Amount must be positive")

    txn = Transaction(
        account_id=account_id,
        category_id=category_id,
        amount=amount,
        type=txn_type,
        date=txn_date,
        title=title,
        description=description,
    )
    session.add(txn)
    session.flush()

    applied = apply_delta(session, account_id, signed_impact(txn_type, amount), today)
    if not applied.ok:
        return applied
    return Result.success(txn)


def create_transfer(
    session: Session,
    from_account_id: int,
    to_account_id: int,
    amount: int,
    txn_date: date,
    title: str = "Transfer",
    today: Optional[date] = None,
) -> Result:
    """Write an outflow leg and an inflow leg that reference each other."""
    if from_account_id == to_account_id:
        return Result.fail("Source and destination accounts must be different")
    if amount <= 0:
        return Result.fail("Amount must be positive")

    outflow = Transaction(
        account_id=from_account_id, amount=amount, type=OUTFLOW, date=txn_date, title=title, description=""
    )
    session.add(outflow)
    session.flush()

    inflow = Transaction(
        account_id=to_account_id,
        amount=amount,
        type=INFLOW,
        date=txn_date,
        title=title,
        description="",
        transfer_id=outflow.id,
    )
    session.add(inflow)
    session.flush()

    outflow.transfer_id = inflow.id
    session.flush()

    for account_id, delta in ((from_account_id, -amount), (to_account_id, amount)):
        applied = apply_delta(session, account_id, delta, today)
        if not applied.ok:
            return applied
    return Result.success((outflow, inflow))


def update_transaction(
    session: Session,
    txn_id: int,
    account_id: int,
    amount: int,
    txn_type: str,
    txn_date: date,
    title: str,
    description: str = "",
    category_id: Optional[int] = None,
    today: Optional[date] = None,
) -> Result:
    """Rewrite a transaction and reconcile every account it touched.

    Same account: the account moves by ``new_impact - old_impact``.  Moved to
    another account: the old account loses ``old_impact`` and the new account
    gains ``new_impact``.  For a transfer leg the new amount and date are
    mirrored onto the paired leg and its account is moved as well.
    """
    txn = session.get(Transaction, txn_id)
    if txn is None:
        return Result.fail(f"Transaction {txn_id} not found")
    if amount <= 0:
        return Result.fail("Amount must be positive")

    old_account_id = txn.account_id
    old_impact = signed_impact(txn.type, txn.amount)
    new_impact = signed_impact(txn_type, amount)

    paired = find_paired_leg(session, txn)
    if paired is not None:
        if txn_type != txn.type:
            return Result.fail("The direction of a transfer leg cannot be changed")
        if account_id == paired.account_id:
            return Result.fail("Source and destination accounts must be different")

    txn.account_id = account_id
    txn.amount = amount
    txn.type = txn_type
    txn.date = txn_date
    txn.title = title
    txn.description = description
    txn.category_id = category_id
    session.flush()

    if old_account_id != account_id:
        deltas = [(old_account_id, -old_impact), (account_id, new_impact)]
    else:
        deltas = [(account_id, new_impact - old_impact)]

    if paired is not None:
        paired_old = signed_impact(paired.type, paired.amount)
        paired.amount = amount
        paired.date = txn_date
        session.flush()
        deltas.append((paired.account_id, signed_impact(paired.type, amount) - paired_old))

    for target_id, delta in deltas:
        applied = apply_delta(session, target_id, delta, today)
        if not applied.ok:
            return applied
    return Result.success(txn)


def delete_transaction(session: Session, txn_id: int, today: Optional[date] = None) -> Result:
    """Delete a transaction, and its paired transfer leg, reversing their impact."""
    txn = session.get(Transaction, txn_id)
    if txn is None:
        return Result.fail(f"Transaction {txn_id} not found")

    reversals = [(txn.account_id, -signed_impact(txn.type, txn.amount))]
    paired = find_paired_leg(session, txn)
    if paired is not None:
        reversals.append((paired.account_id, -signed_impact(paired.type, paired.amount)))
        session.delete(paired)
    session.delete(txn)
    session.flush()

    for account_id, delta in reversals:
        applied = apply_delta(session, account_id, delta, today)
        if not applied.ok:
            return applied
    return Result.success(None)
