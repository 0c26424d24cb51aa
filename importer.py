"""
importer.py
-----------
CSV import and data export for a user's transactions and categories.

Imported transaction rows are written as-is and do not move any balance
snapshot, so an import is meant for restoring history into accounts whose
balances are already reconciled.
"""

from __future__ import annotations

import math
from datetime import date
from io import StringIO
from typing import Optional

import pandas as pd
from sqlalchemy import select, text
from sqlalchemy.orm import Session

from database import Account, Budget, Category, Transaction, TRANSACTION_TYPES, CATEGORY_TYPES
from ledger import to_minor
from results import Result
from schemas import MAX_AMOUNT
from storage import save_file

TRANSACTION_HEADERS = [
    "id",
    "account_id",
    "category_id",
    "date",
    "amount",
    "type",
    "title",
    "description",
    "created_at",
]
CATEGORY_HEADERS = ["name", "type", "color"]
MAX_ROW_ID = 2**63 - 1


def read_csv_text(csv_text: str) -> pd.DataFrame:
    """Parse CSV text into string columns with normalised header names."""
    try:
        df = pd.read_csv(StringIO(csv_text), dtype=str, keep_default_na=False, skip_blank_lines=True)
    except pd.errors.EmptyDataError:
        return pd.DataFrame()
    df = df.fillna("")
    df.columns = [str(c).lower().replace('"', "").replace(" ", "").strip() for c in df.columns]
    return df


def _parse_int(value: str) -> Optional[int]:
    value = (value or "").strip()
    if not value:
        return None
    try:
        parsed = int(float(value))
    except (ValueError, OverflowError):
        return None
    return parsed if abs(parsed) <= MAX_ROW_ID else None


def _check_headers(df: pd.DataFrame, expected: list[str]) -> Optional[Result]:
    if df.empty:
        return Result.fail("CSV file is empty or has no data rows")
    if not set(expected).issubset(df.columns):
        return Result.fail(f"Invalid CSV headers. Required: {', '.join(expected)}")
    return None


def import_transactions(db: Session, user_id: int, csv_text: str) -> Result:
    df = read_csv_text(csv_text)
    invalid = _check_headers(df, TRANSACTION_HEADERS)
    if invalid:
        return invalid

    account_ids = set(db.scalars(select(Account.id).where(Account.user_id == user_id)))
    category_ids = set(db.scalars(select(Category.id).where(Category.user_id == user_id)))
    results = {"success": 0, "skipped": 0, "errors": []}
    seen_ids = set()

    for position, (_, row) in enumerate(df.iterrows()):
        row_no = position + 2  # header is row 1

        try:
            amount = float(row["amount"])
        except ValueError:
            amount = float("nan")
        if not math.isfinite(amount) or amount <= 0 or amount > MAX_AMOUNT:
            results["errors"].append(f"Row {row_no}: Invalid amount \"{row['amount']}\"")
            continue

        txn_type = row["type"].strip()
        if txn_type not in TRANSACTION_TYPES:
            results["errors"].append(f"Row {row_no}: Invalid type \"{txn_type}\" (must be 'inflow' or 'outflow')")
            continue

        account_id = _parse_int(row["account_id"])
        if account_id not in account_ids:
            results["errors"].append(f"Row {row_no}: Unknown account \"{row['account_id']}\"")
            continue

        category_id = _parse_int(row["category_id"])
        if row["category_id"].strip() and category_id not in category_ids:
            results["errors"].append(f"Row {row_no}: Unknown category \"{row['category_id']}\"")
            continue

        txn_date = pd.to_datetime(row["date"], errors="coerce")
        if pd.isna(txn_date):
            results["errors"].append(f"Row {row_no}: Invalid date \"{row['date']}\"")
            continue

        txn_id = _parse_int(row["id"])
        if txn_id is not None and (txn_id in seen_ids or db.get(Transaction, txn_id) is not None):
            results["skipped"] += 1
            continue

        txn = Transaction(
            id=txn_id,
            account_id=account_id,
            category_id=category_id,
            date=txn_date.date(),
            amount=to_minor(amount),
            type=txn_type,
            title=row["title"].strip() or "Imported",
            description=row["description"],
        )
        created_at = pd.to_datetime(row["created_at"], errors="coerce")
        if not pd.isna(created_at):
            txn.created_at = created_at.to_pydatetime()
        db.add(txn)
        db.flush()
        seen_ids.add(txn.id)
        results["success"] += 1

    if seen_ids:
        sync_id_sequence(db, Transaction.__tablename__)
    return Result.success(results)


def sync_id_sequence(db: Session, table: str) -> None:
    """Move a PostgreSQL serial sequence past rows inserted with explicit ids."""
    if db.get_bind().dialect.name != "postgresql":
        return
    db.execute(
        text(f"SELECT setval(pg_get_serial_sequence('{table}', 'id'), (SELECT MAX(id) FROM {table}))")
    )


def import_categories(db: Session, user_id: int, csv_text: str) -> Result:
    df = read_csv_text(csv_text)
    invalid = _check_headers(df, CATEGORY_HEADERS)
    if invalid:
        return invalid

    existing = {
        (c.name, c.type) for c in db.scalars(select(Category).where(Category.user_id == user_id))
    }
    results = {"success": 0, "skipped": 0, "errors": []}

    for position, (_, row) in enumerate(df.iterrows()):
        row_no = position + 2
        name = row["name"].strip()
        cat_type = row["type"].strip()
        if not name:
            results["errors"].append(f"Row {row_no}: Missing name")
            continue
        if cat_type not in CATEGORY_TYPES:
            results["errors"].append(f"Row {row_no}: Invalid type \"{cat_type}\" (must be 'inflow' or 'outflow')")
            continue
        if (name, cat_type) in existing:
            results["skipped"] += 1
            continue

        db.add(Category(user_id=user_id, name=name, type=cat_type, color=row["color"].strip() or "#6b7280"))
        existing.add((name, cat_type))
        results["success"] += 1

    db.flush()
    return Result.success(results)


# --- Export ---

def transactions_frame(db: Session, user_id: int) -> pd.DataFrame:
    txns = db.scalars(
        select(Transaction)
        .join(Account, Transaction.account_id == Account.id)
        .where(Account.user_id == user_id)
        .order_by(Transaction.date, Transaction.id)
    ).all()
    rows = [
        {
            "id": t.id,
            "account_id": t.account_id,
            "category_id": t.category_id if t.category_id is not None else "",
            "date": t.date.isoformat(),
            "amount": t.amount / 100,
            "type": t.type,
            "title": t.title,
            "description": t.description,
            "created_at": t.created_at.isoformat() if t.created_at else "",
        }
        for t in txns
    ]
    return pd.DataFrame(rows, columns=TRANSACTION_HEADERS)


def export_transactions_csv(db: Session, user_id: int) -> str:
    return transactions_frame(db, user_id).to_csv(index=False)


def export_user_data(db: Session, user_id: int, today: Optional[date] = None) -> dict:
    """Everything a user owns, in the shape of the JSON export."""
    accounts = db.scalars(select(Account).where(Account.user_id == user_id)).all()
    categories = db.scalars(select(Category).where(Category.user_id == user_id)).all()
    budgets = db.scalars(
        select(Budget).join(Category, Budget.category_id == Category.id).where(Category.user_id == user_id)
    ).all()
    transactions = transactions_frame(db, user_id)

    return {
        "export_date": (today or date.today()).isoformat(),
        "version": "1.0",
        "user_id": user_id,
        "accounts": [a.as_dict() for a in accounts],
        "categories": [c.as_dict() for c in categories],
        "transactions": transactions.to_dict(orient="records"),
        "budgets": [b.as_dict() for b in budgets],
    }


def save_transactions_export(db: Session, user_id: int, today: Optional[date] = None) -> Optional[str]:
    """Write the user's transactions CSV to the export store and return its name."""
    file_name = f"flux-finances-{user_id}-{(today or date.today()).isoformat()}.csv"
    if save_file(file_name, transactions_frame(db, user_id)):
        return file_name
    return None
