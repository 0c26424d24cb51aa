"""
analytics.py
------------
Dashboard numbers: net worth from balance snapshots and income/spending
aggregates from transactions.  Only active accounts count.  Data is pulled
into pandas frames and aggregated there; amounts come back in major units.
"""

from datetime import date, timedelta
from typing import Optional

import pandas as pd
from sqlalchemy import select
from sqlalchemy.orm import Session

from database import Account, AccountBalance, Category, Transaction
from queries import month_end

UNCATEGORIZED = {"category_id": None, "category_name": "Uncategorized", "category_color": "#6b7280"}


def range_start(date_range: str, today: date) -> date:
    """First day covered by an analytics window (30d, 90d, 6m or 1y)."""
    now = pd.Timestamp(today)
    if date_range == "90d":
        return (now - pd.Timedelta(days=90)).date()
    if date_range == "6m":
        return (now - pd.DateOffset(months=6)).date()
    if date_range == "1y":
        return (now - pd.DateOffset(years=1)).date()
    return (now - pd.Timedelta(days=30)).date()


def snapshots_to_df(db: Session, user_id: int) -> pd.DataFrame:
    rows = db.execute(
        select(AccountBalance.account_id, AccountBalance.date, AccountBalance.balance)
        .join(Account, AccountBalance.account_id == Account.id)
        .where(Account.user_id == user_id, Account.is_active.is_(True))
    ).all()
    df = pd.DataFrame(rows, columns=["AccountId", "Date", "Balance"])
    df["Date"] = pd.to_datetime(df["Date"])
    return df


def transactions_to_df(db: Session, user_id: int, since: Optional[date] = None) -> pd.DataFrame:
    stmt = (
        select(
            Transaction.date,
            Transaction.amount,
            Transaction.type,
            Transaction.category_id,
            Category.name,
            Category.color,
            Category.type,
        )
        .join(Account, Transaction.account_id == Account.id)
        .outerjoin(Category, Transaction.category_id == Category.id)
        .where(Account.user_id == user_id, Account.is_active.is_(True))
    )
    if since is not None:
        stmt = stmt.where(Transaction.date >= since)

    df = pd.DataFrame(
        db.execute(stmt).all(),
        columns=["Date", "Amount", "Type", "CategoryId", "Category", "Color", "CategoryType"],
    )
    if df.empty:
        return df

    df["Date"] = pd.to_datetime(df["Date"])
    df["Month"] = df["Date"].dt.to_period("M").astype(str)
    df["Income"] = df["Amount"].where(df["Type"] == "inflow", 0)
    df["Expense"] = df["Amount"].where(df["Type"] == "outflow", 0)
    return df


def net_worth_as_of(snapshots: pd.DataFrame, cutoff: date) -> float:
    """Sum of each account's latest snapshot on or before ``cutoff``."""
    if snapshots.empty:
        return 0.0
    upto = snapshots[snapshots["Date"] <= pd.Timestamp(cutoff)]
    if upto.empty:
        return 0.0
    latest = upto.sort_values("Date").groupby("AccountId").tail(1)
    return float(latest["Balance"].sum()) / 100


def get_net_worth(db: Session, user_id: int, today: Optional[date] = None) -> tuple[float, float]:
    """Current net worth and net worth at the end of the previous month."""
    today = today or date.today()
    previous_month_end = today.replace(day=1) - timedelta(days=1)
    snapshots = snapshots_to_df(db, user_id)
    return net_worth_as_of(snapshots, today), net_worth_as_of(snapshots, previous_month_end)


def get_net_worth_history(db: Session, user_id: int, today: Optional[date] = None, months: int = 12) -> list[dict]:
    """Net worth at each of the last ``months`` month ends, oldest first."""
    today = today or date.today()
    snapshots = snapshots_to_df(db, user_id)
    current = pd.Period(today, freq="M")

    history = []
    for offset in range(months - 1, -1, -1):
        period = current - offset
        cutoff = month_end(period.to_timestamp().date())
        history.append({"month": str(period), "net_worth": net_worth_as_of(snapshots, cutoff)})
    return history


def _category_key(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df["Category"] = df["Category"].fillna(UNCATEGORIZED["category_name"])
    df["Color"] = df["Color"].fillna(UNCATEGORIZED["category_color"])
    df["CategoryType"] = df["CategoryType"].fillna("outflow")
    df["CategoryKey"] = df["CategoryId"].fillna(-1).astype(int)
    return df


def get_spending_by_category(
    db: Session, user_id: int, date_range: str = "30d", today: Optional[date] = None
) -> list[dict]:
    """Outflow totals per category, biggest first, with their share of all spending."""
    df = transactions_to_df(db, user_id, since=range_start(date_range, today or date.today()))
    if df.empty:
        return []
    spend = _category_key(df[df["Type"] == "outflow"])
    if spend.empty:
        return []

    by_cat = (
        spend.groupby(["CategoryKey", "Category", "Color"])
        .agg(total=("Amount", "sum"))
        .reset_index()
        .sort_values("total", ascending=False)
    )
    grand_total = by_cat["total"].sum()
    return [
        {
            "category_id": None if row["CategoryKey"] < 0 else int(row["CategoryKey"]),
            "category_name": row["Category"],
            "category_color": row["Color"],
            "total": float(row["total"]) / 100,
            "percentage": float(row["total"] / grand_total * 100) if grand_total > 0 else 0.0,
        }
        for _, row in by_cat.iterrows()
    ]


def get_monthly_trends(db: Session, user_id: int, today: Optional[date] = None) -> list[dict]:
    """Income, expenses and net per month over the last year."""
    today = today or date.today()
    df = transactions_to_df(db, user_id, since=(pd.Timestamp(today) - pd.DateOffset(years=1)).date())
    if df.empty:
        return []

    monthly = df.groupby("Month")[["Income", "Expense"]].sum().reset_index().sort_values("Month")
    return [
        {
            "month": row["Month"],
            "income": float(row["Income"]) / 100,
            "expenses": float(row["Expense"]) / 100,
            "net": float(row["Income"] - row["Expense"]) / 100,
        }
        for _, row in monthly.iterrows()
    ]


def get_category_breakdown(
    db: Session, user_id: int, date_range: str = "30d", today: Optional[date] = None
) -> list[dict]:
    df = transactions_to_df(db, user_id, since=range_start(date_range, today or date.today()))
    if df.empty:
        return []
    df = _category_key(df)

    grouped = (
        df.groupby(["CategoryKey", "Category", "Color", "CategoryType"])
        .agg(income=("Income", "sum"), expenses=("Expense", "sum"))
        .reset_index()
        .sort_values("Category")
    )
    return [
        {
            "category_id": None if row["CategoryKey"] < 0 else int(row["CategoryKey"]),
            "category_name": row["Category"],
            "category_color": row["Color"],
            "category_type": row["CategoryType"],
            "income": float(row["income"]) / 100,
            "expenses": float(row["expenses"]) / 100,
        }
        for _, row in grouped.iterrows()
    ]


def get_analytics_summary(db: Session, user_id: int, date_range: str = "30d", today: Optional[date] = None) -> dict:
    df = transactions_to_df(db, user_id, since=range_start(date_range, today or date.today()))
    income = float(df["Income"].sum()) / 100 if not df.empty else 0.0
    expenses = float(df["Expense"].sum()) / 100 if not df.empty else 0.0
    net = income - expenses
    # Savings rate (guard against division by zero)
    savings_rate = (net / income * 100) if income > 0 else 0.0
    return {"income": income, "expenses": expenses, "net": net, "savings_rate": savings_rate}
