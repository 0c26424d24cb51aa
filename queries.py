"""Read-side queries backing the accounts, transactions, budgets and settings views."""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Optional

import pandas as pd
from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from database import Account, AccountBalance, Budget, Category, Transaction
from ledger import to_major
from schemas import TransactionFilters


def month_start(day: date) -> date:
    return day.replace(day=1)


def month_end(day: date) -> date:
    return (pd.Timestamp(day) + pd.offsets.MonthEnd(0)).date()


def _balance_as_of(cutoff: Optional[date] = None):
    """Correlated subquery: an account's latest snapshot, optionally on or before ``cutoff``."""
    stmt = select(AccountBalance.balance).where(AccountBalance.account_id == Account.id)
    if cutoff is not None:
        stmt = stmt.where(AccountBalance.date <= cutoff)
    return stmt.order_by(AccountBalance.date.desc()).limit(1).correlate(Account).scalar_subquery()


def get_accounts_by_type(db: Session, user_id: int, account_type: str, today: Optional[date] = None) -> list[dict]:
    """Accounts of one type with their current balance and the balance at the start of the month."""
    start = month_start(today or date.today())
    rows = db.execute(
        select(
            Account,
            _balance_as_of().label("current_balance"),
            _balance_as_of(start).label("previous_balance"),
        )
        .where(Account.user_id == user_id, Account.type == account_type)
        .order_by(Account.name.asc(), Account.created_at.desc())
    ).all()

    accounts = []
    for account, current, previous in rows:
        item = account.as_dict()
        item["current_balance"] = to_major(current)
        item["previous_balance"] = to_major(previous)
        accounts.append(item)
    return accounts


def get_all_accounts(db: Session, user_id: int) -> list[dict]:
    accounts = db.scalars(
        select(Account)
        .where(Account.user_id == user_id)
        .order_by(Account.type.asc(), Account.name.asc(), Account.created_at.desc())
    ).all()
    return [a.as_dict() for a in accounts]


def current_balance(db: Session, account_id: int) -> Optional[float]:
    balance = db.execute(
        select(AccountBalance.balance)
        .where(AccountBalance.account_id == account_id)
        .order_by(AccountBalance.date.desc())
        .limit(1)
    ).scalar_one_or_none()
    return None if balance is None else to_major(balance)


def balance_history(db: Session, account_id: int) -> list[dict]:
    snapshots = db.scalars(
        select(AccountBalance).where(AccountBalance.account_id == account_id).order_by(AccountBalance.date)
    ).all()
    return [{"date": s.date.isoformat(), "balance": to_major(s.balance)} for s in snapshots]


def date_range_start(date_range: str, today: date) -> Optional[date]:
    if date_range == "today":
        return today
    if date_range == "week":
        return today - timedelta(days=7)
    if date_range == "month":
        return (pd.Timestamp(today) - pd.DateOffset(months=1)).date()
    if date_range == "year":
        return (pd.Timestamp(today) - pd.DateOffset(years=1)).date()
    return None


def get_transactions(
    db: Session, user_id: int, filters: Optional[TransactionFilters] = None, today: Optional[date] = None
) -> dict:
    """Newest-first page of the user's transactions plus pagination info."""
    filters = filters or TransactionFilters()
    conditions = [Account.user_id == user_id]

    if filters.search:
        pattern = f"%{filters.search.lower()}%"
        conditions.append(or_(func.lower(Transaction.title).like(pattern), func.lower(Transaction.description).like(pattern)))
    if filters.category_id:
        conditions.append(Transaction.category_id == filters.category_id)
    if filters.account_id:
        conditions.append(Transaction.account_id == filters.account_id)
    start = date_range_start(filters.date_range, today or date.today())
    if start is not None:
        conditions.append(Transaction.date >= start)

    total = db.execute(
        select(func.count(Transaction.id))
        .join(Account, Transaction.account_id == Account.id)
        .where(*conditions)
    ).scalar_one()

    offset = (filters.page - 1) * filters.page_size
    rows = db.execute(
        select(
            Transaction,
            Account.name,
            Account.type,
            Account.currency,
            Category.name,
            Category.color,
        )
        .join(Account, Transaction.account_id == Account.id)
        .outerjoin(Category, Transaction.category_id == Category.id)
        .where(*conditions)
        .order_by(Transaction.date.desc(), Transaction.created_at.desc(), Transaction.id.desc())
        .limit(filters.page_size)
        .offset(offset)
    ).all()

    transactions = []
    for txn, account_name, account_type, currency, category_name, category_color in rows:
        item = txn.as_dict()
        item.update(
            account_name=account_name,
            account_type=account_type,
            account_currency=currency,
            category_name=category_name,
            category_color=category_color,
        )
        transactions.append(item)

    return {
        "transactions": transactions,
        "pagination": {
            "page": filters.page,
            "page_size": filters.page_size,
            "total": total,
            "total_pages": math.ceil(total / filters.page_size),
        },
    }


def get_transaction_summary(db: Session, user_id: int, today: Optional[date] = None) -> dict:
    """Income, expenses and net over the last 30 days."""
    start = (today or date.today()) - timedelta(days=30)
    income, expenses = db.execute(
        select(
            func.coalesce(func.sum(case((Transaction.type == "inflow", Transaction.amount), else_=0)), 0),
            func.coalesce(func.sum(case((Transaction.type == "outflow", Transaction.amount), else_=0)), 0),
        )
        .join(Account, Transaction.account_id == Account.id)
        .where(Account.user_id == user_id, Transaction.date >= start)
    ).one()
    return {"income": to_major(income), "expenses": to_major(expenses), "net": to_major(income - expenses)}


def get_budgets(db: Session, user_id: int, today: Optional[date] = None) -> list[dict]:
    """Budgets with what their category has spent in the current month."""
    today = today or date.today()
    start, end = month_start(today), month_end(today)

    spent = (
        select(func.coalesce(func.sum(Transaction.amount), 0))
        .where(
            Transaction.category_id == Budget.category_id,
            Transaction.date >= start,
            Transaction.date <= end,
        )
        .correlate(Budget)
        .scalar_subquery()
    )
    rows = db.execute(
        select(Budget, Category.name, Category.color, spent.label("spent"))
        .join(Category, Budget.category_id == Category.id)
        .where(Category.user_id == user_id)
        .order_by(Category.name.asc(), Budget.created_at.desc())
    ).all()

    budgets = []
    for budget, name, color, spent_minor in rows:
        budgets.append(
            {
                "id": budget.id,
                "amount": to_major(budget.amount),
                "category_id": budget.category_id,
                "category_name": name,
                "category_color": color,
                "spent": to_major(spent_minor),
                "remaining": to_major(budget.amount - spent_minor),
                "percentage_used": (spent_minor / budget.amount * 100) if budget.amount > 0 else 0.0,
            }
        )
    return budgets


def get_categories(db: Session, user_id: int, category_type: Optional[str] = None) -> list[dict]:
    stmt = select(Category).where(Category.user_id == user_id)
    if category_type:
        stmt = stmt.where(Category.type == category_type)
    return [c.as_dict() for c in db.scalars(stmt.order_by(Category.name.asc())).all()]
