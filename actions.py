"""
actions.py
----------
Server-invocable mutations.  Each action takes the request's database session,
the acting user's id (injected by the authentication layer) and a validated
payload from ``schemas.py``, and returns a ``Result``.

Every action runs as one unit of work through ``database.atomic``: a failed
result or a database error rolls back everything the action wrote.  Failures
are logged with the operation name and surfaced as a generic message.
"""

from __future__ import annotations

from datetime import date
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import importer
import ledger
from database import Account, Budget, Category, Transaction, UserPreferences, atomic
from logger import get_logger
from results import Result
from schemas import (
    CsvImport,
    EditAccount,
    EditBudget,
    IdInput,
    NewAccount,
    NewBudget,
    NewCategory,
    NewTransaction,
    TransferInput,
    UpdateCategory,
    UpdateTransaction,
    UpdateUserPreferences,
)

log = get_logger(__name__)


def _run(db: Session, user_id: Optional[int], operation: str, message: str, work: Callable[[], Result]) -> Result:
    if not user_id:
        log.warning("Rejected unauthenticated call", operation=operation)
        return Result.fail("Unauthorized")

    try:
        result = atomic(db, work)
    except (SQLAlchemyError, OverflowError, ValueError) as err:
        log.error(message, operation=operation, user_id=user_id, err=str(err))
        return Result.fail(message)

    if not result.ok:
        log.warning(message, operation=operation, user_id=user_id, reason=result.error)
        return Result.fail(message)
    return result


# --- Ownership lookups ---

def owned_account(db: Session, user_id: int, account_id: int) -> Optional[Account]:
    return db.execute(
        select(Account).where(Account.id == account_id, Account.user_id == user_id)
    ).scalar_one_or_none()


def owned_category(db: Session, user_id: int, category_id: int) -> Optional[Category]:
    return db.execute(
        select(Category).where(Category.id == category_id, Category.user_id == user_id)
    ).scalar_one_or_none()


def owned_transaction(db: Session, user_id: int, txn_id: int) -> Optional[Transaction]:
    return db.execute(
        select(Transaction)
        .join(Account, Transaction.account_id == Account.id)
        .where(Transaction.id == txn_id, Account.user_id == user_id)
    ).scalar_one_or_none()


def owned_budget(db: Session, user_id: int, budget_id: int) -> Optional[Budget]:
    return db.execute(
        select(Budget)
        .join(Category, Budget.category_id == Category.id)
        .where(Budget.id == budget_id, Category.user_id == user_id)
    ).scalar_one_or_none()


def _category_allowed(db: Session, user_id: int, category_id: Optional[int]) -> bool:
    return category_id is None or owned_category(db, user_id, category_id) is not None


# --- Accounts ---

def new_account_action(db: Session, user_id: Optional[int], data: NewAccount, today: Optional[date] = None) -> Result:
    def work():
        created = ledger.create_account(
            db,
            user_id,
            name=data.name,
            account_type=data.type,
            balance=ledger.to_minor(data.balance),
            currency=data.currency,
            subtype=data.subtype,
            today=today,
        )
        return Result.success(created.data.as_dict()) if created.ok else created

    return _run(db, user_id, "create_account", "Failed to create account", work)


def update_account_action(db: Session, user_id: Optional[int], data: EditAccount, today: Optional[date] = None) -> Result:
    def work():
        account = owned_account(db, user_id, data.id)
        if account is None:
            return Result.fail(f"Account {data.id} not found or does not belong to user")
        updated = ledger.update_account(
            db,
            account,
            name=data.name,
            account_type=data.type,
            currency=data.currency,
            is_active=data.is_active,
            balance=ledger.to_minor(data.balance),
            today=today,
        )
        return Result.success(None) if updated.ok else updated

    return _run(db, user_id, "update_account", "Failed to update account", work)


def delete_account_action(db: Session, user_id: Optional[int], data: IdInput) -> Result:
    def work():
        account = owned_account(db, user_id, data.id)
        if account is None:
            return Result.fail(f"Account {data.id} not found or does not belong to user")
        db.delete(account)
        db.flush()
        return Result.success(None)

    return _run(db, user_id, "delete_account", "Failed to delete account", work)


# --- Transactions ---

def new_transaction_action(
    db: Session, user_id: Optional[int], data: NewTransaction, today: Optional[date] = None
) -> Result:
    def work():
        if owned_account(db, user_id, data.account_id) is None:
            return Result.fail(f"Account {data.account_id} not found or does not belong to user")
        if not _category_allowed(db, user_id, data.category_id):
            return Result.fail(f"Category {data.category_id} not found or does not belong to user")
        created = ledger.create_transaction(
            db,
            account_id=data.account_id,
            amount=ledger.to_minor(data.amount),
            txn_type=data.type,
            txn_date=data.date,
            title=data.title,
            description=data.description,
            category_id=data.category_id,
            today=today,
        )
        return Result.success(created.data.as_dict()) if created.ok else created

    return _run(db, user_id, "create_transaction", "Failed to create transaction", work)


def create_transfer_action(
    db: Session, user_id: Optional[int], data: TransferInput, today: Optional[date] = None
) -> Result:
    def work():
        for account_id in (data.from_account_id, data.to_account_id):
            if owned_account(db, user_id, account_id) is None:
                return Result.fail(f"Account {account_id} not found or does not belong to user")
        created = ledger.create_transfer(
            db,
            from_account_id=data.from_account_id,
            to_account_id=data.to_account_id,
            amount=ledger.to_minor(data.amount),
            txn_date=data.date,
            today=today,
        )
        if not created.ok:
            return created
        outflow, inflow = created.data
        return Result.success({"outflow": outflow.as_dict(), "inflow": inflow.as_dict()})

    return _run(db, user_id, "create_transfer", "Failed to create transfer", work)


def update_transaction_action(
    db: Session, user_id: Optional[int], data: UpdateTransaction, today: Optional[date] = None
) -> Result:
    def work():
        if owned_transaction(db, user_id, data.id) is None:
            return Result.fail(f"Transaction {data.id} not found or does not belong to user")
        if owned_account(db, user_id, data.account_id) is None:
            return Result.fail(f"Account {data.account_id} not found or does not belong to user")
        if not _category_allowed(db, user_id, data.category_id):
            return Result.fail(f"Category {data.category_id} not found or does not belong to user")
        updated = ledger.update_transaction(
            db,
            data.id,
            account_id=data.account_id,
            amount=ledger.to_minor(data.amount),
            txn_type=data.type,
            txn_date=data.date,
            title=data.title,
            description=data.description,
            category_id=data.category_id,
            today=today,
        )
        return Result.success(updated.data.as_dict()) if updated.ok else updated

    return _run(db, user_id, "update_transaction", "Failed to update transaction", work)


def delete_transaction_action(
    db: Session, user_id: Optional[int], data: IdInput, today: Optional[date] = None
) -> Result:
    def work():
        if owned_transaction(db, user_id, data.id) is None:
            return Result.fail(f"Transaction {data.id} not found or does not belong to user")
        return ledger.delete_transaction(db, data.id, today=today)

    return _run(db, user_id, "delete_transaction", "Failed to delete transaction", work)


def import_transactions_action(db: Session, user_id: Optional[int], data: CsvImport) -> Result:
    return _run(
        db,
        user_id,
        "import_transactions",
        "Failed to import transactions",
        lambda: importer.import_transactions(db, user_id, data.csv),
    )


# --- Categories ---

def create_category_action(db: Session, user_id: Optional[int], data: NewCategory) -> Result:
    def work():
        category = Category(user_id=user_id, name=data.name, type=data.type, color=data.color)
        db.add(category)
        db.flush()
        return Result.success(category.as_dict())

    return _run(db, user_id, "create_category", "Failed to create category", work)


def update_category_action(db: Session, user_id: Optional[int], data: UpdateCategory) -> Result:
    def work():
        category = owned_category(db, user_id, data.id)
        if category is None:
            return Result.fail(f"Category {data.id} not found or does not belong to user")
        category.name = data.name
        category.type = data.type
        category.color = data.color
        db.flush()
        return Result.success(category.as_dict())

    return _run(db, user_id, "update_category", "Failed to update category", work)


def delete_category_action(db: Session, user_id: Optional[int], data: IdInput) -> Result:
    def work():
        category = owned_category(db, user_id, data.id)
        if category is None:
            return Result.fail(f"Category {data.id} not found or does not belong to user")
        db.delete(category)
        db.flush()
        return Result.success(None)

    return _run(db, user_id, "delete_category", "Failed to delete category", work)


def import_categories_action(db: Session, user_id: Optional[int], data: CsvImport) -> Result:
    return _run(
        db,
        user_id,
        "import_categories",
        "Failed to import categories",
        lambda: importer.import_categories(db, user_id, data.csv),
    )


# --- Budgets ---

def new_budget_action(db: Session, user_id: Optional[int], data: NewBudget) -> Result:
    def work():
        if owned_category(db, user_id, data.category_id) is None:
            return Result.fail(f"Category {data.category_id} not found or does not belong to user")
        budget = Budget(category_id=data.category_id, amount=ledger.to_minor(data.amount))
        db.add(budget)
        db.flush()
        return Result.success(budget.as_dict())

    return _run(
        db,
        user_id,
        "create_budget",
        "Failed to create budget. Check if the category has already a budget.",
        work,
    )


def update_budget_action(db: Session, user_id: Optional[int], data: EditBudget) -> Result:
    def work():
        if owned_category(db, user_id, data.category_id) is None:
            return Result.fail(f"Category {data.category_id} not found or does not belong to user")
        budget = owned_budget(db, user_id, data.id)
        if budget is None:
            return Result.fail(f"Budget {data.id} not found or does not belong to user")
        budget.category_id = data.category_id
        budget.amount = ledger.to_minor(data.amount)
        db.flush()
        return Result.success(budget.as_dict())

    return _run(db, user_id, "update_budget", "Failed to update budget", work)


def delete_budget_action(db: Session, user_id: Optional[int], data: IdInput) -> Result:
    def work():
        budget = owned_budget(db, user_id, data.id)
        if budget is None:
            return Result.fail(f"Budget {data.id} not found or does not belong to user")
        db.delete(budget)
        db.flush()
        return Result.success(None)

    return _run(db, user_id, "delete_budget", "Failed to delete budget", work)


# --- Preferences ---

def owned_preferences(db: Session, user_id: int) -> Optional[UserPreferences]:
    return db.execute(select(UserPreferences).where(UserPreferences.user_id == user_id)).scalar_one_or_none()


def create_user_preferences_action(db: Session, user_id: Optional[int]) -> Result:
    """Insert the default preferences row for a user."""

    def work():
        preferences = UserPreferences(user_id=user_id)
        db.add(preferences)
        db.flush()
        return Result.success(preferences.as_dict())

    return _run(db, user_id, "create_user_preferences", "Failed to create user preferences", work)


def update_user_preferences_action(db: Session, user_id: Optional[int], data: UpdateUserPreferences) -> Result:
    def work():
        preferences = owned_preferences(db, user_id)
        if preferences is None:
            preferences = UserPreferences(user_id=user_id)
            db.add(preferences)
        preferences.currency = data.currency
        preferences.region = data.region
        preferences.date_format = data.date_format
        preferences.timezone = data.timezone
        db.flush()
        return Result.success(preferences.as_dict())

    return _run(db, user_id, "update_user_preferences", "Failed to update user preferences", work)


def get_user_preferences_action(db: Session, user_id: Optional[int]) -> Result:
    """Return the user's preferences, creating the defaults on first access."""
    if not user_id:
        return Result.fail("Unauthorized")
    preferences = owned_preferences(db, user_id)
    if preferences is not None:
        return Result.success(preferences.as_dict())
    created = create_user_preferences_action(db, user_id)
    if not created.ok:
        return Result.fail("Failed to get user preferences")
    return created
