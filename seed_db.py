from datetime import date, timedelta

from sqlalchemy import select

import actions
from auth import create_user
from database import init_db, SessionLocal, User
from logger import get_logger
from schemas import NewAccount, NewBudget, NewCategory, NewTransaction, TransferInput

log = get_logger(__name__)

DEFAULT_CATEGORIES = [
    ("Salary", "inflow", "#22c55e"),
    ("Groceries", "outflow", "#f97316"),
    ("Rent", "outflow", "#ef4444"),
    ("Transport", "outflow", "#3b82f6"),
    ("Entertainment", "outflow", "#a855f7"),
]


def seed_demo(username: str = "demo", password: str = "demo123"):
    init_db()
    db = SessionLocal()

    # Check if the demo user exists
    if db.execute(select(User).where(User.username == username)).scalar_one_or_none():
        log.info("Demo user already exists. Skipping seed.", username=username)
        db.close()
        return

    user = create_user(db, username, password)

    categories = {}
    for name, cat_type, color in DEFAULT_CATEGORIES:
        result = actions.create_category_action(db, user.id, NewCategory(name=name, type=cat_type, color=color))
        categories[name] = result.data["id"]

    checking = actions.new_account_action(db, user.id, NewAccount(name="Checking", type="cash", balance=2500))
    savings = actions.new_account_action(db, user.id, NewAccount(name="Savings", type="cash", balance=10000))
    actions.new_account_action(db, user.id, NewAccount(name="Credit Card", type="liability", balance=-350))

    today = date.today()
    samples = [
        ("Monthly salary", "Salary", "inflow", 3200, 1),
        ("Rent", "Rent", "outflow", 1100, 2),
        ("Supermarket", "Groceries", "outflow", 86.40, 4),
        ("Metro pass", "Transport", "outflow", 49, 6),
        ("Cinema", "Entertainment", "outflow", 24, 9),
    ]
    for title, category, txn_type, amount, days_ago in samples:
        actions.new_transaction_action(
            db,
            user.id,
            NewTransaction(
                title=title,
                account_id=checking.data["id"],
                category_id=categories[category],
                date=today - timedelta(days=days_ago),
                amount=amount,
                type=txn_type,
            ),
        )

    actions.create_transfer_action(
        db,
        user.id,
        TransferInput(from_account_id=checking.data["id"], to_account_id=savings.data["id"], amount=500, date=today),
    )
    actions.new_budget_action(db, user.id, NewBudget(category_id=categories["Groceries"], amount=400))

    log.info("Database initialized with demo data.", username=username)
    db.close()


if __name__ == "__main__":
    seed_demo()
