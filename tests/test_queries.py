from datetime import date, timedelta

import pytest

import actions
import analytics
import queries
from schemas import NewAccount, NewBudget, NewCategory, NewTransaction, TransactionFilters, TransferInput


@pytest.fixture
def book(db, user, today):
    """A small set of accounts, categories and transactions for read-side tests."""
    checking = actions.new_account_action(db, user.id, NewAccount(name="Checking", type="cash", balance=1000), today=today - timedelta(days=40)).data
    card = actions.new_account_action(db, user.id, NewAccount(name="Card", type="liability", balance=-200), today=today - timedelta(days=40)).data
    salary = actions.create_category_action(db, user.id, NewCategory(name="Salary", type="inflow")).data
    food = actions.create_category_action(db, user.id, NewCategory(name="Food", type="outflow", color="#ff8800")).data

    def add(title, amount, txn_type, day, category=None):
        data = NewTransaction(
            title=title,
            account_id=checking["id"],
            category_id=category["id"] if category else None,
            date=day,
            amount=amount,
            type=txn_type,
            description=f"{title} note",
        )
        return actions.new_transaction_action(db, user.id, data, today=today).data

    add("Paycheck", 2000, "inflow", today - timedelta(days=3), salary)
    add("Groceries", 150, "outflow", today - timedelta(days=2), food)
    add("Bakery", 50, "outflow", today, food)
    add("Cash withdrawal", 100, "outflow", today - timedelta(days=1))
    return {"checking": checking, "card": card, "salary": salary, "food": food}


class TestAccountsQueries:
    def test_accounts_by_type_include_balances(self, db, user, book, today):
        cash = queries.get_accounts_by_type(db, user.id, "cash", today=today)
        assert [a["name"] for a in cash] == ["Checking"]
        assert cash[0]["current_balance"] == 2700
        assert cash[0]["previous_balance"] == 1000

    def test_current_balance_and_history(self, db, book, today):
        assert queries.current_balance(db, book["checking"]["id"]) == 2700
        history = queries.balance_history(db, book["checking"]["id"])
        assert history[0] == {"date": (today - timedelta(days=40)).isoformat(), "balance": 1000}
        assert history[-1]["balance"] == 2700

    def test_current_balance_unknown_account(self, db):
        assert queries.current_balance(db, 12345) is None


class TestTransactionQueries:
    def test_newest_first_with_pagination(self, db, user, book, today):
        page = queries.get_transactions(db, user.id, TransactionFilters(page_size=3), today=today)
        assert page["pagination"] == {"page": 1, "page_size": 3, "total": 4, "total_pages": 2}
        assert [t["title"] for t in page["transactions"]] == ["Bakery", "Cash withdrawal", "Groceries"]
        assert page["transactions"][0]["account_name"] == "Checking"
        assert page["transactions"][0]["category_name"] == "Food"

    def test_search_and_filters(self, db, user, book, today):
        found = queries.get_transactions(db, user.id, TransactionFilters(search="BAKERY"), today=today)
        assert [t["title"] for t in found["transactions"]] == ["Bakery"]

        by_category = queries.get_transactions(db, user.id, TransactionFilters(category_id=book["food"]["id"]), today=today)
        assert by_category["pagination"]["total"] == 2

        today_only = queries.get_transactions(db, user.id, TransactionFilters(date_range="today"), today=today)
        assert today_only["pagination"]["total"] == 1

    def test_summary_last_30_days(self, db, user, book, today):
        summary = queries.get_transaction_summary(db, user.id, today=today)
        assert summary == {"income": 2000, "expenses": 300, "net": 1700}

    def test_other_users_see_nothing(self, db, other_user, book, today):
        assert queries.get_transactions(db, other_user.id, today=today)["pagination"]["total"] == 0
        assert queries.get_all_accounts(db, other_user.id) == []


class TestBudgetsAndCategories:
    def test_budget_spent_this_month(self, db, user, book, today):
        actions.new_budget_action(db, user.id, NewBudget(category_id=book["food"]["id"], amount=400))
        [budget] = queries.get_budgets(db, user.id, today=today)
        assert budget["category_name"] == "Food"
        assert budget["spent"] == 200
        assert budget["remaining"] == 200
        assert budget["percentage_used"] == pytest.approx(50.0)

    def test_categories_filtered_by_type(self, db, user, book):
        assert [c["name"] for c in queries.get_categories(db, user.id)] == ["Food", "Salary"]
        assert [c["name"] for c in queries.get_categories(db, user.id, "inflow")] == ["Salary"]


class TestAnalytics:
    def test_net_worth_includes_liabilities(self, db, user, book, today):
        current, previous = analytics.get_net_worth(db, user.id, today=today)
        assert current == 2500
        assert previous == 800

    def test_net_worth_history_shape(self, db, user, book, today):
        history = analytics.get_net_worth_history(db, user.id, today=today, months=3)
        assert [h["month"] for h in history] == ["2024-04", "2024-05", "2024-06"]
        assert history[-1]["net_worth"] == 2500
        assert history[0]["net_worth"] == 0

    def test_spending_by_category(self, db, user, book, today):
        spending = analytics.get_spending_by_category(db, user.id, "30d", today=today)
        assert [s["category_name"] for s in spending] == ["Food", "Uncategorized"]
        assert spending[0]["total"] == 200
        assert spending[0]["percentage"] == pytest.approx(200 / 300 * 100)
        assert spending[1]["category_id"] is None

    def test_summary_and_trends(self, db, user, book, today):
        summary = analytics.get_analytics_summary(db, user.id, "30d", today=today)
        assert summary["income"] == 2000
        assert summary["expenses"] == 300
        assert summary["savings_rate"] == pytest.approx(85.0)

        trends = analytics.get_monthly_trends(db, user.id, today=today)
        assert trends == [{"month": "2024-06", "income": 2000, "expenses": 300, "net": 1700}]

    def test_category_breakdown_counts_uncategorized_transfers(self, db, user, book, today):
        data = TransferInput(from_account_id=book["checking"]["id"], to_account_id=book["card"]["id"], amount=100, date=today)
        actions.create_transfer_action(db, user.id, data, today=today)
        breakdown = analytics.get_category_breakdown(db, user.id, "30d", today=today)
        uncategorized = next(b for b in breakdown if b["category_id"] is None)
        assert uncategorized["expenses"] == 200
        assert uncategorized["income"] == 100

    def test_empty_user(self, db, other_user, today):
        assert analytics.get_net_worth(db, other_user.id, today=today) == (0.0, 0.0)
        assert analytics.get_spending_by_category(db, other_user.id, today=today) == []
        assert analytics.get_analytics_summary(db, other_user.id, today=today)["savings_rate"] == 0.0


def test_month_helpers():
    assert queries.month_start(date(2024, 2, 17)) == date(2024, 2, 1)
    assert queries.month_end(date(2024, 2, 17)) == date(2024, 2, 29)
    assert queries.month_end(date(2024, 2, 29)) == date(2024, 2, 29)
