"""Server actions: ownership checks, unit-of-work behaviour and generic failure messages."""

import pytest

import actions
import queries
from schemas import (
    MAX_AMOUNT,
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


@pytest.fixture
def checking(db, user, today):
    result = actions.new_account_action(db, user.id, NewAccount(name="Checking", type="cash", balance=100), today=today)
    assert result.ok
    return result.data


@pytest.fixture
def savings(db, user, today):
    return actions.new_account_action(db, user.id, NewAccount(name="Savings", type="cash", balance=0), today=today).data


@pytest.fixture
def groceries(db, user):
    return actions.create_category_action(db, user.id, NewCategory(name="Groceries", type="outflow")).data


def txn_input(account_id, today, **overrides):
    values = dict(title="Lunch", account_id=account_id, date=today, amount=12.5, type="outflow")
    values.update(overrides)
    return NewTransaction(**values)


class TestAuthorization:
    def test_missing_user_is_unauthorized(self, db):
        result = actions.new_account_action(db, None, NewAccount(name="X", type="cash"))
        assert not result.ok
        assert result.error == "Unauthorized"

    def test_cannot_use_someone_elses_account(self, db, other_user, checking, today):
        result = actions.new_transaction_action(db, other_user.id, txn_input(checking["id"], today), today=today)
        assert not result.ok
        assert result.error == "Failed to create transaction"

    def test_cannot_delete_someone_elses_transaction(self, db, user, other_user, checking, balance_of, today):
        created = actions.new_transaction_action(db, user.id, txn_input(checking["id"], today), today=today)
        result = actions.delete_transaction_action(db, other_user.id, IdInput(id=created.data["id"]), today=today)
        assert not result.ok
        assert balance_of(checking["id"]) == 8_750

    def test_foreign_category_rejected(self, db, user, other_user, checking, today):
        theirs = actions.create_category_action(db, other_user.id, NewCategory(name="Theirs", type="outflow")).data
        result = actions.new_transaction_action(
            db, user.id, txn_input(checking["id"], today, category_id=theirs["id"]), today=today
        )
        assert not result.ok


class TestAccountActions:
    def test_new_account_returns_serialized_row(self, checking, balance_of):
        assert checking["name"] == "Checking"
        assert checking["currency"] == "EUR"
        assert balance_of(checking["id"]) == 10_000

    def test_update_account(self, db, user, checking, balance_of, today):
        data = EditAccount(id=checking["id"], name="Main", type="cash", currency="USD", balance=42.42, is_active=False)
        result = actions.update_account_action(db, user.id, data, today=today)
        assert result.ok
        assert balance_of(checking["id"]) == 4_242

    def test_delete_account_cascades(self, db, user, checking, today):
        actions.new_transaction_action(db, user.id, txn_input(checking["id"], today), today=today)
        result = actions.delete_account_action(db, user.id, IdInput(id=checking["id"]))
        assert result.ok
        assert actions.owned_account(db, user.id, checking["id"]) is None


class TestTransactionActions:
    def test_new_transaction_moves_balance(self, db, user, checking, groceries, balance_of, today):
        result = actions.new_transaction_action(
            db, user.id, txn_input(checking["id"], today, category_id=groceries["id"]), today=today
        )
        assert result.ok
        assert result.data["amount"] == 12.5
        assert result.data["category_id"] == groceries["id"]
        assert balance_of(checking["id"]) == 8_750

    def test_update_and_delete(self, db, user, checking, balance_of, today):
        created = actions.new_transaction_action(db, user.id, txn_input(checking["id"], today), today=today)
        update = UpdateTransaction(id=created.data["id"], title="Dinner", account_id=checking["id"], date=today, amount=20, type="outflow")
        assert actions.update_transaction_action(db, user.id, update, today=today).ok
        assert balance_of(checking["id"]) == 8_000

        assert actions.delete_transaction_action(db, user.id, IdInput(id=created.data["id"]), today=today).ok
        assert balance_of(checking["id"]) == 10_000

    def test_transfer(self, db, user, checking, savings, balance_of, today):
        data = TransferInput(from_account_id=checking["id"], to_account_id=savings["id"], amount=40, date=today)
        result = actions.create_transfer_action(db, user.id, data, today=today)
        assert result.ok
        assert result.data["outflow"]["transfer_id"] == result.data["inflow"]["id"]
        assert balance_of(checking["id"]) == 6_000
        assert balance_of(savings["id"]) == 4_000

    def test_transfer_schema_rejects_same_account(self, checking, today):
        with pytest.raises(ValueError):
            TransferInput(from_account_id=checking["id"], to_account_id=checking["id"], amount=1, date=today)


class TestCategoryAndBudgetActions:
    def test_category_crud(self, db, user, groceries):
        update = UpdateCategory(id=groceries["id"], name="Food", type="outflow", color="#ff0000")
        result = actions.update_category_action(db, user.id, update)
        assert result.ok
        assert result.data["name"] == "Food"
        assert actions.delete_category_action(db, user.id, IdInput(id=groceries["id"])).ok
        assert actions.owned_category(db, user.id, groceries["id"]) is None

    def test_one_budget_per_category(self, db, user, groceries):
        first = actions.new_budget_action(db, user.id, NewBudget(category_id=groceries["id"], amount=300))
        assert first.ok
        assert first.data["amount"] == 300

        second = actions.new_budget_action(db, user.id, NewBudget(category_id=groceries["id"], amount=100))
        assert not second.ok
        assert second.error == "Failed to create budget. Check if the category has already a budget."

    def test_update_and_delete_budget(self, db, user, groceries):
        budget = actions.new_budget_action(db, user.id, NewBudget(category_id=groceries["id"], amount=300)).data
        edit = EditBudget(id=budget["id"], category_id=groceries["id"], amount=450)
        assert actions.update_budget_action(db, user.id, edit).data["amount"] == 450
        assert actions.delete_budget_action(db, user.id, IdInput(id=budget["id"])).ok

    def test_budget_for_foreign_category_rejected(self, db, other_user, groceries):
        result = actions.new_budget_action(db, other_user.id, NewBudget(category_id=groceries["id"], amount=10))
        assert not result.ok


class TestMoneyLimits:
    @pytest.mark.parametrize("amount", [float("inf"), float("nan"), 1e17])
    def test_schemas_reject_unstorable_amounts(self, amount, today):
        with pytest.raises(ValueError):
            NewTransaction(title="Huge", account_id=1, date=today, amount=amount, type="inflow")
        with pytest.raises(ValueError):
            NewAccount(name="Huge", type="cash", balance=amount)
        with pytest.raises(ValueError):
            TransferInput(from_account_id=1, to_account_id=2, amount=amount, date=today)
        with pytest.raises(ValueError):
            NewBudget(category_id=1, amount=amount)

    def test_largest_amount_is_stored(self, db, user, today):
        result = actions.new_account_action(
            db, user.id, NewAccount(name="Vault", type="investment", balance=MAX_AMOUNT), today=today
        )
        assert result.ok
        assert queries.current_balance(db, result.data["id"]) == MAX_AMOUNT

    @pytest.mark.parametrize("amount", [float("inf"), 1e17])
    def test_unvalidated_amount_fails_cleanly(self, db, user, checking, balance_of, today, amount):
        data = NewTransaction.model_construct(
            title="Huge", account_id=checking["id"], category_id=None, date=today, amount=amount,
            type="inflow", description="",
        )
        result = actions.new_transaction_action(db, user.id, data, today=today)

        assert not result.ok
        assert result.error == "Failed to create transaction"
        assert balance_of(checking["id"]) == 10_000
        assert queries.get_transactions(db, user.id, today=today)["pagination"]["total"] == 0


class TestPreferenceActions:
    def test_defaults_created_on_first_read(self, db, user):
        result = actions.get_user_preferences_action(db, user.id)
        assert result.ok
        assert result.data["currency"] == "EUR"
        assert result.data["region"] == "ES"
        assert result.data["date_format"] == "DD/MM/YYYY"
        assert result.data["timezone"] == "Europe/Madrid"

        again = actions.get_user_preferences_action(db, user.id)
        assert again.data["id"] == result.data["id"]

    def test_update(self, db, user):
        actions.create_user_preferences_action(db, user.id)
        data = UpdateUserPreferences(currency="USD", region="US", date_format="MM/DD/YYYY", timezone="America/New_York")
        assert actions.update_user_preferences_action(db, user.id, data).ok
        assert actions.get_user_preferences_action(db, user.id).data["currency"] == "USD"

    def test_only_one_row_per_user(self, db, user):
        assert actions.create_user_preferences_action(db, user.id).ok
        second = actions.create_user_preferences_action(db, user.id)
        assert not second.ok
        assert second.error == "Failed to create user preferences"

    def test_preferences_are_per_user(self, db, user, other_user):
        data = UpdateUserPreferences(currency="GBP", region="GB", date_format="DD/MM/YYYY", timezone="Europe/London")
        actions.update_user_preferences_action(db, user.id, data)
        assert actions.get_user_preferences_action(db, other_user.id).data["currency"] == "EUR"

    def test_unauthorized(self, db):
        assert actions.get_user_preferences_action(db, None).error == "Unauthorized"

    @pytest.mark.parametrize(
        "field, value", [("region", "spain"), ("date_format", "YYYY/DD/MM"), ("timezone", "Europe/Madrid; DROP")]
    )
    def test_invalid_preferences_rejected(self, field, value):
        values = dict(currency="EUR", region="ES", date_format="DD/MM/YYYY", timezone="Europe/Madrid")
        values[field] = value
        with pytest.raises(ValueError):
            UpdateUserPreferences(**values)
