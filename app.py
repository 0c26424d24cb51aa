import time
from datetime import date

import pandas as pd
import streamlit as st

import actions
import analytics
import importer
import queries
from auth import authenticate
from dashboard import _kpis, balance_trend, cat_spend, income_vs_expense_monthly, net_worth_trend
from database import ACCOUNT_TYPES, CURRENCY_CODES, DATE_FORMATS, SessionLocal, init_db
from logger import get_logger
from schemas import (
    CsvImport,
    EditAccount,
    IdInput,
    NewAccount,
    NewBudget,
    NewCategory,
    NewTransaction,
    TransactionFilters,
    TransferInput,
    UpdateTransaction,
    UpdateUserPreferences,
)

log = get_logger(__name__)

# --- Configuration ---
st.set_page_config(page_title="Flux Finances", layout="wide", page_icon="💰")

# --- Database Session ---
init_db()

if "db" not in st.session_state:
    st.session_state.db = SessionLocal()

def get_db():
    return st.session_state.db

def user_id():
    return st.session_state.get("user_id")

def show_result(result, success_message: str):
    """Render an action result and refresh the page on success."""
    if result.ok:
        st.success(success_message)
        time.sleep(0.5)
        st.rerun()
    else:
        st.error(result.error)

# --- Authentication ---
def check_login():
    if "authenticated" not in st.session_state:
        st.session_state["authenticated"] = False
        st.session_state["user_id"] = None
        st.session_state["failed_attempts"] = []
        st.session_state["lock_until"] = None

    if st.session_state.get("authenticated", False):
        return True

    st.title("💰 Flux Finances")
    st.caption("Sign in to manage your accounts, budgets and transactions.")
    username = st.text_input("Username")
    password = st.text_input("Password", type="password")

    now = time.time()
    lock_until = st.session_state.get("lock_until")
    if lock_until and now < lock_until:
        st.error(f"Too many failed attempts. Please wait {int(lock_until - now)} seconds before trying again.")
    elif st.button("Sign In", type="primary", use_container_width=True):
        # Keep the last 5 minutes of failed attempts
        st.session_state["failed_attempts"] = [t for t in st.session_state["failed_attempts"] if now - t < 300]
        user = authenticate(get_db(), username, password)
        if user:
            st.session_state["authenticated"] = True
            st.session_state["user_id"] = user.id
            st.session_state["failed_attempts"] = []
            st.session_state["lock_until"] = None
            st.rerun()
        else:
            st.session_state["failed_attempts"].append(now)
            st.error("❌ Invalid credentials")
            log.warning("Failed login attempt", username=username)
            if len(st.session_state["failed_attempts"]) >= 5:
                st.session_state["lock_until"] = now + 60

    return st.session_state.get("authenticated", False)

if not check_login():
    st.stop()

db = get_db()
accounts = queries.get_all_accounts(db, user_id())
account_names = {a["id"]: f"{a['name']} ({a['currency']})" for a in accounts}
categories = queries.get_categories(db, user_id())
category_names = {c["id"]: c["name"] for c in categories}
preferences = actions.get_user_preferences_action(db, user_id()).data or {}
preferred_currency = preferences.get("currency", "EUR")

# Sidebar
with st.sidebar:
    st.header("Quick Actions")

    with st.expander("➕ New Transaction"):
        if not accounts:
            st.caption("Create an account first.")
        else:
            with st.form("new_transaction"):
                title = st.text_input("Title")
                account_id = st.selectbox("Account", list(account_names), format_func=account_names.get)
                category_id = st.selectbox("Category", [None] + list(category_names), format_func=lambda c: category_names.get(c, "Uncategorized"))
                txn_type = st.radio("Type", ["outflow", "inflow"], horizontal=True)
                amount = st.number_input("Amount", min_value=0.01, step=1.0)
                txn_date = st.date_input("Date", value=date.today())
                description = st.text_input("Description")
                if st.form_submit_button("Add Transaction"):
                    try:
                        data = NewTransaction(
                            title=title, account_id=account_id, category_id=category_id, date=txn_date,
                            amount=amount, type=txn_type, description=description,
                        )
                    except ValueError as e:
                        st.error(f"Invalid transaction: {e}")
                    else:
                        show_result(actions.new_transaction_action(db, user_id(), data), "Transaction added!")

    with st.expander("🔁 New Transfer"):
        if len(accounts) < 2:
            st.caption("You need two accounts to transfer money.")
        else:
            with st.form("new_transfer"):
                from_id = st.selectbox("From", list(account_names), format_func=account_names.get, key="transfer_from")
                to_id = st.selectbox("To", list(account_names), format_func=account_names.get, key="transfer_to", index=1)
                amount = st.number_input("Amount", min_value=0.01, step=1.0, key="transfer_amount")
                transfer_date = st.date_input("Date", value=date.today(), key="transfer_date")
                if st.form_submit_button("Transfer"):
                    try:
                        data = TransferInput(from_account_id=from_id, to_account_id=to_id, amount=amount, date=transfer_date)
                    except ValueError as e:
                        st.error(f"Invalid transfer: {e}")
                    else:
                        show_result(actions.create_transfer_action(db, user_id(), data), "Transfer recorded!")

    st.divider()
    if st.button("🚪 Logout", use_container_width=True):
        st.session_state["authenticated"] = False
        st.session_state["user_id"] = None
        st.rerun()

tab1, tab2, tab3, tab4, tab5 = st.tabs(["📊 Dashboard", "🏦 Accounts", "💳 Transactions", "🎯 Budgets", "⚙️ Settings"])

with tab1:
    window = st.selectbox("Window", ["30d", "90d", "6m", "1y"], index=0)
    _kpis(
        analytics.get_net_worth(db, user_id()),
        analytics.get_analytics_summary(db, user_id(), window),
        currency_code=preferred_currency,
    )

    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(net_worth_trend(analytics.get_net_worth_history(db, user_id())), use_container_width=True)
    with col2:
        spending = analytics.get_spending_by_category(db, user_id(), window)
        if spending:
            st.plotly_chart(cat_spend(spending), use_container_width=True)
        else:
            st.info("No spending recorded in this window.")

    trends = analytics.get_monthly_trends(db, user_id())
    if trends:
        st.plotly_chart(income_vs_expense_monthly(trends), use_container_width=True)

with tab2:
    st.header("🏦 Accounts")

    with st.expander("➕ Add Account"):
        with st.form("new_account"):
            name = st.text_input("Account name")
            account_type = st.selectbox("Type", ACCOUNT_TYPES)
            currency = st.selectbox("Currency", CURRENCY_CODES, index=CURRENCY_CODES.index(preferred_currency))
            balance = st.number_input("Opening balance", step=10.0)
            if st.form_submit_button("Create Account"):
                try:
                    data = NewAccount(name=name, type=account_type, currency=currency, balance=balance)
                except ValueError as e:
                    st.error(f"Invalid account: {e}")
                else:
                    show_result(actions.new_account_action(db, user_id(), data), "Account created!")

    for account_type in ACCOUNT_TYPES:
        typed = queries.get_accounts_by_type(db, user_id(), account_type)
        if not typed:
            continue
        st.subheader(account_type.replace("_", " ").title())
        for account in typed:
            change = account["current_balance"] - account["previous_balance"]
            with st.expander(f"{account['name']} · {account['current_balance']:,.2f} {account['currency']}"):
                st.metric("Balance", f"{account['current_balance']:,.2f}", delta=f"{change:,.2f} this month")
                st.plotly_chart(balance_trend(queries.balance_history(db, account["id"]), account["name"]), use_container_width=True)

                with st.form(f"edit_account_{account['id']}"):
                    new_name = st.text_input("Name", value=account["name"])
                    new_balance = st.number_input("Reconcile balance", value=float(account["current_balance"]), step=10.0)
                    is_active = st.checkbox("Active", value=account["is_active"])
                    if st.form_submit_button("Save"):
                        try:
                            data = EditAccount(
                                id=account["id"], name=new_name, type=account["type"], currency=account["currency"],
                                balance=new_balance, is_active=is_active,
                            )
                        except ValueError as e:
                            st.error(f"Invalid account: {e}")
                        else:
                            show_result(actions.update_account_action(db, user_id(), data), "Account updated!")
                if st.button("Delete account", key=f"delete_account_{account['id']}"):
                    show_result(actions.delete_account_action(db, user_id(), IdInput(id=account["id"])), "Account deleted.")

with tab3:
    st.header("💳 Transactions")
    summary = queries.get_transaction_summary(db, user_id())
    col1, col2, col3 = st.columns(3)
    col1.metric("Income (30d)", f"{summary['income']:,.2f}")
    col2.metric("Expenses (30d)", f"{summary['expenses']:,.2f}")
    col3.metric("Net (30d)", f"{summary['net']:,.2f}")

    col1, col2, col3 = st.columns(3)
    search = col1.text_input("Search")
    date_range = col2.selectbox("Period", ["all", "today", "week", "month", "year"])
    page = col3.number_input("Page", min_value=1, step=1)
    listing = queries.get_transactions(
        db, user_id(), TransactionFilters(search=search or None, date_range=date_range, page=int(page), page_size=25)
    )
    rows = listing["transactions"]
    st.caption(f"{listing['pagination']['total']} transactions · page {listing['pagination']['page']} of {max(1, listing['pagination']['total_pages'])}")

    if rows:
        df = pd.DataFrame(rows)[["id", "date", "title", "account_name", "category_name", "type", "amount", "transfer_id"]]
        st.dataframe(df, use_container_width=True, hide_index=True)

        selected_id = st.selectbox("Edit transaction", [r["id"] for r in rows], format_func=lambda i: next(f"#{r['id']} {r['title']}" for r in rows if r["id"] == i))
        selected = next(r for r in rows if r["id"] == selected_id)
        with st.form("edit_transaction"):
            title = st.text_input("Title", value=selected["title"])
            account_ids = list(account_names)
            account_id = st.selectbox("Account", account_ids, index=account_ids.index(selected["account_id"]), format_func=account_names.get)
            amount = st.number_input("Amount", min_value=0.01, value=float(selected["amount"]), step=1.0)
            txn_type = st.radio("Type", ["outflow", "inflow"], index=0 if selected["type"] == "outflow" else 1, horizontal=True)
            txn_date = st.date_input("Date", value=date.fromisoformat(selected["date"]))
            if st.form_submit_button("Save changes"):
                try:
                    data = UpdateTransaction(
                        id=selected_id, title=title, account_id=account_id, category_id=selected["category_id"],
                        date=txn_date, amount=amount, type=txn_type, description=selected["description"],
                    )
                except ValueError as e:
                    st.error(f"Invalid transaction: {e}")
                else:
                    show_result(actions.update_transaction_action(db, user_id(), data), "Transaction updated!")
        if st.button("🗑️ Delete transaction"):
            show_result(actions.delete_transaction_action(db, user_id(), IdInput(id=selected_id)), "Transaction deleted.")
    else:
        st.info("No transactions found.")

with tab4:
    st.header("🎯 Budgets")
    outflow_categories = {c["id"]: c["name"] for c in categories if c["type"] == "outflow"}
    with st.expander("➕ Add Budget"):
        with st.form("new_budget"):
            category_id = st.selectbox("Category", list(outflow_categories), format_func=outflow_categories.get)
            amount = st.number_input("Monthly limit", min_value=0.01, step=50.0)
            if st.form_submit_button("Save Budget") and category_id:
                show_result(actions.new_budget_action(db, user_id(), NewBudget(category_id=category_id, amount=amount)), "Budget saved!")

    budgets = queries.get_budgets(db, user_id())
    if budgets:
        for b in budgets:
            st.markdown(f"**{b['category_name']}** · {b['spent']:,.2f} of {b['amount']:,.2f} ({b['percentage_used']:.0f}%)")
            st.progress(min(1.0, b["percentage_used"] / 100))
            if st.button("Remove", key=f"delete_budget_{b['id']}"):
                show_result(actions.delete_budget_action(db, user_id(), IdInput(id=b["id"])), "Budget removed.")
    else:
        st.info("No budgets configured yet.")

with tab5:
    st.header("⚙️ Settings")
    st.subheader("Preferences")
    with st.form("preferences"):
        col1, col2 = st.columns(2)
        pref_currency = col1.selectbox("Currency", CURRENCY_CODES, index=CURRENCY_CODES.index(preferred_currency))
        region = col2.text_input("Region (country code)", value=preferences.get("region", "ES"))
        date_format = col1.selectbox(
            "Date format", DATE_FORMATS, index=DATE_FORMATS.index(preferences.get("date_format", "DD/MM/YYYY"))
        )
        tz = col2.text_input("Timezone", value=preferences.get("timezone", "Europe/Madrid"))
        if st.form_submit_button("Save Preferences"):
            try:
                data = UpdateUserPreferences(
                    currency=pref_currency, region=region.strip().upper(), date_format=date_format, timezone=tz.strip()
                )
            except ValueError as e:
                st.error(f"Invalid preferences: {e}")
            else:
                show_result(actions.update_user_preferences_action(db, user_id(), data), "Preferences saved!")

    st.subheader("Categories")
    with st.form("new_category"):
        col1, col2, col3 = st.columns(3)
        name = col1.text_input("Name")
        cat_type = col2.selectbox("Type", ["outflow", "inflow"])
        color = col3.color_picker("Color", "#6b7280")
        if st.form_submit_button("Add Category"):
            try:
                data = NewCategory(name=name, type=cat_type, color=color)
            except ValueError as e:
                st.error(f"Invalid category: {e}")
            else:
                show_result(actions.create_category_action(db, user_id(), data), "Category added!")
    if categories:
        st.dataframe(pd.DataFrame(categories)[["id", "name", "type", "color"]], use_container_width=True, hide_index=True)

    st.subheader("Import")
    uploaded = st.file_uploader("Transactions CSV", type=["csv"])
    if uploaded and st.button("Import transactions"):
        try:
            csv_text = uploaded.getvalue().decode("utf-8")
        except UnicodeDecodeError:
            st.error("The file is not valid UTF-8 text.")
            st.stop()
        result = actions.import_transactions_action(db, user_id(), CsvImport(csv=csv_text))
        if result.ok:
            st.success(f"Imported {result.data['success']} rows, skipped {result.data['skipped']}.")
            for error in result.data["errors"]:
                st.warning(error)
        else:
            st.error(result.error)

    st.subheader("Export")
    st.download_button(
        "⬇️ Download transactions CSV",
        importer.export_transactions_csv(db, user_id()),
        file_name=f"flux-finances-{date.today().isoformat()}.csv",
        mime="text/csv",
    )
    if st.button("Save export to storage"):
        saved = importer.save_transactions_export(db, user_id())
        if saved:
            st.success(f"Saved {saved}")
        else:
            st.error("Export failed.")
