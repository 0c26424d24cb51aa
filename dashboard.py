# dashboard.py: charts and KPI tiles for the streamlit UI

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

CURRENCY_SYMBOLS = {
    "USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥", "AUD": "A$",
    "CAD": "C$", "CHF": "CHF ", "CNY": "¥", "SEK": "kr ", "NZD": "NZ$",
}


def currency_symbol(code: str) -> str:
    return CURRENCY_SYMBOLS.get(code, f"{code} ")


def _kpis(net_worth: tuple[float, float], summary: dict, currency_code: str = "EUR"):
    """
    Displays the top-level KPIs: net worth against last month and the
    income/spending picture for the selected window, in the user's
    preferred currency.
    """
    currency = currency_symbol(currency_code)
    current, previous = net_worth
    change = current - previous

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("🏦 Net Worth", f"{currency}{current:,.2f}", delta=f"{change:,.2f} vs last month")
    col2.metric("💰 Income", f"{currency}{summary['income']:,.0f}")
    col3.metric("💸 Spent", f"{currency}{summary['expenses']:,.0f}", delta=f"-{summary['expenses']:,.0f}", delta_color="inverse")
    col4.metric("📉 Savings Rate", f"{summary['savings_rate']:.1f}%", delta="Target: 20%")

    # Progress bar: share of income already spent
    st.caption("Spending vs Income")
    progress = min(1.0, summary["expenses"] / summary["income"]) if summary["income"] > 0 else 0
    st.progress(progress)


def income_vs_expense_monthly(trends: list[dict]):
    """
    Bar chart of Income vs Expenses per month.
    """
    monthly = pd.DataFrame(trends, columns=["month", "income", "expenses", "net"])

    fig = go.Figure()
    fig.add_trace(go.Bar(x=monthly["month"], y=monthly["income"], name="Income", marker_color="#4CAF50"))
    fig.add_trace(go.Bar(x=monthly["month"], y=monthly["expenses"], name="Expenses", marker_color="#FF5252"))
    fig.add_trace(go.Scatter(x=monthly["month"], y=monthly["net"], name="Net", mode="lines+markers"))

    fig.update_layout(barmode="group", title="Income vs Expenses Trend", height=400)
    return fig


def cat_spend(spending: list[dict]):
    """
    Donut chart of spending by category.
    """
    by_cat = pd.DataFrame(spending, columns=["category_name", "category_color", "total", "percentage"])
    colors = dict(zip(by_cat["category_name"], by_cat["category_color"]))

    fig = px.pie(
        by_cat,
        values="total",
        names="category_name",
        color="category_name",
        color_discrete_map=colors,
        hole=0.4,
        title="Spending by Category",
    )
    fig.update_traces(textposition="inside", textinfo="percent+label")
    return fig


def net_worth_trend(history: list[dict]):
    """
    Area chart of net worth at each month end.
    """
    df = pd.DataFrame(history, columns=["month", "net_worth"])
    fig = px.area(df, x="month", y="net_worth", title="Net Worth History", markers=True)
    fig.update_layout(height=350, yaxis_title="Net Worth", xaxis_title="Month")
    return fig


def balance_trend(snapshots: list[dict], account_name: str):
    """
    Step chart of one account's daily balance snapshots.
    """
    df = pd.DataFrame(snapshots, columns=["date", "balance"])
    fig = px.line(df, x="date", y="balance", title=f"{account_name} balance", line_shape="hv", markers=True)
    fig.update_layout(height=300)
    return fig
