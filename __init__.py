"""Flux Finance Tracker.

Multi-account personal finance ledger with daily balance snapshots,
transfers, budgets and analytics.  See ``api.py`` for the JSON API and
``app.py`` for the streamlit dashboard.
"""
