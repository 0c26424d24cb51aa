"""JSON API exposing the finance actions and queries over FastAPI."""

from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel
from sqlalchemy.orm import Session

import actions
import analytics
import importer
import queries
from auth import authenticate
from config import API_HOST, API_PORT
from database import get_db
from logger import get_logger
from results import Result
from schemas import (
    AccountType,
    AnalyticsRange,
    CategoryType,
    CsvImport,
    EditAccount,
    EditBudget,
    IdInput,
    NewAccount,
    NewBudget,
    NewCategory,
    NewTransaction,
    TransactionFilters,
    TransferInput,
    UpdateCategory,
    UpdateTransaction,
    UpdateUserPreferences,
)

log = get_logger(__name__)

app = FastAPI(title="Flux Finance API", version="0.1.0")
security = HTTPBasic()


class ActionResponse(BaseModel):
    ok: bool
    data: Any = None
    error: Optional[str] = None


def current_user_id(
    credentials: HTTPBasicCredentials = Depends(security), db: Session = Depends(get_db)
) -> int:
    user = authenticate(db, credentials.username, credentials.password)
    if user is None:
        log.warning("Failed login attempt", username=credentials.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return user.id


def respond(result: Result):
    if result.ok:
        return result.to_dict()
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=result.to_dict())


# --- Accounts ---

@app.post("/actions/new_account", response_model=ActionResponse)
def new_account(data: NewAccount, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(actions.new_account_action(db, user_id, data))


@app.post("/actions/update_account", response_model=ActionResponse)
def update_account(data: EditAccount, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(actions.update_account_action(db, user_id, data))


@app.post("/actions/delete_account", response_model=ActionResponse)
def delete_account(data: IdInput, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(actions.delete_account_action(db, user_id, data))


@app.get("/queries/accounts", response_model=ActionResponse)
def list_accounts(
    type: Optional[AccountType] = None, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    if type is None:
        return respond(Result.success(queries.get_all_accounts(db, user_id)))
    return respond(Result.success(queries.get_accounts_by_type(db, user_id, type)))


# --- Transactions ---

@app.post("/actions/new_transaction", response_model=ActionResponse)
def new_transaction(data: NewTransaction, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(actions.new_transaction_action(db, user_id, data))


@app.post("/actions/update_transaction", response_model=ActionResponse)
def update_transaction(
    data: UpdateTransaction, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return respond(actions.update_transaction_action(db, user_id, data))


@app.post("/actions/delete_transaction", response_model=ActionResponse)
def delete_transaction(data: IdInput, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(actions.delete_transaction_action(db, user_id, data))


@app.post("/actions/create_transfer", response_model=ActionResponse)
def create_transfer(data: TransferInput, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(actions.create_transfer_action(db, user_id, data))


@app.post("/actions/import_transactions", response_model=ActionResponse)
def import_transactions(data: CsvImport, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(actions.import_transactions_action(db, user_id, data))


@app.post("/queries/transactions", response_model=ActionResponse)
def list_transactions(
    filters: TransactionFilters, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return respond(Result.success(queries.get_transactions(db, user_id, filters)))


@app.get("/queries/transaction_summary", response_model=ActionResponse)
def transaction_summary(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(Result.success(queries.get_transaction_summary(db, user_id)))


# --- Categories & budgets ---

@app.post("/actions/create_category", response_model=ActionResponse)
def create_category(data: NewCategory, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(actions.create_category_action(db, user_id, data))


@app.post("/actions/update_category", response_model=ActionResponse)
def update_category(data: UpdateCategory, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(actions.update_category_action(db, user_id, data))


@app.post("/actions/delete_category", response_model=ActionResponse)
def delete_category(data: IdInput, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(actions.delete_category_action(db, user_id, data))


@app.post("/actions/import_categories", response_model=ActionResponse)
def import_categories(data: CsvImport, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(actions.import_categories_action(db, user_id, data))


@app.get("/queries/categories", response_model=ActionResponse)
def list_categories(
    type: Optional[CategoryType] = None, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return respond(Result.success(queries.get_categories(db, user_id, type)))


@app.post("/actions/new_budget", response_model=ActionResponse)
def new_budget(data: NewBudget, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(actions.new_budget_action(db, user_id, data))


@app.post("/actions/update_budget", response_model=ActionResponse)
def update_budget(data: EditBudget, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(actions.update_budget_action(db, user_id, data))


@app.post("/actions/delete_budget", response_model=ActionResponse)
def delete_budget(data: IdInput, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(actions.delete_budget_action(db, user_id, data))


@app.get("/queries/budgets", response_model=ActionResponse)
def list_budgets(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(Result.success(queries.get_budgets(db, user_id)))


# --- Preferences ---

@app.get("/queries/preferences", response_model=ActionResponse)
def get_preferences(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(actions.get_user_preferences_action(db, user_id))


@app.post("/actions/create_preferences", response_model=ActionResponse)
def create_preferences(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(actions.create_user_preferences_action(db, user_id))


@app.post("/actions/update_preferences", response_model=ActionResponse)
def update_preferences(
    data: UpdateUserPreferences, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return respond(actions.update_user_preferences_action(db, user_id, data))


# --- Analytics & export ---

@app.get("/queries/net_worth", response_model=ActionResponse)
def net_worth(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    current, previous = analytics.get_net_worth(db, user_id)
    return respond(Result.success([current, previous]))


@app.get("/queries/net_worth_history", response_model=ActionResponse)
def net_worth_history(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(Result.success(analytics.get_net_worth_history(db, user_id)))


@app.get("/queries/spending_by_category", response_model=ActionResponse)
def spending_by_category(
    range: AnalyticsRange = "30d", user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return respond(Result.success(analytics.get_spending_by_category(db, user_id, range)))


@app.get("/queries/monthly_trends", response_model=ActionResponse)
def monthly_trends(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(Result.success(analytics.get_monthly_trends(db, user_id)))


@app.get("/queries/category_breakdown", response_model=ActionResponse)
def category_breakdown(
    range: AnalyticsRange = "30d", user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return respond(Result.success(analytics.get_category_breakdown(db, user_id, range)))


@app.get("/queries/analytics_summary", response_model=ActionResponse)
def analytics_summary(
    range: AnalyticsRange = "30d", user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return respond(Result.success(analytics.get_analytics_summary(db, user_id, range)))


@app.get("/queries/export", response_model=ActionResponse)
def export_user_data(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return respond(Result.success(importer.export_user_data(db, user_id)))


@app.get("/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api:app", host=API_HOST, port=API_PORT, reload=True)
