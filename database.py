from datetime import date, datetime, timezone
from typing import Callable

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL
from results import Result

ACCOUNT_TYPES = ("cash", "investment", "liability", "other_asset")
TRANSACTION_TYPES = ("inflow", "outflow")
CATEGORY_TYPES = ("inflow", "outflow")
CURRENCY_CODES = ("USD", "EUR", "GBP", "JPY", "AUD", "CAD", "CHF", "CNY", "SEK", "NZD")
DATE_FORMATS = ("DD/MM/YYYY", "MM/DD/YYYY", "YYYY-MM-DD")


def _utcnow():
    return datetime.now(timezone.utc)


def make_engine(url: str = DATABASE_URL):
    """Create an engine; SQLite connections get foreign keys switched on."""
    if not url.startswith("sqlite"):
        return create_engine(url)

    kwargs = {"connect_args": {"check_same_thread": False}}
    # In-memory databases live per connection, so share a single one
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    sqlite_engine = create_engine(url, **kwargs)

    @event.listens_for(sqlite_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


def make_session_factory(bind) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


engine = make_engine()
SessionLocal = make_session_factory(engine)
Base = declarative_base()


class SerializeMixin:
    # Columns stored in minor units and exposed as major-unit floats
    MONEY_FIELDS: tuple = ()

    def as_dict(self) -> dict:
        out = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if column.name in self.MONEY_FIELDS and value is not None:
                value = value / 100
            elif isinstance(value, (date, datetime)):
                value = value.isoformat()
            out[column.name] = value
        return out

# --- Models ---

class User(Base, SerializeMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)  # bcrypt hash, never plain text
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    accounts = relationship("Account", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    categories = relationship("Category", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    preferences = relationship(
        "UserPreferences", back_populates="user", uselist=False, cascade="all, delete-orphan", passive_deletes=True
    )

    def as_dict(self) -> dict:
        return {"id": self.id, "username": self.username}


class UserPreferences(Base, SerializeMixin):
    """Display settings: currency, region, date format and timezone."""

    __tablename__ = "user_preferences"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    currency = Column(String(3), default="EUR", nullable=False)
    region = Column(String(2), default="ES", nullable=False)
    date_format = Column(String, default="DD/MM/YYYY", nullable=False)
    timezone = Column(String, default="Europe/Madrid", nullable=False)

    user = relationship("User", back_populates="preferences")


class Account(Base, SerializeMixin):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    type = Column(String, nullable=False)  # one of ACCOUNT_TYPES
    subtype = Column(String, nullable=True)
    currency = Column(String(3), default="EUR", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    user = relationship("User", back_populates="accounts")
    balances = relationship("AccountBalance", back_populates="account", cascade="all, delete-orphan", passive_deletes=True)
    transactions = relationship("Transaction", back_populates="account", cascade="all, delete-orphan", passive_deletes=True)


class AccountBalance(Base, SerializeMixin):
    """Balance of an account as of the end of ``date`` (minor units)."""

    __tablename__ = "account_balances"
    __table_args__ = (UniqueConstraint("account_id", "date", name="account_date_idx"),)
    MONEY_FIELDS = ("balance",)

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    balance = Column(BigInteger, nullable=False)

    account = relationship("Account", back_populates="balances")


class Category(Base, SerializeMixin):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    type = Column(String, nullable=False)  # one of CATEGORY_TYPES
    color = Column(String, nullable=False, default="#6b7280")
    parent_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)

    user = relationship("User", back_populates="categories")
    budget = relationship("Budget", back_populates="category", uselist=False, cascade="all, delete-orphan", passive_deletes=True)


class Budget(Base, SerializeMixin):
    __tablename__ = "budgets"
    MONEY_FIELDS = ("amount",)

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, unique=True)
    amount = Column(BigInteger, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    category = relationship("Category", back_populates="budget")


class Transaction(Base, SerializeMixin):
    __tablename__ = "transactions"
    MONEY_FIELDS = ("amount",)

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    date = Column(Date, nullable=False)
    amount = Column(BigInteger, nullable=False)  # always positive, direction lives in ``type``
    type = Column(String, nullable=False)  # one of TRANSACTION_TYPES
    title = Column(String(100), nullable=False)
    description = Column(String(255), nullable=False, default="")
    # Paired leg of a transfer
    transfer_id = Column(Integer, ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    account = relationship("Account", back_populates="transactions")
    category = relationship("Category")

# --- Init DB ---
def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def atomic(db: Session, work: Callable[[], Result]) -> Result:
    """Run ``work`` as one unit of work.

    The session is committed when ``work`` returns an ok result and rolled
    back when it returns a failure or raises, so nothing is partially applied.
    """
    try:
        result = work()
    except Exception:
        db.rollback()
        raise
    if result.ok:
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
    else:
        db.rollback()
    return result
