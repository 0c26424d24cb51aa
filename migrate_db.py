from database import engine, init_db
from logger import get_logger

log = get_logger(__name__)


def migrate_db():
    log.info("Migrating database...", url=str(engine.url))
    # This will create any missing tables (like account_balances or budgets)
    init_db()
    log.info("Migration complete!")


if __name__ == "__main__":
    migrate_db()
