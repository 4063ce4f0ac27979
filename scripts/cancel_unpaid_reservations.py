import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import structlog

from booking_ledger.config import DATABASE_URL
from booking_ledger.db.engine import create_db_engine
from booking_ledger.logging_config import setup_logging
from booking_ledger.notifications import LoggingNotifier
from booking_ledger.services.payment_deadlines import cancel_overdue_unpaid_reservations

setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    """
    Release pending reservations whose payment deadline passed without payment.

    Card holds lapse within minutes, so run this every few minutes.
    """
    engine = create_db_engine(DATABASE_URL)

    try:
        expired = cancel_overdue_unpaid_reservations(engine, notifier=LoggingNotifier())
        logger.info("payment_deadline_script_finished", expired=len(expired))
    except Exception:
        logger.exception("payment_deadline_script_failed")
        raise
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
