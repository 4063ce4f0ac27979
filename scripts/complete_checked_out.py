import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import structlog

from booking_ledger.config import DATABASE_URL
from booking_ledger.db.engine import create_db_engine
from booking_ledger.logging_config import setup_logging
from booking_ledger.services.completion import complete_checked_out_reservations
from booking_ledger.services.sync import SyncDispatcher

setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    """
    Complete reservations whose checkout day has passed and release their dates.

    Intended to run once a day shortly after midnight UTC.
    """
    engine = create_db_engine(DATABASE_URL)
    dispatcher = SyncDispatcher(engine)

    try:
        completed = complete_checked_out_reservations(engine, dispatcher=dispatcher)
        logger.info("completion_script_finished", completed=len(completed))
    except Exception:
        logger.exception("completion_script_failed")
        raise
    finally:
        dispatcher.shutdown(wait=True)
        engine.dispose()


if __name__ == "__main__":
    main()
