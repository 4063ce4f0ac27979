import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import dataclasses

import structlog

from booking_ledger.config import DATABASE_URL
from booking_ledger.db.engine import create_db_engine
from booking_ledger.logging_config import setup_logging
from booking_ledger.services.retry_queue import process_due_failures

setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    """
    Run one retry pass over due marketplace sync failures.

    For deployments that set SYNC_SCHEDULER_ENABLED=false and drive retries from cron.
    """
    engine = create_db_engine(DATABASE_URL)

    try:
        summary = process_due_failures(engine)
        logger.info("retry_pass_script_finished", **dataclasses.asdict(summary))
    except Exception:
        logger.exception("retry_pass_script_failed")
        raise
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
