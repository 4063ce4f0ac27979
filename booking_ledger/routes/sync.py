import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.engine import Engine

from booking_ledger.dependencies import get_db_engine
from booking_ledger.services.retry_queue import process_due_failures

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/sync/retries", status_code=status.HTTP_202_ACCEPTED)
def trigger_retry_pass(
    background_tasks: BackgroundTasks,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, str]:
    """
    Run one retry pass over due sync failures in the background.

    Used by external cron in deployments that disable the in-process scheduler.

    Args:
        background_tasks: FastAPI background task runner
        engine: Database engine

    Returns:
        dict: Message confirming the pass was scheduled
    """
    try:
        background_tasks.add_task(process_due_failures, engine)
        logger.info("sync_retry_pass_triggered")
        return {"message": "Sync retry pass scheduled"}

    except Exception as e:
        logger.exception("sync_retry_trigger_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
