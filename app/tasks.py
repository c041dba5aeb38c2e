"""
Celery Tasks
Scheduled inventory maintenance running outside the request path.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from app.celery_worker import celery_app
from app.core.config import Settings, get_settings
from app.database import Database
from app.services.stock import StockResetEntry, get_stock_ledger

logger = logging.getLogger(__name__)


async def run_daily_reset(db: Database, settings: Optional[Settings] = None) -> dict:
    """
    Restore every TRACKED item to its opening stock in one batch.

    Items that never had an opening stock recorded are left untouched.
    """
    settings = settings or get_settings()

    async with db.session() as session:
        ledger = get_stock_ledger(session, settings)
        tracked = await ledger.find_tracked()
        entries = [
            StockResetEntry(item_id=item.id, quantity=item.initial_stock)
            for item in tracked
            if item.initial_stock is not None
        ]
        skipped = len(tracked) - len(entries)
        if skipped:
            logger.warning(f"Daily reset: {skipped} tracked item(s) have no opening stock")

        if not entries:
            return {'success': True, 'items_reset': 0, 'changes': []}

        changes = await ledger.daily_stock_reset(entries, actor=settings.daily_reset_actor)

    return {
        'success': True,
        'items_reset': len(changes),
        'changes': [change.to_dict() for change in changes],
    }


async def _reset_with_fresh_database(settings: Settings) -> dict:
    db = Database.from_settings(settings)
    try:
        return await run_daily_reset(db, settings)
    finally:
        await db.dispose()


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def reset_daily_stock(self) -> dict:
    """
    Scheduled daily stock reset.
    Runs from Celery beat at DAILY_RESET_HOUR (UTC).

    Returns:
        dict: Items reset and their previous/new stock
    """
    task_id = self.request.id
    logger.info(f"Task {task_id}: daily stock reset started")
    start_time = time.time()

    try:
        result = asyncio.run(_reset_with_fresh_database(get_settings()))
    except Exception as e:
        elapsed = round(time.time() - start_time, 3)
        logger.error(f"Task {task_id}: daily stock reset failed after {elapsed}s - {e}")
        # Celery will auto-retry based on configuration
        raise

    elapsed = round(time.time() - start_time, 3)
    result['task_id'] = task_id
    result['processing_time_seconds'] = elapsed
    logger.info(f"Task {task_id}: {result['items_reset']} item(s) reset in {elapsed}s")
    return result


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now(timezone.utc).isoformat()
    }
