"""
Celery worker for periodic housekeeping (expired account lockouts).
"""
from celery import Celery
import logging
from .config import settings
from .database import SessionLocal
from .services.credentials import unlock_expired_accounts

logger = logging.getLogger(__name__)

celery_app = Celery(
    "tenant_erp",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
)


@celery_app.task(name="sweep_expired_lockouts")
def sweep_expired_lockouts() -> int:
    """Reset failed-login counters of accounts whose lock window has passed.

    Login already clears an elapsed lock on the next attempt; this keeps the
    table tidy for accounts that never come back.
    """
    db = SessionLocal()
    try:
        cleared = unlock_expired_accounts(db)
        if cleared:
            logger.info("Cleared %s expired account locks", cleared)
        return cleared
    except Exception:
        db.rollback()
        logger.exception("Lockout sweep failed")
        raise
    finally:
        db.close()


# Schedule periodic processing
celery_app.conf.beat_schedule = {
    'sweep-expired-lockouts': {
        'task': 'sweep_expired_lockouts',
        'schedule': float(settings.LOCKOUT_SWEEP_SECONDS),
    },
}
