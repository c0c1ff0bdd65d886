# app/tasks/expire.py
from app.celery_worker import celery_app
from app.data.database import SessionLocal
from app.repos.cart_repo import CartSessionRepo
from app.utils.clock import utcnow
from app.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="app.tasks.expire.expire_carts_task")
def expire_carts_task():
    logger.info("Expire carts task started")

    db = SessionLocal()
    try:
        expired = CartSessionRepo(db).expire_all_stale(utcnow())
        db.commit()
        logger.info(f"Expired {expired} cart sessions")
        return expired
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
