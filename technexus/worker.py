import logging

from celery import Celery

from .config import CELERY_BROKER_URL, CELERY_RESULT_BACKEND, CELERY_TASK_ALWAYS_EAGER

logger = logging.getLogger(__name__)

celery = Celery(__name__, broker=CELERY_BROKER_URL, backend=CELERY_RESULT_BACKEND)
celery.conf.task_always_eager = CELERY_TASK_ALWAYS_EAGER


@celery.task(name="send_order_confirmation")
def send_order_confirmation(phone: str, order_id: int, total: str):
    logger.info("SMS to %s: order #%s received, total %s", phone, order_id, total)
    return True


@celery.task(name="send_order_status_update")
def send_order_status_update(phone: str, order_id: int, status: str):
    logger.info("SMS to %s: order #%s is now %s", phone, order_id, status)
    return True


def enqueue(task, *args):
    """Queue ``task``; a broker outage is logged and never fails the caller."""
    try:
        task.delay(*args)
    except Exception as exc:
        logger.warning("could not enqueue %s: %s", task.name, exc)
