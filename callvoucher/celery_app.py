from celery import Celery
from callvoucher.core.config import settings

celery_app = Celery(
    "callvoucher",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["callvoucher.tasks"],
)

celery_app.conf.beat_schedule = {
    "deactivate-expired-vouchers": {
        "task": "callvoucher.tasks.deactivate_expired_vouchers",
        "schedule": settings.expiry_sweep_seconds,
    }
}
