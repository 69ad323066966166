from celery import shared_task
from callvoucher.core.database import SessionLocal
from callvoucher.services.audit import QueuedAuditSink
from callvoucher.services.ledger import VoucherLedger


@shared_task(
    name="callvoucher.tasks.deactivate_expired_vouchers",
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 5},
)
def deactivate_expired_vouchers(self):
    audit = QueuedAuditSink(SessionLocal)
    try:
        return VoucherLedger(SessionLocal, audit).deactivate_expired()
    finally:
        audit.flush()
        audit.close()
