from fastapi import APIRouter, Depends
from callvoucher.core.deps import get_current_admin, get_ledger
from callvoucher.models import AdminUser
from callvoucher.schemas import DashboardSummary
from callvoucher.services.ledger import VoucherLedger

router = APIRouter(prefix="/admin/dashboard", tags=["dashboard"])


@router.get("/summary", response_model=DashboardSummary)
def summary(ledger: VoucherLedger = Depends(get_ledger), admin: AdminUser = Depends(get_current_admin)):
    return ledger.summary()
