from uuid import UUID

from fastapi import APIRouter, Depends, Query
from callvoucher.core.deps import get_allocator, get_current_admin, get_ledger, limit_voucher_validation
from callvoucher.models import AdminUser
from callvoucher.schemas import (
    BatchCreated,
    BatchVoucherRequest,
    GeneratedVoucher,
    GenerateVoucherRequest,
    PaginatedVouchers,
    ValidateVoucherRequest,
    VoucherOut,
    VoucherUpdate,
    VoucherValidation,
)
from callvoucher.services.allocator import CodeAllocator
from callvoucher.services.ledger import VoucherLedger

router = APIRouter(tags=["vouchers"])


@router.post(
    "/vouchers/validate",
    response_model=VoucherValidation,
    dependencies=[Depends(limit_voucher_validation)],
)
def validate_voucher(payload: ValidateVoucherRequest, ledger: VoucherLedger = Depends(get_ledger)):
    return ledger.validate(payload.code, payload.device_id)


@router.post("/admin/vouchers/generate", response_model=GeneratedVoucher, status_code=201)
def generate_voucher(
    payload: GenerateVoucherRequest,
    allocator: CodeAllocator = Depends(get_allocator),
    admin: AdminUser = Depends(get_current_admin),
):
    voucher = allocator.allocate_unique(payload.duration_minutes, created_by=admin.id, expires_at=payload.expires_at)
    return GeneratedVoucher(voucher_id=voucher.id, code=voucher.code, duration_minutes=voucher.duration_minutes)


@router.post("/admin/vouchers/batch", response_model=BatchCreated, status_code=201)
def generate_batch(
    payload: BatchVoucherRequest,
    allocator: CodeAllocator = Depends(get_allocator),
    admin: AdminUser = Depends(get_current_admin),
):
    return allocator.allocate_batch(
        payload.quantity,
        payload.duration_minutes,
        created_by=admin.id,
        batch_name=payload.batch_name,
        expires_at=payload.expires_at,
    )


@router.get("/admin/vouchers", response_model=PaginatedVouchers)
def list_vouchers(
    status: str | None = Query(default=None, pattern="^(active|used|inactive)$"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    ledger: VoucherLedger = Depends(get_ledger),
    admin: AdminUser = Depends(get_current_admin),
):
    return ledger.list_vouchers(status, page, limit)


@router.patch("/admin/vouchers/{voucher_id}", response_model=VoucherOut)
def update_voucher(
    voucher_id: UUID,
    payload: VoucherUpdate,
    ledger: VoucherLedger = Depends(get_ledger),
    admin: AdminUser = Depends(get_current_admin),
):
    return ledger.set_active(voucher_id, payload.is_active, admin_user_id=admin.id)


@router.get("/admin/vouchers/{voucher_id}", response_model=VoucherOut)
def get_voucher(
    voucher_id: UUID,
    ledger: VoucherLedger = Depends(get_ledger),
    admin: AdminUser = Depends(get_current_admin),
):
    return ledger.get(voucher_id)
