from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from callvoucher.core.database import get_db
from callvoucher.core.deps import get_current_admin, get_settlement
from callvoucher.models import AdminUser, CallLog, Voucher
from callvoucher.schemas import (
    AbortCallRequest,
    CallEnded,
    CallOut,
    CallStarted,
    EndCallRequest,
    PaginatedCalls,
    StartCallRequest,
)
from callvoucher.services.settlement import CallSettlementEngine

router = APIRouter(tags=["calls"])


@router.post("/calls/start", response_model=CallStarted)
def start_call(payload: StartCallRequest, engine: CallSettlementEngine = Depends(get_settlement)):
    return engine.start_call(payload.voucher_id, payload.phone_number, payload.country_code, payload.call_type)


@router.post("/calls/end", response_model=CallEnded)
def end_call(payload: EndCallRequest, engine: CallSettlementEngine = Depends(get_settlement)):
    return engine.end_call(payload.call_id, payload.actual_duration_seconds)


@router.post("/calls/{call_id}/abort", response_model=CallOut)
def abort_call(call_id: str, payload: AbortCallRequest, engine: CallSettlementEngine = Depends(get_settlement)):
    return engine.abort_call(call_id, payload.status)


@router.get("/admin/calls", response_model=PaginatedCalls)
def list_calls(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
):
    total = db.query(CallLog).count()
    rows = (
        db.query(CallLog, Voucher.code)
        .outerjoin(Voucher, CallLog.voucher_id == Voucher.id)
        .order_by(CallLog.started_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    items = [
        CallOut.model_validate(call).model_copy(update={"voucher_code": code})
        for call, code in rows
    ]
    return PaginatedCalls(items=items, total=total, page=page, limit=limit)
