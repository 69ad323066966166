from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from callvoucher.models import CallType


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class LoginRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=5, max_length=128)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class ValidateVoucherRequest(CamelModel):
    code: str
    device_id: str = Field(min_length=1, max_length=100)


class VoucherValidation(CamelModel):
    valid: bool
    remaining_minutes: int = 0
    voucher_id: Optional[UUID] = None


class StartCallRequest(CamelModel):
    voucher_id: UUID
    phone_number: str = Field(max_length=20)
    country_code: str = Field(max_length=5)
    call_type: CallType


class CallStarted(CamelModel):
    call_id: str
    remaining_minutes: int


class EndCallRequest(CamelModel):
    call_id: str = Field(min_length=1, max_length=50)
    actual_duration_seconds: int


class CallEnded(CamelModel):
    call_id: str
    minutes_used: int
    remaining_minutes: int


class AbortCallRequest(CamelModel):
    status: Literal["failed", "cancelled"]


class CallOut(CamelModel):
    call_id: str
    voucher_id: Optional[UUID]
    voucher_code: Optional[str] = None
    phone_number: str
    country_code: str
    call_type: str
    duration_seconds: int
    status: str
    started_at: datetime
    ended_at: Optional[datetime]
    device_id: Optional[str]


class PaginatedCalls(CamelModel):
    items: List[CallOut]
    total: int
    page: int
    limit: int


class GenerateVoucherRequest(CamelModel):
    duration_minutes: int
    expires_at: Optional[datetime] = None


class GeneratedVoucher(CamelModel):
    voucher_id: UUID
    code: str
    duration_minutes: int


class BatchVoucherRequest(CamelModel):
    quantity: int
    duration_minutes: int
    batch_name: Optional[str] = Field(default=None, max_length=100)
    expires_at: Optional[datetime] = None


class BatchCreated(CamelModel):
    batch_id: UUID
    codes: List[str]
    total: int


class VoucherOut(CamelModel):
    id: UUID
    code: str
    duration_minutes: int
    remaining_minutes: int
    is_used: bool
    is_active: bool
    device_id: Optional[str]
    used_at: Optional[datetime]
    expires_at: Optional[datetime]
    batch_id: Optional[UUID]
    created_at: Optional[datetime]


class VoucherUpdate(CamelModel):
    is_active: bool


class PaginatedVouchers(CamelModel):
    items: List[VoucherOut]
    total: int
    page: int
    limit: int


class DashboardSummary(CamelModel):
    total_vouchers: int
    unused_vouchers: int
    used_vouchers: int
    inactive_vouchers: int
    unused_minutes: int
    total_calls: int
    active_calls: int
    completed_calls: int
    total_duration_seconds: int
