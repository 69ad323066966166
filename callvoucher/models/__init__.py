from callvoucher.models.admin_user import AdminUser
from callvoucher.models.voucher import Voucher, VoucherBatch
from callvoucher.models.call_log import CallLog, CallStatus, CallType
from callvoucher.models.audit_log import AuditLog

__all__ = ["AdminUser", "Voucher", "VoucherBatch", "CallLog", "CallStatus", "CallType", "AuditLog"]
