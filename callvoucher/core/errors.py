"""Error taxonomy shared by the ledger, the allocator and the settlement engine.

Domain errors (InvalidArgument, NotFound, VoucherUnavailable, AlreadyTerminal)
are final for the caller. Storage errors (StorageTimeout, StorageUnavailable)
leave no persisted effect and are safe to retry.
"""


class CallVoucherError(Exception):
    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class InvalidArgument(CallVoucherError):
    code = "INVALID_ARGUMENT"
    http_status = 400


class NotFound(CallVoucherError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity_type: str, entity_id: object):
        super().__init__(f"{entity_type} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class VoucherUnavailable(CallVoucherError):
    code = "VOUCHER_UNAVAILABLE"
    http_status = 409


class AlreadyTerminal(CallVoucherError):
    code = "ALREADY_TERMINAL"
    http_status = 409

    def __init__(self, call_id: str, status: str):
        super().__init__(f"Call {call_id} is already {status}")
        self.call_id = call_id
        self.status = status


class Conflict(CallVoucherError):
    code = "CONFLICT"
    http_status = 409


class StorageTimeout(CallVoucherError):
    code = "STORAGE_TIMEOUT"
    http_status = 504


class StorageUnavailable(CallVoucherError):
    code = "STORAGE_UNAVAILABLE"
    http_status = 503
