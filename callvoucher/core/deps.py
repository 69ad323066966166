from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.orm import Session
from callvoucher.core.database import get_db
from callvoucher.core.security import decode_token
from callvoucher.models import AdminUser
from callvoucher.services.allocator import CodeAllocator
from callvoucher.services.ledger import VoucherLedger
from callvoucher.services.rate_limit import login_limiter, validate_limiter
from callvoucher.services.settlement import CallSettlementEngine


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/admin/login")


def get_current_admin(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> AdminUser:
    try:
        payload = decode_token(token)
    except JWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc
    admin = db.query(AdminUser).filter(AdminUser.username == payload.get("sub")).first()
    if not admin or not admin.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive admin")
    return admin


def get_ledger(request: Request) -> VoucherLedger:
    return request.app.state.ledger


def get_allocator(request: Request) -> CodeAllocator:
    return request.app.state.allocator


def get_settlement(request: Request) -> CallSettlementEngine:
    return request.app.state.settlement


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def limit_voucher_validation(request: Request) -> None:
    if not validate_limiter.hit(client_key(request)):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many voucher validation attempts")


def limit_login(request: Request) -> None:
    if not login_limiter.hit(client_key(request)):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many attempts")
