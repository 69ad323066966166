from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from callvoucher.core.database import get_db
from callvoucher.core.deps import client_key, limit_login
from callvoucher.core.security import create_access_token, verify_password
from callvoucher.models import AdminUser
from callvoucher.schemas import LoginRequest, TokenResponse
from callvoucher.services.ledger import utcnow
from callvoucher.services.rate_limit import login_limiter

router = APIRouter(prefix="/admin", tags=["auth"])


@router.post("/login", response_model=TokenResponse, dependencies=[Depends(limit_login)])
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    admin = db.query(AdminUser).filter(AdminUser.username == payload.username).first()
    if not admin or not admin.is_active or not verify_password(payload.password, admin.password_hash):
        request.app.state.audit.emit(
            "admin_login",
            "admin",
            admin.id if admin else payload.username,
            {"status": "failed"},
            ip_address=client_key(request),
            user_agent=request.headers.get("user-agent"),
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    admin.last_login = utcnow()
    db.commit()
    request.app.state.audit.emit(
        "admin_login",
        "admin",
        admin.id,
        {"status": "success"},
        admin_user_id=admin.id,
        ip_address=client_key(request),
        user_agent=request.headers.get("user-agent"),
    )
    login_limiter.reset(client_key(request))
    return TokenResponse(access_token=create_access_token(admin.username, str(admin.id)))
