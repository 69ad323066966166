from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from callvoucher.core.database import get_db
from callvoucher.services.rate_limit import validate_limiter
import redis

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/ready")
def ready(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except OperationalError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable") from exc
    try:
        validate_limiter.client.ping()
        redis_status = "ok"
    except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
        redis_status = "unavailable"
    return {"status": "ready", "database": "ok", "redis": redis_status}
