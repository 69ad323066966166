import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from callvoucher.api import auth, calls, dashboard, health, vouchers
from callvoucher.api.error_handlers import register_error_handlers
from callvoucher.core.config import settings
from callvoucher.core.database import SessionFactory, SessionLocal
from callvoucher.services.allocator import CodeAllocator
from callvoucher.services.audit import AuditSink, QueuedAuditSink
from callvoucher.services.ledger import VoucherLedger
from callvoucher.services.settlement import CallSettlementEngine

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(session_factory: SessionFactory = SessionLocal, audit: AuditSink | None = None) -> FastAPI:
    configure_logging()
    audit = audit or QueuedAuditSink(session_factory, maxsize=settings.audit_queue_size)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("%s started", settings.app_name)
        yield
        audit.close()
        logger.info("%s shutting down", settings.app_name)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.audit = audit
    app.state.ledger = VoucherLedger(session_factory, audit)
    app.state.allocator = CodeAllocator(session_factory, app.state.ledger, audit)
    app.state.settlement = CallSettlementEngine(session_factory, app.state.ledger, audit)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(health.router)
    app.include_router(auth.router, prefix=API_PREFIX)
    app.include_router(vouchers.router, prefix=API_PREFIX)
    app.include_router(calls.router, prefix=API_PREFIX)
    app.include_router(dashboard.router, prefix=API_PREFIX)
    register_error_handlers(app)
    return app
