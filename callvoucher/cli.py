import typer
from sqlalchemy.orm import Session
from callvoucher.core.database import SessionLocal
from callvoucher.core.security import hash_password
from callvoucher.models import AdminUser
from callvoucher.services.allocator import CodeAllocator
from callvoucher.services.audit import QueuedAuditSink
from callvoucher.services.ledger import VoucherLedger

app = typer.Typer()


@app.command()
def create_admin(username: str = "admin", password: str = "admin", email: str = ""):
    db: Session = SessionLocal()
    try:
        existing = db.query(AdminUser).filter(AdminUser.username == username).first()
        if existing:
            typer.echo("Admin already exists")
            return
        admin = AdminUser(
            username=username,
            password_hash=hash_password(password),
            email=email or None,
        )
        db.add(admin)
        db.commit()
        typer.echo("Admin created")
    finally:
        db.close()


@app.command()
def generate_vouchers(
    quantity: int = typer.Option(..., min=1),
    duration: int = typer.Option(..., min=1, help="Minutes granted per voucher"),
    batch_name: str = "",
):
    audit = QueuedAuditSink(SessionLocal)
    try:
        ledger = VoucherLedger(SessionLocal, audit)
        result = CodeAllocator(SessionLocal, ledger, audit).allocate_batch(
            quantity, duration, batch_name=batch_name or None
        )
        typer.echo(f"Batch {result.batch_id}")
        for code in result.codes:
            typer.echo(code)
    finally:
        audit.flush()
        audit.close()


@app.command()
def deactivate_expired():
    audit = QueuedAuditSink(SessionLocal)
    try:
        count = VoucherLedger(SessionLocal, audit).deactivate_expired()
        typer.echo(f"Deactivated {count} expired vouchers")
    finally:
        audit.flush()
        audit.close()


@app.command()
def migrate():
    from callvoucher.entrypoint import run_migrations

    run_migrations()
    typer.echo("Database migrated")


if __name__ == "__main__":
    app()
