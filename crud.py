import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

import models
from errors import ConflictError


def row_to_dict(row) -> dict[str, Any]:
    """Plain column -> value mapping of a row (relationships excluded)."""
    return {column.key: getattr(row, column.key) for column in row.__mapper__.column_attrs}


# --- Profile CRUD ---
def get_profile_by_user_id(db: Session, user_id: str):
    return db.query(models.Profile).filter(models.Profile.user_id == user_id).first()


def create_profile(
    db: Session,
    user_id: str,
    full_name: str,
    email: str,
    phone: Optional[str] = None,
    location: Optional[str] = None,
):
    db_profile = models.Profile(
        user_id=user_id,
        full_name=full_name,
        email=email,
        phone=phone or None,
        location=location or None,
    )
    db.add(db_profile)
    db.flush()
    return db_profile


# --- Company CRUD ---
def get_company_by_user_id(db: Session, user_id: str):
    """The company owned by a user, or None when the user is not an employer."""
    return db.query(models.Company).filter(models.Company.user_id == user_id).first()


def create_company(
    db: Session,
    user_id: str,
    company_name: str,
    email: str,
    location: Optional[str] = None,
):
    db_company = models.Company(
        user_id=user_id,
        company_name=company_name,
        email=email,
        location=location or None,
    )
    db.add(db_company)
    db.flush()
    return db_company


# --- Subscription CRUD ---
def get_subscription_for_company(db: Session, company_id: str):
    return (
        db.query(models.Subscription)
        .filter(models.Subscription.company_id == company_id)
        .first()
    )


def get_subscription_by_maya_id(db: Session, maya_subscription_id: str):
    return (
        db.query(models.Subscription)
        .filter(models.Subscription.maya_subscription_id == maya_subscription_id)
        .first()
    )


def create_free_subscription(db: Session, company_id: str):
    db_subscription = models.Subscription(
        company_id=company_id,
        plan_type="free",
        status="active",
        job_post_limit=1,
        job_posts_used=0,
        featured_job_limit=0,
        team_member_limit=1,
        price_cents=0,
        currency="USD",
        billing_interval="month",
    )
    db.add(db_subscription)
    db.flush()
    return db_subscription


def upsert_subscription(db: Session, company_id: str, **fields):
    """Insert or update the single subscription row of a company."""
    db_subscription = get_subscription_for_company(db, company_id)
    if db_subscription is None:
        db_subscription = models.Subscription(company_id=company_id)
        db.add(db_subscription)
    for key, value in fields.items():
        setattr(db_subscription, key, value)
    db.flush()
    return db_subscription


# --- Job CRUD ---
def count_company_jobs(
    db: Session, company_id: str, statuses: Iterable[str] = ("active", "draft")
) -> int:
    return (
        db.query(func.count(models.Job.id))
        .filter(models.Job.company_id == company_id, models.Job.status.in_(list(statuses)))
        .scalar()
        or 0
    )


def get_active_jobs(db: Session, limit: int = 50):
    return (
        db.query(models.Job)
        .options(joinedload(models.Job.company))
        .filter(models.Job.status == "active")
        .order_by(models.Job.created_at.desc())
        .limit(limit)
        .all()
    )


def get_job_by_short_id(db: Session, short_id: str):
    """Resolve the id prefix carried by a slug. Oldest job wins on collision."""
    if not short_id:
        return None
    return (
        db.query(models.Job)
        .options(joinedload(models.Job.company))
        .filter(models.Job.id.startswith(short_id, autoescape=True))
        .order_by(models.Job.created_at.asc(), models.Job.id.asc())
        .first()
    )


# --- Application CRUD ---
def get_application_with_relations(db: Session, application_id: str):
    return (
        db.query(models.Application)
        .options(
            joinedload(models.Application.profile),
            joinedload(models.Application.job).joinedload(models.Job.company),
        )
        .filter(models.Application.id == application_id)
        .first()
    )


# --- Invoice CRUD ---
def get_invoice(db: Session, invoice_id: str):
    return db.query(models.Invoice).filter(models.Invoice.id == invoice_id).first()


def get_invoice_with_relations(db: Session, invoice_id: str):
    return (
        db.query(models.Invoice)
        .options(
            joinedload(models.Invoice.company),
            joinedload(models.Invoice.subscription),
        )
        .filter(models.Invoice.id == invoice_id)
        .first()
    )


def _next_invoice_number(invoice_id: str, issued_at: datetime) -> str:
    return f"INV-{issued_at:%Y%m%d}-{invoice_id.split('-')[0].upper()}"


def create_invoice(
    db: Session,
    company_id: str,
    amount_cents: int,
    currency: str,
    billing_period_start: datetime,
    billing_period_end: datetime,
    paid_at: datetime,
    line_items: Optional[list] = None,
    subscription_id: Optional[str] = None,
    status: str = "paid",
):
    invoice_id = models.new_uuid()
    db_invoice = models.Invoice(
        id=invoice_id,
        company_id=company_id,
        subscription_id=subscription_id,
        invoice_number=_next_invoice_number(invoice_id, paid_at),
        amount_cents=amount_cents,
        currency=currency,
        status=status,
        billing_period_start=billing_period_start,
        billing_period_end=billing_period_end,
        paid_at=paid_at,
        line_items=line_items,
    )
    db.add(db_invoice)
    db.flush()
    return db_invoice


# --- Payment transaction CRUD ---
def create_payment_transaction(
    db: Session,
    company_id: str,
    amount_cents: int,
    currency: str,
    reference_number: str,
    description: str,
    metadata: Optional[dict] = None,
):
    db_transaction = models.PaymentTransaction(
        company_id=company_id,
        amount_cents=amount_cents,
        currency=currency,
        status="pending",
        transaction_type="subscription",
        reference_number=reference_number,
        description=description,
        metadata_=metadata or {},
    )
    db.add(db_transaction)
    db.flush()
    return db_transaction


def get_transaction_by_reference(db: Session, reference_number: str):
    return (
        db.query(models.PaymentTransaction)
        .filter(models.PaymentTransaction.reference_number == reference_number)
        .first()
    )


# --- Waitlist CRUD ---
def create_waitlist_entry(db: Session, email: str, user_type: str):
    """Insert a waitlist row; a duplicate email surfaces as ConflictError."""
    db_entry = models.WaitlistEntry(email=email, user_type=user_type)
    db.add(db_entry)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("This email is already on the waitlist!") from exc
    return db_entry


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Support ticket CRUD ---
def new_ticket_number(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"TKT-{now:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


def create_support_ticket(
    db: Session,
    profile_id: str,
    subject: str,
    description: str,
    category: str,
    priority: str = "medium",
):
    db_ticket = models.SupportTicket(
        ticket_number=new_ticket_number(),
        profile_id=profile_id,
        subject=subject,
        description=description,
        category=category,
        priority=priority,
        status="open",
    )
    db.add(db_ticket)
    db.flush()
    db.refresh(db_ticket)
    return db_ticket
