import calendar
from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import crud
import emails
import llm_interaction
import models
import payments
import schemas
import support
from auth import AuthUser
from calculators import (
    calculate_company_completion,
    calculate_profile_completion,
    generate_job_slug,
)
from errors import (
    EmailDeliveryError,
    NotFoundError,
    PaymentGatewayError,
    UpstreamError,
    ValidationError,
)
from observability import metric_scope
from settings import get_settings

logger = structlog.get_logger(__name__)

USER_TYPES = ("employer", "jobseeker")


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping the day (Jan 31 + 1 -> Feb 28/29)."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


# --- AI ---
@metric_scope
async def analyze_resume(resume_text: str, metrics=None) -> schemas.ResumeAnalysis:
    metrics.put_dimensions({"Operation": "analyze_resume"})
    analysis = await llm_interaction.analyze_resume(resume_text)
    metrics.put_metric("ai_requests_completed", 1, "Count")
    return analysis


@metric_scope
async def enhance_description(
    description: str, job_title: str, industry: Optional[str] = None, metrics=None
) -> str:
    metrics.put_dimensions({"Operation": "enhance_description"})
    enhanced = await llm_interaction.enhance_job_description(
        description, job_title, industry or "GoHighLevel"
    )
    metrics.put_metric("ai_requests_completed", 1, "Count")
    return enhanced


@metric_scope
async def match_job(request: schemas.MatchJobRequest, metrics=None) -> schemas.MatchResult:
    metrics.put_dimensions({"Operation": "match_job"})
    match = await llm_interaction.calculate_match_score(
        job_description=request.job_description,
        job_title=request.job_title,
        required_skills=request.required_skills or [],
        candidate_resume=request.candidate_resume,
        candidate_skills=request.candidate_skills or [],
    )
    metrics.put_metric("ai_requests_completed", 1, "Count")
    metrics.put_metric("match_score", match.score, "None")
    return match


# --- Waitlist ---
async def join_waitlist(db: Session, email: Optional[str], user_type: Optional[str]) -> None:
    """Insert a waitlist entry, then send the confirmation email once.

    A duplicate raises ConflictError before any email is attempted. Email
    failures are logged only.
    """
    if not email or not user_type:
        raise ValidationError("Email and user type are required")
    if user_type not in USER_TYPES:
        raise ValidationError("Invalid user type")

    crud.create_waitlist_entry(db, email=email, user_type=user_type)
    db.commit()
    logger.info("Waitlist entry created", user_type=user_type)

    await _send_best_effort(
        email, emails.waitlist_confirmation, email, user_type, kind="waitlist_confirmation"
    )


async def _send_best_effort(to: str, template, *template_args, **log_fields) -> bool:
    """Render and send one email; any failure is logged and reported as False."""
    try:
        subject, html = template(*template_args)
        await emails.send_email(to=to, subject=subject, html=html)
    except EmailDeliveryError as exc:
        logger.error("Failed to send email", error=str(exc), **log_fields)
        return False
    except Exception:
        logger.exception("Unexpected error sending email", **log_fields)
        return False
    return True


# --- Signup ---
def create_account_profile(
    db: Session, user: AuthUser, request: schemas.CreateProfileRequest
) -> dict[str, Any]:
    """Create the job-seeker profile or the employer company (with a free plan)."""
    if not request.role or not request.email:
        raise ValidationError("Missing required fields")

    if request.role == "jobseeker":
        if not request.full_name:
            raise ValidationError("Missing required fields")
        profile = crud.create_profile(
            db,
            user_id=user.id,
            full_name=request.full_name,
            email=request.email,
            phone=request.phone,
            location=request.location,
        )
        db.commit()
        logger.info("Job seeker profile created", user_id=user.id)
        return {"success": True, "profile": crud.row_to_dict(profile)}

    if request.role == "employer":
        company_name = request.company_name or request.full_name
        if not company_name:
            raise ValidationError("Missing required fields")
        company = crud.create_company(
            db,
            user_id=user.id,
            company_name=company_name,
            email=request.email,
            location=request.location,
        )
        db.commit()
        logger.info("Company created", user_id=user.id, company_id=company.id)
        company_data = crud.row_to_dict(company)

        # the company is kept even when the free plan cannot be attached
        try:
            crud.create_free_subscription(db, company.id)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Free subscription creation failed", company_id=company_data["id"])
        return {"success": True, "company": company_data}

    raise ValidationError("Invalid role")


# --- Read models ---
def company_summary(db: Session, company: models.Company) -> dict[str, Any]:
    subscription = crud.get_subscription_for_company(db, company.id)
    data = crud.row_to_dict(company)
    data["job_count"] = crud.count_company_jobs(db, company.id)
    data["subscription"] = crud.row_to_dict(subscription) if subscription else None
    data["profile_completion"] = calculate_company_completion(company)
    return data


def profile_summary(profile: Optional[models.Profile]) -> dict[str, Any]:
    return {
        "profile": crud.row_to_dict(profile) if profile else None,
        "completion": calculate_profile_completion(profile),
    }


def job_summary(job: models.Job) -> dict[str, Any]:
    data = crud.row_to_dict(job)
    data["slug"] = generate_job_slug(job.title, job.id)
    data["company_name"] = job.company.company_name if job.company else None
    return data


# --- Application emails ---
def _load_application_for(db: Session, user: AuthUser, application_id: str, employer_only: bool):
    application = crud.get_application_with_relations(db, application_id)
    if application is None or application.job is None or application.profile is None:
        raise NotFoundError("Application not found")

    company = application.job.company
    is_employer = company is not None and company.user_id == user.id
    is_candidate = application.profile.user_id == user.id
    if not (is_employer or (is_candidate and not employer_only)):
        raise NotFoundError("Application not found")
    return application


async def send_application_submitted_emails(
    db: Session, user: AuthUser, application_id: Optional[str]
) -> dict[str, bool]:
    """Confirmation to the candidate and a notification to the employer."""
    if not application_id:
        raise ValidationError("Application ID is required")

    application = _load_application_for(db, user, application_id, employer_only=False)
    profile = application.profile
    job = application.job
    company = job.company
    results = {"candidateEmail": False, "employerEmail": False}

    if profile.email:
        results["candidateEmail"] = await _send_best_effort(
            profile.email,
            emails.application_submitted,
            profile.full_name or "Applicant",
            job.title,
            company.company_name,
            kind="application_submitted",
            application_id=application_id,
        )

    if company.email:
        results["employerEmail"] = await _send_best_effort(
            company.email,
            emails.new_application,
            company.company_name,
            profile.full_name or "A candidate",
            job.title,
            application_id,
            kind="new_application",
            application_id=application_id,
        )

    return results


async def send_application_status_email(
    db: Session, user: AuthUser, application_id: Optional[str], status: Optional[str]
) -> bool:
    """Tell the candidate their application moved to ``status``. Employer only."""
    if not application_id or not status:
        raise ValidationError("Application ID and status are required")
    if status not in emails.STATUS_MESSAGES:
        raise ValidationError("Invalid status")

    application = _load_application_for(db, user, application_id, employer_only=True)
    profile = application.profile
    if not profile.email:
        return False

    return await _send_best_effort(
        profile.email,
        emails.application_status_changed,
        profile.full_name or "Applicant",
        application.job.title,
        application.job.company.company_name,
        status,
        kind="application_status",
        application_id=application_id,
    )


# --- Support ---
TICKET_PRIORITIES = ("low", "medium", "high", "urgent")


async def create_support_ticket(
    db: Session, user: AuthUser, request: schemas.SupportTicketRequest
) -> dict[str, Any]:
    """Store a ticket for the caller's own profile, then forward it to n8n.

    Forwarding only happens when a webhook URL is configured and never
    fails the request; the ticket is already committed by then.
    """
    if not (request.profile_id and request.subject and request.description and request.category):
        raise ValidationError("Missing required fields")
    priority = request.priority or "medium"
    if priority not in TICKET_PRIORITIES:
        raise ValidationError("Invalid priority")

    profile = crud.get_profile_by_user_id(db, user.id)
    if profile is None or profile.id != request.profile_id:
        raise NotFoundError("Profile not found")

    ticket = crud.create_support_ticket(
        db,
        profile_id=profile.id,
        subject=request.subject,
        description=request.description,
        category=request.category,
        priority=priority,
    )
    db.commit()
    db.refresh(ticket)
    logger.info("Support ticket created", ticket_number=ticket.ticket_number, category=ticket.category)

    webhook_url = get_settings().n8n_support_webhook_url
    if webhook_url:
        payload = support.ticket_payload(ticket, request.user_email, request.user_name)
        try:
            reply = await support.forward_ticket(webhook_url, payload)
        except UpstreamError as exc:
            logger.error(
                "Failed to forward support ticket",
                ticket_number=ticket.ticket_number,
                error=exc.message,
            )
        except Exception:
            logger.exception(
                "Unexpected error forwarding support ticket", ticket_number=ticket.ticket_number
            )
        else:
            workflow_id, external_id = reply.get("workflow_id"), reply.get("external_id")
            ticket.n8n_workflow_id = str(workflow_id) if workflow_id is not None else None
            ticket.external_ticket_id = str(external_id) if external_id is not None else None
            ticket.metadata_ = reply
            db.commit()
            logger.info("Support ticket forwarded", ticket_number=ticket.ticket_number)

    return {
        "success": True,
        "ticket": {
            "id": ticket.id,
            "ticket_number": ticket.ticket_number,
            "status": ticket.status,
        },
        "message": "Support ticket created successfully",
    }


# --- Payments ---
async def create_checkout(
    db: Session,
    company: models.Company,
    request: schemas.CheckoutRequest,
    app_base_url: str,
    client: Optional[payments.MayaClient] = None,
) -> dict[str, Any]:
    if not request.plan_id:
        raise ValidationError("Plan ID is required")
    if not payments.is_paid_plan(request.plan_id):
        raise ValidationError("Invalid plan")
    if request.company_id and request.company_id != company.id:
        raise NotFoundError("Company not found")

    plan = payments.get_plan(request.plan_id)
    reference_number = payments.new_reference_number(company.id)
    transaction = crud.create_payment_transaction(
        db,
        company_id=company.id,
        amount_cents=plan.price,
        currency=plan.currency,
        reference_number=reference_number,
        description=f"{plan.name} subscription",
        metadata={"plan_id": plan.id},
    )
    db.commit()

    session = payments.build_checkout_session(
        plan,
        company_id=company.id,
        company_name=company.company_name,
        company_email=company.email,
        reference_number=reference_number,
        transaction_id=transaction.id,
        success_url=request.success_url or f"{app_base_url}/company/billing/success",
        failure_url=request.cancel_url or f"{app_base_url}/company/billing/failed",
        cancel_url=request.cancel_url or f"{app_base_url}/company/billing/canceled",
    )
    try:
        checkout_id, redirect_url = await (client or payments.MayaClient()).create_checkout_session(
            session
        )
    except PaymentGatewayError as exc:
        transaction.status = "failed"
        transaction.failed_at = crud.utcnow()
        transaction.failure_message = exc.message
        db.commit()
        logger.error("Checkout session failed", company_id=company.id, error=exc.message)
        raise UpstreamError("Failed to create checkout session") from exc

    transaction.maya_checkout_id = checkout_id
    db.commit()
    logger.info("Checkout session created", company_id=company.id, plan_id=plan.id)

    return {
        "success": True,
        "checkoutId": checkout_id,
        "redirectUrl": redirect_url,
        "transactionId": transaction.id,
    }


def _handle_payment_success(db: Session, data: dict[str, Any]) -> None:
    reference_number = data.get("referenceNumber")
    transaction = crud.get_transaction_by_reference(db, reference_number or "")
    if transaction is None:
        logger.error("Transaction not found", reference_number=reference_number)
        return

    now = crud.utcnow()
    transaction.status = "succeeded"
    transaction.maya_payment_id = (data.get("payment") or {}).get("id")
    transaction.paid_at = now

    metadata = data.get("metadata") or {}
    plan_id = metadata.get("plan_id") or (transaction.metadata_ or {}).get("plan_id")
    company_id = metadata.get("company_id") or transaction.company_id
    if not (plan_id and company_id):
        db.commit()
        return

    plan = payments.get_plan(plan_id)
    period_end = add_months(now, 12 if plan.interval == "year" else 1)
    subscription = crud.upsert_subscription(
        db,
        company_id,
        plan_type=plan.id,
        status="active",
        maya_subscription_id=data.get("subscriptionId"),
        current_period_start=now,
        current_period_end=period_end,
        job_post_limit=plan.limits.job_posts,
        featured_job_limit=plan.limits.featured_jobs,
        team_member_limit=plan.limits.team_members,
        price_cents=plan.price,
        currency=plan.currency,
        billing_interval=plan.interval,
        cancel_at_period_end=False,
    )
    amount = transaction.amount_cents / 100
    crud.create_invoice(
        db,
        company_id=company_id,
        subscription_id=subscription.id,
        amount_cents=transaction.amount_cents,
        currency=transaction.currency,
        billing_period_start=now,
        billing_period_end=period_end,
        paid_at=now,
        line_items=[
            schemas.InvoiceLineItem(
                description=plan.name, quantity=1, unit_price=amount, total=amount
            ).model_dump(by_alias=True)
        ],
    )
    db.commit()
    logger.info("Subscription activated", company_id=company_id, plan_id=plan.id)


def _handle_payment_failed(db: Session, data: dict[str, Any]) -> None:
    reference_number = data.get("referenceNumber")
    transaction = crud.get_transaction_by_reference(db, reference_number or "")
    if transaction is None:
        logger.error("Transaction not found", reference_number=reference_number)
        return
    failure = data.get("failure") or {}
    transaction.status = "failed"
    transaction.failed_at = crud.utcnow()
    transaction.failure_code = failure.get("code")
    transaction.failure_message = failure.get("message")
    db.commit()
    logger.info("Payment failed", reference_number=reference_number)


def _subscription_from_event(db: Session, data: dict[str, Any]) -> Optional[models.Subscription]:
    maya_id = (data.get("subscription") or {}).get("id")
    if not maya_id:
        return None
    subscription = crud.get_subscription_by_maya_id(db, maya_id)
    if subscription is None:
        logger.warning("Subscription not found", maya_subscription_id=maya_id)
    return subscription


def _handle_subscription_renewed(db: Session, data: dict[str, Any]) -> None:
    subscription = _subscription_from_event(db, data)
    if subscription is None:
        return
    now = crud.utcnow()
    subscription.current_period_start = now
    subscription.current_period_end = add_months(now, 1)
    subscription.status = "active"
    db.commit()


def _handle_subscription_canceled(db: Session, data: dict[str, Any]) -> None:
    subscription = _subscription_from_event(db, data)
    if subscription is None:
        return
    subscription.status = "canceled"
    subscription.canceled_at = crud.utcnow()
    db.commit()


def _handle_subscription_expired(db: Session, data: dict[str, Any]) -> None:
    subscription = _subscription_from_event(db, data)
    if subscription is None:
        return
    subscription.status = "canceled"
    subscription.ended_at = crud.utcnow()
    db.commit()


WEBHOOK_HANDLERS = {
    "payment.success": _handle_payment_success,
    "checkout.success": _handle_payment_success,
    "payment.failed": _handle_payment_failed,
    "checkout.failed": _handle_payment_failed,
    "subscription.renewed": _handle_subscription_renewed,
    "subscription.canceled": _handle_subscription_canceled,
    "subscription.expired": _handle_subscription_expired,
}


def handle_payment_event(db: Session, event: dict[str, Any]) -> None:
    event_type = event.get("type")
    logger.info("Maya webhook received", event_type=event_type)
    handler = WEBHOOK_HANDLERS.get(event_type)
    if handler is None:
        logger.info("Unhandled webhook event", event_type=event_type)
        return
    handler(db, event.get("data") or {})
