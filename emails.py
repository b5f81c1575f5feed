"""Transactional email through the Resend HTTP API.

Every template helper returns ``(subject, html)``. ``send_email`` raises
``EmailDeliveryError`` on any failure; callers that treat email as a
best-effort side effect catch it and log.
"""
from __future__ import annotations

from typing import List, Optional, Tuple, Union

import httpx
import structlog

from errors import EmailDeliveryError
from settings import get_settings
from templating import templates

logger = structlog.get_logger(__name__)

STATUS_MESSAGES = {
    "reviewing": ("Under Review", "The hiring team is now reviewing your application."),
    "interview": ("Interview Stage", "Good news! You have been selected for an interview."),
    "offer": ("Offer Extended", "Congratulations! The company would like to extend you an offer."),
    "hired": ("Hired", "Congratulations on your new role!"),
    "rejected": (
        "Not Selected",
        "After careful consideration the company has decided to move forward with other candidates.",
    ),
}


def _render(template_name: str, **context) -> str:
    settings = get_settings()
    return templates.env.get_template(f"emails/{template_name}").render(
        app_url=settings.app_base_url, **context
    )


async def send_email(
    to: Union[str, List[str]],
    subject: str,
    html: str,
    reply_to: Optional[str] = None,
) -> Optional[str]:
    """Send one email; returns the provider message id."""
    settings = get_settings()
    if not settings.resend_api_key:
        raise EmailDeliveryError("Email provider is not configured")

    payload = {
        "from": settings.resend_from_email,
        "to": to if isinstance(to, list) else [to],
        "subject": subject,
        "html": html,
    }
    if reply_to:
        payload["reply_to"] = reply_to

    try:
        async with httpx.AsyncClient(base_url=settings.resend_api_url) as client:
            response = await client.post(
                "/emails",
                json=payload,
                headers={"Authorization": f"Bearer {settings.resend_api_key}"},
            )
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise EmailDeliveryError(f"Email request failed: {exc}") from exc

    if response.is_error:
        logger.error("Resend email error", status_code=response.status_code, body=response.text)
        raise EmailDeliveryError(f"Email provider returned {response.status_code}")

    try:
        message_id = response.json().get("id")
    except (ValueError, AttributeError) as exc:
        logger.error("Unreadable Resend response", status_code=response.status_code, body=response.text)
        raise EmailDeliveryError("Email provider returned an unreadable response") from exc
    logger.info("Email sent", subject=subject, message_id=message_id)
    return message_id


# --- Templates ---
def waitlist_confirmation(email: str, user_type: str) -> Tuple[str, str]:
    subject = "You're on the GHL Hire waitlist!"
    return subject, _render(
        "waitlist_confirmation.html",
        subject=subject,
        email=email,
        is_employer=user_type == "employer",
    )


def application_submitted(candidate_name: str, job_title: str, company_name: str) -> Tuple[str, str]:
    subject = f"Application Submitted - {job_title} at {company_name}"
    return subject, _render(
        "application_submitted.html",
        subject=subject,
        candidate_name=candidate_name,
        job_title=job_title,
        company_name=company_name,
    )


def new_application(
    employer_name: str, candidate_name: str, job_title: str, application_id: str
) -> Tuple[str, str]:
    subject = f"New Application: {candidate_name} applied for {job_title}"
    return subject, _render(
        "new_application.html",
        subject=subject,
        employer_name=employer_name,
        candidate_name=candidate_name,
        job_title=job_title,
        application_id=application_id,
    )


def application_status_changed(
    candidate_name: str, job_title: str, company_name: str, status: str
) -> Tuple[str, str]:
    status_title, status_message = STATUS_MESSAGES[status]
    subject = f"Application Update - {job_title} at {company_name}"
    return subject, _render(
        "application_status.html",
        subject=subject,
        candidate_name=candidate_name,
        job_title=job_title,
        company_name=company_name,
        status_title=status_title,
        status_message=status_message,
    )
