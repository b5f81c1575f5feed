"""Forwarding of new support tickets to the n8n support workflow."""
from typing import Any, Optional

import httpx
import structlog

import models
from errors import UpstreamError
from settings import get_settings

logger = structlog.get_logger(__name__)


def ticket_payload(
    ticket: models.SupportTicket,
    user_email: Optional[str],
    user_name: Optional[str],
) -> dict[str, Any]:
    return {
        "ticket_id": ticket.id,
        "ticket_number": ticket.ticket_number,
        "subject": ticket.subject,
        "description": ticket.description,
        "category": ticket.category,
        "priority": ticket.priority,
        "status": ticket.status,
        "user_email": user_email,
        "user_name": user_name,
        "created_at": ticket.created_at.isoformat() if ticket.created_at else None,
        "source": "ghl-hire",
        "environment": get_settings().app_env,
    }


async def forward_ticket(webhook_url: str, payload: dict[str, Any]) -> dict[str, Any]:
    """POST the ticket to the workflow webhook and return its JSON reply.

    Raises UpstreamError on transport failures, error statuses and
    unreadable replies. An empty reply yields an empty dict.
    """
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(webhook_url, json=payload)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise UpstreamError(f"Support webhook request failed: {exc}") from exc

    if response.is_error:
        logger.error("Support webhook error", status_code=response.status_code, body=response.text)
        raise UpstreamError(f"Support webhook returned {response.status_code}")

    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError as exc:
        raise UpstreamError("Support webhook returned an unreadable response") from exc
    return data if isinstance(data, dict) else {}
