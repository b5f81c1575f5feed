"""Invoice assembly (store rows -> InvoiceData) and HTML rendering."""
from datetime import datetime
from typing import Optional

import structlog
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.orm import Session

import crud
from schemas import InvoiceData, InvoiceLineItem
from templating import templates

logger = structlog.get_logger(__name__)

PLAN_NAMES = {
    "free": "Free Plan",
    "basic": "Basic Plan",
    "premium": "Premium Plan",
    "enterprise": "Enterprise Plan",
}
DEFAULT_PLAN = "basic"
DEFAULT_CURRENCY = "PHP"

_line_items_adapter = TypeAdapter(list[InvoiceLineItem])


def plan_display_name(plan_type: Optional[str]) -> str:
    return PLAN_NAMES.get(plan_type or DEFAULT_PLAN, "Subscription")


def _iso(value: Optional[datetime], *fallbacks: Optional[datetime]) -> str:
    for candidate in (value, *fallbacks):
        if candidate is not None:
            return candidate.isoformat()
    return crud.utcnow().isoformat()


def assemble_invoice(db: Session, invoice_id: str) -> Optional[InvoiceData]:
    """Build the display model of an invoice.

    Returns None when the invoice or its company is missing, or when stored
    line items are malformed. Ownership is checked by the caller.
    """
    invoice = crud.get_invoice_with_relations(db, invoice_id)
    if invoice is None:
        logger.warning("Invoice not found during assembly", invoice_id=invoice_id)
        return None
    if invoice.company is None:
        logger.warning("Invoice has no company", invoice_id=invoice_id)
        return None

    plan_type = invoice.subscription.plan_type if invoice.subscription else None
    plan_name = plan_display_name(plan_type)
    amount = invoice.amount_cents / 100

    if isinstance(invoice.line_items, list):
        try:
            line_items = _line_items_adapter.validate_python(invoice.line_items)
        except ValidationError as exc:
            logger.warning(
                "Invoice line items failed validation",
                invoice_id=invoice_id,
                errors=exc.errors(include_url=False),
            )
            return None
    else:
        line_items = [
            InvoiceLineItem(description=plan_name, quantity=1, unit_price=amount, total=amount)
        ]

    return InvoiceData(
        invoice_number=invoice.invoice_number,
        company_name=invoice.company.company_name,
        company_email=invoice.company.email or "",
        plan_name=plan_name,
        amount=amount,
        currency=invoice.currency or DEFAULT_CURRENCY,
        billing_period_start=_iso(invoice.billing_period_start, invoice.created_at),
        billing_period_end=_iso(invoice.billing_period_end, invoice.created_at),
        paid_at=_iso(invoice.paid_at, invoice.created_at),
        line_items=line_items,
    )


def render_invoice_html(data: InvoiceData) -> str:
    return templates.env.get_template("invoice.html").render(invoice=data)
