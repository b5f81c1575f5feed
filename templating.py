"""Shared Jinja2 environment for pages, partials, emails and invoices."""
from datetime import datetime
from pathlib import Path
from typing import Union

from fastapi.templating import Jinja2Templates

from calculators import format_relative_date, generate_job_slug

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"


def format_currency(amount: float, currency: str) -> str:
    symbol = "₱" if currency == "PHP" else "$"
    return f"{symbol}{amount:,.2f}"


def format_long_date(value: Union[str, datetime]) -> str:
    """``"2026-01-05T10:00:00+00:00"`` -> ``"January 5, 2026"``."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return f"{value:%B} {value.day}, {value.year}"


templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["currency"] = format_currency
templates.env.filters["long_date"] = format_long_date
templates.env.filters["relative_date"] = format_relative_date
templates.env.globals["job_slug"] = generate_job_slug
