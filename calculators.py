"""Derived metrics: profile/company completion scores and the job slug codec."""
import math
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Optional

PROFILE_COMPLETION_FIELDS = (
    "full_name",
    "email",
    "phone",
    "location",
    "bio",
    "skills",
    "experience_years",
    "linkedin_url",
    "portfolio_url",
    "resume_url",
    "profile_photo_url",
)

COMPANY_COMPLETION_FIELDS = (
    "company_name",
    "email",
    "logo_url",
    "website",
    "description",
    "size",
    "industry",
    "location",
)

_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")


def _field(entity: Any, name: str) -> Any:
    if isinstance(entity, Mapping):
        return entity.get(name)
    return getattr(entity, name, None)


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return len(value.strip()) > 0
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value) > 0
    # numbers count once they are set, zero included
    return True


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _completion(entity: Any, fields: tuple) -> int:
    if entity is None:
        return 0
    present = sum(1 for name in fields if _is_present(_field(entity, name)))
    return _round_half_up(present / len(fields) * 100)


def calculate_profile_completion(profile: Any) -> int:
    """Percentage of the 11 tracked job-seeker profile fields that are filled."""
    return _completion(profile, PROFILE_COMPLETION_FIELDS)


def calculate_company_completion(company: Any) -> int:
    """Percentage of the 8 tracked company profile fields that are filled."""
    return _completion(company, COMPANY_COMPLETION_FIELDS)


def generate_job_slug(title: str, job_id: str) -> str:
    """Build a URL slug: ``"Senior GHL Developer"`` + ``"acb5537b-..."`` ->
    ``"senior-ghl-developer-acb5537b"``."""
    title_slug = _NON_ALNUM_RUN.sub("-", title.lower()).strip("-")
    short_id = job_id.split("-")[0]
    return f"{title_slug}-{short_id}"


def extract_job_id_from_slug(slug: str) -> str:
    """Return the short id (last hyphen segment) of a slug.

    This is only the id prefix, not the full id. Look the job up by prefix and
    treat a miss as a normal not-found.
    """
    return slug.split("-")[-1]


def format_relative_date(value: datetime, now: Optional[datetime] = None) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    diff_days = int(abs((now - value).total_seconds()) // 86400)

    if diff_days == 0:
        return "today"
    if diff_days == 1:
        return "1 day ago"
    if diff_days < 7:
        return f"{diff_days} days ago"
    if diff_days < 30:
        return f"{diff_days // 7} weeks ago"
    return f"{diff_days // 30} months ago"
