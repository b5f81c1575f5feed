"""Maya payment gateway client and subscription plan catalogue."""
import hashlib
import hmac
import time
from typing import Any, Optional, Tuple

import httpx
import structlog
from pydantic import BaseModel

from errors import PaymentGatewayError
from settings import get_settings

logger = structlog.get_logger(__name__)

UNLIMITED = -1


class PlanLimits(BaseModel):
    job_posts: int
    featured_jobs: int
    team_members: int


class Plan(BaseModel):
    id: str
    name: str
    price: int  # cents
    currency: str
    interval: str
    features: list[str]
    limits: PlanLimits


PLANS = {
    "free": Plan(
        id="free",
        name="Free Plan",
        price=0,
        currency="USD",
        interval="month",
        features=["1 job posting", "Basic applicant tracking", "Email support"],
        limits=PlanLimits(job_posts=1, featured_jobs=0, team_members=1),
    ),
    "basic": Plan(
        id="basic",
        name="Basic Plan",
        price=4999,
        currency="USD",
        interval="month",
        features=[
            "5 active job postings",
            "Advanced applicant tracking",
            "Priority email support",
            "Basic analytics",
        ],
        limits=PlanLimits(job_posts=5, featured_jobs=1, team_members=3),
    ),
    "premium": Plan(
        id="premium",
        name="Premium Plan",
        price=14999,
        currency="USD",
        interval="month",
        features=[
            "Unlimited job postings",
            "Advanced analytics & insights",
            "Featured job listings",
            "Priority support",
            "AI-powered tools",
            "Unlimited team members",
        ],
        limits=PlanLimits(job_posts=UNLIMITED, featured_jobs=5, team_members=UNLIMITED),
    ),
}


def get_plan(plan_id: Optional[str]) -> Plan:
    """Plan by id; unknown ids fall back to the free plan."""
    return PLANS.get(plan_id or "", PLANS["free"])


def is_paid_plan(plan_id: Optional[str]) -> bool:
    return plan_id in PLANS and plan_id != "free"


def can_post_job(current_job_count: int, plan_id: str) -> bool:
    limit = get_plan(plan_id).limits.job_posts
    return limit == UNLIMITED or current_job_count < limit


def can_add_team_member(current_member_count: int, plan_id: str) -> bool:
    limit = get_plan(plan_id).limits.team_members
    return limit == UNLIMITED or current_member_count < limit


def new_reference_number(company_id: str) -> str:
    return f"SUB-{int(time.time() * 1000)}-{company_id[:8]}"


def verify_webhook_signature(body: bytes, signature: Optional[str]) -> bool:
    """Constant-time check of the hex HMAC-SHA256 of the raw webhook body."""
    secret = get_settings().maya_webhook_secret
    if not secret or not signature:
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


class MayaClient:
    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key if secret_key is not None else settings.maya_secret_key
        self.base_url = base_url or settings.maya_api_url
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=httpx.BasicAuth(self.secret_key or "", ""),
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        if not self.secret_key:
            raise PaymentGatewayError("Payment gateway is not configured")
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise PaymentGatewayError(f"Maya request failed: {exc}") from exc

        if response.is_error:
            logger.error(
                "Maya API error",
                path=path,
                status_code=response.status_code,
                body=response.text,
            )
            raise PaymentGatewayError(f"Maya API returned {response.status_code}")
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            logger.error("Unreadable Maya response", path=path, body=response.text)
            raise PaymentGatewayError("Maya API returned an unreadable response") from exc
        if not isinstance(data, dict):
            raise PaymentGatewayError("Maya API returned an unexpected response")
        return data

    async def create_checkout_session(self, session: dict[str, Any]) -> Tuple[str, str]:
        """Returns ``(checkout_id, redirect_url)``."""
        data = await self._request("POST", "/checkout/v1/checkouts", json=session)
        checkout_id, redirect_url = data.get("checkoutId"), data.get("redirectUrl")
        if not checkout_id or not redirect_url:
            logger.error("Maya checkout response incomplete", keys=sorted(data))
            raise PaymentGatewayError("Maya checkout response is missing checkoutId or redirectUrl")
        return checkout_id, redirect_url


def build_checkout_session(
    plan: Plan,
    company_id: str,
    company_name: str,
    company_email: str,
    reference_number: str,
    transaction_id: str,
    success_url: str,
    failure_url: str,
    cancel_url: str,
) -> dict[str, Any]:
    first_name, _, rest = company_name.partition(" ")
    amount = {"value": plan.price, "currency": plan.currency}
    return {
        "totalAmount": amount,
        "buyer": {
            "firstName": first_name or "Company",
            "lastName": rest or "User",
            "email": company_email,
        },
        "items": [
            {"name": plan.name, "quantity": 1, "amount": amount, "totalAmount": amount}
        ],
        "redirectUrl": {
            "success": success_url,
            "failure": failure_url,
            "cancel": cancel_url,
        },
        "requestReferenceNumber": reference_number,
        "metadata": {
            "company_id": company_id,
            "plan_id": plan.id,
            "transaction_id": transaction_id,
        },
    }
