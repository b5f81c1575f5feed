import hashlib
import hmac
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import crud
import logic
import models
import payments
from conftest import TEST_WEBHOOK_SECRET, auth_headers, create_company, new_user_id
from errors import PaymentGatewayError


def sign(body: bytes, secret: str = TEST_WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def post_webhook(client: TestClient, event: dict, signature: str = None):
    body = json.dumps(event).encode("utf-8")
    return client.post(
        "/api/payments/webhook",
        content=body,
        headers={
            "Content-Type": "application/json",
            "x-maya-signature": signature if signature is not None else sign(body),
        },
    )


def create_pending_transaction(db: Session, company: models.Company, plan_id: str = "basic"):
    plan = payments.get_plan(plan_id)
    transaction = crud.create_payment_transaction(
        db,
        company_id=company.id,
        amount_cents=plan.price,
        currency=plan.currency,
        reference_number=payments.new_reference_number(company.id),
        description=f"{plan.name} subscription",
        metadata={"plan_id": plan_id},
    )
    db.commit()
    db.refresh(transaction)
    return transaction


# --- Plans --- #
def test_get_plan_falls_back_to_free():
    assert payments.get_plan("platinum").id == "free"
    assert payments.get_plan(None).id == "free"


@pytest.mark.parametrize(
    "count, plan_id, allowed",
    [
        (0, "free", True),
        (1, "free", False),
        (4, "basic", True),
        (5, "basic", False),
        (10_000, "premium", True),
    ],
)
def test_can_post_job(count, plan_id, allowed):
    assert payments.can_post_job(count, plan_id) is allowed


def test_can_add_team_member():
    assert payments.can_add_team_member(2, "basic") is True
    assert payments.can_add_team_member(3, "basic") is False
    assert payments.can_add_team_member(500, "premium") is True


def test_verify_webhook_signature():
    body = b'{"type": "payment.success"}'
    assert payments.verify_webhook_signature(body, sign(body)) is True
    assert payments.verify_webhook_signature(body, sign(body, "other")) is False
    assert payments.verify_webhook_signature(body, None) is False


def test_add_months_clamps_day():
    start = datetime(2026, 1, 31, tzinfo=timezone.utc)
    assert logic.add_months(start, 1) == datetime(2026, 2, 28, tzinfo=timezone.utc)
    assert logic.add_months(start, 12) == datetime(2027, 1, 31, tzinfo=timezone.utc)


# --- Maya client --- #
@pytest.mark.asyncio
async def test_maya_client_posts_checkout_with_basic_auth():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"checkoutId": "chk_1", "redirectUrl": "https://pay.test/chk_1"})

    client = payments.MayaClient(
        secret_key="sk-secret", base_url="https://maya.test", transport=httpx.MockTransport(handler)
    )
    checkout_id, redirect_url = await client.create_checkout_session({"totalAmount": {"value": 1}})

    assert (checkout_id, redirect_url) == ("chk_1", "https://pay.test/chk_1")
    assert seen["path"] == "/checkout/v1/checkouts"
    assert seen["auth"] == "Basic c2stc2VjcmV0Og=="  # base64("sk-secret:")
    assert seen["body"] == {"totalAmount": {"value": 1}}


@pytest.mark.asyncio
async def test_maya_client_error_status_raises():
    transport = httpx.MockTransport(lambda request: httpx.Response(422, json={"error": "bad"}))
    client = payments.MayaClient(secret_key="sk", base_url="https://maya.test", transport=transport)

    with pytest.raises(PaymentGatewayError):
        await client.create_checkout_session({})


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>ok</html>"),
        httpx.Response(200, json=["unexpected"]),
        httpx.Response(200, json={"checkoutId": "chk_1"}),
    ],
)
async def test_maya_client_malformed_checkout_response_raises(response):
    transport = httpx.MockTransport(lambda request: response)
    client = payments.MayaClient(secret_key="sk", base_url="https://maya.test", transport=transport)

    with pytest.raises(PaymentGatewayError):
        await client.create_checkout_session({})


# --- Checkout endpoint --- #
def test_create_checkout(test_client: TestClient, db_session: Session):
    user_id = new_user_id()
    company = create_company(db_session, user_id=user_id, company_name="Acme Digital Agency")

    with patch(
        "logic.payments.MayaClient.create_checkout_session",
        new_callable=AsyncMock,
        return_value=("chk_123", "https://pay.test/chk_123"),
    ) as mock_checkout:
        response = test_client.post(
            "/api/payments/create-checkout",
            json={"planId": "basic", "companyId": company.id},
            headers=auth_headers(user_id),
        )

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["success"] is True
    assert body["checkoutId"] == "chk_123"
    assert body["redirectUrl"] == "https://pay.test/chk_123"

    session = mock_checkout.call_args.args[0]
    assert session["totalAmount"] == {"value": 4999, "currency": "USD"}
    assert session["buyer"]["firstName"] == "Acme"
    assert session["buyer"]["lastName"] == "Digital Agency"
    assert session["redirectUrl"]["success"] == "https://ghlhire.com/company/billing/success"
    assert session["metadata"]["plan_id"] == "basic"

    transaction = db_session.get(models.PaymentTransaction, body["transactionId"])
    assert transaction.status == "pending"
    assert transaction.maya_checkout_id == "chk_123"
    assert transaction.reference_number == session["requestReferenceNumber"]


@pytest.mark.parametrize("plan_id", ["free", "platinum", None])
def test_create_checkout_rejects_invalid_plan(
    test_client: TestClient, db_session: Session, plan_id
):
    user_id = new_user_id()
    create_company(db_session, user_id=user_id)

    response = test_client.post(
        "/api/payments/create-checkout", json={"planId": plan_id}, headers=auth_headers(user_id)
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_create_checkout_for_foreign_company_is_404(test_client: TestClient, db_session: Session):
    user_id = new_user_id()
    create_company(db_session, user_id=user_id)
    other = create_company(db_session, company_name="Other Co")

    response = test_client.post(
        "/api/payments/create-checkout",
        json={"planId": "basic", "companyId": other.id},
        headers=auth_headers(user_id),
    )

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_create_checkout_without_company_is_404(test_client: TestClient):
    response = test_client.post(
        "/api/payments/create-checkout",
        json={"planId": "basic"},
        headers=auth_headers(new_user_id()),
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"error": "Company not found"}


def test_create_checkout_gateway_error_is_500(test_client: TestClient, db_session: Session):
    user_id = new_user_id()
    create_company(db_session, user_id=user_id)

    with patch(
        "logic.payments.MayaClient.create_checkout_session",
        new_callable=AsyncMock,
        side_effect=PaymentGatewayError("Maya API returned 502"),
    ):
        response = test_client.post(
            "/api/payments/create-checkout",
            json={"planId": "premium"},
            headers=auth_headers(user_id),
        )

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR


# --- Webhook --- #
def test_webhook_invalid_signature(test_client: TestClient, db_session: Session):
    company = create_company(db_session)
    transaction = create_pending_transaction(db_session, company)
    event = {"type": "payment.success", "data": {"referenceNumber": transaction.reference_number}}

    response = post_webhook(test_client, event, signature="deadbeef")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json() == {"error": "Invalid signature"}
    assert db_session.query(models.Invoice).count() == 0


def test_webhook_payment_success_activates_plan_and_invoices(
    test_client: TestClient, db_session: Session
):
    user_id = new_user_id()
    company = create_company(db_session, user_id=user_id)
    transaction = create_pending_transaction(db_session, company, plan_id="premium")
    event = {
        "type": "payment.success",
        "data": {
            "referenceNumber": transaction.reference_number,
            "payment": {"id": "pay_1"},
            "subscriptionId": "maya_sub_1",
            "metadata": {"company_id": company.id, "plan_id": "premium"},
        },
    }

    response = post_webhook(test_client, event)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"received": True}

    db_session.expire_all()
    transaction = crud.get_transaction_by_reference(db_session, transaction.reference_number)
    assert transaction.status == "succeeded"
    assert transaction.maya_payment_id == "pay_1"

    subscription = crud.get_subscription_for_company(db_session, company.id)
    assert subscription.plan_type == "premium"
    assert subscription.job_post_limit == -1
    assert subscription.featured_job_limit == 5
    assert subscription.maya_subscription_id == "maya_sub_1"

    invoice = db_session.query(models.Invoice).filter_by(company_id=company.id).one()
    assert invoice.amount_cents == 14999
    assert invoice.subscription_id == subscription.id

    # the company can fetch the invoice that was just created
    fetched = test_client.get(
        f"/api/invoices/{invoice.id}", params={"format": "json"}, headers=auth_headers(user_id)
    )
    assert fetched.status_code == status.HTTP_200_OK
    body = fetched.json()
    assert body["planName"] == "Premium Plan"
    assert body["amount"] == 149.99
    assert body["lineItems"] == [
        {"description": "Premium Plan", "quantity": 1, "unitPrice": 149.99, "total": 149.99}
    ]


def test_webhook_payment_success_upgrades_existing_free_plan(
    test_client: TestClient, db_session: Session
):
    company = create_company(db_session)
    crud.create_free_subscription(db_session, company.id)
    db_session.commit()
    transaction = create_pending_transaction(db_session, company, plan_id="basic")

    post_webhook(
        test_client,
        {"type": "checkout.success", "data": {"referenceNumber": transaction.reference_number}},
    )

    db_session.expire_all()
    subscriptions = db_session.query(models.Subscription).filter_by(company_id=company.id).all()
    assert len(subscriptions) == 1
    assert subscriptions[0].plan_type == "basic"
    assert subscriptions[0].job_post_limit == 5


def test_webhook_payment_failed_records_failure(test_client: TestClient, db_session: Session):
    company = create_company(db_session)
    transaction = create_pending_transaction(db_session, company)

    response = post_webhook(
        test_client,
        {
            "type": "payment.failed",
            "data": {
                "referenceNumber": transaction.reference_number,
                "failure": {"code": "CARD_DECLINED", "message": "Card declined"},
            },
        },
    )

    assert response.status_code == status.HTTP_200_OK
    db_session.expire_all()
    transaction = crud.get_transaction_by_reference(db_session, transaction.reference_number)
    assert transaction.status == "failed"
    assert transaction.failure_code == "CARD_DECLINED"
    assert transaction.failure_message == "Card declined"
    assert db_session.query(models.Invoice).count() == 0


@pytest.mark.parametrize(
    "event_type, expected_status, stamp_field",
    [
        ("subscription.canceled", "canceled", "canceled_at"),
        ("subscription.expired", "canceled", "ended_at"),
        ("subscription.renewed", "active", "current_period_end"),
    ],
)
def test_webhook_subscription_lifecycle(
    test_client: TestClient, db_session: Session, event_type, expected_status, stamp_field
):
    company = create_company(db_session)
    crud.upsert_subscription(
        db_session, company.id, plan_type="basic", status="past_due", maya_subscription_id="maya_sub_9"
    )
    db_session.commit()

    response = post_webhook(
        test_client, {"type": event_type, "data": {"subscription": {"id": "maya_sub_9"}}}
    )

    assert response.status_code == status.HTTP_200_OK
    db_session.expire_all()
    subscription = crud.get_subscription_by_maya_id(db_session, "maya_sub_9")
    assert subscription.status == expected_status
    assert getattr(subscription, stamp_field) is not None


def test_webhook_unhandled_event(test_client: TestClient):
    response = post_webhook(test_client, {"type": "subscription.created", "data": {}})
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"received": True}


def test_webhook_unknown_reference_is_ignored(test_client: TestClient, db_session: Session):
    response = post_webhook(
        test_client, {"type": "payment.success", "data": {"referenceNumber": "SUB-0-missing"}}
    )
    assert response.status_code == status.HTTP_200_OK
    assert db_session.query(models.Subscription).count() == 0


def test_create_checkout_unreadable_gateway_response_fails_transaction(
    test_client: TestClient, db_session: Session
):
    user_id = new_user_id()
    company = create_company(db_session, user_id=user_id)
    real_async_client = httpx.AsyncClient
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="OK"))

    def client_factory(**kwargs):
        kwargs["transport"] = transport
        return real_async_client(**kwargs)

    with patch("payments.httpx.AsyncClient", client_factory):
        response = test_client.post(
            "/api/payments/create-checkout",
            json={"planId": "basic"},
            headers=auth_headers(user_id),
        )

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json() == {"error": "Failed to create checkout session"}
    transaction = (
        db_session.query(models.PaymentTransaction)
        .filter(models.PaymentTransaction.company_id == company.id)
        .one()
    )
    assert transaction.status == "failed"
    assert transaction.maya_checkout_id is None
