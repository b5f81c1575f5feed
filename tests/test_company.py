from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import crud
from conftest import auth_headers, create_company, create_job, new_user_id


def test_user_without_company_gets_null(test_client: TestClient):
    response = test_client.get("/api/user/company", headers=auth_headers(new_user_id()))
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"company": None}


def test_user_company_requires_session(test_client: TestClient):
    response = test_client.get("/api/user/company")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_user_company_includes_job_count_and_subscription(
    test_client: TestClient, db_session: Session
):
    user_id = new_user_id()
    company = create_company(
        db_session, user_id=user_id, website="https://acme.test", industry="Marketing"
    )
    crud.create_free_subscription(db_session, company.id)
    db_session.commit()
    create_job(db_session, company, status="active")
    create_job(db_session, company, status="draft")
    create_job(db_session, company, status="closed")

    response = test_client.get("/api/user/company", headers=auth_headers(user_id))

    assert response.status_code == status.HTTP_200_OK
    body = response.json()["company"]
    assert body["id"] == company.id
    assert body["company_name"] == "Acme Agency"
    assert body["job_count"] == 2
    assert body["subscription"]["plan_type"] == "free"
    assert body["subscription"]["job_post_limit"] == 1
    assert body["profile_completion"] == 50  # 4 of 8 fields


def test_user_company_without_subscription(test_client: TestClient, db_session: Session):
    user_id = new_user_id()
    create_company(db_session, user_id=user_id)

    response = test_client.get("/api/user/company", headers=auth_headers(user_id))

    body = response.json()["company"]
    assert body["job_count"] == 0
    assert body["subscription"] is None
