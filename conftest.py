import os
import time
import uuid

# Settings and the engine are read at import time, so the test environment
# has to be in place before anything from the app is imported.
TEST_DATABASE_URL = "sqlite:///./ghl-hire-test.db"
TEST_JWT_SECRET = "test-jwt-secret"
TEST_WEBHOOK_SECRET = "test-webhook-secret"

os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["SUPABASE_JWT_SECRET"] = TEST_JWT_SECRET
os.environ["SUPABASE_URL"] = "https://project.supabase.test"
os.environ["OPENAI_API_KEY"] = "sk-test"
os.environ["RESEND_API_KEY"] = "re_test"
os.environ["MAYA_SECRET_KEY"] = "sk-maya-test"
os.environ["MAYA_WEBHOOK_SECRET"] = TEST_WEBHOOK_SECRET
os.environ["APP_BASE_URL"] = "https://ghlhire.com"
os.environ["AWS_EMF_ENVIRONMENT"] = "Local"
os.environ["LOG_FORMAT"] = "console"

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Import app and DB dependency function first
from main import app, get_db

# Import database components needed for setup
from database import Base
import models

connect_args = (
    {"check_same_thread": False} if TEST_DATABASE_URL.startswith("sqlite") else {}
)
test_engine = create_engine(TEST_DATABASE_URL, connect_args=connect_args)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


def _remove_db_files(db_path: str) -> None:
    for path in (db_path, f"{db_path}-wal", f"{db_path}-shm"):
        if os.path.exists(path):
            try:
                os.unlink(path)
            except OSError as e:
                print(f"Error removing test database file {path}: {e}")


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create the test database from models."""
    db_path = TEST_DATABASE_URL.split("///")[-1]
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)

    yield  # Tests run here

    test_engine.dispose()
    _remove_db_files(db_path)


@pytest.fixture(autouse=True)
def clean_tables(setup_test_database):
    """Every test starts from empty tables."""
    yield
    with test_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture(scope="function")  # Function scope for session
def db_session(setup_test_database):  # Depends on DB setup
    """Yields a SQLAlchemy session directly from the test factory."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


# Override the get_db dependency for tests
@pytest.fixture(scope="function")
def override_get_db():
    """Override the get_db dependency to use our test database.

    This creates a new session for each API call, allowing proper
    transaction handling within FastAPI endpoints.
    """

    def _override_get_db():
        db = TestSessionLocal()
        try:
            yield db
        finally:
            db.close()

    original = app.dependency_overrides.get(get_db)
    app.dependency_overrides[get_db] = _override_get_db

    yield

    if original:
        app.dependency_overrides[get_db] = original
    else:
        del app.dependency_overrides[get_db]


@pytest.fixture(scope="function")
def test_client(override_get_db):
    """Provides a test client configured with our test database session."""
    return TestClient(app)


# --- Auth helpers --- #
def make_access_token(
    user_id: str,
    email: str = "user@example.com",
    expires_in: int = 3600,
    audience: str = "authenticated",
    secret: str = TEST_JWT_SECRET,
) -> str:
    """Mint an access token shaped like the auth service's."""
    payload = {
        "sub": user_id,
        "email": email,
        "aud": audience,
        "role": "authenticated",
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(user_id: str, email: str = "user@example.com") -> dict:
    return {"Authorization": f"Bearer {make_access_token(user_id, email)}"}


def new_user_id() -> str:
    return str(uuid.uuid4())


# --- Row factories --- #
def create_company(db, user_id=None, **fields) -> models.Company:
    company = models.Company(
        user_id=user_id or new_user_id(),
        company_name=fields.pop("company_name", "Acme Agency"),
        email=fields.pop("email", "billing@acme.test"),
        **fields,
    )
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


def create_profile(db, user_id=None, **fields) -> models.Profile:
    profile = models.Profile(
        user_id=user_id or new_user_id(),
        full_name=fields.pop("full_name", "Jamie Rivera"),
        email=fields.pop("email", "jamie@example.com"),
        **fields,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def create_job(db, company, **fields) -> models.Job:
    job = models.Job(
        company_id=company.id,
        title=fields.pop("title", "Senior GHL Developer"),
        description=fields.pop("description", "Build funnels and automations."),
        status=fields.pop("status", "active"),
        **fields,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job
