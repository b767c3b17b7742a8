"""Pytest configuration and fixtures."""
import os
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test configuration BEFORE importing the app
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["DEBUG"] = "False"
os.environ["EMAIL_SEND_MODE"] = "mock"
os.environ["DISPATCH_MODE"] = "disabled"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["QSTASH_CURRENT_SIGNING_KEY"] = "sig_current_test_key"
os.environ["QSTASH_NEXT_SIGNING_KEY"] = "sig_next_test_key"
os.environ["STREAM_POLL_INTERVAL_SECONDS"] = "0.01"

from mailer.main import app
from mailer.api.deps import get_db, get_dispatcher, get_sender_factory, get_session_factory
from mailer.core.security import create_access_token
from mailer.db.base import Base, build_engine, init_db
from mailer.db.models import Campaign, CampaignStatus, UserToken
from mailer.schemas.campaign import CampaignCreate
from mailer.services import campaigns as campaign_service
from mailer.services.adapters.dispatch.mock import MockDispatcher
from mailer.services.adapters.email_sending.mock import MockEmailSendAdapter
from mailer.services.batch_executor import BatchExecutor

OWNER_EMAIL = "owner@example.com"
OTHER_EMAIL = "someone-else@example.com"
CRON_SECRET = "test-cron-secret"

# Use SQLite for testing
engine = build_engine("sqlite://", poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    init_db(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db_session):
    """Session factory bound to the test database, for code that opens its own sessions."""
    return TestingSessionLocal


@pytest.fixture
def sender():
    """Mock mailbox of the campaign owner."""
    return MockEmailSendAdapter(sender_address=OWNER_EMAIL)


@pytest.fixture
def dispatcher():
    return MockDispatcher()


@pytest.fixture
def executor(db_session, sender, dispatcher):
    return BatchExecutor(db_session, sender_factory=lambda credentials: sender, dispatcher=dispatcher)


@pytest.fixture(scope="function")
def client(db_session, sender, dispatcher):
    """Create a test client with database and adapter overrides."""
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_sender_factory] = lambda: (lambda credentials: sender)
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def credentials(db_session):
    """Stored provider tokens for the owner (personal account)."""
    token = UserToken(user_email=OWNER_EMAIL, access_token="access", refresh_token="refresh")
    db_session.add(token)
    db_session.commit()
    db_session.refresh(token)
    return token


@pytest.fixture
def auth_headers():
    """Create authorization headers for the campaign owner."""
    return {"Authorization": f"Bearer {create_access_token(data={'sub': OWNER_EMAIL})}"}


@pytest.fixture
def other_headers():
    """Create authorization headers for a user who owns nothing."""
    return {"Authorization": f"Bearer {create_access_token(data={'sub': OTHER_EMAIL})}"}


@pytest.fixture
def cron_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture
def make_campaign(db_session):
    """Factory for campaigns owned by OWNER_EMAIL with numbered recipients."""
    def _make(
        recipient_count: int = 5,
        batch_size: int = 2,
        batch_delay_seconds: int = 60,
        status: CampaignStatus = CampaignStatus.DRAFT,
        **fields
    ) -> Campaign:
        data = CampaignCreate(
            name=fields.pop("name", "Launch"),
            subject=fields.pop("subject", "Hello"),
            body=fields.pop("body", "<p>Hi there</p>"),
            batch_size=batch_size,
            batch_delay_seconds=batch_delay_seconds,
            recipients=[f"user{i}@example.com" for i in range(recipient_count)],
            **fields
        )
        campaign = campaign_service.create_campaign(db_session, OWNER_EMAIL, data)
        if status != CampaignStatus.DRAFT:
            campaign.status = status
            db_session.commit()
            db_session.refresh(campaign)
        return campaign
    return _make
