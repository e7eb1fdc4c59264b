import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pfmp.create_tables import create_tables
from pfmp.database import Base, get_db
from pfmp.main import app
from pfmp.modules.auth.models.user import User, UserRole
from pfmp.modules.auth.services.auth_service import AuthService
from pfmp.modules.conventions.services.signature_coordinator import SignatureCoordinator
from pfmp.modules.otp.controllers.otp_controller import get_mailer
from pfmp.modules.otp.services.otp_service import OtpAuthService

from factories import EMAILS, FakeMailer

engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ACCOUNT_ROLES = {
    "student": UserRole.STUDENT,
    "parent": UserRole.PARENT,
    "teacher": UserRole.TEACHER,
    "company": UserRole.COMPANY_HEAD,
    "tutor": UserRole.TUTOR,
    "head": UserRole.SCHOOL_HEAD,
    "admin": UserRole.ADMIN,
}
PASSWORD = "motdepasse123"


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    create_tables(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def otp_service(session, mailer):
    return OtpAuthService(session, mailer)


@pytest.fixture
def coordinator(session, otp_service):
    return SignatureCoordinator(session, otp_service=otp_service)


@pytest.fixture
def accounts(session):
    password_hash = AuthService.get_password_hash(PASSWORD)
    session.add_all([
        User(name=key.capitalize(), email=EMAILS[key], password_hash=password_hash, role=role,
             is_active=True, is_super_admin=(key == "admin"))
        for key, role in ACCOUNT_ROLES.items()
    ])
    session.commit()


@pytest.fixture
def client(accounts, mailer):
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    def headers_for(key):
        resp = client.post("/auth/login", json={"email": EMAILS[key], "password": PASSWORD})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}
    return headers_for
