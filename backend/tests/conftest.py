"""
Test configuration and fixtures for Flex.IA backend tests.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from main import app
from flexia.db.base import Base
from flexia.db.session import get_db
from flexia.core.security import create_access_token, hash_password
from flexia.core.permissions import Actor
from flexia.services.rate_limiter import get_rate_limiter


# Use in-memory SQLite for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
@event.listens_for(engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Rate limit counters must not leak between tests."""
    get_rate_limiter().store.reset()
    yield
    get_rate_limiter().store.reset()


def _make_user(db: Session, email: str, role, first_name: str = "Test", last_name: str = "User"):
    from flexia.db.models import User

    user = User(
        email=email,
        password_hash=hash_password("testpass123"),
        first_name=first_name,
        last_name=last_name,
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _headers(user) -> dict:
    token = create_access_token(data={"sub": str(user.user_id), "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def actor_of():
    """Build the service-layer Actor for a user fixture."""
    def _actor(user) -> Actor:
        return Actor(user_id=user.user_id, role=user.role)
    return _actor


# ----------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------

@pytest.fixture
def adjuster(db: Session):
    """An independent adjuster; see ``connection`` for the firm link."""
    from flexia.db.models import UserRole
    return _make_user(db, "adjuster@example.com", UserRole.ADJUSTER, "Alice", "Adjuster")


@pytest.fixture
def other_adjuster(db: Session):
    from flexia.db.models import UserRole
    return _make_user(db, "other.adjuster@example.com", UserRole.ADJUSTER, "Bob", "Adjuster")


@pytest.fixture
def firm_admin(db: Session):
    from flexia.db.models import UserRole
    return _make_user(db, "owner@example.com", UserRole.FIRM_ADMIN, "Fiona", "Owner")


@pytest.fixture
def other_firm_admin(db: Session):
    from flexia.db.models import UserRole
    return _make_user(db, "rival@example.com", UserRole.FIRM_ADMIN, "Rita", "Rival")


@pytest.fixture
def admin(db: Session):
    from flexia.db.models import UserRole
    return _make_user(db, "admin@example.com", UserRole.ADMIN, "Ada", "Admin")


@pytest.fixture
def adjuster_headers(adjuster) -> dict:
    return _headers(adjuster)


@pytest.fixture
def other_adjuster_headers(other_adjuster) -> dict:
    return _headers(other_adjuster)


@pytest.fixture
def firm_admin_headers(firm_admin) -> dict:
    return _headers(firm_admin)


@pytest.fixture
def other_firm_admin_headers(other_firm_admin) -> dict:
    return _headers(other_firm_admin)


@pytest.fixture
def admin_headers(admin) -> dict:
    return _headers(admin)


# ----------------------------------------------------------------------
# Firms, connections, claims
# ----------------------------------------------------------------------

@pytest.fixture
def firm(db: Session, firm_admin):
    """A firm owned by ``firm_admin``."""
    from flexia.db.models import Firm

    firm = Firm(name="Acme Adjusting", city="Austin", state="TX", owner_id=firm_admin.user_id)
    db.add(firm)
    db.commit()
    db.refresh(firm)
    return firm


@pytest.fixture
def connection(db: Session, firm, adjuster):
    """An APPROVED connection between ``adjuster`` and ``firm``."""
    from flexia.db.base import utcnow
    from flexia.db.models import FirmConnection, ConnectionStatus

    connection = FirmConnection(
        adjuster_id=adjuster.user_id,
        firm_id=firm.firm_id,
        status=ConnectionStatus.APPROVED,
        connected_at=utcnow(),
    )
    db.add(connection)
    db.commit()
    db.refresh(connection)
    return connection


@pytest.fixture
def make_claim(db: Session, firm):
    """Factory for claims posted by ``firm``."""
    from flexia.db.models import Claim, ClaimType, ClaimStatus, ClaimPriority

    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        values = dict(
            claim_number=f"CLM-TEST-{counter['n']:04d}",
            title=f"Hail damage #{counter['n']}",
            type=ClaimType.PROPERTY_DAMAGE,
            status=ClaimStatus.AVAILABLE,
            priority=ClaimPriority.MEDIUM,
            adjuster_fee=Decimal("500.00"),
            address="1 Main St",
            city="Austin",
            state="TX",
            zip_code="78701",
            incident_date=date.today() - timedelta(days=7),
            deadline=date.today() + timedelta(days=30),
            firm_id=firm.firm_id,
        )
        values.update(overrides)
        claim = Claim(**values)
        db.add(claim)
        db.commit()
        db.refresh(claim)
        return claim

    return _make


@pytest.fixture
def claim(make_claim):
    """An AVAILABLE claim with a $500 adjuster fee."""
    return make_claim()


# ----------------------------------------------------------------------
# Affiliates
# ----------------------------------------------------------------------

@pytest.fixture
def affiliate_user(db: Session):
    from flexia.db.models import UserRole
    return _make_user(db, "partner@example.com", UserRole.ADJUSTER, "Pat", "Partner")


@pytest.fixture
def affiliate_headers(affiliate_user) -> dict:
    return _headers(affiliate_user)


@pytest.fixture
def affiliate(db: Session, affiliate_user):
    """An ACTIVE affiliate partner at the default 20% rate."""
    from flexia.db.models import AffiliatePartner, AffiliateStatus

    partner = AffiliatePartner(
        user_id=affiliate_user.user_id,
        affiliate_code="FLEX-TEST0001",
        commission_rate=Decimal("0.20"),
        status=AffiliateStatus.ACTIVE,
        total_referrals=0,
        total_earnings=Decimal("0"),
    )
    db.add(partner)
    db.commit()
    db.refresh(partner)
    return partner


@pytest.fixture
def referred_user(db: Session):
    from flexia.db.models import UserRole
    return _make_user(db, "newcomer@example.com", UserRole.ADJUSTER, "Nina", "Newcomer")
