"""Add backend to path so 'from db.models import' etc. resolve when run from project root."""
import os
import sys
import uuid
from datetime import date

_backend_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _backend_dir not in sys.path:
    sys.path.insert(0, _backend_dir)

# Never reach for a real server from tests
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db.models import CriticalDate, Lease, LeaseVersion, Party, Property, Suite
from db.session import Base, get_db
from engine.intervals import DateInterval


def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(eng, "connect", _enable_foreign_keys)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def client(session_factory):
    from main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _id() -> str:
    return str(uuid.uuid4())


class Seed:
    """Insert reference rows directly, bypassing services."""

    def __init__(self, session):
        self.db = session

    def property(self, name="One Market Plaza", state="CA") -> Property:
        p = Property(id=_id(), name=name, state=state, country="USA", active=True)
        self.db.add(p)
        self.db.commit()
        return p

    def suite(self, property_id, code="100") -> Suite:
        s = Suite(id=_id(), property_id=property_id, suite_code=code, rsf=5000)
        self.db.add(s)
        self.db.commit()
        return s

    def party(self, legal_name="Acme Tenant LLC", party_type="TENANT") -> Party:
        p = Party(id=_id(), legal_name=legal_name, party_type=party_type, active=True)
        self.db.add(p)
        self.db.commit()
        return p

    def lease(self, master_lease_num="L-100", property_id=None, landlord_id=None, tenant_id=None) -> Lease:
        property_id = property_id or self.property().id
        landlord_id = landlord_id or self.party("Market Owner LP", "LANDLORD").id
        tenant_id = tenant_id or self.party().id
        lease = Lease(
            id=_id(),
            property_id=property_id,
            landlord_id=landlord_id,
            tenant_id=tenant_id,
            master_lease_num=master_lease_num,
        )
        self.db.add(lease)
        self.db.commit()
        return lease

    def version(self, lease_id, literal, version_num=0, is_current=True) -> LeaseVersion:
        interval = DateInterval.parse(literal)
        v = LeaseVersion(
            id=_id(),
            lease_id=lease_id,
            version_num=version_num,
            effective_start=interval.start,
            effective_end=interval.end,
            effective_bounds=interval.bounds,
            currency_code="USD",
            is_current=is_current,
        )
        self.db.add(v)
        self.db.commit()
        return v

    def critical_date(self, lease_id, kind, day: date) -> CriticalDate:
        cd = CriticalDate(id=_id(), lease_id=lease_id, kind=kind, date_value=day)
        self.db.add(cd)
        self.db.commit()
        return cd


@pytest.fixture()
def seed(session_factory):
    session = session_factory()
    yield Seed(session)
    session.close()
