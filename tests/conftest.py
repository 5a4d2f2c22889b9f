"""
Pytest fixtures

- In-memory SQLite（StaticPool，所有 session 共用同一條連線）
- 已部署好的 Raffle：入場費 100、interval 1000 秒、last_timestamp = T0
- TestClient：覆寫 get_db / get_coordinator / get_settings 指向測試用的資料庫、coordinator 與 token
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, Settings, get_db, get_settings
from core.bootstrap import deploy_raffle
from models import Account
from services.vrf_service import LocalVRFCoordinator, get_coordinator

T0 = 1_700_000_000
ENTRANCE_FEE = 100
INTERVAL = 1000
OPERATOR = "operator"
COORDINATOR = "vrf-coordinator"
BASE_FEE = 10
OPERATOR_TOKEN = "operator-secret"
COORDINATOR_TOKEN = "vrf-callback-secret"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        chain_id=31337,
        entrance_fee=ENTRANCE_FEE,
        interval=INTERVAL,
        operator=OPERATOR,
        vrf_coordinator_address=COORDINATOR,
        vrf_base_fee=BASE_FEE,
        vrf_fund_amount=1_000,
        operator_token=OPERATOR_TOKEN,
        vrf_callback_token=COORDINATOR_TOKEN,
    )


@pytest.fixture
def coordinator():
    return LocalVRFCoordinator(address=COORDINATOR, base_fee=BASE_FEE)


@pytest.fixture
def raffle(db, settings, coordinator):
    return deploy_raffle(db, settings, coordinator, now=T0)


@pytest.fixture
def rejecting_account(db):
    """建立一個會拒收轉帳的帳戶"""
    def _make(address):
        db.add(Account(address=address, balance=0, accepts_payments=False))
        db.commit()
        return address
    return _make


@pytest.fixture
def client(session_factory, coordinator, settings):
    from fastapi.testclient import TestClient
    from main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    app.dependency_overrides[get_settings] = lambda: settings
    # 不使用 with：lifespan 不會執行，Raffle 由各測試自行部署
    yield TestClient(app)
    app.dependency_overrides.clear()
