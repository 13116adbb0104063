"""
Pytest 配置和共享 fixtures
"""
import pytest
from datetime import date, timedelta
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from hotel_module.config import settings
from hotel_module.database import Base, get_db
from hotel_module.models import ontology  # noqa: F401
from hotel_module.models.ontology import Room, RoomStatus, Customer, Agent
from hotel_module.security.auth import create_access_token
from hotel_module.services.event_bus import event_bus
from hotel_module.main import app

TENANT = "grand-hotel"
OTHER_TENANT = "seaside-inn"


def _noop(event):
    """测试用空事件发布器"""
    pass


@pytest.fixture(autouse=True)
def hub_mode(monkeypatch):
    """默认以平台托管模式运行，全部模块开通"""
    monkeypatch.setattr(settings, "APP_TENANT_ID", None)
    monkeypatch.setattr(settings, "APP_SUBSCRIBED_MODULES", "")
    event_bus.clear_history()
    yield
    event_bus.clear_subscribers()


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine):
    """创建数据库会话"""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """创建测试客户端（不触发 lifespan，避免创建磁盘数据库）"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def noop_publisher():
    return _noop


# ============== 认证相关 Fixtures ==============

def _headers(role: str, tenant: str = TENANT, token_tenant: str = TENANT) -> dict:
    token = create_access_token(f"{role}-1", role, tenant_id=token_tenant)
    return {"Authorization": f"Bearer {token}", "x-tenant-id": tenant}


@pytest.fixture
def admin_headers():
    return _headers("admin")


@pytest.fixture
def superuser_headers():
    return _headers("superuser")


@pytest.fixture
def user_headers():
    """前台普通用户"""
    return _headers("user")


@pytest.fixture
def agent_headers():
    return _headers("agent")


@pytest.fixture
def other_tenant_headers():
    return _headers("admin", tenant=OTHER_TENANT, token_tenant=OTHER_TENANT)


# ============== 实体相关 Fixtures ==============

@pytest.fixture
def sample_rooms(db_session):
    """101 Single 100/晚，102 Double 200/晚"""
    rooms = [
        Room(tenant_id=TENANT, number="101", floor=1, type="Single",
             price_per_night=Decimal("100.00"), status=RoomStatus.AVAILABLE, amenities=["WiFi"]),
        Room(tenant_id=TENANT, number="102", floor=1, type="Double",
             price_per_night=Decimal("200.00"), status=RoomStatus.AVAILABLE, amenities=["WiFi", "TV"]),
    ]
    db_session.add_all(rooms)
    db_session.commit()
    for room in rooms:
        db_session.refresh(room)
    return rooms


@pytest.fixture
def sample_customer(db_session):
    customer = Customer(
        tenant_id=TENANT,
        first_name="Wei",
        last_name="Zhang",
        email="zhang.wei@example.com",
        phone="13800138000",
        id_proof_type="Passport",
        id_proof_number="E12345678"
    )
    db_session.add(customer)
    db_session.commit()
    db_session.refresh(customer)
    return customer


@pytest.fixture
def sample_agent(db_session):
    agent = Agent(
        tenant_id=TENANT,
        first_name="Li",
        last_name="Na",
        agent_code="AG-001",
        share_percentage=Decimal("10.00"),
        is_active=True
    )
    db_session.add(agent)
    db_session.commit()
    db_session.refresh(agent)
    return agent


@pytest.fixture
def tomorrow():
    return date.today() + timedelta(days=1)


@pytest.fixture
def tenant_id():
    return TENANT
