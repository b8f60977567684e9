# tests/conftest.py
import os

# config.py требует эти переменные при импорте
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy.pool import StaticPool
from main_api import app, get_session, create_access_token
from main_models import (
    Client, Contract, ClientTypeEnum, RoleEnum, SalarySchemaEnum, Service, User, Worker
)

# Используем in-memory SQLite для тестов
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def manager_headers():
    token = create_access_token({"sub": "manager@test.ru", "role": RoleEnum.MANAGER.value, "user_id": None})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def sample_worker(session: Session):
    """Работник с учетной записью, процентная схема 50%"""
    user = User(name="Иван", email="ivan@test.ru", password_hash="-", role=RoleEnum.WORKER)
    session.add(user)
    session.commit()
    session.refresh(user)
    worker = Worker(name="Иван", surname="Петров", user_id=user.id,
                    salary_schema=SalarySchemaEnum.PERCENTAGE, salary=50)
    session.add(worker)
    session.commit()
    session.refresh(worker)
    return worker


@pytest.fixture
def worker_headers(sample_worker: Worker):
    token = create_access_token({"sub": "ivan@test.ru", "role": RoleEnum.WORKER.value,
                                 "user_id": sample_worker.user_id, "worker_id": sample_worker.id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def sample_contract(session: Session):
    contract = Contract(number="Д-001", client_type=ClientTypeEnum.CASH)
    session.add(contract)
    session.commit()
    session.refresh(contract)
    return contract


@pytest.fixture
def sample_service(session: Session, sample_contract: Contract):
    service = Service(name="Балансировка", price=100, contract_id=sample_contract.id)
    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@pytest.fixture
def sample_client(session: Session, sample_contract: Contract):
    client = Client(name="ООО Ромашка", client_type=ClientTypeEnum.CASH.value,
                    contract_id=sample_contract.id)
    session.add(client)
    session.commit()
    session.refresh(client)
    return client
