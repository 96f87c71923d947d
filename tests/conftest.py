import asyncio
import os
import tempfile

_tmp = tempfile.mkdtemp(prefix="technexus-tests-")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(_tmp, "test.db")
os.environ["REDIS_URL"] = ""
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "1"
os.environ["UPLOAD_DIR"] = os.path.join(_tmp, "uploads")
os.environ["ADMIN_PHONES"] = "255684868946"

import pytest
from fastapi.testclient import TestClient

from technexus import models, schemas
from technexus.database import Base, SessionLocal, engine
from technexus.main import app
from technexus.realtime import ConnectionRegistry

ADMIN_PHONE = "+255684868946"
CUSTOMER_PHONE = "+255700000001"
OTHER_PHONE = "+255700000002"
PASSWORD = "secret123"


async def reset_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture
def client():
    asyncio.run(reset_db())
    app.state.connections = ConnectionRegistry()
    with TestClient(app) as c:
        yield c


@pytest.fixture
async def db():
    await reset_db()
    async with SessionLocal() as session:
        yield session


def _signup(client, phone, full_name=None):
    res = client.post("/api/auth/signup", json={"phone": phone, "password": PASSWORD, "fullName": full_name})
    assert res.status_code == 201, res.text
    body = res.json()
    return {"id": body["user"]["id"], "token": body["token"], "headers": {"Authorization": f"Bearer {body['token']}"}}


@pytest.fixture
def admin(client):
    return _signup(client, ADMIN_PHONE, "Shop Admin")


@pytest.fixture
def customer(client):
    return _signup(client, CUSTOMER_PHONE, "Asha Mwita")


@pytest.fixture
def other_customer(client):
    return _signup(client, OTHER_PHONE, "Juma Said")


@pytest.fixture
def make_product(client, admin):
    def _make(**overrides):
        data = {"name": "Laptop", "price": "1000.00", "stock": 5}
        data.update(overrides)
        res = client.post("/api/products", json=data, headers=admin["headers"])
        assert res.status_code == 201, res.text
        return res.json()
    return _make


@pytest.fixture
def make_coupon(client, admin):
    def _make(**overrides):
        data = {"code": "SAVE10", "discount_percentage": 10, "valid_until": "2099-01-01T00:00:00Z"}
        data.update(overrides)
        res = client.post("/api/coupons", json=data, headers=admin["headers"])
        assert res.status_code == 201, res.text
        return res.json()
    return _make


@pytest.fixture
async def shopper(db):
    user = models.User(phone=CUSTOMER_PHONE, password_hash="not-used")
    db.add(user)
    await db.commit()
    return schemas.CurrentUser(user_id=user.id, phone=user.phone)
