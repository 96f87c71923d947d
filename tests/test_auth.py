import asyncio

import pytest
from sqlalchemy import delete

from technexus import auth, models
from technexus.database import SessionLocal
from technexus.errors import AuthenticationError, ValidationError


def test_normalize_phone_variants():
    assert auth.normalize_phone("+255 712-345 678") == "+255712345678"
    assert auth.normalize_phone(None, "+255", "0712 345 678") == "+2550712345678"
    assert auth.normalize_phone("+1999", "+255", "712345678") == "+255712345678"
    with pytest.raises(ValidationError):
        auth.normalize_phone("0712345678")
    with pytest.raises(ValidationError):
        auth.normalize_phone(None)


def test_token_round_trip():
    token = auth.create_access_token(12, "+255712345678")
    assert auth.decode_access_token(token) == 12
    with pytest.raises(AuthenticationError):
        auth.decode_access_token(token + "x")


def test_signup_login_and_me(client):
    res = client.post(
        "/api/auth/signup",
        json={"countryCode": "+255", "phoneNumber": "712 345 678", "password": "hunter22", "fullName": "Neema"},
    )
    assert res.status_code == 201
    body = res.json()
    assert body["user"]["phone"] == "+255712345678"

    login = client.post("/api/auth/login", json={"phone": "+255712345678", "password": "hunter22"})
    assert login.status_code == 200
    token = login.json()["token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).json()["user"]
    assert me["full_name"] == "Neema"
    assert me["role"] == "customer"


def test_signup_validation(client):
    assert client.post("/api/auth/signup", json={"phone": "+255712345678"}).status_code == 400
    assert client.post("/api/auth/signup", json={"phone": "+255712345678", "password": "123"}).status_code == 400
    res = client.post(
        "/api/auth/signup", json={"phone": "+255712345678", "password": "secret1", "confirmPassword": "secret2"}
    )
    assert res.json()["detail"] == "Passwords do not match"
    assert client.post("/api/auth/signup", json={"phone": "12345", "password": "secret1"}).status_code == 400


def test_duplicate_phone_conflicts(client, customer):
    res = client.post("/api/auth/signup", json={"phone": "+255 700 000 001", "password": "secret1"})
    assert res.status_code == 409


def test_admin_allowlist(client, admin):
    me = client.get("/api/auth/me", headers=admin["headers"]).json()["user"]
    assert me["role"] == "admin"


def test_login_restores_admin_role(client, admin):
    async def demote():
        async with SessionLocal() as session:
            await session.execute(delete(models.UserRole).where(models.UserRole.user_id == admin["id"]))
            session.add(models.UserRole(user_id=admin["id"], role="customer"))
            await session.commit()

    asyncio.run(demote())
    assert client.get("/api/auth/me", headers=admin["headers"]).json()["user"]["role"] == "customer"

    assert client.post("/api/auth/login", json={"phone": "+255684868946", "password": "secret123"}).status_code == 200
    assert client.get("/api/auth/me", headers=admin["headers"]).json()["user"]["role"] == "admin"


def test_bad_credentials(client, customer):
    res = client.post("/api/auth/login", json={"phone": "+255700000001", "password": "wrong-pass"})
    assert res.status_code == 401
    res = client.post("/api/auth/login", json={"phone": "+255799999999", "password": "secret123"})
    assert res.status_code == 401


def test_admin_routes_reject_customers(client, customer):
    assert client.get("/api/admin/stats", headers=customer["headers"]).status_code == 403
    assert client.get("/api/admin/stats").status_code == 401
