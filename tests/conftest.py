import asyncio
from datetime import datetime

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from main import app
from claimflow.core.config import settings
from claimflow.core.security import create_access_token, hash_password
from claimflow.db.mongo import get_mongo_db
from claimflow.services.currency import CurrencyConverter, get_currency_converter


EXECUTIVE_EMAIL = "ceo@claimflow.io"


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "EXECUTIVE_EMAILS", [EXECUTIVE_EMAIL])
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "EMAIL_NOTIFICATIONS", False)


@pytest.fixture
def db():
    database = AsyncMongoMockClient()["claimflow_test"]
    # No API key, so conversions use the fixed fallback rates
    converter = CurrencyConverter(api_key="")
    app.dependency_overrides[get_mongo_db] = lambda: database
    app.dependency_overrides[get_currency_converter] = lambda: converter
    yield database
    app.dependency_overrides.clear()


@pytest.fixture
def client(db):
    return TestClient(app)


def run(coro):
    return asyncio.run(coro)


def make_user(db, role="employee", email=None, name=None, password="secret123", **extra) -> dict:
    now = datetime.utcnow()
    doc = {
        "_id": ObjectId(),
        "name": name or f"{role.title()} User",
        "email": email or f"{role}.{ObjectId()}@claimflow.io",
        "password_hash": hash_password(password),
        "role": role,
        "supervisor_level": 1 if role == "supervisor" else None,
        "department": "Engineering",
        "is_active": True,
        "assigned_supervisor1": None,
        "assigned_supervisor2": None,
        "last_login_at": None,
        "created_at": now,
        "updated_at": now,
    }
    doc.update(extra)
    run(db["users"].insert_one(doc))
    return doc


def auth(user: dict) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user['_id'])}"}


def meal_claim(**overrides) -> dict:
    payload = {
        "category": "Travel & Lodging",
        "business_unit": "General",
        "trip": {"purpose": "Client visit", "city_class": "A"},
        "line_items": [
            {"type": "meal", "date": "2024-11-04", "amount": 300, "meal_type": "lunch", "description": "Lunch with team"},
        ],
    }
    payload.update(overrides)
    return payload
