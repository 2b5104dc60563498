import itertools

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import create_document
from main import create_app
from schemas import User
from security import create_access_token, hash_password

PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)

_counter = itertools.count(1)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        environment="development",
        jwt_secret="test-access-secret",
        refresh_token_secret="test-refresh-secret",
        upload_dir=str(tmp_path / "uploads"),
    )


@pytest.fixture
def db():
    return mongomock.MongoClient()["shop_admin_test"]


@pytest.fixture
def client(settings, db):
    app = create_app(settings, db)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db):
    def _make(role="customer", status="active", manager=None, max_managed=1, email=None, name=None):
        n = next(_counter)
        user = User(
            name=name or f"{role} {n}",
            email=email or f"{role.lower()}{n}@example.com",
            password=PASSWORD_HASH,
            role=role,
            status=status,
            managerId=manager["_id"] if manager else None,
            maxManagedUsers=max_managed,
        )
        return create_document(db, "user", user)

    return _make


@pytest.fixture
def auth_header(settings):
    def _header(user):
        return {"Authorization": f"Bearer {create_access_token(user['_id'], settings)}"}

    return _header


@pytest.fixture
def make_product(db):
    def _make(admin, name="Linen Shirt", status="active", price=25.0, **extra):
        doc = {
            "name": name,
            "image": "https://cdn.example.com/shirt.png",
            "admin": admin["_id"],
            "category": "shirts",
            "price": price,
            "description": extra.pop("description", "Breathable summer shirt"),
            "colors": ["white"],
            "sizes": ["M"],
            "status": status,
        }
        doc.update(extra)
        return create_document(db, "product", doc)

    return _make
