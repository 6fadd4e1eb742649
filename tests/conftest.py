import pytest

from tagshelf import create_app
from tagshelf.config import TestConfig
from tagshelf.extensions import db


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def owner(client):
    """Log the test client in as the owner and return its CSRF token."""
    response = client.post("/api/v1/auth/login", json={"password": "secret"})
    assert response.status_code == 200
    return response.get_json()["csrf_token"]
