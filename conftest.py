import pytest
from fastapi.testclient import TestClient

from lendingapi.config import settings
from lendingapi.main import app
from lendingapi.memory import memory_stores, new_id
from lendingapi.models import BookModel, CurrentUser, UserInDB
from lendingapi.storage import get_stores


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)


@pytest.fixture(scope="function")
def stores():
    return memory_stores(
        [
            BookModel(title="Dune", author="Frank Herbert", quantity=4),
            BookModel(title="Moby Dick", author="Herman Melville", quantity=1),
            BookModel(title="To Kill a Mockingbird", author="Harper Lee", quantity=0),
        ]
    )


@pytest.fixture(scope="function")
def books(stores):
    return {book.title: book for book in stores.books.books.values()}


@pytest.fixture(scope="function")
def client(stores):
    app.state.testing = True
    app.dependency_overrides[get_stores] = lambda: stores
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    app.state.testing = False


def register_and_login(client, username="reader", password="secret123"):
    response = client.post(
        "/api/register", json={"username": username, "password": password}
    )
    assert response.status_code == 201
    response = client.post(
        "/api/login", json={"username": username, "password": password}
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture(scope="function")
def auth_headers(client):
    return register_and_login(client)


@pytest.fixture(scope="function")
def other_auth_headers(client):
    return register_and_login(client, username="other", password="hunter222")


def _add_user(stores, username):
    user = UserInDB(_id=new_id(), username=username, password_hash="not-a-hash")
    stores.users.users[user.id] = user
    return CurrentUser(id=user.id, username=user.username)


@pytest.fixture(scope="function")
def reader(stores):
    return _add_user(stores, "reader")


@pytest.fixture(scope="function")
def other_reader(stores):
    return _add_user(stores, "other")
