import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

import nepshift.database
from nepshift.api import create_app
from nepshift.database import Database, get_db, load_sample_data
from nepshift.models import DocumentKind, DocumentUpload, User

HIRER_ID = "0b6f3c2e-9a41-4d8e-8f55-2c7e1d4a9b01"
VERIFIED_WORKER_ID = "5d2a8e17-3c4b-4f0a-9e61-7b8c9d0e1f02"
UNVERIFIED_WORKER_ID = "8e1f4a6b-2d3c-4b5e-a6f7-9c0d1e2f3a03"
SECOND_WORKER_ID = "c4d5e6f7-8a9b-4c0d-b1e2-f3a4b5c6d704"
ADMIN_ID = "f1e2d3c4-b5a6-4978-8a9b-0c1d2e3f4a05"
OPEN_SHIFT_ID = "a7b8c9d0-e1f2-4a3b-8c4d-5e6f7a8b9c10"


@pytest_asyncio.fixture
async def client():
    """
    Test fixture that creates an async client for the API.
    """
    app = create_app()
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as async_client:
        yield async_client


@pytest.fixture(autouse=True)
def reset_db():
    """Reset the database and reload sample data before each test."""
    nepshift.database._db = None
    db = get_db()
    db.clear()
    load_sample_data()
    yield


@pytest.fixture
def db() -> Database:
    return get_db()


@pytest.fixture
def hirer(db) -> User:
    return db.users.get(HIRER_ID)


@pytest.fixture
def worker(db) -> User:
    return db.users.get(VERIFIED_WORKER_ID)


@pytest.fixture
def second_worker(db) -> User:
    return db.users.get(SECOND_WORKER_ID)


@pytest.fixture
def unverified_worker(db) -> User:
    return db.users.get(UNVERIFIED_WORKER_ID)


@pytest.fixture
def admin(db) -> User:
    return db.users.get(ADMIN_ID)


def as_user(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


def make_upload(kind: DocumentKind, content_type: str = "image/jpeg", size: int = 2048):
    return DocumentUpload(
        filename=f"{kind}.jpg",
        content_type=content_type,
        size=size,
        reference=f"/uploads/{kind}.jpg",
    )
