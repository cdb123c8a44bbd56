"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from review_api.auth import create_access_token
from review_api.config import APIConfig
from review_api.database import APIDatabaseService
from review_api.main import create_app
from storage.database import BOOKS_COLLECTION, REVIEWS_COLLECTION, USERS_COLLECTION


class FakeCursor:
    """Stand-in for a motor cursor that honours skip/limit like the server does."""

    def __init__(self, docs):
        self.docs = list(docs)
        self.sort_spec = None
        self.skip_value = 0
        self.limit_value = 0

    def sort(self, key_or_list, direction=None):
        self.sort_spec = key_or_list if direction is None else [(key_or_list, direction)]
        return self

    def skip(self, count):
        self.skip_value = count
        return self

    def limit(self, count):
        self.limit_value = count
        return self

    async def to_list(self, length=None):
        docs = self.docs[self.skip_value:]
        if self.limit_value:
            docs = docs[:self.limit_value]
        return docs


def make_collection():
    """Create a mock motor collection with awaitable CRUD methods."""
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=None)
    collection.count_documents = AsyncMock(return_value=0)
    collection.estimated_document_count = AsyncMock(return_value=0)
    collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id=ObjectId()))
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    collection.create_index = AsyncMock()
    collection.find = MagicMock(return_value=FakeCursor([]))
    collection.aggregate = MagicMock(return_value=FakeCursor([]))
    return collection


@pytest.fixture
def test_config():
    """Settings with a known secret and a cheap bcrypt cost."""
    return APIConfig(
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        mongodb_database="book_reviews_test",
        _env_file=None
    )


@pytest.fixture
def mock_database():
    """Create a mock motor database exposing users, books and reviews."""
    collections = {
        USERS_COLLECTION: make_collection(),
        BOOKS_COLLECTION: make_collection(),
        REVIEWS_COLLECTION: make_collection(),
    }
    database = MagicMock()
    database.__getitem__.side_effect = collections.__getitem__
    database.command = AsyncMock(return_value={"ok": 1})
    return database


@pytest.fixture
def db_service(mock_database):
    """Database service wired to the mock collections."""
    return APIDatabaseService(mock_database)


@pytest.fixture
def mock_db_service():
    """Mock database service for route tests."""
    return AsyncMock(spec=APIDatabaseService)


@pytest.fixture
def app(test_config, mock_db_service):
    """Application with the mock service in place of MongoDB."""
    application = create_app(test_config)
    application.state.db_service = mock_db_service
    return application


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def user_id():
    return ObjectId()


@pytest.fixture
def auth_headers(test_config, user_id):
    """Authorization header carrying a valid token for ``user_id``."""
    token = create_access_token(user_id, test_config)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def sample_user(user_id):
    """Stored user document."""
    return {
        "_id": user_id,
        "username": "reader",
        "email": "reader@example.com",
        "password": "$2b$04$notarealhashnotarealhashnotarealhashnotarealhashnot",
        "createdAt": datetime(2025, 5, 1, 12, 0, 0),
    }


@pytest.fixture
def sample_book(user_id):
    """Stored book document."""
    return {
        "_id": ObjectId(),
        "title": "The Left Hand of Darkness",
        "author": "Ursula K. Le Guin",
        "genre": "Science Fiction",
        "isbn": "9780441478125",
        "publicationYear": 1969,
        "addedBy": user_id,
        "createdAt": datetime(2025, 5, 2, 9, 30, 0),
    }


@pytest.fixture
def sample_review(sample_book, user_id):
    """Stored review document."""
    created = datetime(2025, 5, 3, 18, 15, 0)
    return {
        "_id": ObjectId(),
        "book": sample_book["_id"],
        "user": user_id,
        "rating": 4,
        "comment": "Quietly devastating.",
        "createdAt": created,
        "updatedAt": created,
    }


@pytest.fixture
def make_cursor():
    """Factory for fake motor cursors."""
    return FakeCursor


@pytest.fixture
def make_books():
    """Factory building ``count`` stored book documents, newest first."""

    def build(count, owner_id):
        start = datetime(2025, 1, 1)
        return [
            {
                "_id": ObjectId(),
                "title": f"Book {index:02d}",
                "author": "Author",
                "genre": "Genre",
                "isbn": f"isbn-{index:04d}",
                "publicationYear": 2000 + index,
                "addedBy": owner_id,
                "createdAt": start + timedelta(days=count - index),
            }
            for index in range(count)
        ]

    return build
