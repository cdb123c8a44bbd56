"""
Unit tests for stored document models.
"""

from datetime import timedelta

import pytest
from bson import ObjectId
from pydantic import ValidationError

from storage.models import BookDocument, ReviewDocument, UserDocument


def test_user_document_layout():
    doc = UserDocument(username="reader", email="reader@example.com", password="digest").to_mongo()

    assert set(doc) == {"username", "email", "password", "createdAt"}


def test_book_document_uses_stored_names():
    owner = ObjectId()
    doc = BookDocument(
        title=" Dune ",
        author="Frank Herbert",
        genre="Science Fiction",
        isbn="9780441013593",
        publication_year=1965,
        added_by=owner,
    ).to_mongo()

    assert doc["title"] == "Dune"
    assert doc["publicationYear"] == 1965
    assert doc["addedBy"] == owner
    assert "publication_year" not in doc


def test_review_document_timestamps_start_equal():
    doc = ReviewDocument(book=ObjectId(), user=ObjectId(), rating=3).to_mongo()

    assert doc["updatedAt"] == doc["createdAt"]
    assert "comment" not in doc


@pytest.mark.parametrize("rating", [0, 6])
def test_review_document_rating_bounds(rating):
    with pytest.raises(ValidationError):
        ReviewDocument(book=ObjectId(), user=ObjectId(), rating=rating)


def test_timestamps_are_timezone_aware():
    doc = ReviewDocument(book=ObjectId(), user=ObjectId(), rating=4).to_mongo()

    assert doc["createdAt"].utcoffset() == timedelta(0)
