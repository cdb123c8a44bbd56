"""
Unit tests for request models and settings.
"""

import pytest
from pydantic import ValidationError

from review_api.config import APIConfig
from review_api.models import BookCreate, ReviewCreate, ReviewUpdate, SignupRequest


class TestSignupRequest:
    """Test cases for signup validation."""

    def test_valid(self):
        signup = SignupRequest(username="  reader ", email="reader@example.com", password="secret1")
        assert signup.username == "reader"

    def test_short_password(self):
        with pytest.raises(ValidationError) as exc_info:
            SignupRequest(username="reader", email="reader@example.com", password="12345")
        assert "at least 6 characters" in str(exc_info.value)

    def test_password_over_bcrypt_limit(self):
        with pytest.raises(ValidationError) as exc_info:
            SignupRequest(username="reader", email="reader@example.com", password="é" * 37)
        assert "at most 72 bytes" in str(exc_info.value)

    def test_invalid_email(self):
        with pytest.raises(ValidationError):
            SignupRequest(username="reader", email="reader", password="secret1")


class TestBookCreate:
    """Test cases for book validation."""

    def test_accepts_camel_case(self):
        book = BookCreate(
            title="Dune", author="Frank Herbert", genre="SF", isbn="9780441013593", publicationYear="1965"
        )
        assert book.publication_year == 1965

    def test_whitespace_only_title(self):
        with pytest.raises(ValidationError):
            BookCreate(title="   ", author="A", genre="G", isbn="1", publicationYear=2000)


class TestReviewModels:
    """Test cases for review validation."""

    @pytest.mark.parametrize("rating", [0, 6, 4.5])
    def test_rating_out_of_range(self, rating):
        with pytest.raises(ValidationError):
            ReviewCreate(rating=rating)

    def test_comment_stripped(self):
        assert ReviewCreate(rating=5, comment="  great  ").comment == "great"

    def test_update_changes_only_sent_fields(self):
        assert ReviewUpdate.model_validate({"comment": "meh"}).changes() == {"comment": "meh"}
        assert ReviewUpdate.model_validate({}).changes() == {}

    def test_update_rating_range(self):
        with pytest.raises(ValidationError):
            ReviewUpdate(rating=9)


class TestAPIConfig:
    """Test cases for settings validation."""

    def test_defaults(self):
        config = APIConfig(_env_file=None)

        assert config.mongodb_database == "book_reviews"
        assert config.token_expire_days == 30
        assert config.bcrypt_rounds == 10

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET", "from-env")
        monkeypatch.setenv("PORT", "9000")

        config = APIConfig(_env_file=None)

        assert config.jwt_secret == "from-env"
        assert config.port == 9000

    def test_log_level_normalized(self):
        assert APIConfig(log_level="debug", _env_file=None).log_level == "DEBUG"

    @pytest.mark.parametrize("field,value", [
        ("bcrypt_rounds", 3),
        ("token_expire_days", 0),
        ("log_level", "LOUD"),
        ("log_format", "xml"),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            APIConfig(**{field: value, "_env_file": None})
