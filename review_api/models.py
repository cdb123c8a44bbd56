"""
API models and schemas for the FastAPI application.

Request bodies are validated before any database call. Response models
serialize with camelCase keys (``publicationYear``, ``currentPage`` ...).
"""

from datetime import datetime
from typing import Annotated, Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


class APIModel(BaseModel):
    """Base model for JSON exchanged with clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Requests

class SignupRequest(APIModel):
    """Body of POST /api/auth/signup."""
    username: NonEmptyStr = Field(..., description="Unique user name")
    email: EmailStr = Field(..., description="Unique email address")
    password: str = Field(..., min_length=6, description="Plain-text password, hashed before storage")

    @field_validator("password")
    @classmethod
    def validate_password_length(cls, v):
        if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return v


class LoginRequest(APIModel):
    """Body of POST /api/auth/login."""
    email: EmailStr = Field(..., description="Registered email address")
    password: str = Field(..., min_length=1, description="Password")


class BookCreate(APIModel):
    """Body of POST /api/books."""
    title: NonEmptyStr = Field(..., description="Book title")
    author: NonEmptyStr = Field(..., description="Book author")
    genre: NonEmptyStr = Field(..., description="Book genre")
    isbn: NonEmptyStr = Field(..., description="ISBN, unique across the catalog")
    publication_year: int = Field(..., description="Year of publication")


class ReviewCreate(APIModel):
    """Body of POST /api/books/{bookId}/reviews."""
    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5")
    comment: Optional[str] = Field(None, description="Optional comment")

    @field_validator("comment")
    @classmethod
    def strip_comment(cls, v):
        return v.strip() if v is not None else v


class ReviewUpdate(APIModel):
    """Body of PUT /api/reviews/{id}. Omitted fields keep their stored value."""
    rating: Optional[int] = Field(None, ge=1, le=5, description="New rating from 1 to 5")
    comment: Optional[str] = Field(None, description="New comment")

    @field_validator("comment")
    @classmethod
    def strip_comment(cls, v):
        return v.strip() if v is not None else v

    def changes(self) -> dict:
        """Stored field values for the fields the client actually sent."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


# Responses

class UserSummary(APIModel):
    """A user expanded inside another record. Only the requested fields are set."""
    id: str = Field(..., description="User identifier")
    username: str = Field(..., description="User name")
    email: Optional[str] = Field(None, description="Email address")
    created_at: Optional[datetime] = Field(None, description="Signup timestamp")


class AuthResponse(APIModel):
    """Response model for signup and login."""
    id: str = Field(..., description="User identifier")
    username: str = Field(..., description="User name")
    email: str = Field(..., description="Email address")
    token: str = Field(..., description="Bearer token, valid for 30 days")


class BookSummary(APIModel):
    """A book expanded inside a review."""
    id: str = Field(..., description="Book identifier")
    title: str = Field(..., description="Book title")


class BookResponse(APIModel):
    """Book response model for API."""
    id: str = Field(..., description="Unique book identifier")
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Book author")
    genre: str = Field(..., description="Book genre")
    isbn: str = Field(..., description="ISBN")
    publication_year: int = Field(..., description="Year of publication")
    added_by: Optional[UserSummary] = Field(None, description="User who added the book")
    created_at: datetime = Field(..., description="Creation timestamp")


class BookListResponse(APIModel):
    """Response model for book list with pagination."""
    current_page: int = Field(..., description="Current page number")
    total_pages: int = Field(..., description="Total number of pages")
    total_books: int = Field(..., description="Total number of matching books")
    books: List[BookResponse] = Field(..., description="Books on this page")


class ReviewResponse(APIModel):
    """Review response model for API."""
    id: str = Field(..., description="Unique review identifier")
    book: Union[BookSummary, str] = Field(..., description="Reviewed book, or its identifier")
    user: Optional[UserSummary] = Field(None, description="Reviewer")
    rating: int = Field(..., description="Rating from 1 to 5")
    comment: Optional[str] = Field(None, description="Review comment")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class ReviewPage(APIModel):
    """One page of a book's reviews."""
    current_page: int = Field(..., description="Current review page")
    total_pages: int = Field(..., description="Total number of review pages")
    total_reviews: int = Field(..., description="Total number of reviews for the book")
    data: List[ReviewResponse] = Field(..., description="Reviews on this page")


class BookDetailResponse(APIModel):
    """Book with its average rating and a page of reviews."""
    book: BookResponse
    average_rating: float = Field(..., description="Mean rating rounded to one decimal, 0 without reviews")
    reviews: ReviewPage


class MessageResponse(BaseModel):
    """Plain message response, also used for errors."""
    message: str = Field(..., description="Human readable message")


class FieldError(BaseModel):
    """One failed field check."""
    type: str = Field("field", description="Kind of check that failed")
    value: Any = Field(None, description="Submitted value")
    msg: str = Field(..., description="Error message")
    path: str = Field(..., description="Dotted path of the field")
    location: str = Field(..., description="body, query or path")


class ValidationErrorResponse(BaseModel):
    """Error response for request validation failures."""
    errors: List[FieldError]


class HealthResponse(APIModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
