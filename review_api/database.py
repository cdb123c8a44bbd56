"""
Database service layer for the FastAPI application.

Every public method translates one API operation into a short, fixed
sequence of MongoDB queries and shapes the result into a response model.
"""

import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

import structlog
from bson import ObjectId
from fastapi import HTTPException, Request, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from review_api.errors import APIError, BadRequestError, ConflictError, ForbiddenError, NotFoundError
from review_api.models import (
    BookCreate, BookDetailResponse, BookListResponse, BookResponse, BookSummary,
    ReviewCreate, ReviewPage, ReviewResponse, ReviewUpdate, UserSummary
)
from review_api.pagination import count_pages, skip_for
from storage.database import BOOKS_COLLECTION, REVIEWS_COLLECTION, USERS_COLLECTION
from storage.models import BookDocument, ReviewDocument, UserDocument, utcnow

logger = structlog.get_logger(__name__)

OWNER_DETAIL_FIELDS = ("username", "email", "createdAt")
OWNER_FIELDS = ("username", "email")
USERNAME_FIELDS = ("username",)


def round_rating(value: float) -> float:
    """Round a mean rating half-up to one decimal place (4.25 -> 4.3)."""
    return float(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def contains_pattern(text: str) -> Dict[str, str]:
    """Case-insensitive substring match on literal user input."""
    return {"$regex": re.escape(text), "$options": "i"}


def duplicate_key_field(error: DuplicateKeyError) -> Optional[str]:
    """Name of the first field of the unique index that rejected an insert."""
    key_pattern = (error.details or {}).get("keyPattern") or {}
    if key_pattern:
        return next(iter(key_pattern))
    match = re.search(r"index: (\w+?)_-?1", str(error))
    return match.group(1) if match else None


def _user_summary(user_doc: Dict[str, Any]) -> UserSummary:
    return UserSummary(
        id=str(user_doc["_id"]),
        username=user_doc["username"],
        email=user_doc.get("email"),
        created_at=user_doc.get("createdAt"),
    )


def _book_response(book_doc: Dict[str, Any], owner: Optional[UserSummary]) -> BookResponse:
    return BookResponse(
        id=str(book_doc["_id"]),
        title=book_doc["title"],
        author=book_doc["author"],
        genre=book_doc["genre"],
        isbn=book_doc["isbn"],
        publication_year=book_doc["publicationYear"],
        added_by=owner,
        created_at=book_doc["createdAt"],
    )


def _review_response(
    review_doc: Dict[str, Any],
    reviewer: Optional[UserSummary],
    book: Optional[BookSummary] = None
) -> ReviewResponse:
    return ReviewResponse(
        id=str(review_doc["_id"]),
        book=book if book is not None else str(review_doc["book"]),
        user=reviewer,
        rating=review_doc["rating"],
        comment=review_doc.get("comment"),
        created_at=review_doc["createdAt"],
        updated_at=review_doc.get("updatedAt", review_doc["createdAt"]),
    )


class APIDatabaseService:
    """Database service for API operations."""

    def __init__(self, database: AsyncIOMotorDatabase):
        self.database = database
        self.users_collection = database[USERS_COLLECTION]
        self.books_collection = database[BOOKS_COLLECTION]
        self.reviews_collection = database[REVIEWS_COLLECTION]

    @staticmethod
    def _object_id(value: str, not_found_message: str) -> ObjectId:
        """Parse a path id; malformed ids are reported like missing records."""
        if not ObjectId.is_valid(value):
            raise NotFoundError(not_found_message)
        return ObjectId(value)

    async def _load_users(
        self,
        user_ids: Iterable[Optional[ObjectId]],
        fields: Iterable[str]
    ) -> Dict[ObjectId, UserSummary]:
        """Fetch the users referenced by a page of records in one query."""
        ids = list({user_id for user_id in user_ids if user_id is not None})
        if not ids:
            return {}

        projection = {field: 1 for field in fields}
        cursor = self.users_collection.find({"_id": {"$in": ids}}, projection)
        user_docs = await cursor.to_list(length=len(ids))
        return {user_doc["_id"]: _user_summary(user_doc) for user_doc in user_docs}

    # Users

    async def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return await self.users_collection.find_one({"email": email})

    async def get_user_by_username(self, username: str) -> Optional[Dict[str, Any]]:
        return await self.users_collection.find_one({"username": username})

    async def create_user(self, user: UserDocument) -> ObjectId:
        """
        Insert a new user.

        Args:
            user: UserDocument with an already hashed password

        Returns:
            The id assigned to the user

        Raises:
            ConflictError: If the email or username is already taken
        """
        try:
            result = await self.users_collection.insert_one(user.to_mongo())
        except DuplicateKeyError as e:
            field = "username" if duplicate_key_field(e) == "username" else "email"
            logger.warning("Duplicate user rejected by index", field=field)
            raise ConflictError(f"User already exists with this {field}")

        return result.inserted_id

    # Books

    async def add_book(self, payload: BookCreate, owner_id: ObjectId) -> BookResponse:
        """
        Add a book to the catalog on behalf of ``owner_id``.

        Raises:
            ConflictError: If a book with the same ISBN already exists
        """
        book = BookDocument(
            title=payload.title,
            author=payload.author,
            genre=payload.genre,
            isbn=payload.isbn,
            publication_year=payload.publication_year,
            added_by=owner_id,
        )
        book_doc = book.to_mongo()

        try:
            result = await self.books_collection.insert_one(book_doc)
        except DuplicateKeyError:
            logger.warning("Duplicate ISBN rejected", isbn=book.isbn)
            raise ConflictError("Book with this ISBN already exists.")
        except Exception as e:
            logger.error("Failed to add book", isbn=book.isbn, error=str(e))
            raise

        book_doc["_id"] = result.inserted_id
        owners = await self._load_users([owner_id], OWNER_DETAIL_FIELDS)

        logger.info("Book added", book_id=str(result.inserted_id), isbn=book.isbn, added_by=str(owner_id))
        return _book_response(book_doc, owners.get(owner_id))

    async def _book_page(
        self,
        filter_query: Dict[str, Any],
        sort_query: List,
        page: int,
        limit: int,
        owner_fields: Iterable[str]
    ) -> BookListResponse:
        total = await self.books_collection.count_documents(filter_query)

        cursor = (
            self.books_collection.find(filter_query)
            .sort(sort_query)
            .skip(skip_for(page, limit))
            .limit(limit)
        )
        book_docs = await cursor.to_list(length=limit)

        owners = await self._load_users((doc.get("addedBy") for doc in book_docs), owner_fields)
        books = [_book_response(doc, owners.get(doc.get("addedBy"))) for doc in book_docs]

        return BookListResponse(
            current_page=page,
            total_pages=count_pages(total, limit),
            total_books=total,
            books=books,
        )

    async def get_books(
        self,
        page: int,
        limit: int,
        author: Optional[str] = None,
        genre: Optional[str] = None
    ) -> BookListResponse:
        """
        Get books with optional author/genre filters, newest first.

        Args:
            page: Page number (starts from 1)
            limit: Books per page
            author: Case-insensitive substring of the author
            genre: Case-insensitive substring of the genre

        Returns:
            BookListResponse with paginated results
        """
        try:
            filter_query = {}
            if author:
                filter_query["author"] = contains_pattern(author)
            if genre:
                filter_query["genre"] = contains_pattern(genre)

            return await self._book_page(
                filter_query, [("createdAt", DESCENDING)], page, limit, OWNER_FIELDS
            )

        except Exception as e:
            logger.error("Failed to get books", error=str(e), page=page, limit=limit)
            raise

    async def search_books(self, query: Optional[str], page: int, limit: int) -> BookListResponse:
        """
        Search titles and authors, sorted alphabetically by title.

        An empty page is reported as NotFoundError rather than an empty list.
        """
        if not query:
            raise BadRequestError("Search query is required")

        pattern = contains_pattern(query)
        result = await self._book_page(
            {"$or": [{"title": pattern}, {"author": pattern}]},
            [("title", ASCENDING)],
            page,
            limit,
            USERNAME_FIELDS,
        )

        if not result.books:
            raise NotFoundError("No books found matching your query.")
        return result

    async def get_average_rating(self, book_id: ObjectId) -> float:
        """Mean rating of a book rounded to one decimal; 0 when it has no reviews."""
        pipeline = [
            {"$match": {"book": book_id}},
            {"$group": {"_id": "$book", "averageRating": {"$avg": "$rating"}}},
        ]
        cursor = self.reviews_collection.aggregate(pipeline)
        stats = await cursor.to_list(length=1)

        if not stats or stats[0].get("averageRating") is None:
            return 0
        return round_rating(stats[0]["averageRating"])

    async def get_book_details(self, book_id: str, review_page: int, review_limit: int) -> BookDetailResponse:
        """
        Get a book with its average rating and one page of its reviews.

        Args:
            book_id: Book identifier
            review_page: Review page number (starts from 1)
            review_limit: Reviews per page

        Raises:
            NotFoundError: If the id is malformed or no book matches
        """
        book_oid = self._object_id(book_id, "Book not found")

        book_doc = await self.books_collection.find_one({"_id": book_oid})
        if not book_doc:
            raise NotFoundError("Book not found")

        review_filter = {"book": book_oid}
        total_reviews = await self.reviews_collection.count_documents(review_filter)
        cursor = (
            self.reviews_collection.find(review_filter)
            .sort("createdAt", DESCENDING)
            .skip(skip_for(review_page, review_limit))
            .limit(review_limit)
        )
        review_docs = await cursor.to_list(length=review_limit)

        reviewers = await self._load_users((doc["user"] for doc in review_docs), USERNAME_FIELDS)
        owners = await self._load_users([book_doc.get("addedBy")], OWNER_FIELDS)
        average_rating = await self.get_average_rating(book_oid)

        return BookDetailResponse(
            book=_book_response(book_doc, owners.get(book_doc.get("addedBy"))),
            average_rating=average_rating,
            reviews=ReviewPage(
                current_page=review_page,
                total_pages=count_pages(total_reviews, review_limit),
                total_reviews=total_reviews,
                data=[_review_response(doc, reviewers.get(doc["user"])) for doc in review_docs],
            ),
        )

    # Reviews

    async def add_review(self, book_id: str, payload: ReviewCreate, reviewer_id: ObjectId) -> ReviewResponse:
        """
        Submit a review of ``book_id`` by ``reviewer_id``.

        Raises:
            NotFoundError: If the book does not exist
            ConflictError: If the reviewer already reviewed this book
        """
        book_oid = self._object_id(book_id, "Book not found")

        book_doc = await self.books_collection.find_one({"_id": book_oid}, {"_id": 1})
        if not book_doc:
            raise NotFoundError("Book not found")

        existing = await self.reviews_collection.find_one({"book": book_oid, "user": reviewer_id}, {"_id": 1})
        if existing:
            raise ConflictError("You have already reviewed this book")

        review = ReviewDocument(
            book=book_oid,
            user=reviewer_id,
            rating=payload.rating,
            comment=payload.comment,
        )
        review_doc = review.to_mongo()

        try:
            result = await self.reviews_collection.insert_one(review_doc)
        except DuplicateKeyError:
            # lost a race against a concurrent submission
            logger.warning("Duplicate review rejected by index", book_id=book_id, user_id=str(reviewer_id))
            raise ConflictError("You have already reviewed this book.")

        review_doc["_id"] = result.inserted_id
        reviewers = await self._load_users([reviewer_id], USERNAME_FIELDS)

        logger.info("Review added", review_id=str(result.inserted_id), book_id=book_id, rating=review.rating)
        return _review_response(review_doc, reviewers.get(reviewer_id))

    async def _owned_review(self, review_id: str, caller_id: ObjectId, action: str) -> Dict[str, Any]:
        """Load a review and make sure ``caller_id`` wrote it."""
        review_oid = self._object_id(review_id, "Review not found")

        review_doc = await self.reviews_collection.find_one({"_id": review_oid})
        if not review_doc:
            raise NotFoundError("Review not found")

        if review_doc["user"] != caller_id:
            logger.warning(
                "Review ownership check failed",
                review_id=review_id, caller_id=str(caller_id), action=action
            )
            raise ForbiddenError(f"User not authorized to {action} this review")

        return review_doc

    async def update_review(self, review_id: str, payload: ReviewUpdate, caller_id: ObjectId) -> ReviewResponse:
        """
        Update rating and/or comment of the caller's own review.

        Raises:
            NotFoundError: If the review does not exist
            ForbiddenError: If the caller is not the author
        """
        try:
            review_doc = await self._owned_review(review_id, caller_id, "update")

            changes = payload.changes()
            changes["updatedAt"] = utcnow()

            updated = await self.reviews_collection.find_one_and_update(
                {"_id": review_doc["_id"]},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
            if updated is None:
                raise NotFoundError("Review not found")

            reviewers = await self._load_users([updated["user"]], USERNAME_FIELDS)
            book_doc = await self.books_collection.find_one({"_id": updated["book"]}, {"title": 1})
            book = BookSummary(id=str(book_doc["_id"]), title=book_doc["title"]) if book_doc else None

            logger.info("Review updated", review_id=review_id, fields=sorted(payload.changes()))
            return _review_response(updated, reviewers.get(updated["user"]), book)

        except APIError:
            raise
        except Exception as e:
            logger.error("Failed to update review", review_id=review_id, error=str(e))
            raise

    async def delete_review(self, review_id: str, caller_id: ObjectId) -> None:
        """
        Delete the caller's own review.

        Raises:
            NotFoundError: If the review does not exist
            ForbiddenError: If the caller is not the author
        """
        review_doc = await self._owned_review(review_id, caller_id, "delete")
        await self.reviews_collection.delete_one({"_id": review_doc["_id"]})
        logger.info("Review deleted", review_id=review_id, user_id=str(caller_id))

    async def health_check(self) -> Dict:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")

            return {
                "status": "healthy",
                "books_count": await self.books_collection.estimated_document_count(),
                "reviews_count": await self.reviews_collection.estimated_document_count(),
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }


def get_db_service(request: Request) -> APIDatabaseService:
    """FastAPI dependency returning the service created at startup."""
    db_service = getattr(request.app.state, "db_service", None)
    if db_service is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database service not available"
        )
    return db_service
