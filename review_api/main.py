"""
FastAPI main application for the Book Review Catalog API.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from review_api.auth import AuthService, CurrentUser, get_auth_service, get_current_user
from review_api.config import APIConfig, get_config
from review_api.database import APIDatabaseService, get_db_service
from review_api.errors import APIError, UnauthorizedError
from review_api.models import (
    AuthResponse, BookCreate, BookDetailResponse, BookListResponse, BookResponse,
    FieldError, HealthResponse, LoginRequest, MessageResponse, ReviewCreate,
    ReviewResponse, ReviewUpdate, SignupRequest, ValidationErrorResponse
)
from review_api.pagination import DEFAULT_LIMIT, DEFAULT_PAGE, DEFAULT_REVIEW_LIMIT, parse_page_param
from storage.database import MongoDBManager
from utilities.logger import setup_logging

# Setup logging
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    config: APIConfig = app.state.config

    # Startup
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )
    logger.info("Starting Book Review Catalog API", version=config.api_version)

    db_manager = MongoDBManager(config.mongodb_url, config.mongodb_database)
    try:
        await db_manager.connect()
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise

    app.state.db_manager = db_manager
    app.state.db_service = APIDatabaseService(db_manager.database)

    yield

    # Shutdown
    logger.info("Shutting down Book Review Catalog API")
    app.state.db_service = None
    await db_manager.disconnect()


# Exception handlers
async def api_error_handler(request: Request, exc: APIError):
    """Handle domain errors raised by the services."""
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=MessageResponse(message=exc.message).model_dump(),
        headers=headers
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report every failed field check of a request with a 400."""
    errors = []
    for error in exc.errors():
        location, *path = error["loc"] or ("body",)
        errors.append(FieldError(
            value=error.get("input"),
            msg=error["msg"],
            path=".".join(str(part) for part in path),
            location=str(location),
        ))

    logger.debug("Request validation failed", path=request.url.path, error_count=len(errors))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder(ValidationErrorResponse(errors=errors))
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=MessageResponse(message=str(exc.detail)).model_dump(),
        headers=getattr(exc, "headers", None)
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions. Details stay in the server log."""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=MessageResponse(message="Server Error").model_dump()
    )


router = APIRouter()


# Health check endpoint (no authentication required)
@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint."""
    config: APIConfig = request.app.state.config
    db_service: Optional[APIDatabaseService] = getattr(request.app.state, "db_service", None)

    try:
        db_status = "unavailable"
        if db_service:
            health_info = await db_service.health_check()
            db_status = health_info.get("status", "unknown")

        return HealthResponse(
            status="healthy" if db_status == "healthy" else "degraded",
            timestamp=datetime.now(timezone.utc),
            version=config.api_version,
            database_status=db_status
        )
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return HealthResponse(
            status="degraded",
            timestamp=datetime.now(timezone.utc),
            version=config.api_version,
            database_status="unhealthy"
        )


# Auth endpoints
@router.post(
    "/api/auth/signup",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Auth"]
)
async def signup(payload: SignupRequest, auth_service: AuthService = Depends(get_auth_service)):
    """
    Register a new user and return a bearer token.

    - **username**: Unique user name
    - **email**: Unique email address
    - **password**: At least 6 characters
    """
    return await auth_service.register(payload)


@router.post("/api/auth/login", response_model=AuthResponse, tags=["Auth"])
async def login(payload: LoginRequest, auth_service: AuthService = Depends(get_auth_service)):
    """Authenticate with email and password and return a bearer token."""
    return await auth_service.login(payload)


# Books endpoints
@router.post(
    "/api/books",
    response_model=BookResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    tags=["Books"]
)
async def add_book(
    payload: BookCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """
    Add a new book to the catalog.

    - **title**, **author**, **genre**, **isbn**: Required, non-empty
    - **publicationYear**: Required number
    """
    return await db_service.add_book(payload, current_user.id)


@router.get(
    "/api/books",
    response_model=BookListResponse,
    response_model_exclude_none=True,
    tags=["Books"]
)
async def get_books(
    page: Optional[str] = Query(None, description="Page number (starts from 1)"),
    limit: Optional[str] = Query(None, description="Books per page (default 10)"),
    author: Optional[str] = Query(None, description="Filter by author (case-insensitive, partial match)"),
    genre: Optional[str] = Query(None, description="Filter by genre (case-insensitive, partial match)"),
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """Get books, newest first, with pagination and optional filters."""
    return await db_service.get_books(
        page=parse_page_param(page, DEFAULT_PAGE),
        limit=parse_page_param(limit, DEFAULT_LIMIT),
        author=author,
        genre=genre
    )


@router.get(
    "/api/books/search",
    response_model=BookListResponse,
    response_model_exclude_none=True,
    tags=["Books"]
)
async def search_books(
    query: Optional[str] = Query(None, description="Search term for title or author (case-insensitive, partial match)"),
    page: Optional[str] = Query(None, description="Page number (starts from 1)"),
    limit: Optional[str] = Query(None, description="Books per page (default 10)"),
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """Search books by title or author, sorted by title."""
    return await db_service.search_books(
        query,
        page=parse_page_param(page, DEFAULT_PAGE),
        limit=parse_page_param(limit, DEFAULT_LIMIT)
    )


@router.get(
    "/api/books/{book_id}",
    response_model=BookDetailResponse,
    response_model_exclude_none=True,
    tags=["Books"]
)
async def get_book(
    book_id: str,
    review_page: Optional[str] = Query(None, alias="reviewPage", description="Review page number"),
    review_limit: Optional[str] = Query(None, alias="reviewLimit", description="Reviews per page (default 5)"),
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """Get a book with its average rating and a page of its reviews."""
    return await db_service.get_book_details(
        book_id,
        review_page=parse_page_param(review_page, DEFAULT_PAGE),
        review_limit=parse_page_param(review_limit, DEFAULT_REVIEW_LIMIT)
    )


# Reviews endpoints
@router.post(
    "/api/books/{book_id}/reviews",
    response_model=ReviewResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    tags=["Reviews"]
)
async def add_review(
    book_id: str,
    payload: ReviewCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """
    Submit a review for a book. One review per user per book.

    - **rating**: Required, 1 to 5
    - **comment**: Optional
    """
    return await db_service.add_review(book_id, payload, current_user.id)


@router.put(
    "/api/reviews/{review_id}",
    response_model=ReviewResponse,
    response_model_exclude_none=True,
    tags=["Reviews"]
)
async def update_review(
    review_id: str,
    payload: ReviewUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """Update the rating and/or comment of your own review."""
    return await db_service.update_review(review_id, payload, current_user.id)


@router.delete("/api/reviews/{review_id}", response_model=MessageResponse, tags=["Reviews"])
async def delete_review(
    review_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """Delete your own review."""
    await db_service.delete_review(review_id, current_user.id)
    return MessageResponse(message="Review removed successfully")


def create_app(config: Optional[APIConfig] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Settings to run with; read from the environment when omitted

    Returns:
        Configured application. The database service is attached by the lifespan.
    """
    config = config or get_config()

    app = FastAPI(
        title=config.api_title,
        description=config.api_description + """

## Features

* **Accounts**: Sign up and log in to receive a bearer token
* **Books**: Add, browse, filter and search books
* **Reviews**: One review per user per book, with average ratings
* **Pagination**: `page`/`limit` on listings, `reviewPage`/`reviewLimit` on book details

## Authentication

Adding books and writing reviews require a token. Include it in the Authorization header:

```
Authorization: Bearer your_token_here
```

Tokens expire after 30 days.
""",
        version=config.api_version,
        docs_url="/api-docs",
        openapi_url="/api-docs/openapi.json",
        lifespan=lifespan
    )
    app.state.config = config
    app.state.db_service = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=config.cors_allow_credentials,
        allow_methods=config.cors_allow_methods,
        allow_headers=config.cors_allow_headers,
    )

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "review_api.main:app",
        host=app.state.config.host,
        port=app.state.config.port,
        reload=app.state.config.debug,
        log_level="info"
    )
