"""
FastAPI main application for the Book Catalog API.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.auth import get_current_user
from api.config import config as api_config
from api.database import APIDatabaseService
from api.models import APIResponse, ErrorResponse, HealthResponse
from catalog.database import MongoDBManager
from catalog.exceptions import (
    CatalogError, DuplicateBook, DuplicateReview, NotFound, PermissionDenied
)
from catalog.models import BookCreate, ReviewCreate
from utilities.config import config
from utilities.logger import setup_logging

# Setup logging
logger = structlog.get_logger(__name__)

# Global database service
db_service: APIDatabaseService = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger.info("Starting Book Catalog API")

    global db_service
    db_manager = MongoDBManager(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database,
        books_collection=config.books_collection,
        reviews_collection=config.reviews_collection,
        counters_collection=config.counters_collection,
    )
    try:
        await db_manager.connect()
        db_service = APIDatabaseService(db_manager.database)
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise

    yield

    logger.info("Shutting down Book Catalog API")
    await db_manager.disconnect()


# Create FastAPI application
app = FastAPI(
    title=api_config.api_title,
    description="""
    A JSON API for a book catalog with per-user reviews.

    ## Features

    * **Books**: Add, list, filter and search books
    * **Sequential IDs**: Every book gets a short numeric ID; books can be fetched by
      that ID or by their internal ID
    * **Reviews**: One review per user per book; average rating and review count are
      kept up to date on every change

    ## Authentication

    Write endpoints require a bearer token:

    ```
    Authorization: Bearer your_token_here
    ```
    """,
    version=api_config.api_version,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=api_config.cors_origins,
    allow_credentials=api_config.cors_allow_credentials,
    allow_methods=api_config.cors_allow_methods,
    allow_headers=api_config.cors_allow_headers,
)


def _error_response(status_code: int, error: str, detail=None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=error,
            detail=detail,
            status_code=status_code
        ).model_dump(),
        headers=headers
    )


# Exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Handle HTTP exceptions."""
    return _error_response(exc.status_code, exc.detail, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    """Report request validation errors as 400."""
    errors = {
        ".".join(str(part) for part in err["loc"] if part != "body"): err["msg"]
        for err in exc.errors()
    }
    return _error_response(status.HTTP_400_BAD_REQUEST, "Validation errors", detail=errors)


@app.exception_handler(CatalogError)
async def catalog_exception_handler(request, exc: CatalogError):
    """Map catalog engine errors to HTTP status codes."""
    if isinstance(exc, NotFound):
        return _error_response(status.HTTP_404_NOT_FOUND, str(exc))
    if isinstance(exc, (DuplicateReview, DuplicateBook)):
        return _error_response(status.HTTP_400_BAD_REQUEST, str(exc))
    if isinstance(exc, PermissionDenied):
        return _error_response(status.HTTP_403_FORBIDDEN, str(exc))

    # AllocationFailure, AggregateWriteFailure
    logger.error(
        "Catalog operation failed",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Server Error",
        detail=str(exc) if api_config.debug else None
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        detail=str(exc) if api_config.debug else None
    )


def get_db_service() -> APIDatabaseService:
    """Return the database service, failing with 500 before startup completes."""
    if not db_service:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database service not available"
        )
    return db_service


def _page_size(size: Optional[int], default: int) -> int:
    return default if size is None else size


# Health check endpoint (no authentication required)
@app.get("/health", response_model=HealthResponse, tags=["Health"])
@app.get("/api/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    try:
        db_status = "unavailable"
        if db_service:
            health_info = await db_service.health_check()
            db_status = health_info.get("status", "unknown")

        return HealthResponse(
            status="healthy" if db_status == "healthy" else "degraded",
            timestamp=datetime.utcnow(),
            version=api_config.api_version,
            database_status=db_status
        )
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return HealthResponse(
            status="unhealthy",
            timestamp=datetime.utcnow(),
            version=api_config.api_version,
            database_status="unhealthy"
        )


# Books endpoints
@app.get("/api/books", tags=["Books"])
async def get_books(
    author: Optional[str] = None,
    genre: Optional[str] = None,
    page: int = Query(0, ge=0),
    size: Optional[int] = Query(None, ge=1, le=api_config.max_page_size),
):
    """
    List books ordered by sequential ID.

    - **author**: Filter by author (case-insensitive substring)
    - **genre**: Filter by genre (case-insensitive substring)
    - **page**: Page index (starts from 0)
    - **size**: Items per page
    """
    service = get_db_service()
    result = await service.get_books(
        author=author,
        genre=genre,
        page=page,
        size=_page_size(size, api_config.default_page_size)
    )
    return APIResponse(data=result.model_dump(by_alias=True)).model_dump()


@app.get("/api/books/search", tags=["Books"])
async def search_books(
    q: Optional[str] = None,
    page: int = Query(0, ge=0),
    size: Optional[int] = Query(None, ge=1, le=api_config.max_page_size),
):
    """
    Search books by title or author.

    - **q**: Search text (required)
    - **page**: Page index (starts from 0)
    - **size**: Items per page
    """
    if not q or not q.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Search query is required"
        )

    service = get_db_service()
    result = await service.search_books(
        q,
        page=page,
        size=_page_size(size, api_config.default_page_size)
    )
    return APIResponse(data=result.model_dump(by_alias=True)).model_dump()


@app.get("/api/books/{book_id}", tags=["Books"])
async def get_book(
    book_id: str,
    page: int = Query(0, ge=0),
    size: Optional[int] = Query(None, ge=1, le=api_config.max_page_size),
):
    """
    Get a single book with a page of its reviews.

    - **book_id**: Sequential book ID or internal ID
    - **page**: Review page index (starts from 0)
    - **size**: Reviews per page
    """
    service = get_db_service()
    result = await service.get_book_detail(
        book_id,
        page=page,
        size=_page_size(size, api_config.default_review_page_size)
    )
    return APIResponse(data=result.model_dump(by_alias=True)).model_dump()


@app.post("/api/books", status_code=status.HTTP_201_CREATED, tags=["Books"])
async def create_book(book: BookCreate, user: str = Depends(get_current_user)):
    """Add a new book. The sequential ID is assigned by the server."""
    service = get_db_service()
    created = await service.create_book(book, user)
    return APIResponse(
        message="Book added successfully",
        data={"book": created.model_dump(by_alias=True)}
    ).model_dump()


# Review endpoints
@app.post("/api/books/{book_id}/reviews", status_code=status.HTTP_201_CREATED, tags=["Reviews"])
async def add_review(
    book_id: str,
    review: ReviewCreate,
    user: str = Depends(get_current_user)
):
    """
    Review a book. Each user may review a book once.

    - **book_id**: Sequential book ID or internal ID
    """
    service = get_db_service()
    created = await service.add_review(book_id, user, review)
    return APIResponse(
        message="Review added successfully",
        data={"review": created.model_dump()}
    ).model_dump()


@app.put("/api/reviews/{review_id}", tags=["Reviews"])
async def update_review(
    review_id: str,
    review: ReviewCreate,
    user: str = Depends(get_current_user)
):
    """Replace the rating and comment of your own review."""
    service = get_db_service()
    updated = await service.update_review(review_id, user, review)
    return APIResponse(
        message="Review updated successfully",
        data={"review": updated.model_dump()}
    ).model_dump()


@app.delete("/api/reviews/{review_id}", tags=["Reviews"])
async def delete_review(review_id: str, user: str = Depends(get_current_user)):
    """Delete your own review."""
    service = get_db_service()
    await service.delete_review(review_id, user)
    return APIResponse(message="Review deleted successfully").model_dump()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=True,
        log_level="info"
    )
