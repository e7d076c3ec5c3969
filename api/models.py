"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class BookResponse(BaseModel):
    """Book response model for API."""
    id: int = Field(..., description="Sequential book identifier")
    object_id: str = Field(..., alias="_id", description="Internal store identifier")
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Author name")
    genre: str = Field(..., description="Book genre")
    description: str = Field(..., description="Book description")
    published_year: int = Field(..., description="Year of publication")
    isbn: Optional[str] = Field(None, description="ISBN")
    added_by: str = Field(..., description="User who added the book")
    average_rating: float = Field(0.0, ge=0, le=5, description="Average review rating")
    review_count: int = Field(0, ge=0, description="Number of reviews")
    created_at: Optional[str] = Field(None, description="Creation timestamp")
    updated_at: Optional[str] = Field(None, description="Last update timestamp")

    model_config = {"populate_by_name": True}


class ReviewResponse(BaseModel):
    """Review response model for API."""
    id: str = Field(..., description="Review identifier")
    book: str = Field(..., description="Internal identifier of the reviewed book")
    book_id: int = Field(..., description="Sequential identifier of the reviewed book")
    user: str = Field(..., description="Reviewing user")
    rating: int = Field(..., ge=1, le=5, description="Rating (1-5)")
    comment: str = Field(..., description="Review text")
    created_at: Optional[str] = Field(None, description="Creation timestamp")
    updated_at: Optional[str] = Field(None, description="Last update timestamp")


class PaginationInfo(BaseModel):
    """Zero-based pagination block."""
    current_page: int = Field(..., description="Current page index (starts at 0)")
    total_pages: int = Field(..., description="Total number of pages")
    total_items: int = Field(..., description="Total number of items")
    page_size: int = Field(..., description="Items per page")
    has_next: bool = Field(..., description="Whether there is a next page")
    has_prev: bool = Field(..., description="Whether there is a previous page")


class BookListResponse(BaseModel):
    """Response model for book list with pagination."""
    books: List[BookResponse] = Field(..., description="List of books")
    pagination: PaginationInfo = Field(..., description="Pagination details")
    search_query: Optional[str] = Field(None, description="Search query, for search results")


class BookDetailResponse(BaseModel):
    """A book with one page of its reviews."""
    book: BookResponse = Field(..., description="Book")
    reviews: List[ReviewResponse] = Field(..., description="Reviews, newest first")
    reviews_pagination: PaginationInfo = Field(..., description="Review pagination details")


class APIResponse(BaseModel):
    """Envelope for successful responses."""
    success: bool = Field(True, description="Whether the request succeeded")
    message: Optional[str] = Field(None, description="Human-readable outcome")
    data: Optional[Any] = Field(None, description="Response payload")


class ErrorResponse(BaseModel):
    """Error response model."""
    success: bool = Field(False, description="Always false for errors")
    error: str = Field(..., description="Error message")
    detail: Optional[Any] = Field(None, description="Additional error details")
    status_code: int = Field(..., description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
