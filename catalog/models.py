"""
Pydantic models for book and review data validation and serialization.
"""

from datetime import datetime
from typing import Optional
from bson import ObjectId
from pydantic import BaseModel, Field, validator


def _current_year() -> int:
    return datetime.utcnow().year


class BookCreate(BaseModel):
    """
    Input model for a new book.
    The sequential ID and rating aggregate are assigned by the engine.
    """
    title: str = Field(..., max_length=200, description="Book title")
    author: str = Field(..., max_length=100, description="Author name")
    genre: str = Field(..., max_length=50, description="Book genre")
    description: str = Field(..., max_length=2000, description="Book description")
    published_year: int = Field(..., ge=1000, description="Year of publication")
    isbn: Optional[str] = Field(None, description="ISBN, unique when present")

    @validator('title', 'author', 'genre', 'description')
    def validate_required_text(cls, v):
        """Strip whitespace and reject blank values."""
        v = v.strip()
        if not v:
            raise ValueError('Field is required')
        return v

    @validator('published_year')
    def validate_published_year(cls, v):
        """Reject years in the future."""
        if v > _current_year():
            raise ValueError('Year cannot be in the future')
        return v

    @validator('isbn')
    def validate_isbn(cls, v):
        """Treat a blank ISBN as absent so the sparse unique index ignores it."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    class Config:
        """Pydantic configuration."""
        json_schema_extra = {
            "example": {
                "title": "The Left Hand of Darkness",
                "author": "Ursula K. Le Guin",
                "genre": "Science Fiction",
                "description": "A human envoy visits the planet Gethen.",
                "published_year": 1969,
                "isbn": "9780441478125"
            }
        }


class ReviewCreate(BaseModel):
    """Input model for creating or replacing a review."""
    rating: int = Field(..., ge=1, le=5, description="Rating (1-5)")
    comment: str = Field(..., max_length=1000, description="Review text")

    @validator('comment')
    def validate_comment(cls, v):
        """Strip whitespace and reject blank comments."""
        v = v.strip()
        if not v:
            raise ValueError('Comment is required')
        return v


class Book(BookCreate):
    """A stored book: the validated input plus engine-assigned fields."""
    book_id: int = Field(..., ge=1, description="Sequential book ID")
    added_by: str = Field(..., description="Reference of the creating user")
    average_rating: float = Field(0.0, ge=0, le=5, description="Cached mean rating")
    review_count: int = Field(0, ge=0, description="Cached number of reviews")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Review(ReviewCreate):
    """A stored review, linked to its book by both keys."""
    book: ObjectId = Field(..., description="ObjectId of the reviewed book")
    book_id: int = Field(..., ge=1, description="Sequential ID of the reviewed book")
    user: str = Field(..., description="Reference of the reviewing user")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        """Pydantic configuration."""
        arbitrary_types_allowed = True


class RatingAggregate(BaseModel):
    """Derived rating statistics cached on a book."""
    average_rating: float = Field(0.0, ge=0, le=5, description="Mean rating, one decimal place")
    review_count: int = Field(0, ge=0, description="Number of reviews")


class Counter(BaseModel):
    """A named, atomically incremented sequence."""
    name: str = Field(..., description="Counter name")
    value: int = Field(0, ge=0, description="Last issued value")
