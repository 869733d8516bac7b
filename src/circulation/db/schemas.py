"""Pydantic schemas for catalog data crossing the core's boundary."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class BookCreate(BaseModel):
    """Schema for registering a book with the circulation core."""

    title: str = Field(..., min_length=1, max_length=500)
    author: Optional[str] = Field(None, max_length=500)
    isbn: Optional[str] = Field(None, max_length=13)
    total_copies: int = Field(1, ge=1)

    @field_validator("isbn", mode="before")
    @classmethod
    def normalize_isbn(cls, v: Optional[str]) -> Optional[str]:
        """Strip hyphens and spaces from ISBN."""
        if v is None:
            return v
        cleaned = v.replace("-", "").replace(" ", "")
        return cleaned or None


class BookResponse(BaseModel):
    """Schema for book responses."""

    id: str
    title: str
    author: Optional[str] = None
    isbn: Optional[str] = None
    total_copies: int
    available_copies: int

    model_config = {"from_attributes": True}


class AvailabilityResponse(BaseModel):
    """Availability of a single book."""

    book_id: str
    title: str
    is_available: bool
    total_copies: int
    available_copies: int
    borrowed_copies: int
