"""
Exception hierarchy for the catalog engine.

All errors are request-scoped: the HTTP layer maps them to status codes and
nothing here terminates the process.
"""

from typing import Optional


class CatalogError(Exception):
    """Base class for catalog engine errors."""


class AllocationFailure(CatalogError):
    """The counter store could not hand out a sequential ID."""

    def __init__(self, counter_name: str, reason: Optional[str] = None):
        self.counter_name = counter_name
        self.reason = reason
        message = f"Failed to allocate sequential ID from counter '{counter_name}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class NotFound(CatalogError):
    """No entity matches the supplied identifier."""

    def __init__(self, entity: str, identifier: str):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity.capitalize()} not found")


class AggregateWriteFailure(CatalogError):
    """A rating aggregate could not be recomputed or persisted."""

    def __init__(self, book_key, reason: Optional[str] = None):
        self.book_key = book_key
        self.reason = reason
        message = f"Failed to update rating aggregate for book '{book_key}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class DuplicateReview(CatalogError):
    """The user has already reviewed this book."""

    def __init__(self, book_key, user: str):
        self.book_key = book_key
        self.user = user
        super().__init__("You have already reviewed this book")


class DuplicateBook(CatalogError):
    """A book with the same unique field (ISBN) already exists."""

    def __init__(self, field: str = "isbn"):
        self.field = field
        super().__init__("Book with this ISBN already exists")


class PermissionDenied(CatalogError):
    """The acting user may not modify this resource."""

    def __init__(self, action: str, resource: str = "review"):
        self.action = action
        self.resource = resource
        super().__init__(f"Not authorized to {action} this {resource}")
