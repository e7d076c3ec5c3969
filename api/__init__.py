"""
FastAPI RESTful API for the book catalog.

This module provides a JSON API for:
- Book catalog browsing, search and creation
- Per-user book reviews with cached rating aggregates
- Bearer token authentication for write operations
"""
