"""
Catalog engine for books and reviews.

This package contains:
- Store-backed sequence counters for sequential book IDs
- Dual-key (sequential ID / ObjectId) book resolution
- Rating aggregate maintenance
- Book and review services
"""

__version__ = "1.0.0"
