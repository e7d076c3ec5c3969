#!/usr/bin/env python3
"""
Catalog Maintenance Utility

This script provides utilities to maintain the catalog store:
- Create the indexes the engine relies on
- Show the current value of a sequence counter
- Recompute rating aggregates for one book or all books
- Verify cached rating aggregates against the review set
"""

import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from utilities.logger import setup_logging
from utilities.config import config
from catalog.database import MongoDBManager
from catalog.counters import SequenceAllocator
from catalog.exceptions import CatalogError
from catalog.ratings import RatingAggregator
from catalog.resolver import BookResolver


def _db_manager() -> MongoDBManager:
    return MongoDBManager(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database,
        books_collection=config.books_collection,
        reviews_collection=config.reviews_collection,
        counters_collection=config.counters_collection,
    )


async def create_indexes():
    """Connect (which creates indexes) and report."""
    db_manager = _db_manager()
    try:
        await db_manager.connect()
        print("✅ Indexes are in place")
    finally:
        await db_manager.disconnect()


async def show_counter(counter_name: str):
    """Show the last value issued by a counter."""
    db_manager = _db_manager()
    try:
        await db_manager.connect()
        counter = await SequenceAllocator(db_manager.counters).current(counter_name)
        print(f"Counter '{counter.name}': {counter.value}")
    finally:
        await db_manager.disconnect()


async def recompute(raw_id: str):
    """Recompute the rating aggregate of one book, or of every book with 'all'."""
    db_manager = _db_manager()
    try:
        await db_manager.connect()
        aggregator = RatingAggregator(db_manager.reviews, db_manager.books)

        if raw_id == "all":
            count = 0
            failed = 0
            async for book in db_manager.books.find({}, {"_id": 1, "book_id": 1}):
                try:
                    await aggregator.recompute(book["_id"])
                    count += 1
                except CatalogError as e:
                    failed += 1
                    print(f"❌ Book {book.get('book_id')}: {e}")
            print(f"✅ Recomputed {count} books ({failed} failed)")
            return

        book = await BookResolver(db_manager.books).resolve(raw_id)
        aggregate = await aggregator.recompute(book["_id"])
        print(f"✅ Book {book['book_id']}: average_rating={aggregate.average_rating} "
              f"review_count={aggregate.review_count}")

    except CatalogError as e:
        print(f"❌ {e}")
    finally:
        await db_manager.disconnect()


async def verify():
    """Report books whose cached aggregate differs from their reviews."""
    db_manager = _db_manager()
    try:
        await db_manager.connect()
        aggregator = RatingAggregator(db_manager.reviews, db_manager.books)

        checked = 0
        drifted = 0
        projection = {"_id": 1, "book_id": 1, "average_rating": 1, "review_count": 1}
        async for book in db_manager.books.find({}, projection):
            checked += 1
            fresh = await aggregator.read_aggregate(book["_id"])
            if (book.get("average_rating"), book.get("review_count")) != (
                fresh.average_rating, fresh.review_count
            ):
                drifted += 1
                print(f"⚠️  Book {book.get('book_id')}: cached "
                      f"{book.get('average_rating')}/{book.get('review_count')}, "
                      f"actual {fresh.average_rating}/{fresh.review_count}")

        print(f"Checked {checked} books, {drifted} with stale aggregates")
        if drifted:
            print("   Run 'recompute all' to repair them.")
    finally:
        await db_manager.disconnect()


async def main():
    """Main function."""
    if len(sys.argv) < 2:
        print("Usage: python manage_catalog.py [indexes|counter|recompute|verify] [arg]")
        print()
        print("Commands:")
        print("  indexes            - Create the store indexes")
        print("  counter [name]     - Show a sequence counter (default: book counter)")
        print("  recompute <id|all> - Recompute rating aggregates")
        print("  verify             - Check cached rating aggregates")
        sys.exit(1)

    command = sys.argv[1].lower()

    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )

    if command == "indexes":
        await create_indexes()
    elif command == "counter":
        name = sys.argv[2] if len(sys.argv) > 2 else config.book_counter_name
        await show_counter(name)
    elif command == "recompute":
        if len(sys.argv) < 3:
            print("❌ Error: book ID or 'all' required for recompute command")
            sys.exit(1)
        await recompute(sys.argv[2])
    elif command == "verify":
        await verify()
    else:
        print(f"❌ Unknown command: {command}")
        print("Available commands: indexes, counter, recompute, verify")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
