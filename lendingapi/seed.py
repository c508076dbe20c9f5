"""Replace the catalog with the sample books.

Run with ``python -m lendingapi.seed``.
"""

import asyncio
import logging
from typing import List

from lendingapi.config import settings
from lendingapi.models import BookModel
from lendingapi.storage import (
    Stores,
    close_db_connection,
    get_database,
    init_db,
    mongo_stores,
)

logger = logging.getLogger(__name__)

SAMPLE_BOOKS = [
    {"title": "The Lord of the Rings", "author": "J.R.R. Tolkien", "quantity": 5},
    {
        "title": "The Hitchhiker's Guide to the Galaxy",
        "author": "Douglas Adams",
        "quantity": 3,
    },
    {"title": "Dune", "author": "Frank Herbert", "quantity": 4},
    {"title": "1984", "author": "George Orwell", "quantity": 2},
    {"title": "Brave New World", "author": "Aldous Huxley", "quantity": 1},
    {"title": "The Great Gatsby", "author": "F. Scott Fitzgerald", "quantity": 3},
    {"title": "To Kill a Mockingbird", "author": "Harper Lee", "quantity": 0},
    {"title": "Pride and Prejudice", "author": "Jane Austen", "quantity": 5},
    {"title": "The Catcher in the Rye", "author": "J.D. Salinger", "quantity": 2},
    {"title": "Fahrenheit 451", "author": "Ray Bradbury", "quantity": 3},
    {"title": "Moby Dick", "author": "Herman Melville", "quantity": 1},
]


async def seed_books(stores: Stores) -> List[BookModel]:
    removed = await stores.books.delete_all()
    logger.info(f"Removed {removed} existing books")
    books = await stores.books.insert_many(BookModel(**book) for book in SAMPLE_BOOKS)
    logger.info(f"Inserted {len(books)} sample books")
    return books


async def main():
    await init_db()
    try:
        await seed_books(mongo_stores(get_database()))
    finally:
        await close_db_connection()


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level)
    asyncio.run(main())
