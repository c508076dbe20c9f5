import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional

import pymongo
from bson import ObjectId
from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from lendingapi.config import settings
from lendingapi.exceptions import DatabaseError, UsernameTakenError
from lendingapi.models import (
    BookModel,
    TransactionModel,
    TransactionStatus,
    UserInDB,
    UserModel,
    book_status,
)

logger = logging.getLogger(__name__)

client: Optional[AsyncIOMotorClient] = None


async def init_db():
    global client
    logger.info(f"Connecting to MongoDB at {settings.mongodb_url}")
    client = AsyncIOMotorClient(settings.mongodb_url, tz_aware=True)


async def close_db_connection():
    global client
    if client:
        client.close()
        client = None


def get_database() -> AsyncIOMotorDatabase:
    return client[settings.mongodb_db]


async def ensure_indexes(db: AsyncIOMotorDatabase):
    try:
        await db.users.create_index("username", unique=True)
        await db.transactions.create_index(
            [("user", pymongo.ASCENDING), ("borrowDate", pymongo.DESCENDING)]
        )
    except PyMongoError as e:
        raise DatabaseError("create indexes", str(e))


def to_object_id(value: str) -> Optional[ObjectId]:
    """Parse an id coming from a client; ``None`` when it cannot be one."""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


class UserRepository(ABC):
    @abstractmethod
    async def get(self, user_id: str) -> Optional[UserModel]:
        """Look a user up by id, without the password hash."""

    @abstractmethod
    async def get_by_username(self, username: str) -> Optional[UserInDB]:
        ...

    @abstractmethod
    async def create(self, username: str, password_hash: str) -> UserModel:
        """Insert a user; raises ``UsernameTakenError`` on a duplicate name."""


class BookRepository(ABC):
    @abstractmethod
    async def list_all(self) -> List[BookModel]:
        ...

    @abstractmethod
    async def get(self, book_id: str) -> Optional[BookModel]:
        ...

    @abstractmethod
    async def get_many(self, book_ids: Iterable[str]) -> List[BookModel]:
        ...

    @abstractmethod
    async def save(self, book: BookModel) -> BookModel:
        """Persist quantity and the status derived from it."""

    @abstractmethod
    async def insert_many(self, books: Iterable[BookModel]) -> List[BookModel]:
        ...

    @abstractmethod
    async def delete_all(self) -> int:
        ...


class TransactionRepository(ABC):
    @abstractmethod
    async def create(self, transaction: TransactionModel) -> TransactionModel:
        ...

    @abstractmethod
    async def find_active(
        self, transaction_id: str, user_id: str
    ) -> Optional[TransactionModel]:
        """The user's transaction with this id, only while still borrowed."""

    @abstractmethod
    async def save(self, transaction: TransactionModel) -> TransactionModel:
        ...

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[TransactionModel]:
        """All of the user's transactions, most recent borrow first."""


@dataclass
class Stores:
    users: UserRepository
    books: BookRepository
    transactions: TransactionRepository


def get_stores(request: Request) -> Stores:
    return request.app.state.stores


class MongoUserRepository(UserRepository):
    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.users

    async def get(self, user_id: str) -> Optional[UserModel]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        try:
            user = await self.collection.find_one({"_id": oid}, {"password_hash": 0})
        except PyMongoError as e:
            raise DatabaseError("fetch user", str(e))
        return UserModel(**user) if user else None

    async def get_by_username(self, username: str) -> Optional[UserInDB]:
        try:
            user = await self.collection.find_one({"username": username})
        except PyMongoError as e:
            raise DatabaseError("fetch user", str(e))
        return UserInDB(**user) if user else None

    async def create(self, username: str, password_hash: str) -> UserModel:
        try:
            result = await self.collection.insert_one(
                {"username": username, "password_hash": password_hash}
            )
        except DuplicateKeyError:
            raise UsernameTakenError(username)
        except PyMongoError as e:
            raise DatabaseError("create user", str(e))
        return UserModel(_id=result.inserted_id, username=username)


class MongoBookRepository(BookRepository):
    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.books

    async def list_all(self) -> List[BookModel]:
        try:
            return [BookModel(**book) async for book in self.collection.find()]
        except PyMongoError as e:
            raise DatabaseError("list books", str(e))

    async def get(self, book_id: str) -> Optional[BookModel]:
        oid = to_object_id(book_id)
        if oid is None:
            return None
        try:
            book = await self.collection.find_one({"_id": oid})
        except PyMongoError as e:
            raise DatabaseError("fetch book", str(e))
        return BookModel(**book) if book else None

    async def get_many(self, book_ids: Iterable[str]) -> List[BookModel]:
        oids = [oid for oid in map(to_object_id, book_ids) if oid is not None]
        if not oids:
            return []
        try:
            cursor = self.collection.find({"_id": {"$in": oids}})
            return [BookModel(**book) async for book in cursor]
        except PyMongoError as e:
            raise DatabaseError("fetch books", str(e))

    async def save(self, book: BookModel) -> BookModel:
        book = book.with_quantity(book.quantity)
        try:
            await self.collection.update_one(
                {"_id": ObjectId(book.id)},
                {"$set": {"quantity": book.quantity, "status": book.status.value}},
            )
        except PyMongoError as e:
            raise DatabaseError("update book", str(e))
        return book

    async def insert_many(self, books: Iterable[BookModel]) -> List[BookModel]:
        books = list(books)
        if not books:
            return []
        docs = [
            {
                "title": book.title,
                "author": book.author,
                "quantity": book.quantity,
                "status": book_status(book.quantity).value,
            }
            for book in books
        ]
        try:
            result = await self.collection.insert_many(docs)
        except PyMongoError as e:
            raise DatabaseError("insert books", str(e))
        return [
            book.model_copy(update={"id": str(inserted_id)})
            for book, inserted_id in zip(books, result.inserted_ids)
        ]

    async def delete_all(self) -> int:
        try:
            result = await self.collection.delete_many({})
        except PyMongoError as e:
            raise DatabaseError("delete books", str(e))
        return result.deleted_count


class MongoTransactionRepository(TransactionRepository):
    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.transactions

    async def create(self, transaction: TransactionModel) -> TransactionModel:
        doc = {
            "user": ObjectId(transaction.user),
            "book": ObjectId(transaction.book),
            "borrowDate": transaction.borrow_date,
            "returnDate": transaction.return_date,
            "status": transaction.status.value,
        }
        try:
            result = await self.collection.insert_one(doc)
        except PyMongoError as e:
            raise DatabaseError("create transaction", str(e))
        return transaction.model_copy(update={"id": str(result.inserted_id)})

    async def find_active(
        self, transaction_id: str, user_id: str
    ) -> Optional[TransactionModel]:
        oid = to_object_id(transaction_id)
        user_oid = to_object_id(user_id)
        if oid is None or user_oid is None:
            return None
        try:
            transaction = await self.collection.find_one(
                {
                    "_id": oid,
                    "user": user_oid,
                    "status": TransactionStatus.BORROWED.value,
                }
            )
        except PyMongoError as e:
            raise DatabaseError("fetch transaction", str(e))
        return TransactionModel(**transaction) if transaction else None

    async def save(self, transaction: TransactionModel) -> TransactionModel:
        try:
            await self.collection.update_one(
                {"_id": ObjectId(transaction.id)},
                {
                    "$set": {
                        "status": transaction.status.value,
                        "returnDate": transaction.return_date,
                    }
                },
            )
        except PyMongoError as e:
            raise DatabaseError("update transaction", str(e))
        return transaction

    async def list_for_user(self, user_id: str) -> List[TransactionModel]:
        user_oid = to_object_id(user_id)
        if user_oid is None:
            return []
        try:
            cursor = self.collection.find({"user": user_oid}).sort(
                "borrowDate", pymongo.DESCENDING
            )
            return [TransactionModel(**transaction) async for transaction in cursor]
        except PyMongoError as e:
            raise DatabaseError("fetch history", str(e))


def mongo_stores(db: AsyncIOMotorDatabase) -> Stores:
    return Stores(
        users=MongoUserRepository(db),
        books=MongoBookRepository(db),
        transactions=MongoTransactionRepository(db),
    )
