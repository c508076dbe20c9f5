from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from lendingapi.exceptions import DatabaseError, UsernameTakenError
from lendingapi.models import BookModel, BookStatus, TransactionModel, TransactionStatus
from lendingapi.storage import (
    MongoBookRepository,
    MongoTransactionRepository,
    MongoUserRepository,
    to_object_id,
)


@pytest.fixture(scope="function")
def db():
    return MagicMock()


def test_to_object_id():
    oid = ObjectId()
    assert to_object_id(str(oid)) == oid
    assert to_object_id(oid) == oid
    assert to_object_id("not-an-object-id") is None
    assert to_object_id(None) is None


@pytest.mark.asyncio
async def test_get_user_excludes_password_hash(db):
    oid = ObjectId()
    db.users.find_one = AsyncMock(return_value={"_id": oid, "username": "reader"})

    user = await MongoUserRepository(db).get(str(oid))

    assert user.id == str(oid)
    assert user.username == "reader"
    db.users.find_one.assert_called_once_with({"_id": oid}, {"password_hash": 0})


@pytest.mark.asyncio
async def test_get_user_with_invalid_id_skips_query(db):
    db.users.find_one = AsyncMock()
    assert await MongoUserRepository(db).get("garbage") is None
    db.users.find_one.assert_not_called()


@pytest.mark.asyncio
async def test_create_user_duplicate_key(db):
    db.users.insert_one = AsyncMock(side_effect=DuplicateKeyError("E11000 duplicate key"))
    with pytest.raises(UsernameTakenError):
        await MongoUserRepository(db).create("reader", "$2b$hash")


@pytest.mark.asyncio
async def test_store_failure_becomes_database_error(db):
    db.books.find_one = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))
    with pytest.raises(DatabaseError):
        await MongoBookRepository(db).get(str(ObjectId()))


@pytest.mark.asyncio
async def test_get_book_ignores_stored_status(db):
    oid = ObjectId()
    db.books.find_one = AsyncMock(
        return_value={
            "_id": oid,
            "title": "Dune",
            "author": "Frank Herbert",
            "quantity": 0,
            "status": "Available",
        }
    )

    book = await MongoBookRepository(db).get(str(oid))

    assert book.id == str(oid)
    assert book.status == BookStatus.OUT_OF_STOCK


@pytest.mark.asyncio
async def test_save_book_writes_quantity_and_derived_status(db):
    oid = ObjectId()
    db.books.update_one = AsyncMock()
    book = BookModel(_id=oid, title="Dune", author="Frank Herbert", quantity=1)

    saved = await MongoBookRepository(db).save(book.with_quantity(0))

    assert saved.status == BookStatus.OUT_OF_STOCK
    db.books.update_one.assert_called_once_with(
        {"_id": oid}, {"$set": {"quantity": 0, "status": "Out of Stock"}}
    )


@pytest.mark.asyncio
async def test_create_transaction_stores_object_id_references(db):
    user_id, book_id, inserted_id = ObjectId(), ObjectId(), ObjectId()
    db.transactions.insert_one = AsyncMock(
        return_value=MagicMock(inserted_id=inserted_id)
    )
    borrowed_at = datetime(2024, 1, 1, tzinfo=timezone.utc)

    transaction = await MongoTransactionRepository(db).create(
        TransactionModel(user=str(user_id), book=str(book_id), borrow_date=borrowed_at)
    )

    assert transaction.id == str(inserted_id)
    db.transactions.insert_one.assert_called_once_with(
        {
            "user": user_id,
            "book": book_id,
            "borrowDate": borrowed_at,
            "returnDate": None,
            "status": "Borrowed",
        }
    )


@pytest.mark.asyncio
async def test_find_active_filters_on_owner_and_status(db):
    transaction_id, user_id = ObjectId(), ObjectId()
    db.transactions.find_one = AsyncMock(return_value=None)

    result = await MongoTransactionRepository(db).find_active(
        str(transaction_id), str(user_id)
    )

    assert result is None
    db.transactions.find_one.assert_called_once_with(
        {"_id": transaction_id, "user": user_id, "status": "Borrowed"}
    )


@pytest.mark.asyncio
async def test_save_transaction_sets_status_and_return_date(db):
    oid = ObjectId()
    db.transactions.update_one = AsyncMock()
    returned_at = datetime(2024, 1, 8, tzinfo=timezone.utc)
    transaction = TransactionModel(
        _id=oid,
        user=str(ObjectId()),
        book=str(ObjectId()),
        borrow_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
    ).mark_returned(returned_at)

    await MongoTransactionRepository(db).save(transaction)

    db.transactions.update_one.assert_called_once_with(
        {"_id": oid},
        {"$set": {"status": TransactionStatus.RETURNED.value, "returnDate": returned_at}},
    )


@pytest.mark.asyncio
async def test_find_active_reads_camel_case_dates(db):
    oid, user_id, book_id = ObjectId(), ObjectId(), ObjectId()
    borrowed_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
    db.transactions.find_one = AsyncMock(
        return_value={
            "_id": oid,
            "user": user_id,
            "book": book_id,
            "borrowDate": borrowed_at,
            "status": "Borrowed",
        }
    )

    transaction = await MongoTransactionRepository(db).find_active(str(oid), str(user_id))

    assert transaction.id == str(oid)
    assert transaction.borrow_date == borrowed_at
    assert transaction.return_date is None
