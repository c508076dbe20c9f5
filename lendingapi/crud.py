import logging
from datetime import datetime, timezone
from typing import List, Tuple

from starlette.concurrency import run_in_threadpool

from lendingapi.auth import create_access_token, hash_password, verify_password
from lendingapi.exceptions import (
    BookNotAvailableError,
    BookNotFoundError,
    InvalidCredentialsError,
    TransactionNotFoundError,
    UsernameTakenError,
)
from lendingapi.models import (
    BookModel,
    BookSummary,
    CurrentUser,
    HistoryEntry,
    TransactionModel,
    TransactionStatus,
    UserModel,
)
from lendingapi.schemas import UserCredentials
from lendingapi.storage import Stores

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def register_user(stores: Stores, credentials: UserCredentials) -> UserModel:
    if await stores.users.get_by_username(credentials.username):
        raise UsernameTakenError(credentials.username)

    password_hash = await run_in_threadpool(hash_password, credentials.password)
    # the repository rejects a duplicate that slipped in since the check above
    user = await stores.users.create(credentials.username, password_hash)
    logger.info(f"Registered user {user.username} ({user.id})")
    return user


async def login_user(stores: Stores, credentials: UserCredentials) -> Tuple[str, str]:
    user = await stores.users.get_by_username(credentials.username)
    if user is None:
        raise InvalidCredentialsError()

    matches = await run_in_threadpool(
        verify_password, credentials.password, user.password_hash
    )
    if not matches:
        raise InvalidCredentialsError()

    return create_access_token(user.id), user.username


async def list_books(stores: Stores) -> List[BookModel]:
    return await stores.books.list_all()


async def borrow_book(stores: Stores, book_id: str, user: CurrentUser) -> BookModel:
    book = await stores.books.get(book_id)
    if book is None:
        raise BookNotFoundError(book_id)
    if book.quantity < 1:
        raise BookNotAvailableError(book_id)

    # Two separate writes with no lock; concurrent borrows of the last copy
    # can both get through.
    book = await stores.books.save(book.with_quantity(book.quantity - 1))
    transaction = await stores.transactions.create(
        TransactionModel(
            user=user.id,
            book=book.id,
            borrow_date=utcnow(),
            status=TransactionStatus.BORROWED,
        )
    )
    logger.info(
        f"User {user.username} borrowed book {book.id} "
        f"(transaction {transaction.id}, {book.quantity} left)"
    )
    return book


async def return_book(
    stores: Stores, transaction_id: str, user: CurrentUser
) -> TransactionModel:
    transaction = await stores.transactions.find_active(transaction_id, user.id)
    if transaction is None:
        raise TransactionNotFoundError(transaction_id)

    transaction = await stores.transactions.save(transaction.mark_returned(utcnow()))

    book = await stores.books.get(transaction.book)
    if book is None:
        logger.warning(
            f"Book {transaction.book} for transaction {transaction.id} no longer "
            "exists, skipping restock"
        )
        return transaction

    book = await stores.books.save(book.with_quantity(book.quantity + 1))
    logger.info(
        f"User {user.username} returned book {book.id} "
        f"(transaction {transaction.id}, {book.quantity} left)"
    )
    return transaction


async def get_history(stores: Stores, user: CurrentUser) -> List[HistoryEntry]:
    transactions = await stores.transactions.list_for_user(user.id)
    books = {
        book.id: book
        for book in await stores.books.get_many({t.book for t in transactions})
    }

    history = []
    for transaction in transactions:
        book = books.get(transaction.book)
        history.append(
            HistoryEntry(
                _id=transaction.id,
                user=transaction.user,
                book=BookSummary(_id=book.id, title=book.title, author=book.author)
                if book
                else None,
                borrow_date=transaction.borrow_date,
                return_date=transaction.return_date,
                status=transaction.status,
            )
        )
    return history
