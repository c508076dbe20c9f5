"""Dictionary-backed repositories.

Used by the test suite and by ``STORAGE_BACKEND=memory`` for running the API
without MongoDB. Stored models are copied on the way in and out, so callers
never hold a reference to the stored state, the same as with a real database.
"""

from typing import Dict, Iterable, List, Optional

from bson import ObjectId

from lendingapi.exceptions import UsernameTakenError
from lendingapi.models import (
    BookModel,
    TransactionModel,
    TransactionStatus,
    UserInDB,
    UserModel,
)
from lendingapi.storage import (
    BookRepository,
    Stores,
    TransactionRepository,
    UserRepository,
)


def new_id() -> str:
    return str(ObjectId())


class InMemoryUserRepository(UserRepository):
    def __init__(self):
        self.users: Dict[str, UserInDB] = {}

    async def get(self, user_id: str) -> Optional[UserModel]:
        user = self.users.get(user_id)
        if user is None:
            return None
        return UserModel(_id=user.id, username=user.username)

    async def get_by_username(self, username: str) -> Optional[UserInDB]:
        for user in self.users.values():
            if user.username == username:
                return user.model_copy()
        return None

    async def create(self, username: str, password_hash: str) -> UserModel:
        if any(user.username == username for user in self.users.values()):
            raise UsernameTakenError(username)
        user = UserInDB(_id=new_id(), username=username, password_hash=password_hash)
        self.users[user.id] = user
        return UserModel(_id=user.id, username=username)

    async def delete(self, user_id: str):
        self.users.pop(user_id, None)


class InMemoryBookRepository(BookRepository):
    def __init__(self, books: Iterable[BookModel] = ()):
        # dicts keep insertion order, which stands in for storage order
        self.books: Dict[str, BookModel] = {}
        for book in books:
            self._put(book)

    def _put(self, book: BookModel) -> BookModel:
        if book.id is None:
            book = book.model_copy(update={"id": new_id()})
        self.books[book.id] = book.with_quantity(book.quantity)
        return self.books[book.id].model_copy()

    async def list_all(self) -> List[BookModel]:
        return [book.model_copy() for book in self.books.values()]

    async def get(self, book_id: str) -> Optional[BookModel]:
        book = self.books.get(book_id)
        return book.model_copy() if book else None

    async def get_many(self, book_ids: Iterable[str]) -> List[BookModel]:
        wanted = set(book_ids)
        return [book.model_copy() for key, book in self.books.items() if key in wanted]

    async def save(self, book: BookModel) -> BookModel:
        # like update_one, saving a book that was deleted meanwhile is a no-op
        if book.id not in self.books:
            return book.with_quantity(book.quantity)
        return self._put(book)

    async def insert_many(self, books: Iterable[BookModel]) -> List[BookModel]:
        return [self._put(book.model_copy(update={"id": None})) for book in books]

    async def delete_all(self) -> int:
        count = len(self.books)
        self.books.clear()
        return count

    async def delete(self, book_id: str):
        self.books.pop(book_id, None)


class InMemoryTransactionRepository(TransactionRepository):
    def __init__(self):
        self.transactions: Dict[str, TransactionModel] = {}

    async def create(self, transaction: TransactionModel) -> TransactionModel:
        transaction = transaction.model_copy(update={"id": new_id()})
        self.transactions[transaction.id] = transaction
        return transaction.model_copy()

    async def find_active(
        self, transaction_id: str, user_id: str
    ) -> Optional[TransactionModel]:
        transaction = self.transactions.get(transaction_id)
        if (
            transaction is None
            or transaction.user != user_id
            or transaction.status != TransactionStatus.BORROWED
        ):
            return None
        return transaction.model_copy()

    async def save(self, transaction: TransactionModel) -> TransactionModel:
        if transaction.id in self.transactions:
            self.transactions[transaction.id] = transaction.model_copy()
        return transaction

    async def list_for_user(self, user_id: str) -> List[TransactionModel]:
        owned = [t for t in self.transactions.values() if t.user == user_id]
        owned.sort(key=lambda t: t.borrow_date, reverse=True)
        return [t.model_copy() for t in owned]


def memory_stores(books: Iterable[BookModel] = ()) -> Stores:
    return Stores(
        users=InMemoryUserRepository(),
        books=InMemoryBookRepository(books),
        transactions=InMemoryTransactionRepository(),
    )
