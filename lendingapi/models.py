from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, Field, model_validator

# ObjectIds travel as hex strings outside the storage layer
PyObjectId = Annotated[str, BeforeValidator(str)]


class BookStatus(str, Enum):
    AVAILABLE = "Available"
    OUT_OF_STOCK = "Out of Stock"


class TransactionStatus(str, Enum):
    BORROWED = "Borrowed"
    RETURNED = "Returned"


def book_status(quantity: int) -> BookStatus:
    """Availability label for a stock count."""
    if quantity > 0:
        return BookStatus.AVAILABLE
    return BookStatus.OUT_OF_STOCK


class BookModel(BaseModel):
    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    title: str
    author: str
    quantity: int = Field(default=1, ge=0)
    status: BookStatus = BookStatus.AVAILABLE

    class Config:
        populate_by_name = True

    @model_validator(mode="before")
    @classmethod
    def derive_status(cls, data: Any) -> Any:
        # status is never taken from input, only from quantity
        if isinstance(data, dict):
            quantity = data.get("quantity", 1)
            if isinstance(quantity, int) and not isinstance(quantity, bool):
                data = {**data, "status": book_status(quantity)}
        return data

    def with_quantity(self, quantity: int) -> "BookModel":
        if quantity < 0:
            raise ValueError("quantity cannot be negative")
        return self.model_copy(
            update={"quantity": quantity, "status": book_status(quantity)}
        )


class BookSummary(BaseModel):
    id: PyObjectId = Field(alias="_id")
    title: str
    author: str

    class Config:
        populate_by_name = True


class UserModel(BaseModel):
    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    username: str

    class Config:
        populate_by_name = True


class UserInDB(UserModel):
    password_hash: str


class CurrentUser(BaseModel):
    """Identity of the caller, resolved once from the bearer token."""

    id: str
    username: str

    class Config:
        frozen = True


class TransactionModel(BaseModel):
    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    user: PyObjectId
    book: PyObjectId
    borrow_date: datetime = Field(alias="borrowDate")
    return_date: Optional[datetime] = Field(default=None, alias="returnDate")
    status: TransactionStatus = TransactionStatus.BORROWED

    class Config:
        populate_by_name = True

    def mark_returned(self, when: datetime) -> "TransactionModel":
        if self.status != TransactionStatus.BORROWED:
            raise ValueError(f"Transaction {self.id} is already returned")
        return self.model_copy(
            update={"status": TransactionStatus.RETURNED, "return_date": when}
        )


class HistoryEntry(BaseModel):
    id: PyObjectId = Field(alias="_id")
    user: PyObjectId
    book: Optional[BookSummary] = None
    borrow_date: datetime = Field(alias="borrowDate")
    return_date: Optional[datetime] = Field(default=None, alias="returnDate")
    status: TransactionStatus

    class Config:
        populate_by_name = True
