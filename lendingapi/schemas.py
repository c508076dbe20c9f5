from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from lendingapi.models import BookModel, HistoryEntry


class UserCredentials(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=6)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        # bcrypt only considers the first 72 bytes
        if len(value.encode("utf-8")) > 72:
            raise ValueError("password must be at most 72 bytes")
        return value


class ApiResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: Optional[Any] = None


class TokenResponse(ApiResponse):
    token: str
    username: str


class BookResponse(ApiResponse):
    data: BookModel


class BookListResponse(ApiResponse):
    data: List[BookModel]


class HistoryResponse(ApiResponse):
    data: List[HistoryEntry]
