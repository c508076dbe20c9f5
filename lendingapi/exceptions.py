import logging
import os

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import FileResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lendingapi.config import settings

logger = logging.getLogger(__name__)

SERVER_ERROR_MESSAGE = "Server Error"


class LibraryException(Exception):
    """Base exception for library-related errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotAuthenticatedError(LibraryException):
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFoundError(LibraryException):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(LibraryException):
    status_code = status.HTTP_400_BAD_REQUEST


class BookNotFoundError(NotFoundError):
    def __init__(self, book_id: str):
        self.book_id = book_id
        super().__init__("Book not found")


class TransactionNotFoundError(NotFoundError):
    """Raised for missing, foreign and already returned transactions alike."""

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__("Borrow record not found or book already returned")


class BookNotAvailableError(ConflictError):
    def __init__(self, book_id: str):
        self.book_id = book_id
        super().__init__("Book is out of stock")


class UsernameTakenError(ConflictError):
    def __init__(self, username: str):
        self.username = username
        super().__init__("User already exists")


class InvalidCredentialsError(ConflictError):
    def __init__(self):
        super().__init__("Invalid credentials")


class DatabaseError(LibraryException):
    def __init__(self, operation: str, details: str):
        self.operation = operation
        self.details = details
        super().__init__(f"Database error during {operation}: {details}")


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"success": False, "message": message}
    )


def _frontend_index() -> str:
    return os.path.join(settings.static_dir, "index.html")


# Exception handlers
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    index = _frontend_index()
    if (
        exc.status_code == status.HTTP_404_NOT_FOUND
        and request.method == "GET"
        and not request.url.path.startswith("/api")
        and os.path.isfile(index)
    ):
        return FileResponse(index)
    logger.error(f"HTTP error {exc.status_code}: {exc.detail}")
    return error_response(exc.status_code, str(exc.detail))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Request validation error: {exc.errors()}")
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        "Invalid request parameters. Please check your input.",
    )


async def response_validation_exception_handler(
    request: Request, exc: ResponseValidationError
):
    logger.error(f"Response validation error: {exc.errors()}")
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, SERVER_ERROR_MESSAGE
    )


async def general_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unexpected error: {str(exc)}")
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, SERVER_ERROR_MESSAGE
    )


async def library_exception_handler(request: Request, exc: LibraryException):
    if isinstance(exc, DatabaseError):
        logger.error(f"Library error: {str(exc)}")
        return error_response(exc.status_code, SERVER_ERROR_MESSAGE)
    logger.info(f"Library error {exc.status_code} on {request.url.path}: {exc.message}")
    return error_response(exc.status_code, exc.message)


def add_exception_handlers(app: FastAPI):
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(
        ResponseValidationError, response_validation_exception_handler
    )
    app.add_exception_handler(Exception, general_exception_handler)
    app.add_exception_handler(LibraryException, library_exception_handler)
