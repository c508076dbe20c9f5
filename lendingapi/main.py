import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from lendingapi.auth import get_current_user
from lendingapi.config import settings
from lendingapi.crud import (
    borrow_book,
    get_history,
    list_books,
    login_user,
    register_user,
    return_book,
)
from lendingapi.exceptions import add_exception_handlers
from lendingapi.memory import memory_stores
from lendingapi.models import CurrentUser
from lendingapi.schemas import (
    ApiResponse,
    BookListResponse,
    BookResponse,
    HistoryResponse,
    TokenResponse,
    UserCredentials,
)
from lendingapi.storage import (
    Stores,
    close_db_connection,
    ensure_indexes,
    get_database,
    get_stores,
    init_db,
    mongo_stores,
)

# Set up logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    testing = getattr(app.state, "testing", False)
    use_mongo = not testing and settings.storage_backend != "memory"

    if use_mongo:
        logger.info("Initializing database connection")
        await init_db()
        db = get_database()
        await ensure_indexes(db)
        app.state.stores = mongo_stores(db)
    else:
        logger.info("Using in-memory storage")
        app.state.stores = memory_stores()

    yield

    if use_mongo:
        logger.info("Closing database connection")
        await close_db_connection()


app = FastAPI(
    title="Library Lending API",
    lifespan=lifespan,
    description="Register, browse the catalog, borrow and return books",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

add_exception_handlers(app)


# Auth
@app.post(
    "/api/register", response_model=ApiResponse, status_code=status.HTTP_201_CREATED
)
async def register(credentials: UserCredentials, stores: Stores = Depends(get_stores)):
    await register_user(stores, credentials)
    return ApiResponse(message="User registered successfully")


@app.post("/api/login", response_model=TokenResponse)
async def login(credentials: UserCredentials, stores: Stores = Depends(get_stores)):
    token, username = await login_user(stores, credentials)
    return TokenResponse(token=token, username=username)


# Books
@app.get("/api/books", response_model=BookListResponse)
async def read_books(stores: Stores = Depends(get_stores)):
    return BookListResponse(data=await list_books(stores))


@app.post("/api/books/borrow/{book_id}", response_model=BookResponse)
async def borrow(
    book_id: str,
    user: CurrentUser = Depends(get_current_user),
    stores: Stores = Depends(get_stores),
):
    book = await borrow_book(stores, book_id, user)
    return BookResponse(message="Book borrowed successfully", data=book)


@app.post("/api/books/return/{transaction_id}", response_model=ApiResponse)
async def return_borrowed(
    transaction_id: str,
    user: CurrentUser = Depends(get_current_user),
    stores: Stores = Depends(get_stores),
):
    await return_book(stores, transaction_id, user)
    return ApiResponse(message="Book returned successfully")


@app.get("/api/history", response_model=HistoryResponse)
async def history(
    user: CurrentUser = Depends(get_current_user),
    stores: Stores = Depends(get_stores),
):
    return HistoryResponse(data=await get_history(stores, user))


# Front-end; unmatched paths fall back to index.html in the 404 handler
if os.path.isdir(settings.static_dir):
    app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on port {settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port)
