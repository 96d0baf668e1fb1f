import logging
import re
from contextlib import asynccontextmanager, contextmanager
from typing import Any, Dict, Iterator, Optional

from bson import ObjectId
from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from passlib.context import CryptContext
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from config import LOGGER_NAME, Settings, configure_logging, get_settings
from database import (
    COLLECTIONS,
    PRODUCTS,
    USERS,
    InvalidObjectId,
    connect,
    create_document,
    delete_document,
    ensure_indexes,
    find_document,
    get_documents,
    now,
    parse_object_id,
    serialize_document,
)
from schemas import ErrorBody, InsertResult, LoginBody, Message, RegisterBody, User, UserPublic

MIN_PASSWORD_LENGTH = 6
RECENT_PRODUCTS_LIMIT = 6
ALL_CATEGORIES = "all"

INVALID_CREDENTIALS = "Invalid email or password"
USER_EXISTS = "User already exists with this email"

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=get_settings().bcrypt_rounds,
)


# Utilities

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(plain, password_hash)


def public_user(user: Dict[str, Any]) -> UserPublic:
    """Shape a stored user the way the NextAuth.js credentials provider expects it."""
    return UserPublic(
        id=str(user["_id"]),
        name=user.get("name"),
        email=user["email"],
        emailVerified=user.get("emailVerified"),
        image=user.get("image"),
    )


def build_product_query(category: Optional[str] = None, search: Optional[str] = None) -> Dict[str, Any]:
    """Mongo filter for the catalog listing.

    ``category`` is an exact match unless it is the "all" sentinel. ``search``
    matches title or category as a case-insensitive substring. Both together
    are ANDed.
    """
    query: Dict[str, Any] = {}
    if category and category != ALL_CATEGORIES:
        query["category"] = category
    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {"title": {"$regex": pattern, "$options": "i"}},
            {"category": {"$regex": pattern, "$options": "i"}},
        ]
    return query


def product_object_id(product_id: str) -> ObjectId:
    try:
        return parse_object_id(product_id)
    except InvalidObjectId:
        raise HTTPException(status_code=400, detail="Invalid product id")


def get_database(request: Request) -> Database:
    return request.app.state.db


def get_logger(request: Request) -> logging.Logger:
    return request.app.state.logger


@contextmanager
def handler_errors(log: logging.Logger, context: str, message: str) -> Iterator[None]:
    """Turn anything unexpected into a logged 500 carrying ``message`` only."""
    try:
        yield
    except HTTPException:
        raise
    except Exception:
        log.exception("%s error", context)
        raise HTTPException(status_code=500, detail=message)


ERRORS = {code: {"model": ErrorBody} for code in (400, 401, 404, 500)}

router = APIRouter(prefix="/api", responses=ERRORS)


# Auth routes
@router.post("/auth/register", status_code=201, response_model=UserPublic)
def register(
    body: Optional[RegisterBody] = None,
    db: Database = Depends(get_database),
    log: logging.Logger = Depends(get_logger),
):
    body = body or RegisterBody()
    if not body.name or not body.email or not body.password:
        raise HTTPException(status_code=400, detail="All fields are required")
    if len(body.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")

    with handler_errors(log, "Registration", "Registration failed"):
        if find_document(db, USERS, {"email": body.email}):
            raise HTTPException(status_code=400, detail=USER_EXISTS)
        created = now()
        user = User(
            name=body.name,
            email=body.email,
            password=get_password_hash(body.password),
            emailVerified=None,
            image=None,
            createdAt=created,
            updatedAt=created,
        )
        try:
            result = create_document(db, USERS, user)
        except DuplicateKeyError:
            # lost a race against a concurrent registration
            raise HTTPException(status_code=400, detail=USER_EXISTS)

    return UserPublic(
        id=str(result.inserted_id),
        name=user.name,
        email=user.email,
        emailVerified=user.emailVerified,
        image=user.image,
    )


@router.post("/auth/login", response_model=UserPublic)
def login(
    body: Optional[LoginBody] = None,
    db: Database = Depends(get_database),
    log: logging.Logger = Depends(get_logger),
):
    body = body or LoginBody()
    if not body.email or not body.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    with handler_errors(log, "Login", "Login failed"):
        user = find_document(db, USERS, {"email": body.email})
        if not user or not verify_password(body.password, user.get("password")):
            raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)
        return public_user(user)


@router.get("/auth/user")
def get_user(
    email: Optional[str] = None,
    db: Database = Depends(get_database),
    log: logging.Logger = Depends(get_logger),
):
    if not email:
        raise HTTPException(status_code=400, detail="Email is required")

    with handler_errors(log, "Get user", "Failed to get user"):
        user = find_document(db, USERS, {"email": email})
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        user.pop("password", None)
        return serialize_document(user)


# Product routes
@router.get("/products")
def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    db: Database = Depends(get_database),
    log: logging.Logger = Depends(get_logger),
):
    with handler_errors(log, "Fetching products", "Failed to fetch products"):
        products = get_documents(db, PRODUCTS, build_product_query(category, search))
        return serialize_document(products)


@router.get("/products/recent")
def recent_products(
    db: Database = Depends(get_database),
    log: logging.Logger = Depends(get_logger),
):
    with handler_errors(log, "Fetching recent products", "Failed to fetch recent products"):
        products = get_documents(
            db,
            PRODUCTS,
            sort=[("createdAt", -1)],
            limit=RECENT_PRODUCTS_LIMIT,
        )
        return serialize_document(products)


@router.get("/products/{product_id}")
def get_product(
    product_id: str,
    db: Database = Depends(get_database),
    log: logging.Logger = Depends(get_logger),
):
    oid = product_object_id(product_id)
    with handler_errors(log, "Fetching product", "Failed to fetch product"):
        product = find_document(db, PRODUCTS, {"_id": oid})
        if not product:
            raise HTTPException(status_code=404, detail="Product not found")
        return serialize_document(product)


@router.post("/products", status_code=201, response_model=InsertResult)
def add_product(
    body: Optional[Dict[str, Any]] = Body(None),
    db: Database = Depends(get_database),
    log: logging.Logger = Depends(get_logger),
):
    with handler_errors(log, "Adding product", "Failed to add product"):
        result = create_document(db, PRODUCTS, {**(body or {}), "createdAt": now()})
        return InsertResult(acknowledged=result.acknowledged, insertedId=str(result.inserted_id))


@router.delete("/products/{product_id}", response_model=Message)
def delete_product(
    product_id: str,
    db: Database = Depends(get_database),
    log: logging.Logger = Depends(get_logger),
):
    oid = product_object_id(product_id)
    with handler_errors(log, "Deleting product", "Failed to delete product"):
        if delete_document(db, PRODUCTS, {"_id": oid}) == 0:
            raise HTTPException(status_code=404, detail="Product not found")
    return Message(message="Product deleted successfully")


async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        {"error": exc.detail},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse({"error": "Invalid request body"}, status_code=400)


def create_app(
    database: Optional[Database] = None,
    logger: Optional[logging.Logger] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the API.

    Without ``database`` the app connects to MongoDB during startup and a
    connection failure aborts the startup. Passing a database (for instance
    an in-memory double) skips the connection step.
    """
    settings = settings or get_settings()
    log = logger or configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = None
        if app.state.db is None:
            client, app.state.db = connect(settings.database_url, settings.database_name)
        else:
            ensure_indexes(app.state.db)
        log.info("GadgetVerse DB connected (%s)", ", ".join(COLLECTIONS))
        try:
            yield
        finally:
            if client is not None:
                client.close()

    app = FastAPI(title="GadgetVerse API", lifespan=lifespan)
    app.state.db = database
    app.state.logger = log

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, http_error)
    app.add_exception_handler(RequestValidationError, invalid_body)

    @app.get("/", response_class=PlainTextResponse)
    def read_root():
        return "GadgetVerse Server Running"

    app.include_router(router)
    return app


app = create_app()


def run(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    log = logging.getLogger(LOGGER_NAME)
    log.info("Starting server on http://localhost:%s", settings.port)
    log.info("API Base: http://localhost:%s/api", settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
