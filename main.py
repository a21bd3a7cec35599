import os
import logfire

from dotenv import load_dotenv

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from contextlib import asynccontextmanager

from motor.motor_asyncio import AsyncIOMotorClient
from beanie import init_beanie
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from middleware.rate_limiting import RateLimitMiddleware

from models.users import User

from routers import auth, users

from security.tokens import secrets_are_distinct

from utils.logger import configure_logging, instrument_app


# Load environment variables first
load_dotenv()

configure_logging()


def _error_body(message: str, **extra) -> dict:
    return {"success": False, "message": message, **extra}


@asynccontextmanager
async def lifespan(app: FastAPI):
    logfire.info("Starting Mercury API...")

    if not secrets_are_distinct():  # * also fails fast when a secret is missing
        logfire.warning("Access and refresh tokens share one signing secret")

    client = app.state.mongo_client
    owns_client = client is None
    if owns_client:
        client = AsyncIOMotorClient(
            os.getenv("DATABASE_CONNECTION_STRING", "mongodb://localhost:27017")
        )  # * Connect to MongoDB

    await init_beanie(
        database=client[os.getenv("DATABASE_NAME", "mercury")],
        document_models=[User],
    )
    logfire.info("Database initialized successfully")

    yield

    logfire.info("Shutting down Mercury API...")
    if owns_client:
        client.close()
    logfire.info("Application shutdown complete")


def create_app(mongo_client=None) -> FastAPI:
    """Build the API.

    Args:
        mongo_client: Motor compatible client to use instead of connecting
            to `DATABASE_CONNECTION_STRING`. The caller keeps ownership.
    """
    app = FastAPI(
        title="Mercury API",
        description="Accounts and token based sessions for the Mercury publishing platform.",
        lifespan=lifespan,
    )
    app.state.mongo_client = mongo_client

    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("CORS_ALLOW_ORIGINS", "*").split(","),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["127.0.0.1"])
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=int(os.getenv("RATE_LIMIT_REQUESTS_PER_MINUTE", "100")),
        bucket_capacity=int(os.getenv("RATE_LIMIT_BUCKET_CAPACITY", "120")),  # Allow small bursts
        credential_requests_per_minute=int(os.getenv("RATE_LIMIT_CREDENTIAL_REQUESTS_PER_MINUTE", "10")),
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logfire.info(f"Malformed request body on {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(
                "Validation failed",
                errors=[{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()],
            ),
        )

    @app.exception_handler(ServerSelectionTimeoutError)
    @app.exception_handler(ConnectionFailure)
    async def database_exception_handler(request: Request, exc: Exception):
        logfire.error(f"Database unavailable on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=_error_body("Service temporarily unavailable"),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logfire.error(f"Unexpected error on {request.url.path}: {exc!r}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("An unexpected error occurred"),
        )

    app.include_router(auth.router)
    app.include_router(users.router)

    instrument_app(app)
    return app


app = create_app()
