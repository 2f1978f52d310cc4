"""
Credential broker backend: email/password and OAuth login, encrypted token
storage, Google token refresh.

Load .env in development only (production uses env vars directly). Add CORS,
error handlers, optional DB init.
"""
import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import ENV, FRONTEND_URL, LOG_LEVEL, SKIP_DB_INIT

# Load .env only in development; production should set env vars directly
if ENV == "development":
    load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from database import init_db
from errors import BrokerError
from auth import router as auth_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

# Create DB tables if not skipping (production uses migrations)
if not SKIP_DB_INIT:
    init_db()

app = FastAPI(
    title="Credential Broker",
    description="Email/password and OAuth sign-in with encrypted provider token storage and refresh.",
)

# CORS: explicit origin only
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL] if FRONTEND_URL else [],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(BrokerError)
async def broker_error_handler(request: Request, exc: BrokerError):
    """Typed errors carry a safe message; the cause was already logged where it happened."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions; log and return generic 500. Never leak stack traces."""
    # Let FastAPI handle HTTPException (validation, etc.)
    if isinstance(exc, HTTPException):
        raise exc
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "internal", "message": "Internal server error"}},
    )


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(auth_router)
