"""Gamma Timetable Server - FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from timetable_server.config import settings
from timetable_server.database import engine, init_db
from timetable_server.services.errors import CodeSpaceExhausted

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize logging and database, sweep expired pairing state."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()

    from timetable_server.services.pairing_service import purge_expired_registrations
    from timetable_server.services.token_service import purge_expired_tokens

    with Session(engine) as session:
        purge_expired_registrations(session)
        purge_expired_tokens(session)

    logger.info("%s started", settings.server_name)
    yield


app = FastAPI(
    title="Gamma Timetable",
    description="Device pairing and token exchange for the Gamma Timetable extension",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS - the extension calls from a chrome-extension:// origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


SERVER_ERROR = {"error": "server_error"}


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    # Operators get the full error; clients only a generic code
    logger.exception("Datastore failure on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=SERVER_ERROR)


@app.exception_handler(CodeSpaceExhausted)
async def code_space_error_handler(request: Request, exc: CodeSpaceExhausted):
    return JSONResponse(status_code=exc.status_code, content=SERVER_ERROR)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "invalid_request", "fields": [".".join(map(str, e["loc"])) for e in exc.errors()]},
    )


# --- Register API routers ---
from timetable_server.api.auth import router as auth_router  # noqa: E402
from timetable_server.api.devices import router as devices_router  # noqa: E402
from timetable_server.api.system import router as system_router  # noqa: E402

API_PREFIX = "/api"

app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(devices_router, prefix=API_PREFIX)
app.include_router(system_router, prefix=API_PREFIX)


@app.get("/")
def root():
    """Server info."""
    return {
        "name": settings.server_name,
        "version": "0.1.0",
        "status": "running",
    }
