import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import FRONTEND_URL, LOG_LEVEL
from .domain.scheduling.filters import configure_collation
from .domain.scheduling.router import entities_router
from .domain.scheduling.router import router as bookings_router
from .domain.scheduling.service import SessionManager
from .errors import (
    AuthError,
    BookingHubError,
    EntityListError,
    NotFoundError,
    TransportError,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    collation = configure_collation()
    logger.info(f"🔤 Sorting text with collation {collation!r}")
    app.state.sessions = SessionManager()
    yield
    logger.info("Application shutting down...")
    await app.state.sessions.close_all()


app = FastAPI(title="Booking Hub API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    logger.warning(f"🔒 Authentication failed for {request.url.path}: {exc}")
    return JSONResponse(status_code=401, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def booking_validation_handler(request: Request, exc: ValidationError):
    logger.warning(f"⚠️ Rejected payload for {request.url.path}: {exc}")
    return JSONResponse(status_code=422, content={"detail": str(exc), "errors": exc.errors})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(EntityListError)
async def entity_list_error_handler(request: Request, exc: EntityListError):
    logger.error(f"❌ Entity list unavailable for {request.url.path}: {exc}")
    return JSONResponse(
        status_code=502, content={"detail": "Unable to load your properties and tours"}
    )


@app.exception_handler(TransportError)
async def transport_error_handler(request: Request, exc: TransportError):
    logger.error(f"❌ Upstream failure for {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(BookingHubError)
async def booking_hub_error_handler(request: Request, exc: BookingHubError):
    logger.error(f"❌ Unhandled booking hub error for {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


app.include_router(bookings_router)
app.include_router(entities_router)


@app.get("/health")
async def health():
    return {"status": "ok", "sessions": len(app.state.sessions)}
