# src/main.py

import logging
import logging.config
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from src.common.database.database import connect_to_db, close_db_connection
from src.common.config import settings
from src.common.utils.exceptions import RideServiceError
from src.router.routers import include_routers

logging.config.dictConfig(settings.LOGGING_CONFIG)
logger = logging.getLogger(__name__)

# Lifespan context manager for startup and shutdown events
@asynccontextmanager
async def lifespan(app: FastAPI):
    await connect_to_db()
    yield
    await close_db_connection()

# Initialize FastAPI app with lifespan manager
app = FastAPI(
    title="RideCare API",
    description="Patient transport to and from hospital appointments",
    version="1.0.0",
    lifespan=lifespan
)

# Middleware for CORS using allowed origins from settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Domain errors become {"detail": ...} with the status each error carries
@app.exception_handler(RideServiceError)
async def ride_service_error_handler(request: Request, exc: RideServiceError):
    logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

# Include routers from a separate file
include_routers(app)

# Root endpoint
@app.get("/")
async def root():
    return {"name": app.title, "version": app.version, "docs": "/docs"}
