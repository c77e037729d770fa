"""
Main FastAPI application entry point.
"""
import re
import uvicorn
import logging
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from routers import calendar, directory, lesson_config, periods, rooms, timeoff, timetable
from config import settings
from db import init_db

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

init_db()

# Initialize the FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Automatic school timetable generation: lesson requirements, time off, rooms and periods in, conflict-free weekly timetable out.",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _readable(part) -> str:
    """classIds -> Class Ids"""
    return re.sub(r"(?<!^)(?=[A-Z])", " ", str(part)).replace("_", " ").title()


# Custom exception handler for validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert FastAPI validation errors to human-friendly format.

    Expected format:
    {
        "errors": {
            "field_name": ["Error message 1", "Error message 2"]
        }
    }
    """
    errors = {}

    for error in exc.errors():
        # Extract field name from error location
        field_path = list(error.get("loc", []))

        # Skip "body" prefix; whole-body errors come from model validators
        if field_path and field_path[0] in ("body", "query", "path"):
            field_path = field_path[1:]

        # Convert field path to human-readable name
        field_name = " -> ".join(_readable(p) for p in field_path) or "Request"

        # Get error message
        error_msg = error.get("msg", "Invalid value")
        error_type = error.get("type", "")

        # Create human-friendly messages
        if error_type == "missing":
            error_msg = f"{field_name} is required."
        elif error_type == "value_error":
            error_msg = error_msg.removeprefix("Value error, ")
        elif error_type == "string_pattern_mismatch":
            error_msg = f"{field_name} must be in HH:MM format (e.g., '08:00')."
        elif error_type == "enum" or error_type == "literal_error":
            error_msg = f"{field_name}: {error_msg}"
        elif "greater_than" in error_type.lower():
            error_msg = f"{field_name} must be greater than the specified value."
        elif "less_than" in error_type.lower():
            error_msg = f"{field_name} must be less than the specified value."
        elif error_type == "too_short":
            error_msg = f"{field_name} must not be empty."
        else:
            # Use the original message but make it more readable
            error_msg = f"{field_name}: {error_msg}"

        # Add to errors dict
        if field_name not in errors:
            errors[field_name] = []
        errors[field_name].append(error_msg)

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"errors": errors}
    )

# Include routers
app.include_router(timetable.router, prefix="/api/v1", tags=["timetable"])
app.include_router(timeoff.router, prefix="/api/v1", tags=["time off"])
app.include_router(lesson_config.router, prefix="/api/v1", tags=["lesson configuration"])
app.include_router(periods.router, prefix="/api/v1", tags=["periods"])
app.include_router(rooms.router, prefix="/api/v1", tags=["rooms"])
app.include_router(calendar.router, prefix="/api/v1", tags=["calendar"])
app.include_router(directory.router, prefix="/api/v1", tags=["directory"])

@app.get("/", tags=["health"])
async def root():
    """Root endpoint - API health check."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "status": "healthy",
        "docs": "/docs"
    }

@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}

if __name__ == "__main__":
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload
    )
