import os

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from eventbook.exceptions import EventbookError, InvalidInputError
from eventbook.routers import event, event_seat, seat_booking, user

# Load environment variables
load_dotenv()

# Create FastAPI app
app = FastAPI(
    title="Eventbook - Event Seat Booking",
    description="Event listings and contention-safe seat reservations",
    version="1.0.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(event.router)
app.include_router(event_seat.router)
app.include_router(seat_booking.router)
app.include_router(user.router)


@app.exception_handler(EventbookError)
async def eventbook_error_handler(request: Request, exc: EventbookError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            # Drop the leading "body"/"query"/"path" location segment
            "field": ".".join(str(part) for part in error["loc"][1:]) or str(error["loc"][0]),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    payload = InvalidInputError("Validation failed").to_payload()
    payload["errors"] = errors
    return JSONResponse(status_code=InvalidInputError.status_code, content=payload)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "Eventbook",
        "version": "1.0.0"
    }


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Welcome to Eventbook - Event Seat Booking",
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/db-test")
async def test_database():
    """Test DynamoDB connection"""
    from eventbook.database import db_client
    return db_client.test_connection()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "eventbook.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 8000)),
        reload=os.getenv("DEBUG", "False").lower() == "true"
    )
