"""
Main FastAPI application entry point.
Configures the application, middleware, and includes routers.
"""
from dotenv import load_dotenv

# Load environment variables from .env file first
load_dotenv()

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
import logging
from .appointments.router import router as appointments_router
from .ledger.router import router as ledger_router
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from .database import engine, Base, get_db
from .config import settings
from .appointments import models as appointment_models  # noqa: F401  registers tables
from .ledger import models as ledger_models  # noqa: F401  registers tables
from .exceptions import register_exception_handlers
from .core.middleware import setup_middlewares

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Create database tables if they don't exist
Base.metadata.create_all(bind=engine)

logger.info("Starting Dental Clinic Scheduling API...")

# Create FastAPI application
app = FastAPI(
    title="Dental Clinic Scheduling API",
    description="Appointment scheduling with conflict detection and a payment ledger",
    version="1.0.0"
)

# Register exception handlers
register_exception_handlers(app)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Setup custom middleware
setup_middlewares(app)

# Include routers
app.include_router(appointments_router, prefix="/api/v1/appointments", tags=["Appointments"])
app.include_router(ledger_router, prefix="/api/v1/financial", tags=["Financial"])

# Root endpoint
@app.get("/")
def root():
    """
    Root endpoint for API health check.
    
    Returns:
        dict: Welcome message and API version
    """
    return {"message": "Welcome to Dental Clinic Scheduling API", "version": app.version}

# Health check endpoint
@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint for monitoring.
    
    Returns:
        dict: Health status information
    """
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check database probe failed: {str(e)}")
        return {"status": "degraded", "database": "unavailable"}
    return {"status": "healthy", "database": "connected"}
