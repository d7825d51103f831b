# coachbook/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coachbook.core import config

#Import Routers
from coachbook.api.v1 import availability
from coachbook.api.v1 import bookings

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI app
app = FastAPI(
    title="Coachbook API",
    description="Availability and booking engine for coaching sessions",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
#Include routers
app.include_router(availability.router, prefix="/api/v1")
app.include_router(bookings.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Coachbook API",
        "version": "1.0.0",
        "status": "running"
    }

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "environment": config.APP_ENV
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "coachbook.main:app",
        host=config.API_HOST,
        port=config.API_PORT,
        reload=True
    )
