"""
Billing Ledger API - Main Application.

FastAPI application with CORS enabled for frontend communication.
"""

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI application
app = FastAPI(
    title="Billing Ledger API",
    description="REST API for sales, payments and customer balances",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS - Allow all origins for development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "billing-ledger-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Billing Ledger API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import customers, payments, products, sales

app.include_router(customers.router, prefix="/api/v1", tags=["Customers"])
app.include_router(products.router, prefix="/api/v1", tags=["Products"])
app.include_router(sales.router, prefix="/api/v1", tags=["Sales"])
app.include_router(payments.router, prefix="/api/v1", tags=["Payments"])
